# chatcore/common/base/base_config.py
# =============================================================================
# BaseConfig - Foundation for all chatcore configuration classes
#
# - SettingsConfigDict with automatic .env file loading
# - Case-insensitive environment variables
# - Nested config support via __ delimiter
# - SecretStr for sensitive values, masked in repr
# - @lru_cache singleton pattern for factory functions
#
# Usage:
#     class MyConfig(BaseConfig):
#         model_config = SettingsConfigDict(**BASE_CONFIG_DICT, env_prefix="MY_")
#         timeout_ms: int = 5000
#
#     @lru_cache(maxsize=1)
#     def get_my_config() -> MyConfig:
#         return MyConfig()
# =============================================================================

from typing import Any, Dict

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_CONFIG_DICT: Dict[str, Any] = dict(
    env_file=".env",
    env_file_encoding="utf-8",
    case_sensitive=False,
    extra="ignore",
    env_nested_delimiter="__",
)


class BaseConfig(BaseSettings):
    """Base configuration class for all chatcore configs.

    Environment variable naming uses a domain prefix per config
    (PG_, KAFKA_, CHAT_). Sensitive fields use SecretStr so they are
    masked in logs; read the raw value with .get_secret_value().
    """

    model_config = SettingsConfigDict(**BASE_CONFIG_DICT)

    def to_dict(self, mask_secrets: bool = True) -> Dict[str, Any]:
        """Convert config to dictionary.

        Args:
            mask_secrets: If True (default), SecretStr values are masked.
                         If False, raw values are exposed.
        """
        if mask_secrets:
            return self.model_dump()

        data = {}
        for field_name in type(self).model_fields:
            value = getattr(self, field_name)
            if isinstance(value, SecretStr):
                data[field_name] = value.get_secret_value()
            else:
                data[field_name] = value
        return data

    def __repr__(self) -> str:
        class_name = self.__class__.__name__
        fields = []
        for field_name in type(self).model_fields:
            value = getattr(self, field_name)
            if isinstance(value, SecretStr):
                fields.append(f"{field_name}=SecretStr('**********')")
            else:
                fields.append(f"{field_name}={value!r}")
        return f"{class_name}({', '.join(fields)})"
