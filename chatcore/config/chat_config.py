# =============================================================================
# File: chatcore/config/chat_config.py
# Description: Chat use-case limits and deadlines
# =============================================================================

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import SettingsConfigDict

from chatcore.common.base.base_config import BaseConfig, BASE_CONFIG_DICT


class ChatConfig(BaseConfig):
    """Chat domain configuration"""

    model_config = SettingsConfigDict(
        **BASE_CONFIG_DICT,
        env_prefix='CHAT_',
    )

    default_messages_limit: int = Field(default=500, description="Page size when the caller gives no count")
    max_messages_limit: int = Field(default=512, description="Upper bound enforced on request payloads")
    operation_timeout: Optional[float] = Field(
        default=30.0,
        description="Deadline in seconds for one unit of work; empty disables it"
    )


@lru_cache(maxsize=1)
def get_chat_config() -> ChatConfig:
    """Get chat configuration singleton (cached)."""
    return ChatConfig()


def reset_chat_config() -> None:
    """Reset config singleton (for testing)."""
    get_chat_config.cache_clear()
