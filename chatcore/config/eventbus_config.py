# chatcore/config/eventbus_config.py
"""
Kafka/Redpanda producer configuration for chat updates.

The updates topic is keyed by chat id, so every update of one chat lands on
the same partition. Delivery guarantees are whatever these producer settings
give; this layer never retries on its own.
"""

from functools import lru_cache
from typing import Any, Dict, Optional, Union

from pydantic import Field
from pydantic_settings import SettingsConfigDict

from chatcore.common.base.base_config import BaseConfig, BASE_CONFIG_DICT
from chatcore.config.logging_config import get_logger

log = get_logger("chatcore.config.eventbus")


class KafkaConfig(BaseConfig):
    """Kafka/Redpanda connection and producer configuration"""

    model_config = SettingsConfigDict(
        **BASE_CONFIG_DICT,
        env_prefix='KAFKA_',
    )

    bootstrap_servers: str = Field(default="localhost:29092", description="Comma separated broker list")
    client_id: str = Field(default="chatcore")
    updates_topic: str = Field(default="chats.updates", description="Topic receiving Update envelopes")

    # Producer settings
    acks: str = Field(default="1", description="all, 1, 0")
    request_timeout_ms: int = Field(default=10000)
    enable_idempotence: bool = Field(default=False)
    linger_ms: int = Field(default=0)
    compression_type: Optional[str] = Field(default=None, description="gzip, snappy, lz4, zstd or empty")
    max_request_size: int = Field(default=1048576)

    @staticmethod
    def _parse_acks(acks_value: str) -> Union[int, str]:
        """Parse ACKS configuration value to proper type"""
        if acks_value.lower() == 'all':
            return 'all'
        try:
            acks_int = int(acks_value)
            if acks_int in [0, 1, -1]:
                return acks_int
            log.warning(f"Invalid acks value {acks_int}, defaulting to 1")
            return 1
        except ValueError:
            log.warning(f"Invalid acks value '{acks_value}', defaulting to 1")
            return 1

    def to_producer_params(self) -> Dict[str, Any]:
        """Convert to AIOKafkaProducer keyword arguments"""
        params: Dict[str, Any] = {
            'bootstrap_servers': self.bootstrap_servers,
            'client_id': self.client_id,
            'acks': self._parse_acks(self.acks),
            'request_timeout_ms': self.request_timeout_ms,
            'enable_idempotence': self.enable_idempotence,
            'linger_ms': self.linger_ms,
            'max_request_size': self.max_request_size,
        }
        if self.enable_idempotence:
            # aiokafka requires acks=all for idempotent producers
            params['acks'] = 'all'
        if self.compression_type:
            params['compression_type'] = self.compression_type
        return params


@lru_cache(maxsize=1)
def get_kafka_config() -> KafkaConfig:
    """Get Kafka configuration singleton (cached)."""
    return KafkaConfig()


def reset_kafka_config() -> None:
    """Reset config singleton (for testing)."""
    get_kafka_config.cache_clear()
