# =============================================================================
# File: chatcore/config/pg_client_config.py
# Description: Database configuration for the PostgreSQL pool
# =============================================================================

from functools import lru_cache
from pathlib import Path
from typing import Optional, Dict, Any

from pydantic import BaseModel, Field
from pydantic_settings import SettingsConfigDict

from chatcore.common.base.base_config import BaseConfig, BASE_CONFIG_DICT

_BUNDLED_SCHEMA = Path(__file__).resolve().parent.parent / "infra" / "persistence" / "schema" / "chatcore.sql"


class PoolConfig(BaseModel):
    """PostgreSQL connection pool configuration (nested model)"""
    min_size: int = Field(default=5, description="Minimum pool size")
    max_size: int = Field(default=20, description="Maximum pool size")
    timeout: float = Field(default=5.0, description="Pool acquisition timeout in seconds")
    command_timeout: float = Field(default=10.0, description="Default command timeout")

    max_queries: int = Field(default=50000, description="Close connection after this many queries")
    statement_cache_size: int = Field(default=100)
    max_cached_statement_lifetime: int = Field(default=300)
    max_inactive_connection_lifetime: float = Field(default=300.0)

    server_settings: Optional[Dict[str, str]] = Field(default=None)

    def to_asyncpg_params(self) -> Dict[str, Any]:
        """Convert to asyncpg pool parameters"""
        params = {
            'min_size': self.min_size,
            'max_size': self.max_size,
            'timeout': self.timeout,
            'command_timeout': self.command_timeout,
            'statement_cache_size': self.statement_cache_size,
            'max_cached_statement_lifetime': self.max_cached_statement_lifetime,
            'max_inactive_connection_lifetime': self.max_inactive_connection_lifetime,
            'max_queries': self.max_queries,
        }

        if self.server_settings:
            params['server_settings'] = self.server_settings

        return params


class PostgresConfig(BaseConfig):
    """PostgreSQL database configuration for chatcore"""

    model_config = SettingsConfigDict(
        **BASE_CONFIG_DICT,
        env_prefix='PG_',
        populate_by_name=True,
    )

    main_dsn: Optional[str] = Field(
        default=None,
        alias="POSTGRES_DSN",
        description="Main database DSN"
    )

    # Pool configuration
    pool_min_size: int = Field(default=5, description="Pool min size")
    pool_max_size: int = Field(default=20, description="Pool max size")
    pool_timeout: float = Field(default=5.0, description="Pool acquire timeout")
    pool_command_timeout: float = Field(default=10.0, description="Pool command timeout")

    # Features
    run_schemas_on_startup: bool = Field(default=True)
    schema_file: Optional[str] = Field(default=None, description="DDL file; defaults to the bundled chatcore.sql")

    # Health check
    health_check_query: str = Field(default="SELECT 1")
    health_check_timeout: float = Field(default=5.0)

    # Performance monitoring
    long_transaction_threshold_ms: float = Field(default=2000.0)
    slow_acquire_threshold_ms: float = Field(default=500.0)

    # Statement cache
    statement_cache_size: int = Field(default=100)
    max_cached_statement_lifetime: int = Field(default=300)
    max_queries: int = Field(default=50000)

    @property
    def schema_path(self) -> str:
        """DDL file applied at startup"""
        if self.schema_file:
            return self.schema_file
        return str(_BUNDLED_SCHEMA)

    @property
    def main_pool(self) -> PoolConfig:
        """Get main pool configuration"""
        return PoolConfig(
            min_size=self.pool_min_size,
            max_size=self.pool_max_size,
            timeout=self.pool_timeout,
            command_timeout=self.pool_command_timeout,
            statement_cache_size=self.statement_cache_size,
            max_cached_statement_lifetime=self.max_cached_statement_lifetime,
            max_queries=self.max_queries,
        )


# =============================================================================
# Factory Function
# =============================================================================

@lru_cache(maxsize=1)
def get_postgres_config() -> PostgresConfig:
    """Get PostgreSQL configuration singleton (cached)."""
    return PostgresConfig()


def reset_postgres_config() -> None:
    """Reset config singleton (for testing)."""
    get_postgres_config.cache_clear()
