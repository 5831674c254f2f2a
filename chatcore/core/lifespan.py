# chatcore/core/lifespan.py
# =============================================================================
# File: chatcore/core/lifespan.py
# Description: Application lifespan management (startup/shutdown)
# =============================================================================

import asyncio
import logging
from contextlib import asynccontextmanager

from chatcore import __version__
from chatcore.config.chat_config import get_chat_config
from chatcore.config.eventbus_config import get_kafka_config
from chatcore.config.pg_client_config import get_postgres_config
from chatcore.core.app_state import AppState
from chatcore.core.fastapi_types import FastAPI
from chatcore.infra.event_bus.redpanda_adapter import RedpandaTransportAdapter
from chatcore.infra.persistence.pg_client import close_db_pool, init_db_pool, run_schema_from_file
from chatcore.infra.persistence.registry import Registry
from chatcore.services.application.chat_service import ChatService

logger = logging.getLogger("chatcore.lifespan")


async def shutdown_all_services(app_instance: FastAPI) -> None:
    """Close the broker producer, then the database pool"""
    adapter = app_instance.state.kafka_adapter
    if adapter is not None:
        await adapter.close()
        app_instance.state.kafka_adapter = None

    if app_instance.state.pg_pool is not None:
        await close_db_pool()
        app_instance.state.pg_pool = None


# =============================================================================
# LIFESPAN (Startup/Shutdown)
# =============================================================================
@asynccontextmanager
async def lifespan(app_instance: FastAPI):
    """Application lifespan manager with structured initialization"""

    logger.info(f"chatcore {__version__} starting up...")

    # Authenticator is installed by create_app before startup
    authenticator = getattr(app_instance.state, "authenticator", None)
    app_instance.state = AppState()
    app_instance.state.authenticator = authenticator

    pg_config = get_postgres_config()
    kafka_config = get_kafka_config()
    chat_config = get_chat_config()

    try:
        # Phase 1: Relational store
        logger.info("Phase 1: Initializing PostgreSQL pool...")
        pool = await init_db_pool(config=pg_config)
        app_instance.state.pg_pool = pool

        # Phase 2: Schema
        if pg_config.run_schemas_on_startup:
            logger.info("Phase 2: Running database schema...")
            await run_schema_from_file(pool, pg_config.schema_path)

        # Phase 3: Broker
        logger.info("Phase 3: Starting Kafka producer...")
        adapter = RedpandaTransportAdapter(kafka_config)
        app_instance.state.kafka_adapter = adapter
        await adapter.start()

        # Phase 4: Unit of work and use-cases
        logger.info("Phase 4: Initializing chat service...")
        registry = Registry(
            pool,
            adapter,
            kafka_config.updates_topic,
            operation_timeout=chat_config.operation_timeout,
            pg_config=pg_config,
        )
        app_instance.state.registry = registry
        app_instance.state.chat_service = ChatService(registry, chat_config)

        if authenticator is None:
            logger.warning("No authenticator configured; every request is anonymous")

        logger.info("=" * 60)
        logger.info(f"chatcore v{__version__} ready to serve requests")
        logger.info("=" * 60)

        yield

    except Exception as startup_error:
        logger.error(f"Critical error during startup: {startup_error}", exc_info=True)
        raise

    finally:
        logger.info(f"chatcore v{__version__} shutting down...")
        try:
            async with asyncio.timeout(30.0):
                await shutdown_all_services(app_instance)
            logger.info(f"chatcore v{__version__} stopped gracefully")
        except TimeoutError:
            logger.error("Shutdown timed out after 30s, forcing exit")
