# chatcore/core/routes.py
# =============================================================================
# File: chatcore/core/routes.py
# Description: Router registration and the health endpoint
# =============================================================================

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Request
from starlette import status
from starlette.responses import JSONResponse

from chatcore import __version__
from chatcore.api.routers.chat_router import router as chat_router
from chatcore.core.app_state import get_start_time
from chatcore.core.fastapi_types import FastAPI
from chatcore.infra.persistence.pg_client import health_check as pg_health_check

logger = logging.getLogger("chatcore.routes")

health_router = APIRouter(tags=["system"])


@health_router.get("/health")
async def health(request: Request) -> JSONResponse:
    """Relational store and broker health"""
    state = request.app.state
    postgres = await pg_health_check(getattr(state, "pg_pool", None))

    adapter = getattr(state, "kafka_adapter", None)
    kafka_ok = await adapter.ping() if adapter is not None else False

    healthy = postgres["is_healthy"] and kafka_ok
    return JSONResponse(
        status_code=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "ok" if healthy else "degraded",
            "version": __version__,
            "uptime_seconds": int((datetime.now(timezone.utc) - get_start_time()).total_seconds()),
            "postgres": postgres,
            "kafka": {
                "is_healthy": kafka_ok,
                **(adapter.get_stats() if adapter is not None else {}),
            },
        },
    )


def setup_routes(app: FastAPI) -> None:
    app.include_router(health_router)
    app.include_router(chat_router)
    logger.info("Routes registered")
