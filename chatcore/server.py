# chatcore/server.py
# =============================================================================
# File: chatcore/server.py
# Description: FastAPI application entry point
# =============================================================================

from __future__ import annotations

import os
import logging
from typing import Optional

from chatcore import __version__
from chatcore.config.logging_config import setup_logging
from chatcore.core.exceptions import setup_exception_handlers
from chatcore.core.fastapi_types import FastAPI
from chatcore.core.lifespan import lifespan
from chatcore.core.routes import setup_routes
from chatcore.security.identity import Authenticator

logger = logging.getLogger("chatcore.server")


def create_app(authenticator: Optional[Authenticator] = None, **kwargs) -> FastAPI:
    """
    Build the chatcore application.

    `authenticator` verifies callers; without one every request is anonymous
    and only rejected operations are reachable.
    """
    app = FastAPI(
        title=f"chatcore API v{__version__}",
        version=__version__,
        lifespan=kwargs.pop("lifespan", lifespan),
        docs_url="/docs",
        openapi_url="/openapi.json",
        **kwargs,
    )
    app.state.authenticator = authenticator

    setup_routes(app)
    setup_exception_handlers(app)
    return app


# =============================================================================
# Development entry point
# =============================================================================
if __name__ == "__main__":
    import subprocess
    import sys

    setup_logging(
        service_name="api",
        log_file=os.getenv("LOG_FILE") if os.getenv("LOG_FILE") else None,
        enable_json=os.getenv("ENVIRONMENT") == "production",
    )

    port = os.getenv("PORT", "5001")
    host = os.getenv("HOST", "0.0.0.0")
    reload = os.getenv("RELOAD", "true").lower() == "true"

    logger.info(f"Starting chatcore API on {host}:{port} (reload={reload})")

    cmd = [
        "granian",
        "--interface", "asgi",
        "--factory",
        "chatcore.server:create_app",
        "--host", host,
        "--port", str(port),
    ]

    if reload:
        cmd.extend(["--reload", "--reload-paths", "chatcore/"])

    sys.exit(subprocess.call(cmd))
