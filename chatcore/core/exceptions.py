# =============================================================================
# File: chatcore/core/exceptions.py
# Description: Exception handlers for FastAPI application
# =============================================================================

import os
import logging

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from starlette import status
from starlette.responses import JSONResponse

from chatcore.chat.exceptions import AuthenticationRequiredError
from chatcore.common.exceptions.exceptions import (
    ConflictError,
    InfrastructureError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from chatcore.core.fastapi_types import FastAPI

logger = logging.getLogger("chatcore.exceptions")


def _is_production() -> bool:
    return os.getenv("ENVIRONMENT", "development") == "production"


def setup_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI application"""

    # Starlette resolves handlers along the exception MRO, so subclasses
    # (AuthenticationRequiredError) win over their bases (PermissionDeniedError)
    app.add_exception_handler(AuthenticationRequiredError, authentication_required_handler)
    app.add_exception_handler(PermissionDeniedError, permission_denied_handler)
    app.add_exception_handler(NotFoundError, not_found_handler)
    app.add_exception_handler(ConflictError, conflict_handler)
    app.add_exception_handler(ValidationError, domain_validation_handler)
    app.add_exception_handler(InfrastructureError, infrastructure_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    logger.info("Exception handlers registered")


async def authentication_required_handler(request: Request, exc: AuthenticationRequiredError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={"detail": str(exc)},
    )


async def permission_denied_handler(request: Request, exc: PermissionDeniedError) -> JSONResponse:
    logger.warning(f"Permission denied on path {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_403_FORBIDDEN,
        content={"detail": str(exc)},
    )


async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"detail": str(exc)},
    )


async def conflict_handler(request: Request, exc: ConflictError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={"detail": str(exc)},
    )


async def domain_validation_handler(request: Request, exc: ValidationError) -> JSONResponse:
    """Empty member lists and business rule violations (invalid argument)"""
    logger.info(f"Rejected request on path {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": str(exc)},
    )


async def infrastructure_exception_handler(request: Request, exc: InfrastructureError) -> JSONResponse:
    """Store/broker failures, failed commits and deadlines"""
    logger.error(f"Infrastructure failure on path {request.url.path}: {type(exc).__name__}: {exc}")

    if _is_production():
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "An internal server error occurred."}
        )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": str(exc), "type": type(exc).__name__}
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle request validation errors"""
    logger.warning(f"Validation error on path {request.url.path}: {exc.errors()}")

    errors = []
    for error in exc.errors():
        error_dict = {
            "loc": error["loc"],
            "msg": error["msg"],
            "type": error["type"],
        }

        if "ctx" in error:
            error_dict["ctx"] = {
                key: str(value) if isinstance(value, Exception) else value
                for key, value in error["ctx"].items()
            }

        errors.append(error_dict)

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": errors},
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle general unhandled exceptions"""
    logger.error(f"Unhandled exception on path {request.url.path}: {str(exc)}", exc_info=True)

    if _is_production():
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "An internal server error occurred."}
        )
    else:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": str(exc), "type": type(exc).__name__}
        )
