# =============================================================================
# File: chatcore/security/identity.py
# Description: Authenticated caller identity handed to the chat use-cases
# =============================================================================

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Protocol

from fastapi import Request
from pydantic import BaseModel, ConfigDict, Field

log = logging.getLogger("chatcore.security.identity")


class CallerIdentity(BaseModel):
    """User id plus the claims the authentication collaborator attached"""
    user_id: str
    claims: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)


class Authenticator(Protocol):
    """Verifies credentials on an inbound request.

    Returns None for anonymous requests. Implementations live outside
    chatcore (JWT verification, mTLS, gateway headers, ...).
    """

    async def authenticate(self, request: Request) -> Optional[CallerIdentity]:
        ...


async def get_caller(request: Request) -> Optional[CallerIdentity]:
    """
    FastAPI dependency resolving the caller through the configured authenticator.
    Anonymous when no authenticator is configured or it returns None.
    """
    authenticator: Optional[Authenticator] = getattr(request.app.state, "authenticator", None)
    if authenticator is None:
        log.debug("No authenticator configured, treating request as anonymous")
        return None
    return await authenticator.authenticate(request)
