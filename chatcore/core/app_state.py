# =============================================================================
# File: chatcore/core/app_state.py
# Description: Application state definition
# =============================================================================

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

import asyncpg

from chatcore.infra.event_bus.redpanda_adapter import RedpandaTransportAdapter
from chatcore.infra.persistence.registry import Registry
from chatcore.security.identity import Authenticator
from chatcore.services.application.chat_service import ChatService

_START_TIME = datetime.now(timezone.utc)


class AppState:
    """Type definition for FastAPI app.state with proper type hints"""

    def __init__(self):
        # Core infrastructure
        self.pg_pool: Optional[asyncpg.Pool] = None
        self.kafka_adapter: Optional[RedpandaTransportAdapter] = None

        # Unit of work and use-cases
        self.registry: Optional[Registry] = None
        self.chat_service: Optional[ChatService] = None

        # Caller identity (None -> every request is anonymous)
        self.authenticator: Optional[Authenticator] = None


def get_start_time() -> datetime:
    return _START_TIME
