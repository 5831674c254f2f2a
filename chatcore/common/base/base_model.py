# =============================================================================
# File: chatcore/common/base/base_model.py
# Description: Base Pydantic model for all update events
# =============================================================================

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Final

from pydantic import BaseModel, Field, ConfigDict

_DEFAULT_EVENT_VERSION: Final[int] = 1


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class BaseEvent(BaseModel):
    """
    Base Pydantic model for events published to the broker.
    Events are immutable facts; every one carries an id and a UTC timestamp.
    """
    event_id: uuid.UUID = Field(default_factory=uuid.uuid4)
    timestamp: datetime = Field(default_factory=utc_now)
    version: int = Field(default=_DEFAULT_EVENT_VERSION, description="Version of this event model's schema")

    model_config = ConfigDict(
        frozen=True,
        from_attributes=True,
        populate_by_name=True,
    )

    def to_bytes(self) -> bytes:
        return self.model_dump_json(by_alias=True).encode("utf-8")
