# =============================================================================
# File: chatcore/chat/events.py
# Description: Chat update events published to the updates topic
# =============================================================================

from __future__ import annotations

import uuid
from typing import Annotated, Literal, Optional, List, Union

from pydantic import BaseModel, ConfigDict, Field

from chatcore.common.base.base_model import BaseEvent
from chatcore.chat.models import FileAttachment


class _UpdatePayload(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    chat_id: uuid.UUID


class ChatCreated(_UpdatePayload):
    """A chat was created with its initial members"""
    event_type: Literal["ChatCreated"] = "ChatCreated"
    is_direct: bool
    members: List[str]


class MessageSent(_UpdatePayload):
    """A message was stored in a chat"""
    event_type: Literal["MessageSent"] = "MessageSent"
    message_id: uuid.UUID
    from_user: str
    text: Optional[str] = None
    reply_to: Optional[uuid.UUID] = None
    attachments: List[FileAttachment] = Field(default_factory=list)


class MemberAdded(_UpdatePayload):
    """Membership of a chat changed by an addition"""
    event_type: Literal["MemberAdded"] = "MemberAdded"
    username: str


class MemberRemoved(_UpdatePayload):
    """Membership of a chat changed by a removal"""
    event_type: Literal["MemberRemoved"] = "MemberRemoved"
    username: str


UpdatePayload = Annotated[
    Union[ChatCreated, MessageSent, MemberAdded, MemberRemoved],
    Field(discriminator="event_type"),
]


class Update(BaseEvent):
    """
    Envelope for exactly one update payload.

    `audience` lists every user that must be notified. The envelope is built,
    published once and dropped; nothing here is persisted.
    """
    audience: List[str]
    update: UpdatePayload

    @property
    def chat_id(self) -> uuid.UUID:
        return self.update.chat_id

    @property
    def event_type(self) -> str:
        return self.update.event_type
