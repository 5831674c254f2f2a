# =============================================================================
# File: chatcore/chat/models.py
# Description: Chat domain models (rows of chats, chat_members, messages)
# =============================================================================

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional, List

from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator


class FileAttachment(BaseModel):
    """Attachment identity; the bytes live in file storage"""
    mime_type: str
    file_id: str

    model_config = ConfigDict(from_attributes=True, frozen=True)


class Chat(BaseModel):
    """Read model for a chat (table: chats)"""
    chat_id: uuid.UUID
    is_direct: bool = False
    members_count: int = 0

    model_config = ConfigDict(from_attributes=True)


class ChatMember(BaseModel):
    """Membership row (table: chat_members)"""
    user_id: str

    model_config = ConfigDict(from_attributes=True)


class ChatWithMembers(Chat):
    """Chat plus its members ordered by user id"""
    members: List[ChatMember] = Field(default_factory=list)

    @property
    def member_ids(self) -> List[str]:
        return [member.user_id for member in self.members]


class Message(BaseModel):
    """Read model for messages (table: messages)"""
    message_id: uuid.UUID
    chat_id: uuid.UUID
    from_user: str
    sending_time: datetime
    text: Optional[str] = None
    reply_to: Optional[uuid.UUID] = None
    attachments: List[FileAttachment] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)

    @field_validator("sending_time")
    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class RichChat(BaseModel):
    """Chat list entry: a chat plus its most recent message"""
    chat_id: uuid.UUID
    is_direct: bool = False
    members_count: int = 0
    last_message: Optional[Message] = None

    model_config = ConfigDict(from_attributes=True)


# =============================================================================
# Use-case inputs
# =============================================================================

class ChatCreate(BaseModel):
    """Request to create a chat with an initial member list"""
    chat_id: uuid.UUID
    is_direct: bool = False
    members: List[str] = Field(default_factory=list)


class MessageSend(BaseModel):
    """Request to send a message into a chat"""
    message_id: uuid.UUID
    chat_id: uuid.UUID
    text: Optional[str] = None
    reply_to: Optional[uuid.UUID] = None
    attachments: List[FileAttachment] = Field(default_factory=list)

    @model_validator(mode="after")
    def _text_or_attachments(self) -> "MessageSend":
        if not self.text and not self.attachments:
            raise ValueError("text is required when there are no attachments")
        return self


class MessagesSelect(BaseModel):
    """Selector for a page of chat messages"""
    chat_id: uuid.UUID
    since: Optional[datetime] = None
    until: Optional[datetime] = None
    count: Optional[int] = Field(default=None, ge=1)
