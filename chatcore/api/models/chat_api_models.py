# =============================================================================
# File: chatcore/api/models/chat_api_models.py
# Description: Chat API models (Pydantic v2)
# =============================================================================

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Annotated, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from chatcore.chat.models import ChatWithMembers, FileAttachment, Message, RichChat

# Upper bound of `count` accepted by the message read endpoints
MAX_MESSAGES_COUNT = 512

UserId = Annotated[str, Field(min_length=1, max_length=255)]


# =============================================================================
# Request Models
# =============================================================================

class CreateChatRequest(BaseModel):
    """Request to create a chat. The caller is added to `members` if absent."""
    chat_id: uuid.UUID
    is_direct: bool = False
    members: List[UserId] = Field(default_factory=list)


class ChatMembersRequest(BaseModel):
    """Users to add to or remove from a chat"""
    users: List[UserId] = Field(..., min_length=1)


class AttachmentModel(BaseModel):
    mime_type: str = Field(..., min_length=1, max_length=255)
    file_id: str = Field(..., min_length=1, max_length=255)


class SendMessageRequest(BaseModel):
    """Request to send a message; the chat id comes from the path"""
    message_id: uuid.UUID
    text: Optional[str] = Field(None, max_length=10000)
    reply_to: Optional[uuid.UUID] = None
    attachments: List[AttachmentModel] = Field(default_factory=list)

    @model_validator(mode="after")
    def _text_or_attachments(self) -> "SendMessageRequest":
        if not self.text and not self.attachments:
            raise ValueError("text is required when there are no attachments")
        return self


# =============================================================================
# Response Models
# =============================================================================

class ChatResponse(BaseModel):
    chat_id: uuid.UUID
    is_direct: bool
    members_count: int

    model_config = ConfigDict(from_attributes=True)


class ChatWithMembersResponse(ChatResponse):
    members: List[str]

    @classmethod
    def from_chat(cls, chat: ChatWithMembers) -> "ChatWithMembersResponse":
        return cls(
            chat_id=chat.chat_id,
            is_direct=chat.is_direct,
            members_count=chat.members_count,
            members=chat.member_ids,
        )


class MessageResponse(BaseModel):
    message_id: uuid.UUID
    chat_id: uuid.UUID
    from_user: str
    sending_time: datetime
    text: Optional[str] = None
    reply_to: Optional[uuid.UUID] = None
    attachments: List[FileAttachment] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_message(cls, message: Message) -> "MessageResponse":
        return cls(
            message_id=message.message_id,
            chat_id=message.chat_id,
            from_user=message.from_user,
            sending_time=message.sending_time,
            text=message.text,
            reply_to=message.reply_to,
            attachments=list(message.attachments),
        )


class RichChatResponse(ChatResponse):
    """Entry of the caller's chat list"""
    last_message: Optional[MessageResponse] = None

    @classmethod
    def from_rich_chat(cls, chat: RichChat) -> "RichChatResponse":
        return cls(
            chat_id=chat.chat_id,
            is_direct=chat.is_direct,
            members_count=chat.members_count,
            last_message=MessageResponse.from_message(chat.last_message) if chat.last_message else None,
        )


class MembersRemovedResponse(BaseModel):
    removed: int
