# =============================================================================
# File: chatcore/api/routers/chat_router.py
# Description: Chat API endpoints
# =============================================================================

from __future__ import annotations

import logging
from datetime import datetime
from typing import Annotated, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, Response, status

from chatcore.api.models.chat_api_models import (
    MAX_MESSAGES_COUNT,
    ChatMembersRequest,
    ChatResponse,
    ChatWithMembersResponse,
    CreateChatRequest,
    MembersRemovedResponse,
    MessageResponse,
    RichChatResponse,
    SendMessageRequest,
)
from chatcore.chat.models import ChatCreate, FileAttachment, MessageSend, MessagesSelect
from chatcore.security.identity import CallerIdentity, get_caller
from chatcore.services.application.chat_service import ChatService

log = logging.getLogger("chatcore.api.chat")

router = APIRouter(prefix="/chats", tags=["chats"])

Caller = Annotated[Optional[CallerIdentity], Depends(get_caller)]


# =============================================================================
# Dependency Injection
# =============================================================================

async def get_chat_service(request: Request) -> ChatService:
    """Get chat service from application state"""
    service = getattr(request.app.state, "chat_service", None)
    if service is None:
        raise RuntimeError("Chat service not configured")
    return service


Service = Annotated[ChatService, Depends(get_chat_service)]


# =============================================================================
# Chats
# =============================================================================

@router.post("", response_model=ChatWithMembersResponse, status_code=status.HTTP_201_CREATED)
async def create_chat(request: CreateChatRequest, caller: Caller, service: Service):
    """Create a chat; the caller becomes a member"""
    chat = await service.create_chat(
        caller,
        ChatCreate(chat_id=request.chat_id, is_direct=request.is_direct, members=request.members),
    )
    return ChatWithMembersResponse.from_chat(chat)


@router.get("", response_model=List[RichChatResponse])
async def get_my_chats(caller: Caller, service: Service):
    """Chats of the caller, each with its most recent message"""
    chats = await service.get_users_chats(caller)
    return [RichChatResponse.from_rich_chat(chat) for chat in chats]


@router.get("/{chat_id}", response_model=ChatResponse)
async def get_chat(chat_id: UUID, caller: Caller, service: Service):
    chat = await service.get_chat(caller, chat_id)
    return ChatResponse.model_validate(chat)


# =============================================================================
# Members
# =============================================================================

@router.get("/{chat_id}/members", response_model=ChatWithMembersResponse)
async def get_chat_members(chat_id: UUID, caller: Caller, service: Service):
    chat = await service.get_chat_with_members(caller, chat_id)
    return ChatWithMembersResponse.from_chat(chat)


@router.post("/{chat_id}/members", status_code=status.HTTP_204_NO_CONTENT)
async def add_chat_members(chat_id: UUID, request: ChatMembersRequest, caller: Caller, service: Service):
    await service.add_chat_members(caller, chat_id, request.users)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/{chat_id}/members", response_model=MembersRemovedResponse)
async def delete_chat_members(chat_id: UUID, request: ChatMembersRequest, caller: Caller, service: Service):
    removed = await service.delete_chat_members(caller, chat_id, request.users)
    return MembersRemovedResponse(removed=removed)


# =============================================================================
# Messages
# =============================================================================

@router.post("/{chat_id}/messages", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def send_message(chat_id: UUID, request: SendMessageRequest, caller: Caller, service: Service):
    """Send a message; the server assigns the sending time"""
    message = await service.send_message(
        caller,
        MessageSend(
            message_id=request.message_id,
            chat_id=chat_id,
            text=request.text,
            reply_to=request.reply_to,
            attachments=[
                FileAttachment(mime_type=att.mime_type, file_id=att.file_id)
                for att in request.attachments
            ],
        ),
    )
    return MessageResponse.from_message(message)


@router.get("/{chat_id}/messages", response_model=List[MessageResponse])
async def get_messages(
    chat_id: UUID,
    caller: Caller,
    service: Service,
    since: Optional[datetime] = Query(None, description="Inclusive lower bound on sending time"),
    until: Optional[datetime] = Query(None, description="Inclusive upper bound on sending time"),
    count: Optional[int] = Query(None, ge=1, le=MAX_MESSAGES_COUNT),
):
    """Messages of a chat, oldest first"""
    messages = await service.get_messages(
        caller,
        MessagesSelect(chat_id=chat_id, since=since, until=until, count=count),
    )
    return [MessageResponse.from_message(message) for message in messages]


@router.get("/{chat_id}/messages/since", response_model=List[MessageResponse])
async def get_messages_since(
    chat_id: UUID,
    caller: Caller,
    service: Service,
    since: datetime = Query(...),
    count: Optional[int] = Query(None, ge=1, le=MAX_MESSAGES_COUNT),
):
    """Messages sent at or after `since`, oldest first"""
    messages = await service.get_messages_since(caller, chat_id, since, count)
    return [MessageResponse.from_message(message) for message in messages]


@router.get("/{chat_id}/messages/before", response_model=List[MessageResponse])
async def get_messages_before(
    chat_id: UUID,
    caller: Caller,
    service: Service,
    before: datetime = Query(...),
    count: Optional[int] = Query(None, ge=1, le=MAX_MESSAGES_COUNT),
):
    """Messages sent at or before `before`, newest first"""
    messages = await service.get_messages_before(caller, chat_id, before, count)
    return [MessageResponse.from_message(message) for message in messages]


@router.delete("/{chat_id}/messages/{message_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_message(chat_id: UUID, message_id: UUID, caller: Caller, service: Service):
    """Delete a message authored by the caller"""
    await service.delete_message(caller, chat_id, message_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
