# =============================================================================
# File: chatcore/chat/exceptions.py
# Description: Chat domain exceptions
# =============================================================================

from __future__ import annotations

import uuid
from typing import Union

from chatcore.common.exceptions.exceptions import (
    PermissionDeniedError,
    NotFoundError,
    ConflictError,
    ValidationError,
)

Id = Union[str, uuid.UUID]


# =============================================================================
# Authorization
# =============================================================================

class AuthenticationRequiredError(PermissionDeniedError):
    """Anonymous caller attempted an operation that needs an identity"""

    def __init__(self):
        super().__init__("user is not authorized to this action: authentication required")


class UserIsNotAChatMemberError(PermissionDeniedError):
    """Caller is not a member of the chat"""

    def __init__(self, chat_id: Id, user_id: str):
        super().__init__(f"user is not authorized to this action: {user_id} is not a member of chat {chat_id}")
        self.chat_id = chat_id
        self.user_id = user_id


# =============================================================================
# Conflict / Not found
# =============================================================================

class ChatAlreadyExistsError(ConflictError):
    """Chat already exists"""

    def __init__(self, chat_id: Id):
        super().__init__(f"chat already exists: {chat_id}")
        self.chat_id = chat_id


class ChatNotFoundError(NotFoundError):
    """Chat not found"""

    def __init__(self, chat_id: Id):
        super().__init__(f"chat not found: {chat_id}")
        self.chat_id = chat_id


class MessageAlreadyExistsError(ConflictError):
    """Message already exists"""

    def __init__(self, message_id: Id):
        super().__init__(f"message already exists: {message_id}")
        self.message_id = message_id


class MessageNotFoundError(NotFoundError):
    """Message not found"""

    def __init__(self, message_id: Id):
        super().__init__(f"message not found: {message_id}")
        self.message_id = message_id


class RepliedMessageNotFoundError(NotFoundError):
    """Message replies to a message that does not exist"""

    def __init__(self, reply_to: Id):
        super().__init__(f"replied message not found: {reply_to}")
        self.reply_to = reply_to


# =============================================================================
# Input / business rules
# =============================================================================

class EmptyMembersError(ValidationError):
    """Members list can't be empty"""

    def __init__(self):
        super().__init__("members list can't be empty")


class BusinessLogicViolationError(ValidationError):
    """A chat business rule was violated"""

    def __init__(self, reason: str):
        super().__init__(f"business logic violation: {reason}")
        self.reason = reason
