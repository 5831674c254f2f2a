# =============================================================================
# File: chatcore/services/application/chat_service.py
# Description: Chat use-cases. Authorization, invariants, audience and the
#              sequencing of repository writes and updates in one unit of work
# =============================================================================

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import List, Optional, Sequence

from chatcore.chat.events import ChatCreated, MemberAdded, MemberRemoved, MessageSent
from chatcore.chat.exceptions import (
    AuthenticationRequiredError,
    BusinessLogicViolationError,
    EmptyMembersError,
    MessageNotFoundError,
    RepliedMessageNotFoundError,
    UserIsNotAChatMemberError,
)
from chatcore.chat.models import (
    Chat,
    ChatCreate,
    ChatMember,
    ChatWithMembers,
    Message,
    MessageSend,
    MessagesSelect,
    RichChat,
)
from chatcore.common.base.base_model import utc_now
from chatcore.common.exceptions.exceptions import PermissionDeniedError
from chatcore.config.chat_config import ChatConfig, get_chat_config
from chatcore.infra.event_bus.update_publisher import audience_of
from chatcore.infra.persistence.chat_repo import ChatRepo, MessageOrder, MessageSelector, SelectOptions
from chatcore.infra.persistence.registry import Registry, TransactionScope
from chatcore.security.identity import CallerIdentity

log = logging.getLogger("chatcore.chat.service")


def _require_caller(caller: Optional[CallerIdentity]) -> str:
    if caller is None:
        raise AuthenticationRequiredError()
    return caller.user_id


async def _require_member(repo: ChatRepo, chat_id: uuid.UUID, user_id: str) -> None:
    if not await repo.user_is_member(chat_id, user_id):
        raise UserIsNotAChatMemberError(chat_id, user_id)


async def _chat_audience(repo: ChatRepo, chat_id: uuid.UUID) -> List[str]:
    chat = await repo.get_chat_with_members(chat_id)
    return chat.member_ids


class ChatService:
    """
    Chat use-cases.

    Every public method opens exactly one unit of work through the Registry;
    the repository and publisher come from the scope handed to the operation.
    Errors from the repository and publisher propagate unchanged.
    """

    def __init__(self, registry: Registry, config: Optional[ChatConfig] = None):
        self._registry = registry
        self._config = config or get_chat_config()

    # =========================================================================
    # Chats
    # =========================================================================

    async def create_chat(self, caller: Optional[CallerIdentity], chat_create: ChatCreate) -> ChatWithMembers:
        user_id = _require_caller(caller)
        chat_id = chat_create.chat_id

        members = audience_of(chat_create.members)
        if user_id not in members:
            members.append(user_id)

        if chat_create.is_direct and len(members) != 2:
            raise BusinessLogicViolationError("direct chat must have exactly two members")

        log.info(f"Creating chat {chat_id} (direct={chat_create.is_direct}) by {user_id}")

        async def operation(scope: TransactionScope) -> None:
            repo = scope.get_chats_repo()
            await repo.create_chat(chat_id, chat_create.is_direct)
            await repo.add_members(chat_id, members)
            await scope.get_updates_publisher().chat_created(
                members,
                ChatCreated(chat_id=chat_id, is_direct=chat_create.is_direct, members=members),
            )

        await self._registry.atomic(operation)

        log.info(f"Chat created: {chat_id} with {len(members)} members")
        return ChatWithMembers(
            chat_id=chat_id,
            is_direct=chat_create.is_direct,
            members_count=len(members),
            members=[ChatMember(user_id=member) for member in members],
        )

    async def get_chat(self, caller: Optional[CallerIdentity], chat_id: uuid.UUID) -> Chat:
        user_id = _require_caller(caller)

        async def operation(scope: TransactionScope) -> Chat:
            repo = scope.get_chats_repo()
            await _require_member(repo, chat_id, user_id)
            return await repo.get_chat(chat_id)

        return await self._registry.atomic(operation)

    async def get_chat_with_members(self, caller: Optional[CallerIdentity], chat_id: uuid.UUID) -> ChatWithMembers:
        user_id = _require_caller(caller)

        async def operation(scope: TransactionScope) -> ChatWithMembers:
            repo = scope.get_chats_repo()
            await _require_member(repo, chat_id, user_id)
            return await repo.get_chat_with_members(chat_id)

        return await self._registry.atomic(operation)

    async def get_users_chats(self, caller: Optional[CallerIdentity]) -> List[RichChat]:
        user_id = _require_caller(caller)

        async def operation(scope: TransactionScope) -> List[RichChat]:
            return await scope.get_chats_repo().get_user_chats(user_id)

        return await self._registry.atomic(operation)

    # =========================================================================
    # Members
    # =========================================================================

    async def add_chat_members(
            self,
            caller: Optional[CallerIdentity],
            chat_id: uuid.UUID,
            users: Sequence[str],
    ) -> None:
        """
        Add users to a chat.

        The current members are notified before the insert, with one
        MemberAdded per current member (its `username` is that member) and
        every envelope addressed to the whole current audience.
        """
        user_id = _require_caller(caller)
        users = audience_of(users)
        if not users:
            raise EmptyMembersError()

        log.info(f"Adding {len(users)} members to chat {chat_id} by {user_id}")

        async def operation(scope: TransactionScope) -> None:
            repo = scope.get_chats_repo()
            await _require_member(repo, chat_id, user_id)

            audience = await _chat_audience(repo, chat_id)
            publisher = scope.get_updates_publisher()
            for username in audience:
                await publisher.member_added(audience, MemberAdded(chat_id=chat_id, username=username))

            await repo.add_members(chat_id, users)

        await self._registry.atomic(operation)
        log.info(f"Members added to chat {chat_id}: {users}")

    async def delete_chat_members(
            self,
            caller: Optional[CallerIdentity],
            chat_id: uuid.UUID,
            users: Sequence[str],
    ) -> int:
        """Remove users from a chat; same notification shape as add_chat_members."""
        user_id = _require_caller(caller)
        users = audience_of(users)
        if not users:
            raise EmptyMembersError()

        log.info(f"Removing {len(users)} members from chat {chat_id} by {user_id}")

        async def operation(scope: TransactionScope) -> int:
            repo = scope.get_chats_repo()
            await _require_member(repo, chat_id, user_id)

            audience = await _chat_audience(repo, chat_id)
            publisher = scope.get_updates_publisher()
            for username in audience:
                await publisher.member_removed(audience, MemberRemoved(chat_id=chat_id, username=username))

            return await repo.remove_members(chat_id, users)

        removed = await self._registry.atomic(operation)
        log.info(f"Members removed from chat {chat_id}: {removed}")
        return removed

    # =========================================================================
    # Messages
    # =========================================================================

    async def send_message(self, sender: Optional[CallerIdentity], message_send: MessageSend) -> Message:
        user_id = _require_caller(sender)
        chat_id = message_send.chat_id

        async def operation(scope: TransactionScope) -> Message:
            repo = scope.get_chats_repo()
            await _require_member(repo, chat_id, user_id)

            if message_send.reply_to is not None:
                replied = await repo.get_messages_by_id([message_send.reply_to])
                if not replied:
                    raise RepliedMessageNotFoundError(message_send.reply_to)
                if replied[0].chat_id != chat_id:
                    raise BusinessLogicViolationError("can't reply to a message from another chat")

            message = Message(
                message_id=message_send.message_id,
                chat_id=chat_id,
                from_user=user_id,
                sending_time=utc_now(),
                text=message_send.text,
                reply_to=message_send.reply_to,
                attachments=message_send.attachments,
            )
            await repo.put_message(message)

            audience = await _chat_audience(repo, chat_id)
            await scope.get_updates_publisher().message_sent(
                audience,
                MessageSent(
                    chat_id=chat_id,
                    message_id=message.message_id,
                    from_user=user_id,
                    text=message.text,
                    reply_to=message.reply_to,
                    attachments=message.attachments,
                ),
            )
            return message

        message = await self._registry.atomic(operation)
        log.debug(f"Message {message.message_id} sent to chat {chat_id} by {user_id}")
        return message

    def _limit(self, count: Optional[int]) -> int:
        return min(count or self._config.default_messages_limit, self._config.max_messages_limit)

    async def get_messages(self, caller: Optional[CallerIdentity], selector: MessagesSelect) -> List[Message]:
        """Messages of a chat in [since, until], oldest first."""
        user_id = _require_caller(caller)
        chat_id = selector.chat_id

        async def operation(scope: TransactionScope) -> List[Message]:
            repo = scope.get_chats_repo()
            await _require_member(repo, chat_id, user_id)
            return await repo.select_messages(
                MessageSelector(chat_id=chat_id, since=selector.since, until=selector.until),
                SelectOptions(limit=self._limit(selector.count), order_by=[MessageOrder.SENDING_TIME_ASC]),
            )

        return await self._registry.atomic(operation)

    async def get_messages_since(
            self,
            caller: Optional[CallerIdentity],
            chat_id: uuid.UUID,
            since: datetime,
            count: Optional[int] = None,
    ) -> List[Message]:
        user_id = _require_caller(caller)

        async def operation(scope: TransactionScope) -> List[Message]:
            repo = scope.get_chats_repo()
            await _require_member(repo, chat_id, user_id)
            return await repo.get_messages_since(chat_id, since, self._limit(count))

        return await self._registry.atomic(operation)

    async def get_messages_before(
            self,
            caller: Optional[CallerIdentity],
            chat_id: uuid.UUID,
            before: datetime,
            count: Optional[int] = None,
    ) -> List[Message]:
        user_id = _require_caller(caller)

        async def operation(scope: TransactionScope) -> List[Message]:
            repo = scope.get_chats_repo()
            await _require_member(repo, chat_id, user_id)
            return await repo.get_messages_before(chat_id, before, self._limit(count))

        return await self._registry.atomic(operation)

    async def delete_message(
            self,
            caller: Optional[CallerIdentity],
            chat_id: uuid.UUID,
            message_id: uuid.UUID,
    ) -> None:
        """Remove one message authored by the caller. No update is published."""
        user_id = _require_caller(caller)

        async def operation(scope: TransactionScope) -> None:
            repo = scope.get_chats_repo()
            await _require_member(repo, chat_id, user_id)

            found = await repo.get_messages_by_id([message_id])
            if not found or found[0].chat_id != chat_id:
                raise MessageNotFoundError(message_id)
            if found[0].from_user != user_id:
                raise PermissionDeniedError("user is not authorized to this action: not the message author")

            await repo.delete_message(message_id)

        await self._registry.atomic(operation)
        log.info(f"Message {message_id} deleted from chat {chat_id} by {user_id}")
