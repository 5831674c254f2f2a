# =============================================================================
# File: chatcore/infra/persistence/chat_repo.py
# Description: Repository for chats, memberships and messages
# =============================================================================

from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence

import asyncpg

from chatcore.chat.exceptions import (
    ChatAlreadyExistsError,
    ChatNotFoundError,
    EmptyMembersError,
    MessageAlreadyExistsError,
    MessageNotFoundError,
    RepliedMessageNotFoundError,
)
from chatcore.chat.models import (
    Chat,
    ChatMember,
    ChatWithMembers,
    FileAttachment,
    Message,
    RichChat,
)
from chatcore.common.exceptions.exceptions import ChatCoreException, InfrastructureError
from chatcore.infra.persistence.pg_client import DRIVER_ERRORS

log = logging.getLogger("chatcore.chat.repo")

# =============================================================================
# Constraint -> domain error table
# =============================================================================
# Keys are the constraint names declared in schema/chatcore.sql. Violations of
# any other constraint (e.g. chat_members_chat_id_user_id_key) surface as
# InfrastructureError.

CONSTRAINT_ERRORS: Dict[str, Callable[[Dict[str, Any]], ChatCoreException]] = {
    "chats_pkey": lambda ctx: ChatAlreadyExistsError(ctx.get("chat_id")),
    "chat_members_chat_id_fkey": lambda ctx: ChatNotFoundError(ctx.get("chat_id")),
    "messages_pkey": lambda ctx: MessageAlreadyExistsError(ctx.get("message_id")),
    "messages_chat_id_fkey": lambda ctx: ChatNotFoundError(ctx.get("chat_id")),
    "messages_reply_to_fkey": lambda ctx: RepliedMessageNotFoundError(ctx.get("reply_to")),
}


def translate_error(err: BaseException, operation: str, context: Dict[str, Any]) -> ChatCoreException:
    """Map a driver error to a domain error, or to InfrastructureError if it has no entry."""
    constraint = getattr(err, "constraint_name", None)
    factory = CONSTRAINT_ERRORS.get(constraint) if constraint else None
    if factory is not None:
        return factory(context)

    log.error(f"{operation} failed: {type(err).__name__}: {err}")
    return InfrastructureError(f"{operation} failed: {err}")


@contextmanager
def _translate_errors(operation: str, **context: Any) -> Iterator[None]:
    try:
        yield
    except (asyncio.TimeoutError, *DRIVER_ERRORS) as e:
        raise translate_error(e, operation, context) from e


def _rows_affected(status: str) -> int:
    """Parse asyncpg's command status tag, e.g. 'DELETE 3' -> 3."""
    try:
        return int(status.rsplit(" ", 1)[-1])
    except (ValueError, AttributeError):
        return 0


# =============================================================================
# Message selection
# =============================================================================

class MessageOrder(str, Enum):
    """Allowed orderings for message reads"""
    SENDING_TIME_ASC = "sending_time ASC, message_id ASC"
    SENDING_TIME_DESC = "sending_time DESC, message_id DESC"


@dataclass(frozen=True)
class MessageSelector:
    """Filter for select_messages; unset fields do not constrain the result"""
    chat_id: Optional[uuid.UUID] = None
    since: Optional[datetime] = None
    until: Optional[datetime] = None
    message_ids: Optional[Sequence[uuid.UUID]] = None


@dataclass(frozen=True)
class SelectOptions:
    limit: int = 0
    order_by: List[MessageOrder] = field(default_factory=list)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ChatRepo:
    """
    Repository for the Chat domain bound to one connection.

    The Registry creates one per unit of work, so every call below runs inside
    that unit's transaction. Write methods raise domain errors from
    CONSTRAINT_ERRORS; any other driver failure becomes InfrastructureError.
    """

    def __init__(self, conn: asyncpg.Connection):
        self._conn = conn

    # =========================================================================
    # Chats and members
    # =========================================================================

    async def create_chat(self, chat_id: uuid.UUID, is_direct: bool) -> None:
        with _translate_errors("create chat", chat_id=chat_id):
            await self._conn.execute(
                "INSERT INTO chats (chat_id, is_direct) VALUES ($1, $2)",
                chat_id, is_direct,
            )

    async def add_members(self, chat_id: uuid.UUID, user_ids: Sequence[str]) -> None:
        if not user_ids:
            raise EmptyMembersError()

        with _translate_errors("add chat members", chat_id=chat_id):
            await self._conn.execute(
                """
                INSERT INTO chat_members (chat_id, user_id)
                SELECT $1::uuid, member FROM unnest($2::text[]) AS member
                """,
                chat_id, list(user_ids),
            )

    async def remove_members(self, chat_id: uuid.UUID, user_ids: Sequence[str]) -> int:
        """Delete membership rows; returns how many were removed (zero is not an error)."""
        if not user_ids:
            raise EmptyMembersError()

        with _translate_errors("remove chat members", chat_id=chat_id):
            status = await self._conn.execute(
                "DELETE FROM chat_members WHERE chat_id = $1 AND user_id = ANY($2::text[])",
                chat_id, list(user_ids),
            )
        return _rows_affected(status)

    async def get_chat(self, chat_id: uuid.UUID) -> Chat:
        with _translate_errors("get chat", chat_id=chat_id):
            row = await self._conn.fetchrow(
                """
                SELECT c.chat_id, c.is_direct,
                       (SELECT count(*) FROM chat_members m WHERE m.chat_id = c.chat_id) AS members_count
                FROM chats c
                WHERE c.chat_id = $1
                """,
                chat_id,
            )
        if row is None:
            raise ChatNotFoundError(chat_id)
        return Chat.model_validate(dict(row))

    async def get_chat_with_members(self, chat_id: uuid.UUID) -> ChatWithMembers:
        chat = await self.get_chat(chat_id)

        with _translate_errors("get chat members", chat_id=chat_id):
            rows = await self._conn.fetch(
                "SELECT user_id FROM chat_members WHERE chat_id = $1 ORDER BY chat_id, user_id",
                chat_id,
            )
        return ChatWithMembers(
            **chat.model_dump(),
            members=[ChatMember(user_id=row["user_id"]) for row in rows],
        )

    async def user_is_member(self, chat_id: uuid.UUID, user_id: str) -> bool:
        with _translate_errors("check chat membership", chat_id=chat_id):
            row = await self._conn.fetchrow(
                """
                SELECT EXISTS (SELECT 1 FROM chats WHERE chat_id = $1) AS chat_exists,
                       EXISTS (SELECT 1 FROM chat_members WHERE chat_id = $1 AND user_id = $2) AS is_member
                """,
                chat_id, user_id,
            )
        if not row["chat_exists"]:
            raise ChatNotFoundError(chat_id)
        return bool(row["is_member"])

    # =========================================================================
    # Messages
    # =========================================================================

    async def put_message(self, message: Message) -> None:
        context = dict(chat_id=message.chat_id, message_id=message.message_id, reply_to=message.reply_to)

        with _translate_errors("put message", **context):
            await self._conn.execute(
                """
                INSERT INTO messages (message_id, chat_id, from_user, reply_to, text, sending_time)
                VALUES ($1, $2, $3, $4, $5, $6)
                """,
                message.message_id, message.chat_id, message.from_user,
                message.reply_to, message.text, _as_utc(message.sending_time),
            )

            if message.attachments:
                await self._conn.executemany(
                    """
                    INSERT INTO message_attachments (message_id, position, mime_type, file_id)
                    VALUES ($1, $2, $3, $4)
                    """,
                    [
                        (message.message_id, position, att.mime_type, att.file_id)
                        for position, att in enumerate(message.attachments)
                    ],
                )

    async def select_messages(
            self,
            selector: MessageSelector,
            options: Optional[SelectOptions] = None,
    ) -> List[Message]:
        """Generic filtered, ordered and limited read over messages."""
        options = options or SelectOptions()
        conditions = []
        params: List[Any] = []

        def bind(value: Any) -> str:
            params.append(value)
            return f"${len(params)}"

        if selector.chat_id is not None:
            conditions.append(f"chat_id = {bind(selector.chat_id)}")
        if selector.since is not None:
            conditions.append(f"sending_time >= {bind(_as_utc(selector.since))}")
        if selector.until is not None:
            conditions.append(f"sending_time <= {bind(_as_utc(selector.until))}")
        if selector.message_ids is not None:
            conditions.append(f"message_id = ANY({bind(list(selector.message_ids))}::uuid[])")

        query = "SELECT message_id, chat_id, from_user, reply_to, text, sending_time FROM messages"
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        if options.order_by:
            query += " ORDER BY " + ", ".join(order.value for order in options.order_by)
        if options.limit > 0:
            query += f" LIMIT {bind(options.limit)}"

        with _translate_errors("select messages", chat_id=selector.chat_id):
            rows = await self._conn.fetch(query, *params)
            attachments = await self._load_attachments([row["message_id"] for row in rows])

        return [
            Message(**dict(row), attachments=attachments.get(row["message_id"], []))
            for row in rows
        ]

    async def get_messages_since(self, chat_id: uuid.UUID, since: datetime, count: int) -> List[Message]:
        """Messages at or after `since`, oldest first, at most `count`."""
        return await self.select_messages(
            MessageSelector(chat_id=chat_id, since=since),
            SelectOptions(limit=count, order_by=[MessageOrder.SENDING_TIME_ASC]),
        )

    async def get_messages_before(self, chat_id: uuid.UUID, before: datetime, count: int) -> List[Message]:
        """Messages at or before `before`, newest first, at most `count`."""
        return await self.select_messages(
            MessageSelector(chat_id=chat_id, until=before),
            SelectOptions(limit=count, order_by=[MessageOrder.SENDING_TIME_DESC]),
        )

    async def get_messages_by_id(self, message_ids: Sequence[uuid.UUID]) -> List[Message]:
        if not message_ids:
            return []
        return await self.select_messages(
            MessageSelector(message_ids=message_ids),
            SelectOptions(order_by=[MessageOrder.SENDING_TIME_DESC]),
        )

    async def delete_message(self, message_id: uuid.UUID) -> None:
        with _translate_errors("delete message", message_id=message_id):
            status = await self._conn.execute(
                "DELETE FROM messages WHERE message_id = $1",
                message_id,
            )
        if _rows_affected(status) == 0:
            raise MessageNotFoundError(message_id)

    async def get_user_chats(self, user_id: str) -> List[RichChat]:
        """Every chat the user belongs to with its most recent message (None if empty)."""
        with _translate_errors("get user chats"):
            rows = await self._conn.fetch(
                """
                SELECT c.chat_id, c.is_direct,
                       (SELECT count(*) FROM chat_members cm WHERE cm.chat_id = c.chat_id) AS members_count,
                       lm.message_id, lm.from_user, lm.reply_to, lm.text, lm.sending_time
                FROM chat_members mem
                JOIN chats c ON c.chat_id = mem.chat_id
                LEFT JOIN LATERAL (
                    SELECT msg.message_id, msg.from_user, msg.reply_to, msg.text, msg.sending_time
                    FROM messages msg
                    WHERE msg.chat_id = c.chat_id
                    ORDER BY msg.sending_time DESC, msg.message_id DESC
                    LIMIT 1
                ) lm ON TRUE
                WHERE mem.user_id = $1
                ORDER BY lm.sending_time DESC NULLS LAST, c.chat_id
                """,
                user_id,
            )
            attachments = await self._load_attachments(
                [row["message_id"] for row in rows if row["message_id"] is not None]
            )

        chats = []
        for row in rows:
            last_message = None
            if row["message_id"] is not None:
                last_message = Message(
                    message_id=row["message_id"],
                    chat_id=row["chat_id"],
                    from_user=row["from_user"],
                    reply_to=row["reply_to"],
                    text=row["text"],
                    sending_time=row["sending_time"],
                    attachments=attachments.get(row["message_id"], []),
                )
            chats.append(RichChat(
                chat_id=row["chat_id"],
                is_direct=row["is_direct"],
                members_count=row["members_count"],
                last_message=last_message,
            ))
        return chats

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _load_attachments(self, message_ids: List[uuid.UUID]) -> Dict[uuid.UUID, List[FileAttachment]]:
        if not message_ids:
            return {}

        rows = await self._conn.fetch(
            """
            SELECT message_id, mime_type, file_id
            FROM message_attachments
            WHERE message_id = ANY($1::uuid[])
            ORDER BY message_id, position
            """,
            message_ids,
        )
        result: Dict[uuid.UUID, List[FileAttachment]] = {}
        for row in rows:
            result.setdefault(row["message_id"], []).append(
                FileAttachment(mime_type=row["mime_type"], file_id=row["file_id"])
            )
        return result
