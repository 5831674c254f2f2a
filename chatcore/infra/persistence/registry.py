# =============================================================================
# File: chatcore/infra/persistence/registry.py
# Description: Unit-of-work coordinator binding the chat repository and the
#              update publisher to one relational transaction
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from contextvars import ContextVar
from typing import AsyncIterator, Awaitable, Callable, Optional, TypeVar

import asyncpg

from chatcore.common.exceptions.exceptions import DeadlineExceededError, NestedUnitOfWorkError
from chatcore.config.pg_client_config import PostgresConfig
from chatcore.infra.event_bus.update_publisher import UpdatePublisher, UpdateTransport
from chatcore.infra.persistence.chat_repo import ChatRepo
from chatcore.infra.persistence.pg_client import transaction as pg_transaction

log = logging.getLogger("chatcore.infra.registry")

T = TypeVar("T")

# Scope of the unit of work running in the current task (None outside of one)
_current_scope: ContextVar[Optional["TransactionScope"]] = ContextVar(
    "chatcore_unit_of_work", default=None
)


class TransactionScope:
    """
    Handle passed to a unit-of-work operation.

    The repository it hands out is bound to the transaction connection, so
    everything written through it commits or rolls back together. The
    publisher is not transactional.
    """

    def __init__(self, conn: asyncpg.Connection, publisher: UpdatePublisher):
        self._conn = conn
        self._publisher = publisher
        self._chats_repo: Optional[ChatRepo] = None

    def get_chats_repo(self) -> ChatRepo:
        if self._chats_repo is None:
            self._chats_repo = ChatRepo(self._conn)
        return self._chats_repo

    def get_updates_publisher(self) -> UpdatePublisher:
        return self._publisher


Operation = Callable[[TransactionScope], Awaitable[T]]


class Registry:
    """
    Unit-of-work coordinator.

    `atomic(operation)` runs `operation(scope)` inside one transaction:

    - operation returns -> commit; a failed commit raises CommitFailedError
    - operation raises (domain error, cancellation, anything) -> rollback and
      the same exception propagates
    - the deadline elapses -> rollback, DeadlineExceededError

    Nesting is not supported: opening a unit of work while the current task
    already holds one raises NestedUnitOfWorkError.

    Delivery guarantee: updates are sent to the broker before the commit.
    A publish failure rolls the rows back, but a commit failure after a
    successful publish leaves an update delivered for state that was never
    committed. Consumers get at-least-once, never exactly-once. Writing
    updates to an outbox table in the same transaction would close that gap.
    """

    def __init__(
            self,
            pool: asyncpg.Pool,
            producer: UpdateTransport,
            updates_topic: str,
            operation_timeout: Optional[float] = None,
            pg_config: Optional[PostgresConfig] = None,
    ):
        self._pool = pool
        self._producer = producer
        self._updates_topic = updates_topic
        self._operation_timeout = operation_timeout
        self._pg_config = pg_config

    @staticmethod
    def in_unit_of_work() -> bool:
        return _current_scope.get() is not None

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[TransactionScope]:
        """
        Same unit of work as `atomic`, as a context manager.

        Usage:
            async with registry.transaction() as scope:
                await scope.get_chats_repo().create_chat(chat_id, False)
        """
        if self.in_unit_of_work():
            raise NestedUnitOfWorkError()

        async with pg_transaction(self._pool, config=self._pg_config) as conn:
            scope = TransactionScope(conn, UpdatePublisher(self._producer, self._updates_topic))
            token = _current_scope.set(scope)
            try:
                yield scope
            except BaseException as e:
                log.debug(f"Rolling back unit of work: {type(e).__name__}: {e}")
                raise
            finally:
                _current_scope.reset(token)

    async def _run(self, operation: Operation[T]) -> T:
        async with self.transaction() as scope:
            return await operation(scope)

    async def atomic(self, operation: Operation[T], *, timeout: Optional[float] = None) -> T:
        """Run `operation(scope)` as one unit of work and return its result."""
        if self.in_unit_of_work():
            raise NestedUnitOfWorkError()

        timeout = timeout if timeout is not None else self._operation_timeout
        if timeout is None:
            return await self._run(operation)

        try:
            return await asyncio.wait_for(self._run(operation), timeout=timeout)
        except asyncio.TimeoutError as e:
            log.warning(f"Unit of work exceeded its {timeout:.3f}s deadline and was rolled back")
            raise DeadlineExceededError(timeout) from e
