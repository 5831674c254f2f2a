# =============================================================================
# File: tests/unit/test_registry.py
# Description: Unit-of-work commit / rollback paths with a fake pool
# =============================================================================

from __future__ import annotations

import asyncio
import json
import uuid

import pytest
from asyncpg import exceptions as pg_exc

from chatcore.chat.events import ChatCreated
from chatcore.chat.exceptions import ChatAlreadyExistsError
from chatcore.common.exceptions.exceptions import (
    CommitFailedError,
    DeadlineExceededError,
    InfrastructureError,
    NestedUnitOfWorkError,
)
from chatcore.config.pg_client_config import PostgresConfig
from chatcore.infra.persistence.chat_repo import ChatRepo
from chatcore.infra.persistence.registry import Registry
from tests.fakes.fake_update_publisher import FakeKafkaTransport


class FakeTransaction:
    def __init__(self, commit_error=None):
        self.started = False
        self.committed = False
        self.rolled_back = False
        self._commit_error = commit_error

    async def start(self):
        self.started = True

    async def commit(self):
        if self._commit_error is not None:
            raise self._commit_error
        self.committed = True

    async def rollback(self):
        self.rolled_back = True


class FakeConnection:
    def __init__(self, commit_error=None):
        self.tx = FakeTransaction(commit_error)

    def transaction(self):
        return self.tx

    async def execute(self, query, *args):
        return "INSERT 0 1"


class FakePool:
    def __init__(self, conn=None, acquire_error=None):
        self.conn = conn or FakeConnection()
        self.acquired = 0
        self.released = 0
        self._acquire_error = acquire_error

    async def acquire(self, timeout=None):
        if self._acquire_error is not None:
            raise self._acquire_error
        self.acquired += 1
        return self.conn

    async def release(self, conn):
        self.released += 1


@pytest.fixture
def pool() -> FakePool:
    return FakePool()


@pytest.fixture
def transport() -> FakeKafkaTransport:
    return FakeKafkaTransport()


@pytest.fixture
def registry(pool, transport) -> Registry:
    return Registry(pool, transport, "chats.updates", pg_config=PostgresConfig())


async def test_success_commits_and_returns_the_result(registry, pool):
    async def operation(scope):
        return "done"

    assert await registry.atomic(operation) == "done"

    assert pool.conn.tx.started
    assert pool.conn.tx.committed
    assert not pool.conn.tx.rolled_back
    assert pool.acquired == pool.released == 1


async def test_domain_error_rolls_back_and_propagates_unchanged(registry, pool):
    error = ChatAlreadyExistsError(uuid.uuid4())

    async def operation(scope):
        raise error

    with pytest.raises(ChatAlreadyExistsError) as info:
        await registry.atomic(operation)

    assert info.value is error
    assert pool.conn.tx.rolled_back
    assert not pool.conn.tx.committed
    assert pool.released == 1


async def test_commit_failure_is_an_infrastructure_error(transport):
    driver_error = pg_exc.SerializationError("could not serialize access")
    pool = FakePool(FakeConnection(commit_error=driver_error))
    registry = Registry(pool, transport, "chats.updates", pg_config=PostgresConfig())

    async def operation(scope):
        return None

    with pytest.raises(CommitFailedError) as info:
        await registry.atomic(operation)

    assert isinstance(info.value, InfrastructureError)
    assert info.value.__cause__ is driver_error
    assert pool.released == 1


async def test_cancellation_rolls_back(registry, pool):
    entered = asyncio.Event()

    async def operation(scope):
        entered.set()
        await asyncio.sleep(10)

    task = asyncio.create_task(registry.atomic(operation))
    await entered.wait()
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task

    assert pool.conn.tx.rolled_back
    assert not pool.conn.tx.committed
    assert pool.released == 1


async def test_deadline_rolls_back(registry, pool):
    async def operation(scope):
        await asyncio.sleep(10)

    with pytest.raises(DeadlineExceededError) as info:
        await registry.atomic(operation, timeout=0.05)

    assert info.value.timeout == 0.05
    assert pool.conn.tx.rolled_back
    assert pool.released == 1


async def test_configured_deadline_applies_by_default(pool, transport):
    registry = Registry(pool, transport, "chats.updates", operation_timeout=0.05, pg_config=PostgresConfig())

    async def operation(scope):
        await asyncio.sleep(10)

    with pytest.raises(DeadlineExceededError):
        await registry.atomic(operation)


async def test_nested_unit_of_work_is_refused(registry, pool):
    async def inner(scope):
        return None

    async def outer(scope):
        await registry.atomic(inner)

    with pytest.raises(NestedUnitOfWorkError):
        await registry.atomic(outer)

    assert pool.acquired == 1
    assert pool.conn.tx.rolled_back


async def test_sequential_units_of_work_are_allowed(registry, pool):
    async def operation(scope):
        return None

    await registry.atomic(operation)
    await registry.atomic(operation)

    assert pool.acquired == pool.released == 2
    assert not Registry.in_unit_of_work()


async def test_acquire_failure(transport):
    pool = FakePool(acquire_error=ConnectionRefusedError("connection refused"))
    registry = Registry(pool, transport, "chats.updates", pg_config=PostgresConfig())

    async def operation(scope):
        return None

    with pytest.raises(InfrastructureError):
        await registry.atomic(operation)


async def test_scope_binds_repo_to_the_transaction_connection(registry, pool, transport):
    chat_id = uuid.uuid4()

    async def operation(scope):
        repo = scope.get_chats_repo()
        assert isinstance(repo, ChatRepo)
        assert scope.get_chats_repo() is repo
        await repo.create_chat(chat_id, False)
        await scope.get_updates_publisher().chat_created(
            ["alice"], ChatCreated(chat_id=chat_id, is_direct=False, members=["alice"])
        )

    await registry.atomic(operation)

    assert pool.conn.tx.committed
    assert len(transport.sent) == 1
    assert transport.sent[0].topic == "chats.updates"
    assert transport.sent[0].key == str(chat_id).encode()
    assert json.loads(transport.sent[0].value)["update"]["event_type"] == "ChatCreated"


async def test_transaction_context_manager(registry, pool):
    async with registry.transaction() as scope:
        assert Registry.in_unit_of_work()
        await scope.get_chats_repo().create_chat(uuid.uuid4(), False)

    assert pool.conn.tx.committed
    assert not Registry.in_unit_of_work()
