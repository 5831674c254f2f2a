# =============================================================================
# File: tests/conftest.py
# Description: Shared fixtures for chatcore tests
# =============================================================================

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

import pytest

from chatcore.config.chat_config import ChatConfig
from chatcore.security.identity import CallerIdentity
from chatcore.services.application.chat_service import ChatService
from tests.fakes.fake_chat_repo import FakeChatStore
from tests.fakes.fake_registry import FakeRegistry
from tests.fakes.fake_update_publisher import FakeUpdatePublisher


@pytest.fixture
def chat_config() -> ChatConfig:
    return ChatConfig(default_messages_limit=500, max_messages_limit=512, operation_timeout=None)


@pytest.fixture
def store() -> FakeChatStore:
    return FakeChatStore()


@pytest.fixture
def publisher() -> FakeUpdatePublisher:
    return FakeUpdatePublisher()


@pytest.fixture
def registry(store: FakeChatStore, publisher: FakeUpdatePublisher) -> FakeRegistry:
    return FakeRegistry(store, publisher)


@pytest.fixture
def service(registry: FakeRegistry, chat_config: ChatConfig) -> ChatService:
    return ChatService(registry, chat_config)


@pytest.fixture
def alice() -> CallerIdentity:
    return CallerIdentity(user_id="alice")


@pytest.fixture
def bob() -> CallerIdentity:
    return CallerIdentity(user_id="bob")


@pytest.fixture
def mallory() -> CallerIdentity:
    return CallerIdentity(user_id="mallory")


@pytest.fixture
def group_chat(store: FakeChatStore) -> uuid.UUID:
    """A group chat of alice, bob and carol"""
    chat_id = uuid.uuid4()
    store.seed_chat(chat_id, ["alice", "bob", "carol"])
    return chat_id


@pytest.fixture
def base_time() -> datetime:
    return datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def hourly_messages(store: FakeChatStore, group_chat: uuid.UUID, base_time: datetime):
    """Ten messages in group_chat, one per hour starting at base_time"""
    return [
        store.seed_message(group_chat, "bob", base_time + timedelta(hours=i), text=f"message {i}")
        for i in range(10)
    ]
