# =============================================================================
# File: tests/unit/test_update_publisher.py
# Description: Update envelope serialization and publish failures
# =============================================================================

from __future__ import annotations

import json
import uuid

import pytest
from aiokafka.errors import KafkaTimeoutError

from chatcore.chat.events import MemberAdded, MessageSent, Update
from chatcore.common.exceptions.exceptions import InfrastructureError, PublishError
from chatcore.infra.event_bus.update_publisher import UpdatePublisher, audience_of
from tests.fakes.fake_update_publisher import FakeKafkaTransport


@pytest.fixture
def transport() -> FakeKafkaTransport:
    return FakeKafkaTransport()


@pytest.fixture
def publisher(transport) -> UpdatePublisher:
    return UpdatePublisher(transport, "chats.updates")


async def test_message_sent_is_keyed_by_chat_id(publisher, transport):
    chat_id = uuid.uuid4()
    message_id = uuid.uuid4()

    update = await publisher.message_sent(
        ["alice", "bob"],
        MessageSent(chat_id=chat_id, message_id=message_id, from_user="alice", text="hi"),
    )

    assert len(transport.sent) == 1
    record = transport.sent[0]
    assert record.topic == "chats.updates"
    assert record.key == str(chat_id).encode("utf-8")

    body = json.loads(record.value)
    assert body["event_id"] == str(update.event_id)
    assert body["audience"] == ["alice", "bob"]
    assert body["update"]["event_type"] == "MessageSent"
    assert body["update"]["chat_id"] == str(chat_id)
    assert body["update"]["message_id"] == str(message_id)
    assert body["timestamp"]


async def test_published_value_parses_back_into_the_payload_type(publisher, transport):
    chat_id = uuid.uuid4()

    await publisher.member_added(["alice"], MemberAdded(chat_id=chat_id, username="alice"))

    parsed = Update.model_validate_json(transport.sent[0].value)
    assert isinstance(parsed.update, MemberAdded)
    assert parsed.chat_id == chat_id
    assert parsed.event_type == "MemberAdded"


async def test_broker_failure_raises_publish_error(publisher, transport):
    broker_error = KafkaTimeoutError()
    transport.configure_failure(broker_error)
    chat_id = uuid.uuid4()

    with pytest.raises(PublishError) as info:
        await publisher.member_added(["alice"], MemberAdded(chat_id=chat_id, username="alice"))

    assert isinstance(info.value, InfrastructureError)
    assert info.value.key == str(chat_id)
    assert info.value.__cause__ is broker_error


async def test_closed_transport_raises_publish_error(publisher, transport):
    transport.configure_failure(RuntimeError("RedpandaTransportAdapter is closing"))

    with pytest.raises(PublishError):
        await publisher.member_added(["alice"], MemberAdded(chat_id=uuid.uuid4(), username="alice"))


def test_audience_of_keeps_first_seen_order():
    assert audience_of(["bob", "alice", "bob", "carol", "alice"]) == ["bob", "alice", "carol"]
