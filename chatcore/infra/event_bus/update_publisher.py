# =============================================================================
# File: chatcore/infra/event_bus/update_publisher.py
# Description: Publishes chat Update envelopes to the updates topic
# =============================================================================

"""
Update Publisher

Every update is keyed by its chat id, so all updates of one chat land on the
same partition and are consumed in publish order. `publish` blocks until the
broker acknowledges the record.

The broker is not part of the relational transaction. An update published
inside a unit of work that later fails to commit is still delivered, so
consumers must tolerate updates for state that was rolled back
(at-least-once, never exactly-once).
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, List, Optional, Protocol, Sequence, Union

from aiokafka.errors import KafkaError

from chatcore.chat.events import ChatCreated, MemberAdded, MemberRemoved, MessageSent, Update, UpdatePayload
from chatcore.common.exceptions.exceptions import PublishError

log = logging.getLogger("chatcore.infra.update_publisher")


class UpdateTransport(Protocol):
    """What the publisher needs from the broker client (RedpandaTransportAdapter)"""

    async def send(self, topic: str, value: bytes, key: Optional[bytes] = None) -> Any:
        ...


class UpdatePublisher:
    """
    Builds Update envelopes and sends them to the updates topic.

    Instances are cheap; the Registry hands one out per unit of work, all of
    them sharing the process-wide transport.
    """

    def __init__(self, transport: UpdateTransport, topic: str):
        self._transport = transport
        self._topic = topic

    @property
    def topic(self) -> str:
        return self._topic

    async def publish(self, topic_key: Union[str, uuid.UUID], update: Update) -> None:
        """Send one envelope keyed by `topic_key` (always the chat id)."""
        key = str(topic_key)
        try:
            value = update.to_bytes()
            await self._transport.send(self._topic, value=value, key=key.encode("utf-8"))
        except (KafkaError, OSError, RuntimeError) as e:
            log.error(
                f"Failed to publish {update.event_type} for chat {key} to '{self._topic}': {e}"
            )
            raise PublishError(self._topic, key, str(e)) from e

        log.debug(f"Published {update.event_type}/{update.event_id} to '{self._topic}' (key={key})")

    async def _publish_payload(self, audience: Sequence[str], payload: UpdatePayload) -> Update:
        update = Update(audience=list(audience), update=payload)
        await self.publish(payload.chat_id, update)
        return update

    # =========================================================================
    # Typed updates
    # =========================================================================

    async def chat_created(self, audience: Sequence[str], event: ChatCreated) -> Update:
        return await self._publish_payload(audience, event)

    async def message_sent(self, audience: Sequence[str], event: MessageSent) -> Update:
        return await self._publish_payload(audience, event)

    async def member_added(self, audience: Sequence[str], event: MemberAdded) -> Update:
        return await self._publish_payload(audience, event)

    async def member_removed(self, audience: Sequence[str], event: MemberRemoved) -> Update:
        return await self._publish_payload(audience, event)


def audience_of(members: Sequence[str]) -> List[str]:
    """De-duplicate user ids, keeping first-seen order."""
    return list(dict.fromkeys(members))
