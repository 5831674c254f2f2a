# =============================================================================
# File: chatcore/infra/event_bus/redpanda_adapter.py
# Description: Redpanda/Kafka producer transport for chat updates
# =============================================================================

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, Optional

from aiokafka import AIOKafkaProducer
from aiokafka.errors import KafkaConnectionError, KafkaError

from chatcore.config.eventbus_config import KafkaConfig, get_kafka_config

log = logging.getLogger("chatcore.infra.redpanda_adapter")


class RedpandaTransportAdapter:
    """
    Producer-side Redpanda/Kafka transport.

    One instance (and one AIOKafkaProducer) per process, shared by every
    unit of work. The producer is started lazily on first send. No retries
    or batching happen here; delivery semantics come from KafkaConfig.
    """

    def __init__(
            self,
            config: Optional[KafkaConfig] = None,
            producer_config: Optional[Dict[str, Any]] = None,
    ):
        self._config = config or get_kafka_config()
        self._producer_config = {**self._config.to_producer_params(), **(producer_config or {})}
        self._producer: Optional[AIOKafkaProducer] = None
        self._producer_started = False
        self._running = True
        self._initialization_lock = asyncio.Lock()

        # Health monitoring
        self._last_successful_connection = time.time()
        self._connection_errors = 0
        self._messages_sent = 0

    @property
    def config(self) -> KafkaConfig:
        return self._config

    async def start(self) -> None:
        """Start the producer eagerly (lifespan hook)."""
        await self._ensure_producer()

    async def _ensure_producer(self) -> AIOKafkaProducer:
        """Ensure producer is initialized and started"""
        async with self._initialization_lock:
            if self._producer is None:
                self._producer = AIOKafkaProducer(**self._producer_config)

            if not self._producer_started:
                try:
                    await self._producer.start()
                except (KafkaError, OSError):
                    self._connection_errors += 1
                    # a failed start leaves the client unusable; build a fresh one next time
                    self._producer = None
                    raise
                self._producer_started = True
                self._last_successful_connection = time.time()
                log.info(f"Kafka producer started ({self._config.bootstrap_servers})")

        return self._producer

    async def send(self, topic: str, value: bytes, key: Optional[bytes] = None) -> Any:
        """Send one record and wait for the broker acknowledgement configured by acks."""
        if not self._running:
            raise RuntimeError(f"RedpandaTransportAdapter is closing, cannot send to {topic}")

        producer = await self._ensure_producer()
        try:
            result = await producer.send_and_wait(topic, value=value, key=key)
        except (KafkaError, OSError) as e:
            self._connection_errors += 1
            if isinstance(e, (KafkaConnectionError, OSError)):
                self._producer_started = False
            raise

        self._messages_sent += 1
        self._last_successful_connection = time.time()
        return result

    async def close(self) -> None:
        """Gracefully shut down the adapter"""
        log.info("Shutting down RedpandaTransportAdapter...")
        self._running = False

        if self._producer and self._producer_started:
            try:
                await self._producer.stop()
                log.info("Kafka producer stopped")
            except (KafkaError, OSError) as e:
                log.error(f"Error stopping producer: {e}")
            finally:
                self._producer_started = False

        self._producer = None

    async def ping(self) -> bool:
        """Test connectivity to Redpanda/Kafka"""
        try:
            producer = await self._ensure_producer()
            client = producer.client
            await client.force_metadata_update()
            return len(client.cluster.brokers()) > 0
        except (KafkaError, OSError) as e:
            log.error(f"Kafka ping failed: {e}")
            return False

    def get_stats(self) -> Dict[str, Any]:
        return {
            "producer_started": self._producer_started,
            "messages_sent": self._messages_sent,
            "connection_errors": self._connection_errors,
            "last_successful_connection": self._last_successful_connection,
        }
