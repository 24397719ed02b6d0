"""Downstream delivery of normalized trades.

Messages go through a pluggable *transport* callable so tests can inject a
fake. The default transport sends through an aiokafka producer.
"""
from __future__ import annotations

import asyncio
import json
import logging
import random
import time
from typing import Callable, Optional, Protocol

from aiokafka import AIOKafkaProducer
from aiokafka.errors import KafkaError

from treasury_observability.metrics import booking_trades_published_total

from .config import get_settings
from .exceptions import PublishError
from .mapper import to_outbound_record
from .models import NormalizedTrade

__all__ = [
    "Transport",
    "TradePublisher",
    "KafkaTransport",
    "KafkaTradePublisher",
    "is_retryable",
]

_LOG = logging.getLogger(__name__)

_MAX_BACKOFF_SECONDS = 10.0


class Transport(Protocol):
    """Callable transport signature."""

    def __call__(self, topic: str, key: bytes, value: bytes) -> None:
        ...


class TradePublisher(Protocol):
    def publish(self, trade: NormalizedTrade) -> None:
        ...


class KafkaTransport:
    """Send one message per call with a short-lived aiokafka producer."""

    def __init__(self, bootstrap_servers: Optional[str] = None):
        self.bootstrap_servers = bootstrap_servers or get_settings().kafka_bootstrap

    async def _send(self, topic: str, key: bytes, value: bytes) -> None:
        producer = AIOKafkaProducer(bootstrap_servers=self.bootstrap_servers)
        await producer.start()
        try:
            await producer.send_and_wait(topic, value=value, key=key)
        finally:
            await producer.stop()

    def __call__(self, topic: str, key: bytes, value: bytes) -> None:
        asyncio.run(self._send(topic, key, value))


def is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, KafkaError):
        return bool(getattr(exc, "retriable", False))
    return isinstance(exc, (ConnectionError, TimeoutError, asyncio.TimeoutError))


class KafkaTradePublisher:
    """Publish trades with bounded retries on transient errors.

    Back-off starts at 200-500ms, doubles per attempt, carries +/-50% jitter
    and is capped at 10s. Non-retryable errors are not retried.
    """

    def __init__(
        self,
        transport: Optional[Transport] = None,
        *,
        topic: Optional[str] = None,
        max_attempts: Optional[int] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        settings = get_settings()
        self.transport = transport or KafkaTransport(settings.kafka_bootstrap)
        self.topic = topic or settings.booking_topic
        self.max_attempts = max(1, max_attempts or settings.publish_max_attempts)
        self._sleep = sleep

    def _encode(self, trade: NormalizedTrade) -> tuple[bytes, bytes]:
        key = (trade.trade_reference or "").encode()
        value = json.dumps(to_outbound_record(trade), separators=(",", ":")).encode()
        return key, value

    def publish(self, trade: NormalizedTrade) -> None:
        try:
            key, value = self._encode(trade)
        except (TypeError, ValueError) as exc:
            booking_trades_published_total.labels(outcome="dropped").inc()
            raise PublishError(f"Cannot serialize trade {trade.trade_reference}: {exc}") from exc

        base = random.uniform(0.2, 0.5)
        for attempt in range(1, self.max_attempts + 1):
            try:
                self.transport(self.topic, key, value)
            except Exception as exc:
                retryable = is_retryable(exc)
                if not retryable:
                    booking_trades_published_total.labels(outcome="dropped").inc()
                    raise PublishError(
                        f"Dropped trade {trade.trade_reference}: {exc}", retryable=False
                    ) from exc
                if attempt >= self.max_attempts:
                    booking_trades_published_total.labels(outcome="failed").inc()
                    raise PublishError(
                        f"Giving up on trade {trade.trade_reference} after {attempt} attempts: {exc}",
                        retryable=True,
                    ) from exc
                backoff = min(base * (2 ** (attempt - 1)) * random.uniform(0.5, 1.5), _MAX_BACKOFF_SECONDS)
                _LOG.warning(
                    "publish attempt %d/%d failed, retrying in %.2fs: %s",
                    attempt,
                    self.max_attempts,
                    backoff,
                    exc,
                    extra={"trace_id": trade.trade_reference},
                )
                self._sleep(backoff)
            else:
                booking_trades_published_total.labels(outcome="success").inc()
                return
