"""Redis Streams event bus.

Each topic is a stream; each subscriber group is a Redis consumer group,
so order notifications survive process restarts and every group sees each
event at least once.

An entry is acknowledged only after its handler returns.  A failing entry
stays pending and is retried until ``max_handler_retries`` attempts have
been made, then it is dead-lettered and acknowledged so the stream keeps
moving.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import defaultdict
from collections.abc import Callable, Coroutine
from dataclasses import dataclass, field
from typing import Any

import redis.asyncio as aioredis

from order_workflow.core.events import BaseEvent

from .schemas import get_event_class

logger = logging.getLogger(__name__)

Handler = Callable[[BaseEvent], Coroutine[Any, Any, None]]
ErrorCallback = Callable[[str, str, str, Exception], None]

TYPE_FIELD = "_type"
DATA_FIELD = "_data"


@dataclass
class DeadLetter:
    """An entry that exhausted its retry budget or could not be decoded."""

    topic: str
    group: str
    msg_id: str
    event_type: str
    error: str
    attempts: int
    timestamp: float = field(default_factory=time.monotonic)


def encode_event(event: BaseEvent) -> dict[str, str]:
    """Stream entry fields for an event."""
    return {TYPE_FIELD: type(event).__name__, DATA_FIELD: event.model_dump_json()}


def decode_event(fields: dict[str, str]) -> BaseEvent | None:
    """Rebuild an event from stream entry fields; None if unrecognised."""
    type_name = fields.get(TYPE_FIELD)
    data = fields.get(DATA_FIELD)
    if not type_name or not data:
        logger.warning("Malformed stream entry: %s", fields)
        return None

    event_cls = get_event_class(type_name)
    if event_cls is None:
        logger.warning("Unknown event type on stream: %s", type_name)
        return None
    return event_cls.model_validate_json(data)


class RedisStreamsBus:
    """Event bus backed by Redis Streams consumer groups."""

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        max_stream_length: int = 10_000,
        block_ms: int = 1000,
        batch_size: int = 10,
        max_handler_retries: int = 3,
        on_handler_error: ErrorCallback | None = None,
    ) -> None:
        self._redis_url = redis_url
        self._redis: aioredis.Redis | None = None
        self._max_len = max_stream_length
        self._block_ms = block_ms
        self._batch_size = batch_size
        self._max_retries = max_handler_retries
        self._on_handler_error = on_handler_error
        self._subscriptions: list[tuple[str, str, Handler]] = []
        self._tasks: list[asyncio.Task] = []
        self._running = False

        self._error_counts: dict[str, int] = defaultdict(int)
        self._attempts: dict[str, int] = defaultdict(int)
        self._dead_letters: list[DeadLetter] = []
        self._messages_processed: int = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Connect and start one consumer task per subscription."""
        self._redis = aioredis.from_url(self._redis_url, decode_responses=True)
        self._running = True
        for topic, group, handler in self._subscriptions:
            await self._launch(topic, group, handler)

    async def stop(self) -> None:
        self._running = False
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None

    # ------------------------------------------------------------------
    # Publish / Subscribe
    # ------------------------------------------------------------------

    async def publish(self, topic: str, event: BaseEvent) -> None:
        if self._redis is None:
            raise RuntimeError("RedisStreamsBus not started")
        await self._redis.xadd(
            topic, encode_event(event), maxlen=self._max_len, approximate=True,
        )

    async def subscribe(self, topic: str, group: str, handler: Handler) -> None:
        """Register a handler; starts consuming at once if already running."""
        self._subscriptions.append((topic, group, handler))
        if self._running and self._redis is not None:
            await self._launch(topic, group, handler)

    async def _launch(self, topic: str, group: str, handler: Handler) -> None:
        await self._ensure_group(topic, group)
        self._tasks.append(
            asyncio.create_task(
                self._consume(topic, group, handler),
                name=f"consumer-{topic}-{group}",
            )
        )

    # ------------------------------------------------------------------
    # Consumer
    # ------------------------------------------------------------------

    async def _consume(self, topic: str, group: str, handler: Handler) -> None:
        assert self._redis is not None
        consumer = f"{group}-worker"
        # "0" re-reads our own pending entries (retries); ">" reads new ones.
        cursor = "0"

        while self._running:
            try:
                entries = await self._redis.xreadgroup(
                    groupname=group,
                    consumername=consumer,
                    streams={topic: cursor},
                    count=self._batch_size,
                    block=self._block_ms,
                )
                messages = [m for _stream, batch in entries or [] for m in batch]
                if not messages:
                    cursor = ">"
                    continue

                for msg_id, fields in messages:
                    await self._deliver(topic, group, handler, msg_id, fields)
                cursor = "0" if self._pending_for(topic, group) else ">"

            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("Consumer loop error for %s/%s", topic, group)
                self._error_counts[f"{topic}/{group}"] += 1
                await asyncio.sleep(1)

    def _pending_for(self, topic: str, group: str) -> bool:
        prefix = f"{topic}/{group}/"
        return any(key.startswith(prefix) for key in self._attempts)

    async def _deliver(
        self,
        topic: str,
        group: str,
        handler: Handler,
        msg_id: str,
        fields: dict[str, str],
    ) -> None:
        assert self._redis is not None
        attempt_key = f"{topic}/{group}/{msg_id}"
        event_type = fields.get(TYPE_FIELD, "unknown")

        try:
            event = decode_event(fields)
        except ValueError as exc:
            logger.warning("Undecodable entry %s on %s: %s", msg_id, topic, exc)
            event = None
        if event is None:
            self._dead_letters.append(
                DeadLetter(topic, group, str(msg_id), event_type, "decode_failed", 1)
            )
            await self._redis.xack(topic, group, msg_id)
            return

        try:
            await handler(event)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._error_counts[f"{topic}/{group}"] += 1
            self._attempts[attempt_key] += 1
            attempts = self._attempts[attempt_key]
            logger.exception(
                "Handler error on %s/%s msg=%s (attempt %d/%d)",
                topic, group, msg_id, attempts, self._max_retries,
            )
            if self._on_handler_error is not None:
                try:
                    self._on_handler_error(topic, group, str(msg_id), exc)
                except Exception:
                    logger.warning("on_handler_error callback failed", exc_info=True)

            if attempts >= self._max_retries:
                logger.error(
                    "Dead-lettering %s on %s/%s after %d attempts",
                    msg_id, topic, group, attempts,
                )
                self._dead_letters.append(
                    DeadLetter(topic, group, str(msg_id), event_type, str(exc), attempts)
                )
                await self._redis.xack(topic, group, msg_id)
                self._attempts.pop(attempt_key, None)
            return

        await self._redis.xack(topic, group, msg_id)
        self._messages_processed += 1
        self._attempts.pop(attempt_key, None)

    async def _ensure_group(self, topic: str, group: str) -> None:
        """Create the consumer group unless it already exists."""
        assert self._redis is not None
        try:
            await self._redis.xgroup_create(topic, group, id="0", mkstream=True)
        except aioredis.ResponseError as exc:
            if "BUSYGROUP" not in str(exc):
                raise

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    def get_error_counts(self) -> dict[str, int]:
        return dict(self._error_counts)

    @property
    def dead_letters(self) -> list[DeadLetter]:
        return list(self._dead_letters)

    @property
    def messages_processed(self) -> int:
        return self._messages_processed
