"""In-memory event bus for tests and single-process deployments.

No external dependencies.  Handlers are awaited in subscription order as
each event is published, so a change notification is fully processed
before ``publish`` returns.  Consumer groups are accepted for interface
compatibility with the Redis Streams bus.

A failing handler does not stop delivery to the remaining handlers; the
failure is counted, dead-lettered and reported to ``on_handler_error``.
"""

from __future__ import annotations

import logging
import time
from collections import defaultdict
from collections.abc import Callable, Coroutine
from dataclasses import dataclass, field
from typing import Any

from order_workflow.core.events import BaseEvent

logger = logging.getLogger(__name__)

Handler = Callable[[BaseEvent], Coroutine[Any, Any, None]]
ErrorCallback = Callable[[str, str, str, Exception], None]


@dataclass
class MemoryDeadLetter:
    """Record of a handler failure in the memory bus."""

    topic: str
    group: str
    event_type: str
    error: str
    order_no: str | None = None
    timestamp: float = field(default_factory=time.monotonic)


class MemoryEventBus:
    """In-memory event bus. Safe within a single asyncio event loop."""

    def __init__(self, on_handler_error: ErrorCallback | None = None) -> None:
        # topic → list of (group, handler)
        self._handlers: dict[str, list[tuple[str, Handler]]] = defaultdict(list)
        self._history: list[tuple[str, BaseEvent]] = []
        self._running = False
        self._on_handler_error = on_handler_error

        self._error_counts: dict[str, int] = defaultdict(int)
        self._dead_letters: list[MemoryDeadLetter] = []
        self._messages_processed: int = 0

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        self._running = True

    async def stop(self) -> None:
        self._running = False

    async def publish(self, topic: str, event: BaseEvent) -> None:
        """Publish event to all handlers subscribed to the topic."""
        self._history.append((topic, event))

        for group, handler in list(self._handlers.get(topic, [])):
            try:
                await handler(event)
                self._messages_processed += 1
            except Exception as exc:
                self._record_failure(topic, group, event, exc)

    async def subscribe(self, topic: str, group: str, handler: Handler) -> None:
        """Subscribe a handler to a topic with a consumer group name."""
        self._handlers[topic].append((group, handler))

    def _record_failure(
        self, topic: str, group: str, event: BaseEvent, exc: Exception,
    ) -> None:
        self._error_counts[f"{topic}/{group}"] += 1
        self._dead_letters.append(
            MemoryDeadLetter(
                topic=topic,
                group=group,
                event_type=type(event).__name__,
                error=str(exc),
                order_no=getattr(event, "order_no", None),
            )
        )
        logger.exception(
            "Handler error on topic=%s group=%s event=%s",
            topic,
            group,
            type(event).__name__,
        )

        if self._on_handler_error is not None:
            try:
                self._on_handler_error(topic, group, event.event_id, exc)
            except Exception:
                logger.warning("on_handler_error callback failed", exc_info=True)

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    def get_error_counts(self) -> dict[str, int]:
        """Return per-topic/group error counts."""
        return dict(self._error_counts)

    @property
    def dead_letters(self) -> list[MemoryDeadLetter]:
        return list(self._dead_letters)

    @property
    def messages_processed(self) -> int:
        return self._messages_processed

    def clear_dead_letters(self) -> list[MemoryDeadLetter]:
        """Drain the dead-letter list and return all entries."""
        drained = self._dead_letters[:]
        self._dead_letters.clear()
        return drained

    # ------------------------------------------------------------------
    # Testing helpers
    # ------------------------------------------------------------------

    def get_history(self, topic: str | None = None) -> list[tuple[str, BaseEvent]]:
        """Get event history, optionally filtered by topic."""
        if topic is None:
            return list(self._history)
        return [(t, e) for t, e in self._history if t == topic]

    def clear_history(self) -> None:
        self._history.clear()
