"""Event bus factory."""

from __future__ import annotations

from collections.abc import Callable

from order_workflow.core.config import BusConfig
from order_workflow.core.enums import BusBackend

from .memory_bus import MemoryEventBus
from .redis_streams import RedisStreamsBus


def create_event_bus(
    config: BusConfig | None = None,
    on_handler_error: Callable[[str, str, str, Exception], None] | None = None,
) -> MemoryEventBus | RedisStreamsBus:
    """Create the event bus selected by ``config.backend``.

    - MEMORY: in-process, deterministic, no external deps
    - REDIS: Redis Streams, persistent across restarts

    Args:
        config: Bus settings; defaults to the in-memory backend.
        on_handler_error: Optional callback ``(topic, group, msg_id, exc)``
            invoked when a handler raises.
    """
    config = config or BusConfig()
    if config.backend == BusBackend.MEMORY:
        return MemoryEventBus(on_handler_error=on_handler_error)
    return RedisStreamsBus(
        redis_url=config.redis_url,
        max_stream_length=config.max_stream_length,
        max_handler_retries=config.max_handler_retries,
        on_handler_error=on_handler_error,
    )
