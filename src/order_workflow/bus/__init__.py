"""Order notification bus: in-memory and Redis Streams backends."""

from order_workflow.bus.bus import create_event_bus
from order_workflow.bus.memory_bus import MemoryEventBus
from order_workflow.bus.schemas import ORDER_LIFECYCLE_TOPIC, ORDER_SAGA_TOPIC

__all__ = [
    "ORDER_LIFECYCLE_TOPIC",
    "ORDER_SAGA_TOPIC",
    "MemoryEventBus",
    "create_event_bus",
]
