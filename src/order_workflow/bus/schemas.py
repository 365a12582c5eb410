"""Topic → schema registry.

Maps event bus topic names to their Pydantic event models.
Used for serialization/deserialization and validation.
"""

from __future__ import annotations

from order_workflow.core.events import (
    BaseEvent,
    DeliveryVerified,
    OrderChanged,
    OrderFilled,
    OrderReceived,
    OrderShipped,
)

ORDER_LIFECYCLE_TOPIC = "order.lifecycle"
ORDER_SAGA_TOPIC = "order.saga"

# Topic name → list of event types that can appear on that topic
TOPIC_SCHEMAS: dict[str, list[type[BaseEvent]]] = {
    ORDER_LIFECYCLE_TOPIC: [OrderChanged],
    ORDER_SAGA_TOPIC: [OrderFilled, OrderShipped, OrderReceived, DeliveryVerified],
}

# Flat map: event class name → event class (for deserialization)
EVENT_TYPE_MAP: dict[str, type[BaseEvent]] = {}
for _schemas in TOPIC_SCHEMAS.values():
    for _cls in _schemas:
        EVENT_TYPE_MAP[_cls.__name__] = _cls


def get_event_class(event_type_name: str) -> type[BaseEvent] | None:
    """Look up event class by name."""
    return EVENT_TYPE_MAP.get(event_type_name)


def get_topic_for_event(event: BaseEvent) -> str | None:
    """Find the topic a given event should be published on."""
    cls = type(event)
    for topic, schemas in TOPIC_SCHEMAS.items():
        if cls in schemas:
            return topic
    return None
