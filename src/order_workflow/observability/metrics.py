"""Prometheus metrics for the order workflow."""

from __future__ import annotations

from prometheus_client import Counter, start_http_server

# ---------------------------------------------------------------------------
# Governance metrics
# ---------------------------------------------------------------------------

GOVERNANCE_REJECTIONS = Counter(
    "orders_governance_rejections_total",
    "Change sets rejected by the governance engine",
    ["aggregate", "kind"],
)

# ---------------------------------------------------------------------------
# Workflow metrics
# ---------------------------------------------------------------------------

STATUS_TRANSITIONS = Counter(
    "orders_status_transitions_total",
    "Accepted order status changes",
    ["from_status", "to_status"],
)

ACTIONS_TOTAL = Counter(
    "orders_state_actions_total",
    "State machine actions executed",
    ["status", "outcome"],
)

SAGA_CALLBACKS_TOTAL = Counter(
    "orders_saga_callbacks_total",
    "Saga callbacks handled",
    ["callback", "outcome"],
)


def start_metrics_server(port: int = 9090) -> None:
    """Start the Prometheus HTTP endpoint."""
    start_http_server(port)
