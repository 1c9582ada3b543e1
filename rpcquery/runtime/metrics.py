"""Prometheus metrics for the rpcquery client runtime."""

from __future__ import annotations

from prometheus_client import REGISTRY as global_registry

from rpcquery.foundation.common.metrics_factory import (
    get_or_create_counter,
    get_or_create_histogram,
    reset_metrics as reset_registered_metrics,
)

_METRIC_NAMES = (
    "rpcquery_requests_total",
    "rpcquery_request_latency_ms",
    "rpcquery_subscription_transitions_total",
)

requests_total = get_or_create_counter(
    "rpcquery_requests_total",
    "Procedure calls issued by the HTTP transport",
    ["method", "type", "outcome"],
)

request_latency_ms = get_or_create_histogram(
    "rpcquery_request_latency_ms",
    "Latency of procedure calls issued by the HTTP transport in milliseconds",
    ["method", "type"],
    buckets=(5, 10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000),
)

subscription_transitions_total = get_or_create_counter(
    "rpcquery_subscription_transitions_total",
    "Subscription bridge state transitions",
    ["status"],
)


def observe_request(method: str, op_type: str, outcome: str, elapsed_ms: float | None) -> None:
    requests_total.labels(method=method, type=op_type, outcome=outcome).inc()
    if elapsed_ms is not None:
        request_latency_ms.labels(method=method, type=op_type).observe(elapsed_ms)


def observe_subscription_transition(status: str) -> None:
    subscription_transitions_total.labels(status=status).inc()


def get_request_count(method: str, op_type: str, outcome: str) -> float:
    value = global_registry.get_sample_value(
        "rpcquery_requests_total",
        {"method": method, "type": op_type, "outcome": outcome},
    )
    return value or 0.0


def reset_metrics() -> None:
    """Clear every rpcquery metric; used by tests."""
    reset_registered_metrics(_METRIC_NAMES)


__all__ = [
    "get_request_count",
    "observe_request",
    "observe_subscription_transition",
    "request_latency_ms",
    "requests_total",
    "reset_metrics",
    "subscription_transitions_total",
]
