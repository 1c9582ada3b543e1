"""Utilities for idempotent Prometheus metric registration.

Modules fetch-or-create their metrics through this module so that importing
them twice (or re-creating them with different labels in tests) never trips
the registry's duplicate-name check. A registry-aware reset helper lets tests
clear every metric without touching Prometheus internals.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from typing import Dict, Tuple, TypeVar

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Histogram,
    REGISTRY as global_registry,
)
from prometheus_client.metrics import MetricWrapperBase

__all__ = [
    "get_or_create_counter",
    "get_or_create_histogram",
    "reset_metrics",
]

MetricT = TypeVar("MetricT", bound=MetricWrapperBase)
RegistryKey = Tuple[CollectorRegistry, str]

_METRIC_CACHE: Dict[RegistryKey, MetricWrapperBase] = {}
_RESET_CALLBACKS: Dict[RegistryKey, Callable[[], None]] = {}


def get_or_create_counter(
    name: str,
    documentation: str,
    labelnames: Sequence[str] | None = None,
    *,
    registry: CollectorRegistry | None = None,
) -> Counter:
    """Return an existing counter or register a new one."""

    return _get_or_create(Counter, name, documentation, labelnames, registry)


def get_or_create_histogram(
    name: str,
    documentation: str,
    labelnames: Sequence[str] | None = None,
    *,
    registry: CollectorRegistry | None = None,
    buckets: Sequence[float] | None = None,
) -> Histogram:
    """Return an existing histogram or register a new one."""

    extra = {"buckets": tuple(buckets)} if buckets is not None else {}
    return _get_or_create(Histogram, name, documentation, labelnames, registry, **extra)


def reset_metrics(
    names: Iterable[str] | None = None,
    *,
    registry: CollectorRegistry | None = None,
) -> None:
    """Clear registered metrics for ``names`` (all of ``registry`` when ``None``)."""

    reg = registry or global_registry
    if names is None:
        keys = [key for key in _RESET_CALLBACKS if key[0] is reg]
    else:
        requested = set(names)
        keys = [key for key in _RESET_CALLBACKS if key[0] is reg and key[1] in requested]
    for key in keys:
        _RESET_CALLBACKS[key]()


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _get_or_create(
    metric_cls: type[MetricT],
    name: str,
    documentation: str,
    labelnames: Sequence[str] | None,
    registry: CollectorRegistry | None,
    **kwargs: object,
) -> MetricT:
    reg = registry or global_registry
    labels = tuple(labelnames or ())
    cache_key = (reg, name)
    cached = _METRIC_CACHE.get(cache_key)
    if cached is not None:
        if isinstance(cached, metric_cls) and _labels_match(cached, labels):
            return cached  # type: ignore[return-value]
        reg.unregister(cached)
        _METRIC_CACHE.pop(cache_key, None)

    metric = metric_cls(name, documentation, labels, registry=reg, **kwargs)
    _METRIC_CACHE[cache_key] = metric
    _RESET_CALLBACKS[cache_key] = lambda: _default_reset(metric)
    return metric


def _labels_match(metric: MetricWrapperBase, labels: tuple[str, ...]) -> bool:
    return tuple(getattr(metric, "_labelnames", ())) == labels


def _default_reset(metric: MetricWrapperBase) -> None:
    if tuple(getattr(metric, "_labelnames", ())):
        metric.clear()
        return
    if isinstance(metric, Counter):
        metric._value.set(0)  # type: ignore[attr-defined]
