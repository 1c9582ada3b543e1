"""Descriptor factories consumed by a reactive query cache.

Each factory returns a plain ``dict`` so callers can spread it into their
cache library's options. Descriptors never catch errors: whatever the
client raises propagates out of ``query_fn``/``mutation_fn`` unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Mapping, Optional

from rpcquery.foundation.common.cancellation import CancellationToken

from .keys import SKIP_TOKEN, PathSegments, mutation_key, query_key

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .client import RpcClient
    from .operation import SubscriptionHandlers, Unsubscribable


@dataclass
class QueryFunctionContext:
    """What a cache passes to ``query_fn``; every field is optional."""

    signal: Optional[CancellationToken] = None
    page_param: Any = None
    direction: Optional[str] = None
    meta: Optional[Mapping[str, Any]] = None
    query_key: Any = None


def _split_trpc(opts: dict[str, Any]) -> dict[str, Any]:
    trpc = opts.pop("trpc", None) or {}
    if not isinstance(trpc, Mapping):
        raise TypeError("'trpc' options must be a mapping")
    return dict(trpc)


def _signal_for(
    context: QueryFunctionContext | None,
    trpc: Mapping[str, Any],
    client: "RpcClient",
) -> Optional[CancellationToken]:
    if context is None:
        return None
    if trpc.get("abort_on_unmount", client.abort_on_unmount):
        return context.signal
    return None


def _page_input(input: Any, page_param: Any, direction: Optional[str]) -> Any:
    if page_param is None and direction is None:
        return input
    if input is None:
        input = {}
    if not isinstance(input, Mapping):
        raise TypeError("infinite query input must be a mapping to carry a cursor")
    merged = dict(input)
    if page_param is not None:
        merged["cursor"] = page_param
    if direction is not None:
        merged["direction"] = direction
    return merged


def build_query_options(
    client: "RpcClient",
    path: PathSegments,
    input: Any = None,
    **opts: Any,
) -> dict[str, Any]:
    trpc = _split_trpc(opts)
    joined = ".".join(path)
    key = query_key(path, input, "query")

    async def query_fn(context: QueryFunctionContext | None = None) -> Any:
        return await client.query(
            joined,
            input,
            signal=_signal_for(context, trpc, client),
            context=trpc.get("context"),
        )

    return {
        **opts,
        "query_key": key,
        "query_fn": SKIP_TOKEN if input is SKIP_TOKEN else query_fn,
        "trpc": {"path": joined},
    }


def build_infinite_query_options(
    client: "RpcClient",
    path: PathSegments,
    input: Any = None,
    *,
    initial_cursor: Any = None,
    **opts: Any,
) -> dict[str, Any]:
    """Return an infinite-query descriptor.

    ``query_fn`` merges the page parameter as ``cursor`` and the fetch
    ``direction`` into the input; neither is part of ``query_key``.
    """
    trpc = _split_trpc(opts)
    joined = ".".join(path)
    key = query_key(path, input, "infinite")

    async def query_fn(context: QueryFunctionContext | None = None) -> Any:
        page_param = context.page_param if context is not None else None
        direction = context.direction if context is not None else None
        return await client.query(
            joined,
            _page_input(input, page_param, direction),
            signal=_signal_for(context, trpc, client),
            context=trpc.get("context"),
        )

    return {
        **opts,
        "query_key": key,
        "query_fn": SKIP_TOKEN if input is SKIP_TOKEN else query_fn,
        "initial_page_param": initial_cursor,
        "trpc": {"path": joined},
    }


def build_mutation_options(
    client: "RpcClient",
    path: PathSegments,
    **opts: Any,
) -> dict[str, Any]:
    trpc = _split_trpc(opts)
    joined = ".".join(path)

    async def mutation_fn(input: Any = None) -> Any:
        return await client.mutation(joined, input, context=trpc.get("context"))

    return {
        **opts,
        "mutation_key": mutation_key(path),
        "mutation_fn": mutation_fn,
        "trpc": {"path": joined},
    }


def build_subscription_options(
    client: "RpcClient",
    path: PathSegments,
    input: Any = None,
    **opts: Any,
) -> dict[str, Any]:
    """Return a subscription descriptor.

    ``enabled`` is taken from ``opts`` when given, otherwise it is ``False``
    only for the skip token. ``subscribe(handlers)`` opens the subscription
    and returns an object with ``unsubscribe()``.
    """
    trpc = _split_trpc(opts)
    joined = ".".join(path)
    enabled = bool(opts.pop("enabled")) if "enabled" in opts else input is not SKIP_TOKEN
    subscribe_input = None if input is SKIP_TOKEN else input

    def subscribe(handlers: "SubscriptionHandlers | Mapping[str, Any] | None" = None) -> "Unsubscribable":
        return client.subscription(joined, subscribe_input, handlers, context=trpc.get("context"))

    return {
        **opts,
        "query_key": query_key(path, input, "query"),
        "enabled": enabled,
        "subscribe": subscribe,
        "trpc": {"path": joined},
    }


def build_query_filter(path: PathSegments, input: Any = None, **filters: Any) -> dict[str, Any]:
    return {**filters, "query_key": query_key(path, input, "query")}


def build_infinite_query_filter(path: PathSegments, input: Any = None, **filters: Any) -> dict[str, Any]:
    return {**filters, "query_key": query_key(path, input, "infinite")}


def build_path_filter(path: PathSegments, **filters: Any) -> dict[str, Any]:
    return {**filters, "query_key": query_key(path, None, "any")}


__all__ = [
    "QueryFunctionContext",
    "build_infinite_query_filter",
    "build_infinite_query_options",
    "build_mutation_options",
    "build_path_filter",
    "build_query_filter",
    "build_query_options",
    "build_subscription_options",
]
