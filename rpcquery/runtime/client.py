from __future__ import annotations

import itertools
import logging
from dataclasses import replace
from typing import Any, Awaitable, Iterable, Mapping, Optional, Protocol

from rpcquery.foundation.common.cancellation import CancellationToken
from rpcquery.foundation.config import UnifiedConfig

from .errors import UnsupportedOperationError
from .http import HttpCapability
from .keys import normalize_path
from .operation import (
    Operation,
    OperationResult,
    ProcedureKind,
    SubscriptionHandlers,
    Unsubscribable,
)
from .transport import HeaderSource, TransportAdapter
from .ws_link import WebSocketLink

logger = logging.getLogger(__name__)


class OperationExecutor(Protocol):
    def execute(self, op: Operation) -> Awaitable[OperationResult]:
        ...


class SubscriptionLink(Protocol):
    def subscribe(self, op: Operation, handlers: SubscriptionHandlers) -> Unsubscribable:
        ...


class RpcClient:
    """Issue procedure calls through a transport.

    Queries and mutations go to ``transport``; subscriptions go to
    ``subscription_link`` when one is configured and are otherwise
    rejected synchronously with :class:`UnsupportedOperationError`.
    """

    _ids = itertools.count(1)

    def __init__(
        self,
        transport: OperationExecutor,
        *,
        subscription_link: SubscriptionLink | None = None,
        abort_on_unmount: bool = False,
    ) -> None:
        self.transport = transport
        self.subscription_link = subscription_link
        self.abort_on_unmount = abort_on_unmount

    def _operation(
        self,
        kind: ProcedureKind,
        path: str | Iterable[str],
        input: Any,
        signal: Optional[CancellationToken],
        context: Mapping[str, Any] | None,
    ) -> Operation:
        return Operation(
            path=".".join(normalize_path(path)),
            input=input,
            type=kind,
            signal=signal,
            context=dict(context or {}),
            id=next(self._ids),
        )

    async def request(self, op: Operation) -> OperationResult:
        """Execute ``op`` and return the full result including response metadata."""
        return await self.transport.execute(op)

    async def query(
        self,
        path: str | Iterable[str],
        input: Any = None,
        *,
        signal: Optional[CancellationToken] = None,
        context: Mapping[str, Any] | None = None,
    ) -> Any:
        op = self._operation(ProcedureKind.QUERY, path, input, signal, context)
        result = await self.transport.execute(op)
        return result.data

    async def mutation(
        self,
        path: str | Iterable[str],
        input: Any = None,
        *,
        signal: Optional[CancellationToken] = None,
        context: Mapping[str, Any] | None = None,
    ) -> Any:
        op = self._operation(ProcedureKind.MUTATION, path, input, signal, context)
        result = await self.transport.execute(op)
        return result.data

    def subscription(
        self,
        path: str | Iterable[str],
        input: Any = None,
        handlers: SubscriptionHandlers | Mapping[str, Any] | None = None,
        *,
        context: Mapping[str, Any] | None = None,
    ) -> Unsubscribable:
        op = self._operation(ProcedureKind.SUBSCRIPTION, path, input, None, context)
        coerced = SubscriptionHandlers.coerce(handlers)
        if self.subscription_link is None:
            raise UnsupportedOperationError(
                f"{type(self.transport).__name__} cannot carry subscriptions; "
                "configure a subscription link such as WebSocketLink"
            )
        logger.debug("subscribing to %s (id=%s)", op.path, op.id)
        return self.subscription_link.subscribe(op, coerced)

    async def aclose(self) -> None:
        for resource in (self.subscription_link, self.transport):
            closer = getattr(resource, "aclose", None)
            if closer is not None:
                await closer()

    async def __aenter__(self) -> "RpcClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()


def create_client(
    config: UnifiedConfig | None = None,
    *,
    http: HttpCapability | None = None,
    transformer: Any = None,
    headers: HeaderSource = None,
    **overrides: Any,
) -> RpcClient:
    """Build an :class:`RpcClient` from configuration.

    ``config`` defaults to the discovered runtime configuration. Keyword
    ``overrides`` replace fields of the ``transport`` section, e.g.
    ``create_client(url="http://localhost:3000/trpc")``.
    """
    if config is None:
        from .configuration import get_runtime_config

        config = get_runtime_config()
    transport_cfg = replace(config.transport, **overrides) if overrides else config.transport
    transport = TransportAdapter.from_config(
        transport_cfg, http=http, transformer=transformer, headers=headers
    )
    link = None
    if config.websocket.url:
        link = WebSocketLink.from_config(config.websocket, transformer=transformer)
    return RpcClient(
        transport,
        subscription_link=link,
        abort_on_unmount=config.query.abort_on_unmount,
    )


__all__ = [
    "OperationExecutor",
    "RpcClient",
    "SubscriptionLink",
    "create_client",
]
