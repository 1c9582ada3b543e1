from __future__ import annotations

import asyncio
import contextlib
import itertools
import json
import logging
from typing import Any, Mapping

import websockets

from rpcquery.foundation.common.rpc import EnvelopeFormatError, transform_result
from rpcquery.foundation.config import WebSocketConfig

from .errors import HttpEnvelopeError, MalformedResponseError, TransportError
from .operation import Operation, ProcedureKind, SubscriptionHandlers
from .transformer import get_transformer

logger = logging.getLogger(__name__)


class WebSocketSubscription:
    """Handle for one live subscription; :meth:`unsubscribe` is idempotent."""

    def __init__(self, link: "WebSocketLink", op: Operation, handlers: SubscriptionHandlers) -> None:
        self._link = link
        self._op = op
        self._handlers = handlers
        self._stopped = False
        self._task: asyncio.Task | None = None

    @property
    def id(self) -> int:
        return self._op.id

    @property
    def closed(self) -> bool:
        return self._stopped or (self._task is not None and self._task.done())

    def start(self) -> None:
        self._task = asyncio.get_running_loop().create_task(self._run())

    def unsubscribe(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def wait_closed(self) -> None:
        if self._task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._task

    def _emit(self, name: str, *args: Any) -> None:
        if self._stopped:
            return
        try:
            self._handlers.emit(name, *args)
        except Exception:
            logger.exception("subscription %s: %s handler failed", self._op.path, name)

    def _request(self) -> str:
        params: dict[str, Any] = {"path": self._op.path}
        if self._op.input is not None:
            params["input"] = self._link.transformer.input.serialize(self._op.input)
        return json.dumps({"id": self._op.id, "method": "subscription", "params": params})

    def _stop_request(self) -> str:
        return json.dumps({"id": self._op.id, "method": "subscription.stop"})

    async def _run(self) -> None:
        link = self._link
        retries = 0
        # server-initiated closes and connect failures both count as a retry
        delay = link.base_delay
        self._emit("on_connection_state_change", "connecting", None)
        while not self._stopped:
            error: BaseException | None = None
            try:
                async with websockets.connect(link.url, **link.connect_kwargs()) as ws:
                    retries = 0
                    delay = link.base_delay
                    try:
                        await ws.send(self._request())
                        self._emit("on_connection_state_change", "pending", None)
                        if await self._pump(ws):
                            return
                    except asyncio.CancelledError:
                        with contextlib.suppress(Exception):
                            await ws.send(self._stop_request())
                        raise
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                error = exc
                logger.warning("subscription %s: connection failed: %s", self._op.path, exc)
            if self._stopped:
                break
            retries += 1
            if link.max_retries is not None and retries > link.max_retries:
                self._emit(
                    "on_error",
                    TransportError(
                        f"subscription connection lost after {retries - 1} retries",
                        cause=error,
                        path=self._op.path,
                    ),
                )
                return
            transport_error = (
                TransportError(str(error) or type(error).__name__, cause=error, path=self._op.path)
                if error is not None
                else None
            )
            logger.warning("subscription %s: reconnecting in %.2fs", self._op.path, delay)
            self._emit("on_connection_state_change", "connecting", transport_error)
            await asyncio.sleep(delay)
            delay = min(delay * link.backoff_factor, link.max_delay)

    async def _pump(self, ws: Any) -> bool:
        """Dispatch frames until the server finishes (``True``) or the socket closes."""
        while True:
            try:
                raw = await ws.recv()
            except websockets.ConnectionClosed:
                return False
            try:
                message = json.loads(raw)
            except (TypeError, ValueError):
                logger.warning("subscription %s: dropping non-JSON frame", self._op.path)
                continue
            if not isinstance(message, dict) or message.get("id") != self._op.id:
                logger.warning("subscription %s: dropping frame for another id", self._op.path)
                continue
            if "error" in message:
                await self._deliver_error(message)
                return True
            result = message.get("result")
            kind = result.get("type") if isinstance(result, Mapping) else None
            if kind == "started":
                self._emit("on_started")
                continue
            if kind == "stopped":
                self._emit("on_complete")
                return True
            try:
                outcome = await transform_result(message, self._link.transformer.output)
            except EnvelopeFormatError as exc:
                self._emit("on_error", MalformedResponseError(str(exc), cause=exc, path=self._op.path))
                return True
            self._emit("on_data", outcome.value)

    async def _deliver_error(self, message: Mapping[str, Any]) -> None:
        try:
            outcome = await transform_result(message, self._link.transformer.output)
        except EnvelopeFormatError as exc:
            self._emit("on_error", MalformedResponseError(str(exc), cause=exc, path=self._op.path))
            return
        assert outcome.error is not None
        self._emit("on_error", HttpEnvelopeError.from_shape(outcome.error, path=self._op.path))


class WebSocketLink:
    """Carry subscription operations over ``websockets`` connections.

    Each subscription owns one connection. Dropped connections are retried
    with exponential backoff (``base_delay`` growing by ``backoff_factor`` up
    to ``max_delay``); after ``max_retries`` consecutive failures the
    subscription reports a :class:`TransportError` through ``on_error``.
    """

    _ids = itertools.count(1)

    def __init__(
        self,
        url: str,
        *,
        transformer: Any = None,
        headers: Mapping[str, str] | None = None,
        max_retries: int | None = 5,
        base_delay: float = 1.0,
        backoff_factor: float = 2.0,
        max_delay: float = 8.0,
    ) -> None:
        if not url:
            raise ValueError("websocket url is required")
        self.url = url
        self.transformer = get_transformer(transformer)
        self.headers = dict(headers or {})
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.backoff_factor = backoff_factor
        self.max_delay = max_delay
        self._subscriptions: set[WebSocketSubscription] = set()

    @classmethod
    def from_config(cls, config: WebSocketConfig, *, transformer: Any = None) -> "WebSocketLink":
        if not config.url:
            raise ValueError("websocket.url is not configured")
        return cls(
            config.url,
            transformer=transformer,
            max_retries=config.max_retries,
            base_delay=config.base_delay,
            backoff_factor=config.backoff_factor,
            max_delay=config.max_delay,
        )

    def connect_kwargs(self) -> dict[str, Any]:
        if not self.headers:
            return {}
        return {"additional_headers": dict(self.headers)}

    def subscribe(
        self,
        op: Operation,
        handlers: SubscriptionHandlers | Mapping[str, Any] | None = None,
    ) -> WebSocketSubscription:
        """Open a subscription for ``op``; must be called from a running loop."""
        if op.type is not ProcedureKind.SUBSCRIPTION:
            raise ValueError(f"WebSocketLink only carries subscriptions, got {op.type.value}")
        if not op.id:
            op.id = next(self._ids)
        subscription = WebSocketSubscription(self, op, SubscriptionHandlers.coerce(handlers))
        subscription.start()
        self._subscriptions.add(subscription)
        assert subscription._task is not None
        subscription._task.add_done_callback(lambda _t: self._subscriptions.discard(subscription))
        return subscription

    @property
    def active(self) -> int:
        return len(self._subscriptions)

    async def aclose(self) -> None:
        """Unsubscribe everything and wait for the connections to close."""
        pending = list(self._subscriptions)
        for subscription in pending:
            subscription.unsubscribe()
        for subscription in pending:
            await subscription.wait_closed()


__all__ = ["WebSocketLink", "WebSocketSubscription"]
