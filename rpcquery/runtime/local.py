from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Mapping, Union

from pydantic import ValidationError

from rpcquery.foundation.common.codes import build_error_envelope

from .client import RpcClient
from .errors import AbortError, HttpEnvelopeError, RpcClientError, UnsupportedOperationError
from .operation import Operation, OperationResult, ProcedureKind, SubscriptionHandlers
from .router import Procedure, ProcedureError, Router
from .transformer import get_transformer

logger = logging.getLogger(__name__)

ContextFactory = Union[
    Mapping[str, Any],
    Callable[[Operation], Union[Any, Awaitable[Any]]],
    None,
]


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class LocalSubscription:
    def __init__(self, task: asyncio.Task) -> None:
        self._task = task
        self.closed = False

    def unsubscribe(self) -> None:
        if self.closed:
            return
        self.closed = True
        if not self._task.done():
            self._task.cancel()


class LocalTransport:
    """Answer operations by calling a :class:`Router` in process.

    Inputs and results pass through the transformer exactly as they would
    over the wire, and resolver failures surface as the same
    :class:`HttpEnvelopeError` a remote server would produce.
    """

    def __init__(
        self,
        router: Router,
        *,
        context: ContextFactory = None,
        transformer: Any = None,
    ) -> None:
        self.router = router
        self._context = context
        self._transformer = get_transformer(transformer)

    async def _create_context(self, op: Operation) -> Any:
        if callable(self._context):
            return await _maybe_await(self._context(op))
        if self._context is None:
            return {}
        return dict(self._context)

    def _procedure(self, op: Operation) -> Procedure:
        procedure = self.router.lookup(op.path)
        if procedure.kind is not op.type:
            raise ProcedureError(
                "METHOD_NOT_SUPPORTED",
                f'"{op.path}" is a {procedure.kind.value}, not a {op.type.value}',
            )
        return procedure

    def _wire(self, value: Any, *, outbound: bool) -> Any:
        if value is None:
            return None
        transformer = self._transformer.input if outbound else self._transformer.output
        return transformer.deserialize(transformer.serialize(value))

    def _error(self, exc: Exception, op: Operation) -> RpcClientError:
        if isinstance(exc, ProcedureError):
            envelope = build_error_envelope(exc.code, exc.message, path=op.path)
            data = envelope["error"]["data"]
            # code, httpStatus and path always describe this call
            for key, value in exc.data.items():
                data.setdefault(key, value)
        elif isinstance(exc, ValidationError):
            envelope = build_error_envelope("BAD_REQUEST", str(exc), path=op.path)
        else:
            logger.error("procedure %s raised %s", op.path, type(exc).__name__, exc_info=exc)
            envelope = build_error_envelope("INTERNAL_SERVER_ERROR", str(exc) or type(exc).__name__, path=op.path)
        error = HttpEnvelopeError.from_shape(envelope["error"], path=op.path, meta={"local": True})
        error.cause = exc
        error.__cause__ = exc
        return error

    def execute(self, op: Operation) -> Awaitable[OperationResult]:
        if op.type is ProcedureKind.SUBSCRIPTION:
            raise UnsupportedOperationError("use subscribe() for subscriptions")
        return self._run(op)

    async def _run(self, op: Operation) -> OperationResult:
        signal = op.signal
        if signal is not None and signal.aborted:
            raise AbortError(reason=signal.reason, path=op.path)
        try:
            procedure = self._procedure(op)
            ctx = await self._create_context(op)
            parsed = procedure.parse_input(self._wire(op.input, outbound=True))
            result = await _maybe_await(procedure.resolver(parsed, ctx))
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            raise self._error(exc, op) from exc
        if signal is not None and signal.aborted:
            raise AbortError(reason=signal.reason, path=op.path)
        return OperationResult(data=self._wire(result, outbound=False), meta={"local": True})

    def subscribe(
        self,
        op: Operation,
        handlers: SubscriptionHandlers | Mapping[str, Any] | None = None,
    ) -> LocalSubscription:
        """Run an async-iterator resolver, forwarding each item to ``on_data``."""
        coerced = SubscriptionHandlers.coerce(handlers)
        task = asyncio.get_running_loop().create_task(self._stream(op, coerced))
        return LocalSubscription(task)

    async def _stream(self, op: Operation, handlers: SubscriptionHandlers) -> None:
        try:
            procedure = self._procedure(op)
            ctx = await self._create_context(op)
            parsed = procedure.parse_input(self._wire(op.input, outbound=True))
            source = await _maybe_await(procedure.resolver(parsed, ctx))
            if not hasattr(source, "__aiter__"):
                raise ProcedureError(
                    "INTERNAL_SERVER_ERROR",
                    f"subscription {op.path!r} must return an async iterator",
                )
            handlers.emit("on_connection_state_change", "pending", None)
            handlers.emit("on_started")
            async for item in source:
                handlers.emit("on_data", self._wire(item, outbound=False))
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            handlers.emit("on_error", self._error(exc, op))
            return
        handlers.emit("on_complete")


class LocalClient(RpcClient):
    """:class:`RpcClient` whose procedures run in process from a :class:`Router`."""

    def __init__(
        self,
        router: Router,
        *,
        context: ContextFactory = None,
        transformer: Any = None,
        abort_on_unmount: bool = False,
    ) -> None:
        transport = LocalTransport(router, context=context, transformer=transformer)
        super().__init__(transport, subscription_link=transport, abort_on_unmount=abort_on_unmount)
        self.router = router


__all__ = ["ContextFactory", "LocalClient", "LocalSubscription", "LocalTransport"]
