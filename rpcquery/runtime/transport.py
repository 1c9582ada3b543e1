"""HTTP transport adapter executing one operation per call."""
from __future__ import annotations

import asyncio
import inspect
import json
import logging
import time
from typing import Any, Awaitable, Callable, Mapping, Optional, Union
from urllib.parse import quote

from opentelemetry.propagate import inject

from rpcquery.foundation.common.codes import build_error_envelope, code_for_http_status
from rpcquery.foundation.common.rpc import EnvelopeFormatError, transform_result
from rpcquery.foundation.config import TransportConfig

from . import metrics as rq_metrics
from .errors import (
    AbortError,
    HttpEnvelopeError,
    MalformedResponseError,
    RpcClientError,
    TransportError,
    UnsupportedOperationError,
)
from .http import HttpCapability, HttpResponse, HttpxCapability
from .operation import Operation, OperationResult, ProcedureKind
from .transformer import get_transformer

logger = logging.getLogger(__name__)

HeaderMap = Mapping[str, Union[str, list[str], tuple[str, ...]]]
HeaderSource = Union[
    HeaderMap,
    Callable[[Operation], Union[HeaderMap, Awaitable[HeaderMap]]],
    None,
]

METHOD: dict[ProcedureKind, str] = {
    ProcedureKind.QUERY: "GET",
    ProcedureKind.MUTATION: "POST",
}

_URI_SAFE = "-_.!~*'()"
_EXCERPT_CHARS = 200


def _dumps(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


class TransportAdapter:
    """Execute :class:`Operation` objects against an :class:`HttpCapability`.

    Queries are sent as ``GET <url>/<path>?input=<json>`` and mutations as
    ``POST <url>/<path>`` with a JSON body; ``method_override="POST"`` sends
    every operation as a POST. Subscriptions are rejected synchronously by
    :meth:`execute`. The HTTP status never decides success: the decoded body
    is run through the output transformer and error envelopes raise
    :class:`HttpEnvelopeError`.
    """

    def __init__(
        self,
        http: HttpCapability,
        *,
        url: str,
        transformer: Any = None,
        method_override: Optional[str] = None,
        headers: HeaderSource = None,
        propagate_trace_context: bool = True,
        path_separator: str = "/",
    ) -> None:
        if not url:
            raise ValueError("transport url is required")
        if method_override is not None and method_override.upper() != "POST":
            raise ValueError(f"method_override only supports 'POST', got {method_override!r}")
        self._http = http
        self._url = str(url)
        self._transformer = get_transformer(transformer)
        self._method_override = method_override.upper() if method_override else None
        self._headers = headers
        self._propagate_trace_context = propagate_trace_context
        self._path_separator = path_separator

    @classmethod
    def from_config(
        cls,
        config: TransportConfig,
        *,
        http: HttpCapability | None = None,
        transformer: Any = None,
        headers: HeaderSource = None,
    ) -> "TransportAdapter":
        if not config.url:
            raise ValueError("transport.url is not configured")
        capability = http or HttpxCapability(
            timeout=config.timeout_seconds,
            raise_for_status=config.raise_for_status,
        )
        return cls(
            capability,
            url=config.url,
            transformer=transformer,
            method_override=config.method_override,
            headers=headers if headers is not None else (dict(config.headers) or None),
            propagate_trace_context=config.propagate_trace_context,
        )

    @property
    def url(self) -> str:
        return self._url

    @property
    def transformer(self):
        return self._transformer

    @property
    def http(self) -> HttpCapability:
        return self._http

    def method_for(self, op_type: ProcedureKind) -> str:
        if op_type is ProcedureKind.SUBSCRIPTION:
            raise UnsupportedOperationError(
                "Subscriptions are unsupported by the HTTP transport; "
                "configure a subscription link such as WebSocketLink"
            )
        if self._method_override is not None:
            return self._method_override
        return METHOD[ProcedureKind(op_type)]

    def execute(self, op: Operation) -> Awaitable[OperationResult]:
        """Start ``op`` and return an awaitable of its result.

        Raises :class:`UnsupportedOperationError` immediately for
        subscriptions; every other failure is raised by the awaitable.
        """
        method = self.method_for(op.type)
        return self._run(op, method)

    # ------------------------------------------------------------------
    # request lifecycle
    # ------------------------------------------------------------------

    async def _run(self, op: Operation, method: str) -> OperationResult:
        signal = op.signal
        if signal is not None and signal.aborted:
            logger.debug("%s %s not sent: already aborted", method, op.path)
            rq_metrics.observe_request(method, op.type.value, "aborted", None)
            raise AbortError(reason=signal.reason, path=op.path)

        loop = asyncio.get_running_loop()
        settled: asyncio.Future[OperationResult] = loop.create_future()
        task: asyncio.Task[OperationResult] | None = None

        def _on_abort() -> None:
            if task is not None and not task.done():
                task.cancel()
            if not settled.done():
                settled.set_exception(AbortError(reason=signal.reason if signal else None, path=op.path))

        def _on_done(t: asyncio.Task[OperationResult]) -> None:
            if t.cancelled():
                if not settled.done():
                    settled.set_exception(AbortError(path=op.path))
                return
            exc = t.exception()
            if settled.done():
                return
            if exc is not None:
                settled.set_exception(exc)
            else:
                settled.set_result(t.result())

        if signal is not None:
            signal.add_listener(_on_abort)
        start = time.perf_counter()
        outcome = "ok"
        try:
            task = asyncio.ensure_future(self._perform(op, method))
            task.add_done_callback(_on_done)
            return await settled
        except AbortError:
            outcome = "aborted"
            raise
        except TransportError:
            outcome = "transport_error"
            raise
        except RpcClientError:
            outcome = "error"
            raise
        except asyncio.CancelledError:
            outcome = "cancelled"
            raise
        finally:
            if signal is not None:
                signal.remove_listener(_on_abort)
            if not settled.done():
                settled.cancel()
            if task is not None and not task.done():
                task.cancel()
            elapsed_ms = (time.perf_counter() - start) * 1000
            rq_metrics.observe_request(method, op.type.value, outcome, elapsed_ms)
            logger.debug("%s %s settled: %s in %.1fms", method, op.path, outcome, elapsed_ms)

    async def _perform(self, op: Operation, method: str) -> OperationResult:
        headers = await self.resolve_headers(op)
        if op.signal is not None and op.signal.aborted:
            raise AbortError(reason=op.signal.reason, path=op.path)
        has_input = op.input is not None
        serialized = self._transformer.input.serialize(op.input) if has_input else None
        url = self.build_url(op.path, serialized if method == "GET" and has_input else None)

        try:
            if method == "GET":
                logger.debug("GET %s", url)
                response = await self._http.get(url, headers=headers)
            else:
                headers = {**headers, "Content-Type": "application/json"}
                body = _dumps(serialized) if has_input else None
                logger.debug("%s %s (%d bytes)", method, url, len(body or ""))
                response = await self._http.post(url, body, headers=headers)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            status = getattr(exc, "status", None)
            if not isinstance(status, int):
                raise TransportError(
                    str(exc) or type(exc).__name__,
                    cause=exc,
                    path=op.path,
                ) from exc
            response = self._response_from_error(exc, status, op)

        return await self._handle_response(response, op)

    async def resolve_headers(self, op: Operation) -> dict[str, str]:
        """Return request headers for ``op``; a header callable runs once."""
        source = self._headers
        if source is None:
            raw: Any = {}
        elif callable(source):
            raw = source(op)
            if inspect.isawaitable(raw):
                raw = await raw
        else:
            raw = source
        headers: dict[str, str] = {}
        for name, value in dict(raw or {}).items():
            if value is None:
                continue
            if isinstance(value, (list, tuple)):
                headers[str(name)] = ", ".join(str(v) for v in value)
            else:
                headers[str(name)] = str(value)
        if self._propagate_trace_context:
            inject(headers)
        return headers

    def build_url(self, path: str, serialized_input: Any = None) -> str:
        """Return the request URL for ``path`` with an optional ``input`` parameter."""
        base, _, query = self._url.partition("?")
        base = base.rstrip("/")
        url = base + "/" + path.replace(".", self._path_separator)
        params: list[str] = []
        if query:
            params.append(query)
        if serialized_input is not None:
            params.append("input=" + quote(_dumps(serialized_input), safe=_URI_SAFE))
        if params:
            url += "?" + "&".join(params)
        return url

    def _response_from_error(self, exc: Exception, status: int, op: Operation) -> HttpResponse:
        body = getattr(exc, "body", None)
        status_text = getattr(exc, "status_text", "") or ""
        if body is None or body == "":
            body = build_error_envelope(
                code_for_http_status(status),
                str(exc) or status_text or "HTTP Error",
                path=op.path,
                http_status=status,
            )
        return HttpResponse(
            body=body,
            status=status,
            status_text=status_text,
            headers=dict(getattr(exc, "headers", None) or {}),
            url=getattr(exc, "url", None),
            raw_body=getattr(exc, "raw_body", None),
        )

    async def _handle_response(self, response: HttpResponse, op: Operation) -> OperationResult:
        meta = {
            "status": response.status,
            "status_text": response.status_text,
            "headers": dict(response.headers),
            "url": response.url,
            "raw_body": response.raw_body,
        }
        envelope = response.body
        if envelope is None and response.status >= 400:
            envelope = build_error_envelope(
                code_for_http_status(response.status),
                response.status_text or "HTTP Error",
                path=op.path,
                http_status=response.status,
            )
        try:
            outcome = await transform_result(envelope, self._transformer.output)
        except EnvelopeFormatError as exc:
            raise MalformedResponseError(
                self._malformed_message(response),
                data={"httpStatus": response.status},
                meta=meta,
                cause=exc,
                path=op.path,
            ) from exc
        if not outcome.ok:
            assert outcome.error is not None
            raise HttpEnvelopeError.from_shape(outcome.error, meta=meta, path=op.path)
        return OperationResult(data=outcome.value, meta=meta)

    @staticmethod
    def _malformed_message(response: HttpResponse) -> str:
        message = f"Unable to transform response from server (HTTP {response.status})"
        raw = response.raw_body
        if raw is None and isinstance(response.body, str):
            raw = response.body
        if raw:
            excerpt = " ".join(raw.split())[:_EXCERPT_CHARS]
            message += f": {excerpt}"
        return message

    async def aclose(self) -> None:
        closer = getattr(self._http, "aclose", None)
        if closer is not None:
            await closer()


__all__ = ["HeaderSource", "METHOD", "TransportAdapter"]
