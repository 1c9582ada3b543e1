"""Exception types raised by the rpcquery client runtime."""

from __future__ import annotations

from typing import Any, Mapping

from rpcquery.foundation.common.codes import http_status_for_code, rpc_code_for

__all__ = [
    "RpcQueryError",
    "InvalidPathError",
    "UnsupportedOperationError",
    "RpcClientError",
    "HttpEnvelopeError",
    "MalformedResponseError",
    "TransportError",
    "AbortError",
    "is_abort_error",
]


class RpcQueryError(Exception):
    """Base class for all rpcquery errors."""
    pass


class InvalidPathError(RpcQueryError, ValueError):
    """Raised when a procedure path is empty or does not name a procedure."""
    pass


class UnsupportedOperationError(RpcQueryError, NotImplementedError):
    """Raised synchronously when a transport cannot carry an operation."""
    pass


class RpcClientError(RpcQueryError):
    """Error delivered through the async channel of a procedure call.

    ``data`` mirrors the wire ``error.data`` object and always carries
    ``code``, ``httpStatus`` and ``path`` keys (values may be ``None``).
    ``meta`` holds response metadata when an HTTP response was received.
    """

    default_code: str | None = None

    def __init__(
        self,
        message: str,
        *,
        code: int | None = None,
        data: Mapping[str, Any] | None = None,
        meta: Mapping[str, Any] | None = None,
        cause: BaseException | None = None,
        path: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        normalized: dict[str, Any] = {"code": self.default_code, "httpStatus": None, "path": path}
        if data:
            normalized.update(data)
        if normalized.get("path") is None:
            normalized["path"] = path
        self.data = normalized
        if code is None and normalized.get("code"):
            code = rpc_code_for(str(normalized["code"]))
        self.code = code
        self.meta = dict(meta) if meta else None
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    @property
    def data_code(self) -> str | None:
        return self.data.get("code")

    @property
    def http_status(self) -> int | None:
        return self.data.get("httpStatus")

    @property
    def path(self) -> str | None:
        return self.data.get("path")

    @property
    def shape(self) -> dict[str, Any]:
        """Return the error in wire shape (``{"message", "code", "data"}``)."""
        return {"message": self.message, "code": self.code, "data": dict(self.data)}

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}({self.message!r}, code={self.code!r}, "
            f"data_code={self.data_code!r}, http_status={self.http_status!r})"
        )


class HttpEnvelopeError(RpcClientError):
    """Raised for a well-formed RPC error body, whatever the HTTP status."""

    @classmethod
    def from_shape(
        cls,
        shape: Mapping[str, Any],
        *,
        meta: Mapping[str, Any] | None = None,
        path: str | None = None,
    ) -> "HttpEnvelopeError":
        data = shape.get("data") or {}
        return cls(
            str(shape.get("message") or "Unknown error"),
            code=shape.get("code"),
            data=data,
            meta=meta,
            path=path,
        )


class MalformedResponseError(RpcClientError):
    """Raised when a response body cannot be read as an RPC envelope."""

    default_code = "PARSE_ERROR"


class TransportError(RpcClientError):
    """Raised when no HTTP response was received (network failure)."""

    default_code = "TRANSPORT_ERROR"


class AbortError(RpcClientError):
    """Raised when a call is cancelled through its cancellation token."""

    default_code = "CLIENT_CLOSED_REQUEST"

    def __init__(
        self,
        message: str = "The operation was aborted",
        *,
        reason: Any = None,
        path: str | None = None,
    ) -> None:
        super().__init__(
            message,
            data={"httpStatus": http_status_for_code(self.default_code)},
            path=path,
        )
        self.reason = reason


def is_abort_error(exc: BaseException) -> bool:
    """Return ``True`` when ``exc`` represents a cancelled call."""

    return isinstance(exc, AbortError)
