"""JSON-RPC style error codes and their HTTP status equivalents."""

from __future__ import annotations

from typing import Final, Mapping

RPC_ERROR_CODES: Final[Mapping[str, int]] = {
    "PARSE_ERROR": -32700,
    "BAD_REQUEST": -32600,
    "INTERNAL_SERVER_ERROR": -32603,
    "NOT_IMPLEMENTED": -32603,
    "BAD_GATEWAY": -32603,
    "SERVICE_UNAVAILABLE": -32603,
    "GATEWAY_TIMEOUT": -32603,
    "UNAUTHORIZED": -32001,
    "PAYMENT_REQUIRED": -32002,
    "FORBIDDEN": -32003,
    "NOT_FOUND": -32004,
    "METHOD_NOT_SUPPORTED": -32005,
    "TIMEOUT": -32008,
    "CONFLICT": -32009,
    "PRECONDITION_FAILED": -32012,
    "PAYLOAD_TOO_LARGE": -32013,
    "UNSUPPORTED_MEDIA_TYPE": -32015,
    "UNPROCESSABLE_CONTENT": -32022,
    "TOO_MANY_REQUESTS": -32029,
    "CLIENT_CLOSED_REQUEST": -32099,
}

HTTP_STATUS_BY_CODE: Final[Mapping[str, int]] = {
    "PARSE_ERROR": 400,
    "BAD_REQUEST": 400,
    "UNAUTHORIZED": 401,
    "PAYMENT_REQUIRED": 402,
    "FORBIDDEN": 403,
    "NOT_FOUND": 404,
    "METHOD_NOT_SUPPORTED": 405,
    "TIMEOUT": 408,
    "CONFLICT": 409,
    "PRECONDITION_FAILED": 412,
    "PAYLOAD_TOO_LARGE": 413,
    "UNSUPPORTED_MEDIA_TYPE": 415,
    "UNPROCESSABLE_CONTENT": 422,
    "TOO_MANY_REQUESTS": 429,
    "CLIENT_CLOSED_REQUEST": 499,
    "INTERNAL_SERVER_ERROR": 500,
    "NOT_IMPLEMENTED": 501,
    "BAD_GATEWAY": 502,
    "SERVICE_UNAVAILABLE": 503,
    "GATEWAY_TIMEOUT": 504,
}

# First code wins for statuses shared by several codes (400 -> BAD_REQUEST).
_CODE_BY_HTTP_STATUS: dict[int, str] = {}
for _code, _status in HTTP_STATUS_BY_CODE.items():
    if _code == "PARSE_ERROR":
        continue
    _CODE_BY_HTTP_STATUS.setdefault(_status, _code)

UNKNOWN_ERROR_CODE: Final[str] = "UNKNOWN_ERROR"


def code_for_http_status(status: int | None) -> str:
    """Return the symbolic error code for an HTTP ``status``."""

    if status is None:
        return UNKNOWN_ERROR_CODE
    return _CODE_BY_HTTP_STATUS.get(int(status), UNKNOWN_ERROR_CODE)


def http_status_for_code(code: str) -> int:
    """Return the HTTP status associated with a symbolic error ``code``."""

    return HTTP_STATUS_BY_CODE.get(code, 500)


def rpc_code_for(code: str) -> int:
    """Return the numeric JSON-RPC code for a symbolic error ``code``."""

    return RPC_ERROR_CODES.get(code, RPC_ERROR_CODES["INTERNAL_SERVER_ERROR"])


def build_error_envelope(
    code: str,
    message: str,
    *,
    path: str | None = None,
    http_status: int | None = None,
    **extra: object,
) -> dict[str, object]:
    """Return a wire-shaped error envelope for ``code``."""

    data: dict[str, object] = {
        "code": code,
        "httpStatus": http_status if http_status is not None else http_status_for_code(code),
    }
    if path is not None:
        data["path"] = path
    data.update(extra)
    return {"error": {"message": message, "code": rpc_code_for(code), "data": data}}


__all__ = [
    "HTTP_STATUS_BY_CODE",
    "RPC_ERROR_CODES",
    "UNKNOWN_ERROR_CODE",
    "build_error_envelope",
    "code_for_http_status",
    "http_status_for_code",
    "rpc_code_for",
]
