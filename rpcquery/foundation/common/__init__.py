from .cancellation import AbortListener, CancellationToken
from .codes import (
    HTTP_STATUS_BY_CODE,
    RPC_ERROR_CODES,
    build_error_envelope,
    code_for_http_status,
    http_status_for_code,
    rpc_code_for,
)
from .rpc import EnvelopeFormatError, NormalizedOutcome, transform_result

__all__ = [
    "AbortListener",
    "CancellationToken",
    "EnvelopeFormatError",
    "HTTP_STATUS_BY_CODE",
    "NormalizedOutcome",
    "RPC_ERROR_CODES",
    "build_error_envelope",
    "code_for_http_status",
    "http_status_for_code",
    "rpc_code_for",
    "transform_result",
]
