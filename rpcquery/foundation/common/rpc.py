from __future__ import annotations

import inspect
from dataclasses import dataclass
from typing import Any, Generic, Mapping, Protocol, TypeVar

from pydantic import BaseModel, ConfigDict, ValidationError

TResult = TypeVar("TResult")


class Deserializer(Protocol):
    def deserialize(self, value: Any) -> Any:
        """Return the rich value for a wire ``value`` (may be awaitable)."""


class ErrorData(BaseModel):
    """``error.data`` of an RPC error envelope; unknown keys are retained."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    code: str | None = None
    httpStatus: int | None = None
    path: str | None = None


class ErrorShape(BaseModel):
    model_config = ConfigDict(extra="allow")

    message: str = ""
    code: int
    data: ErrorData | None = None


class ResultShape(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str | None = None
    data: Any = None


class EnvelopeFormatError(ValueError):
    """Raised when a decoded body is not a recognizable RPC envelope."""


@dataclass(slots=True)
class NormalizedOutcome(Generic[TResult]):
    """Outcome of one RPC call: either a value or an error shape, never both."""

    ok: bool
    value: TResult | None = None
    error: dict[str, Any] | None = None

    def __post_init__(self) -> None:
        if self.ok and self.error is not None:
            raise ValueError("successful outcome cannot carry an error")
        if not self.ok and self.error is None:
            raise ValueError("failed outcome requires an error")


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


async def transform_result(envelope: Any, deserializer: Deserializer) -> NormalizedOutcome[Any]:
    """Turn a decoded response envelope into a :class:`NormalizedOutcome`.

    ``{"error": ...}`` bodies yield a failed outcome whose error has been run
    through ``deserializer``; ``{"result": ...}`` bodies yield the deserialized
    ``result.data``. Any other body, or a shape that fails validation, raises
    :class:`EnvelopeFormatError`.
    """

    if not isinstance(envelope, Mapping):
        raise EnvelopeFormatError("response body is not a JSON object")

    if "error" in envelope:
        try:
            raw_error = await _maybe_await(deserializer.deserialize(envelope["error"]))
        except Exception as exc:
            raise EnvelopeFormatError("unable to deserialize error payload") from exc
        try:
            shape = ErrorShape.model_validate(raw_error)
        except ValidationError as exc:
            raise EnvelopeFormatError("error payload is not a valid error shape") from exc
        error = shape.model_dump(exclude_none=False)
        if shape.data is None:
            error["data"] = {}
        return NormalizedOutcome(ok=False, error=error)

    if "result" not in envelope:
        raise EnvelopeFormatError("response body has neither 'result' nor 'error'")
    try:
        result = ResultShape.model_validate(envelope["result"])
    except ValidationError as exc:
        raise EnvelopeFormatError("result payload is not an object") from exc
    if result.type not in (None, "data"):
        return NormalizedOutcome(ok=True, value=None)
    try:
        value = await _maybe_await(deserializer.deserialize(result.data))
    except Exception as exc:
        raise EnvelopeFormatError("unable to deserialize result payload") from exc
    return NormalizedOutcome(ok=True, value=value)


__all__ = [
    "Deserializer",
    "EnvelopeFormatError",
    "ErrorData",
    "ErrorShape",
    "NormalizedOutcome",
    "ResultShape",
    "transform_result",
]
