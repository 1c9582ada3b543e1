"""Payload transformers applied to procedure inputs and outputs.

A transformer is any object with ``serialize(value)`` and
``deserialize(value)``. Clients accept either one transformer used in both
directions or a pair with distinct ``input`` and ``output`` transformers;
:func:`get_transformer` normalizes both forms into a
:class:`CombinedTransformer`.
"""

from __future__ import annotations

import base64
import uuid
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any, Protocol, runtime_checkable

__all__ = [
    "DataTransformer",
    "CombinedTransformer",
    "IdentityTransformer",
    "TaggedJsonTransformer",
    "get_transformer",
]


@runtime_checkable
class DataTransformer(Protocol):
    def serialize(self, value: Any) -> Any:
        ...

    def deserialize(self, value: Any) -> Any:
        ...


class IdentityTransformer:
    """Pass values through unchanged."""

    def serialize(self, value: Any) -> Any:
        return value

    def deserialize(self, value: Any) -> Any:
        return value


@dataclass(frozen=True)
class CombinedTransformer:
    input: DataTransformer
    output: DataTransformer


_TAG = "__rq_type__"


class TaggedJsonTransformer:
    """Preserve rich Python values through JSON by tagging them.

    ``datetime``, ``date``, ``time``, ``timedelta``, ``Decimal``, ``UUID``,
    ``bytes``, ``set`` and ``tuple`` values are encoded as
    ``{"__rq_type__": <name>, "value": <json>}`` and restored on
    deserialization. Mappings that already use the tag key are wrapped so they
    survive unchanged.
    """

    def serialize(self, value: Any) -> Any:
        if value is None or isinstance(value, (bool, int, float, str)):
            return value
        if isinstance(value, datetime):
            return {_TAG: "datetime", "value": value.isoformat()}
        if isinstance(value, date):
            return {_TAG: "date", "value": value.isoformat()}
        if isinstance(value, time):
            return {_TAG: "time", "value": value.isoformat()}
        if isinstance(value, timedelta):
            return {_TAG: "timedelta", "value": value.total_seconds()}
        if isinstance(value, Decimal):
            return {_TAG: "decimal", "value": str(value)}
        if isinstance(value, uuid.UUID):
            return {_TAG: "uuid", "value": str(value)}
        if isinstance(value, (bytes, bytearray)):
            return {_TAG: "bytes", "value": base64.b64encode(bytes(value)).decode("ascii")}
        if isinstance(value, (set, frozenset)):
            return {_TAG: "set", "value": [self.serialize(v) for v in value]}
        if isinstance(value, tuple):
            return {_TAG: "tuple", "value": [self.serialize(v) for v in value]}
        if isinstance(value, list):
            return [self.serialize(v) for v in value]
        if isinstance(value, dict):
            encoded = {str(k): self.serialize(v) for k, v in value.items()}
            if _TAG in value:
                return {_TAG: "dict", "value": encoded}
            return encoded
        raise TypeError(f"Object of type {type(value).__name__} is not serializable")

    def deserialize(self, value: Any) -> Any:
        if isinstance(value, list):
            return [self.deserialize(v) for v in value]
        if not isinstance(value, dict):
            return value
        tag = value.get(_TAG)
        if tag is None or "value" not in value:
            return {k: self.deserialize(v) for k, v in value.items()}
        raw = value["value"]
        if tag == "datetime":
            return datetime.fromisoformat(raw)
        if tag == "date":
            return date.fromisoformat(raw)
        if tag == "time":
            return time.fromisoformat(raw)
        if tag == "timedelta":
            return timedelta(seconds=raw)
        if tag == "decimal":
            return Decimal(raw)
        if tag == "uuid":
            return uuid.UUID(raw)
        if tag == "bytes":
            return base64.b64decode(raw)
        if tag == "set":
            return {self.deserialize(v) for v in raw}
        if tag == "tuple":
            return tuple(self.deserialize(v) for v in raw)
        if tag == "dict":
            return {k: self.deserialize(v) for k, v in raw.items()}
        raise ValueError(f"unknown transformer tag {tag!r}")


def get_transformer(transformer: Any = None) -> CombinedTransformer:
    """Normalize ``transformer`` into separate input/output transformers."""

    if transformer is None:
        identity = IdentityTransformer()
        return CombinedTransformer(input=identity, output=identity)
    if isinstance(transformer, CombinedTransformer):
        return transformer
    if isinstance(transformer, DataTransformer):
        return CombinedTransformer(input=transformer, output=transformer)
    input_t = getattr(transformer, "input", None)
    output_t = getattr(transformer, "output", None)
    if isinstance(input_t, DataTransformer) and isinstance(output_t, DataTransformer):
        return CombinedTransformer(input=input_t, output=output_t)
    raise TypeError(
        "transformer must define serialize/deserialize or input/output transformers"
    )
