"""Canonical cache keys for procedure paths.

Query keys have the shape ``(path, {"input": ..., "type": ...})`` where
``path`` is a tuple of path segments. Path-level keys (kind ``"any"``) and
mutation keys are the one-element tuple ``(path,)`` and match every key
beneath that path through :func:`partial_match_key`.
"""

from __future__ import annotations

import json
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable, Literal, Mapping, Tuple, Union

from .errors import InvalidPathError

__all__ = [
    "SKIP_TOKEN",
    "SkipToken",
    "QueryKind",
    "PathSegments",
    "QueryKey",
    "MutationKey",
    "normalize_path",
    "query_key",
    "mutation_key",
    "hash_key",
    "partial_match_key",
]


class SkipToken:
    """Sentinel meaning "do not run this operation yet"."""

    _instance: "SkipToken | None" = None

    def __new__(cls) -> "SkipToken":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SKIP_TOKEN"

    def __reduce__(self) -> str:
        return "SKIP_TOKEN"


SKIP_TOKEN = SkipToken()

QueryKind = Literal["query", "infinite", "any"]
PathSegments = Tuple[str, ...]
QueryKey = Union[Tuple[PathSegments], Tuple[PathSegments, dict]]
MutationKey = Tuple[PathSegments]

_KINDS = ("query", "infinite", "any")
_PAGE_KEYS = ("cursor", "direction")


def normalize_path(path: str | Iterable[str]) -> PathSegments:
    """Return ``path`` as a non-empty tuple of segments.

    Dotted segments are split, so ``"a.b"`` and ``("a", "b")`` are the same
    path.
    """

    raw = [path] if isinstance(path, str) else list(path)
    segments: list[str] = []
    for part in raw:
        if not isinstance(part, str):
            raise InvalidPathError(f"path segments must be strings, got {part!r}")
        if part == "" and len(raw) == 1:
            break
        for segment in part.split("."):
            if not segment:
                raise InvalidPathError(f"empty segment in procedure path {path!r}")
            segments.append(segment)
    if not segments:
        raise InvalidPathError("procedure path must not be empty")
    return tuple(segments)


def query_key(
    path: str | Iterable[str],
    input: Any = None,
    kind: QueryKind = "query",
) -> QueryKey:
    """Return the cache key for ``path`` called with ``input``.

    ``kind="any"`` omits the input entirely and addresses every procedure at
    or below ``path``. For ``"infinite"`` keys the ``cursor`` and
    ``direction`` entries of a mapping input are dropped.
    """

    if kind not in _KINDS:
        raise ValueError(f"unknown query key kind {kind!r}")
    segments = normalize_path(path)
    if kind == "any":
        return (segments,)

    meta: dict[str, Any] = {}
    if input is not None and input is not SKIP_TOKEN:
        if kind == "infinite" and isinstance(input, Mapping) and any(k in input for k in _PAGE_KEYS):
            input = {k: v for k, v in input.items() if k not in _PAGE_KEYS}
        meta["input"] = input
    meta["type"] = kind
    return (segments, meta)


def mutation_key(path: str | Iterable[str]) -> MutationKey:
    """Return the mutation key for ``path``; mutations are not keyed by input."""

    return (normalize_path(path),)


def _json_default(value: Any) -> Any:
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=repr)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if value is SKIP_TOKEN:
        return None
    return repr(value)


def hash_key(key: Any) -> str:
    """Return a stable, hashable string for ``key``.

    Object keys are sorted, so inputs differing only in key order hash equal.
    """

    return json.dumps(key, sort_keys=True, separators=(",", ":"), default=_json_default)


def partial_match_key(key: Any, prefix: Any) -> bool:
    """Return ``True`` when ``prefix`` structurally matches the start of ``key``.

    Sequences match element-wise up to the length of ``prefix``; mappings
    match when every entry of ``prefix`` matches the same entry of ``key``.
    """

    if prefix is key:
        return True
    if isinstance(prefix, Mapping):
        if not isinstance(key, Mapping):
            return False
        return all(name in key and partial_match_key(key[name], value) for name, value in prefix.items())
    if isinstance(prefix, (tuple, list)):
        if not isinstance(key, (tuple, list)) or len(prefix) > len(key):
            return False
        return all(partial_match_key(k, p) for k, p in zip(key, prefix))
    return key == prefix
