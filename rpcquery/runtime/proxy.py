"""Path-building proxy over the descriptor factories.

``proxy.user.get.query_options({"id": 1})`` accumulates the path
``("user", "get")`` through attribute access and dispatches the final
attribute to a terminal. ``proxy["user"]["get"]`` reaches procedures whose
names collide with terminals or are not identifiers. :func:`resolve` is
the same dispatch without attribute access.
"""

from __future__ import annotations

import functools
from typing import TYPE_CHECKING, Any, Callable, Iterable

from .errors import InvalidPathError, UnsupportedOperationError
from .keys import PathSegments, mutation_key, normalize_path, query_key
from .operation import ProcedureKind
from .options import (
    build_infinite_query_filter,
    build_infinite_query_options,
    build_mutation_options,
    build_path_filter,
    build_query_filter,
    build_query_options,
    build_subscription_options,
)

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .client import RpcClient
    from .router import Router

_QUERYABLE = frozenset({ProcedureKind.QUERY, ProcedureKind.SUBSCRIPTION})

# terminal -> procedure kinds it applies to; None means any procedure or namespace
VERB_KINDS: dict[str, frozenset[ProcedureKind] | None] = {
    "query_options": frozenset({ProcedureKind.QUERY}),
    "infinite_query_options": frozenset({ProcedureKind.QUERY}),
    "mutation_options": frozenset({ProcedureKind.MUTATION}),
    "subscription_options": frozenset({ProcedureKind.SUBSCRIPTION}),
    "query_key": _QUERYABLE,
    "infinite_query_key": frozenset({ProcedureKind.QUERY}),
    "mutation_key": frozenset({ProcedureKind.MUTATION}),
    "query_filter": _QUERYABLE,
    "infinite_query_filter": frozenset({ProcedureKind.QUERY}),
    "path_key": None,
    "path_filter": None,
}

TERMINALS = frozenset(VERB_KINDS)


def _query_key(client: "RpcClient", path: PathSegments, input: Any = None) -> Any:
    return query_key(path, input, "query")


def _infinite_query_key(client: "RpcClient", path: PathSegments, input: Any = None) -> Any:
    return query_key(path, input, "infinite")


def _mutation_key(client: "RpcClient", path: PathSegments) -> Any:
    return mutation_key(path)


def _path_key(client: "RpcClient", path: PathSegments) -> Any:
    return query_key(path, None, "any")


def _drop_client(fn: Callable[..., Any]) -> Callable[..., Any]:
    @functools.wraps(fn)
    def wrapper(client: "RpcClient", path: PathSegments, *args: Any, **kwargs: Any) -> Any:
        return fn(path, *args, **kwargs)

    return wrapper


_DISPATCH: dict[str, Callable[..., Any]] = {
    "query_options": build_query_options,
    "infinite_query_options": build_infinite_query_options,
    "mutation_options": build_mutation_options,
    "subscription_options": build_subscription_options,
    "query_key": _query_key,
    "infinite_query_key": _infinite_query_key,
    "mutation_key": _mutation_key,
    "query_filter": _drop_client(build_query_filter),
    "infinite_query_filter": _drop_client(build_infinite_query_filter),
    "path_key": _path_key,
    "path_filter": _drop_client(build_path_filter),
}


def _validate(router: "Router", path: PathSegments, verb: str) -> None:
    joined = ".".join(path)
    kinds = VERB_KINDS[verb]
    if kinds is None:
        if router.get(path) is None and not router.has_namespace(path):
            raise InvalidPathError(f"no procedure or namespace at {joined!r}")
        return
    kind = router.kind_of(path)
    if kind is None:
        raise InvalidPathError(f"no procedure at {joined!r}")
    if kind not in kinds:
        raise UnsupportedOperationError(f"{verb} is not available on {kind.value} {joined!r}")


def resolve(
    client: "RpcClient",
    path: str | Iterable[str],
    verb: str,
    *args: Any,
    router: "Router | None" = None,
    **kwargs: Any,
) -> Any:
    """Run terminal ``verb`` for ``path``.

    Raises :class:`InvalidPathError` for an empty path and :class:`ValueError`
    for an unknown ``verb``. With ``router`` the path must name a procedure
    whose kind supports ``verb``.
    """
    handler = _DISPATCH.get(verb)
    if handler is None:
        raise ValueError(f"unknown terminal {verb!r}; expected one of {sorted(TERMINALS)}")
    segments = normalize_path(path)
    if router is not None:
        _validate(router, segments, verb)
    return handler(client, segments, *args, **kwargs)


class OptionsProxy:
    __slots__ = ("_client", "_path", "_router")

    def __init__(
        self,
        client: "RpcClient",
        path: Iterable[str] = (),
        *,
        router: "Router | None" = None,
    ) -> None:
        self._client = client
        self._path: PathSegments = tuple(path)
        self._router = router

    def _child(self, name: str) -> "OptionsProxy":
        return OptionsProxy(self._client, self._path + normalize_path(name), router=self._router)

    def __getattr__(self, name: str) -> Any:
        if name.startswith("__") and name.endswith("__"):
            raise AttributeError(name)
        if name in TERMINALS:
            return functools.partial(resolve, self._client, self._path, name, router=self._router)
        return self._child(name)

    def __getitem__(self, name: str) -> "OptionsProxy":
        if not isinstance(name, str):
            raise TypeError(f"path segments must be strings, got {type(name).__name__}")
        return self._child(name)

    def __dir__(self) -> list[str]:
        names = set(TERMINALS)
        if self._router is not None:
            depth = len(self._path)
            for path in self._router.paths():
                segments = tuple(path.split("."))
                if len(segments) > depth and segments[:depth] == self._path:
                    names.add(segments[depth])
        return sorted(names)

    def __repr__(self) -> str:
        return f"<OptionsProxy {'.'.join(self._path) or '<root>'}>"


def create_options_proxy(client: "RpcClient", router: "Router | None" = None) -> OptionsProxy:
    """Return the root proxy for ``client``; ``router`` enables path validation."""
    return OptionsProxy(client, router=router)


def path_of(proxy: OptionsProxy) -> PathSegments:
    return proxy._path


__all__ = [
    "OptionsProxy",
    "TERMINALS",
    "VERB_KINDS",
    "create_options_proxy",
    "path_of",
    "resolve",
]
