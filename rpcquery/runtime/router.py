"""In-process procedure definitions.

A :class:`Router` maps dotted paths to :class:`Procedure` objects::

    router = Router({
        "user": {
            "get": query(lambda input, ctx: {"id": input["id"]}),
            "rename": mutation(rename_user),
        },
    })

Routers are used by :class:`~rpcquery.runtime.local.LocalClient` to answer
calls without a network hop and by the options proxy to validate paths.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Iterator, Mapping, Union

from pydantic import BaseModel

from rpcquery.foundation.common.codes import http_status_for_code

from .errors import InvalidPathError
from .keys import PathSegments, normalize_path
from .operation import ProcedureKind

Resolver = Callable[[Any, Any], Any]


class ProcedureError(Exception):
    """Raised by resolvers to return a typed RPC error to the caller."""

    def __init__(
        self,
        code: str = "INTERNAL_SERVER_ERROR",
        message: str | None = None,
        *,
        data: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(message or code)
        self.code = code
        self.message = message or code
        self.data = dict(data or {})

    @property
    def http_status(self) -> int:
        return http_status_for_code(self.code)


@dataclass(frozen=True)
class Procedure:
    """A resolver plus its kind and optional pydantic input model."""

    kind: ProcedureKind
    resolver: Resolver
    input_model: type[BaseModel] | None = None

    def parse_input(self, raw: Any) -> Any:
        if self.input_model is None:
            return raw
        return self.input_model.model_validate(raw)


def _procedure_factory(kind: ProcedureKind):
    def factory(resolver: Resolver | None = None, *, input: type[BaseModel] | None = None):
        def wrap(fn: Resolver) -> Procedure:
            return Procedure(kind=kind, resolver=fn, input_model=input)

        if resolver is None:
            return wrap
        return wrap(resolver)

    factory.__name__ = kind.value
    factory.__doc__ = f"Define a {kind.value} procedure; usable as a decorator."
    return factory


query = _procedure_factory(ProcedureKind.QUERY)
mutation = _procedure_factory(ProcedureKind.MUTATION)
subscription = _procedure_factory(ProcedureKind.SUBSCRIPTION)

RouterDefinition = Mapping[str, Union[Procedure, "Router", Mapping[str, Any]]]


class Router:
    def __init__(self, procedures: RouterDefinition | None = None) -> None:
        self._procedures: dict[PathSegments, Procedure] = {}
        if procedures:
            self._merge((), procedures)

    def _merge(self, prefix: PathSegments, definition: RouterDefinition) -> None:
        for name, value in definition.items():
            path = prefix + normalize_path(name)
            if isinstance(value, Procedure):
                self.add(path, value)
            elif isinstance(value, Router):
                for sub_path, procedure in value._procedures.items():
                    self.add(path + sub_path, procedure)
            elif isinstance(value, Mapping):
                self._merge(path, value)
            else:
                raise TypeError(f"router entry {'.'.join(path)!r} must be a Procedure, Router or mapping")

    def add(self, path: str | PathSegments, procedure: Procedure) -> None:
        segments = normalize_path(path)
        for depth in range(1, len(segments)):
            if segments[:depth] in self._procedures:
                raise InvalidPathError(f"{'.'.join(segments)!r} is nested under procedure {'.'.join(segments[:depth])!r}")
        if any(existing[: len(segments)] == segments for existing in self._procedures):
            raise InvalidPathError(f"{'.'.join(segments)!r} is already used as a namespace or procedure")
        self._procedures[segments] = procedure

    def get(self, path: str | PathSegments) -> Procedure | None:
        return self._procedures.get(normalize_path(path))

    def kind_of(self, path: str | PathSegments) -> ProcedureKind | None:
        procedure = self.get(path)
        return procedure.kind if procedure is not None else None

    def lookup(self, path: str | PathSegments) -> Procedure:
        """Return the procedure at ``path`` or raise ``ProcedureError("NOT_FOUND")``."""
        procedure = self.get(path)
        if procedure is None:
            joined = path if isinstance(path, str) else ".".join(path)
            raise ProcedureError("NOT_FOUND", f'No procedure found on path "{joined}"')
        return procedure

    def has_namespace(self, segments: PathSegments) -> bool:
        """Return ``True`` when some procedure lives strictly below ``segments``."""
        depth = len(segments)
        return any(len(path) > depth and path[:depth] == segments for path in self._procedures)

    def paths(self) -> list[str]:
        return sorted(".".join(path) for path in self._procedures)

    def __contains__(self, path: object) -> bool:
        if not isinstance(path, (str, tuple)):
            return False
        try:
            return self.get(path) is not None
        except InvalidPathError:
            return False

    def __iter__(self) -> Iterator[str]:
        return iter(self.paths())

    def __len__(self) -> int:
        return len(self._procedures)


__all__ = [
    "Procedure",
    "ProcedureError",
    "Router",
    "mutation",
    "query",
    "subscription",
]
