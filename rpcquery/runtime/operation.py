"""Operation primitives shared by clients and transports."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional, Protocol

from rpcquery.foundation.common.cancellation import CancellationToken


class ProcedureKind(str, Enum):
    QUERY = "query"
    MUTATION = "mutation"
    SUBSCRIPTION = "subscription"


@dataclass
class Operation:
    """One logical procedure call, consumed once by a transport."""

    path: str
    input: Any
    type: ProcedureKind
    signal: Optional[CancellationToken] = None
    context: dict[str, Any] = field(default_factory=dict)
    id: int = 0


@dataclass
class OperationResult:
    """Deserialized result of an operation plus response metadata."""

    data: Any
    meta: Mapping[str, Any] = field(default_factory=dict)


class Unsubscribable(Protocol):
    def unsubscribe(self) -> None:
        ...


@dataclass
class SubscriptionHandlers:
    """Callbacks a subscription source reports to.

    ``on_connection_state_change`` receives ``(state, error)`` where ``state``
    is ``"idle"``, ``"connecting"`` or ``"pending"``.
    """

    on_started: Any = None
    on_data: Any = None
    on_error: Any = None
    on_complete: Any = None
    on_connection_state_change: Any = None

    @classmethod
    def coerce(cls, handlers: "SubscriptionHandlers | Mapping[str, Any] | None") -> "SubscriptionHandlers":
        if handlers is None:
            return cls()
        if isinstance(handlers, cls):
            return handlers
        known = {name: handlers[name] for name in cls.__dataclass_fields__ if name in handlers}
        return cls(**known)

    def emit(self, name: str, *args: Any) -> None:
        callback = getattr(self, name)
        if callback is not None:
            callback(*args)


__all__ = [
    "Operation",
    "OperationResult",
    "ProcedureKind",
    "SubscriptionHandlers",
    "Unsubscribable",
]
