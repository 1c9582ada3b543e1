from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Literal, Mapping, Optional

from . import metrics as rq_metrics
from .operation import SubscriptionHandlers, Unsubscribable

logger = logging.getLogger(__name__)

SubscriptionStatus = Literal["idle", "connecting", "pending", "error"]


@dataclass(frozen=True)
class SubscriptionState:
    status: SubscriptionStatus
    data: Any = None
    error: Optional[BaseException] = None


StateListener = Callable[[SubscriptionState], None]


class SubscriptionBridge:
    """Drive a subscription descriptor and expose its connection state.

    ``status`` starts as ``"connecting"`` when the descriptor is enabled and
    ``"idle"`` otherwise; :meth:`connect` opens the connection. Only one
    connection is live at a time and events from a replaced connection are
    ignored. User callbacks present in the descriptor (``on_data`` and
    friends) are forwarded after the state has been updated.
    """

    def __init__(self, descriptor: Mapping[str, Any]) -> None:
        self._descriptor = descriptor
        self._enabled = bool(descriptor.get("enabled", True))
        self._state = SubscriptionState("connecting" if self._enabled else "idle")
        self._connection: Unsubscribable | None = None
        self._generation = 0
        self._closed = False
        self._listeners: list[StateListener] = []

    # ------------------------------------------------------------------
    # state
    # ------------------------------------------------------------------

    @property
    def state(self) -> SubscriptionState:
        return self._state

    @property
    def status(self) -> SubscriptionStatus:
        return self._state.status

    @property
    def data(self) -> Any:
        return self._state.data

    @property
    def error(self) -> Optional[BaseException]:
        return self._state.error

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def connected(self) -> bool:
        return self._connection is not None

    def add_listener(self, listener: StateListener) -> Callable[[], None]:
        """Call ``listener`` with every new state; returns a remover."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _set(self, status: SubscriptionStatus, **changes: Any) -> None:
        previous = self._state
        self._state = SubscriptionState(
            status=status,
            data=changes.get("data", previous.data),
            error=changes.get("error", previous.error),
        )
        if status != previous.status:
            rq_metrics.observe_subscription_transition(status)
            logger.debug("subscription %s: %s -> %s", self._path, previous.status, status)
        for listener in list(self._listeners):
            listener(self._state)

    @property
    def _path(self) -> str:
        trpc = self._descriptor.get("trpc") or {}
        return str(trpc.get("path", "?"))

    def _forward(self, name: str, *args: Any) -> None:
        callback = self._descriptor.get(name)
        if callback is not None:
            callback(*args)

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------

    def connect(self) -> None:
        """Open a connection, replacing any live one; no-op while disabled."""
        if self._closed:
            raise RuntimeError("subscription bridge is closed")
        self._teardown()
        if not self._enabled:
            return
        if self.status != "connecting" or self.error is not None:
            self._set("connecting", error=None)
        self._generation += 1
        generation = self._generation
        handlers = SubscriptionHandlers(
            on_started=lambda: self._on_started(generation),
            on_data=lambda data: self._on_data(generation, data),
            on_error=lambda error: self._on_error(generation, error),
            on_complete=lambda: self._on_complete(generation),
            on_connection_state_change=lambda state, error=None: self._on_connection_state(
                generation, state, error
            ),
        )
        self._connection = self._descriptor["subscribe"](handlers)

    def reset(self) -> None:
        """Drop the connection and state, then reconnect when enabled."""
        self._teardown()
        self._set("idle", data=None, error=None)
        if self._enabled and not self._closed:
            self._set("connecting")
            self.connect()

    def update(self, descriptor: Mapping[str, Any]) -> None:
        """Swap in a descriptor for a new input or ``enabled`` flag and reset."""
        if self._closed:
            raise RuntimeError("subscription bridge is closed")
        self._descriptor = descriptor
        self._enabled = bool(descriptor.get("enabled", True))
        self.reset()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._enabled = False
        self._teardown()
        self._set("idle")

    def _teardown(self) -> None:
        connection, self._connection = self._connection, None
        self._generation += 1
        if connection is not None:
            connection.unsubscribe()

    # ------------------------------------------------------------------
    # connection events
    # ------------------------------------------------------------------

    def _current(self, generation: int) -> bool:
        return generation == self._generation and not self._closed

    def _on_started(self, generation: int) -> None:
        if not self._current(generation):
            return
        self._set("pending")
        self._forward("on_started")

    def _on_data(self, generation: int, data: Any) -> None:
        if not self._current(generation):
            return
        self._set("pending", data=data, error=None)
        self._forward("on_data", data)

    def _on_error(self, generation: int, error: BaseException) -> None:
        if not self._current(generation):
            return
        self._set("error", error=error)
        self._forward("on_error", error)

    def _on_complete(self, generation: int) -> None:
        if not self._current(generation):
            return
        self._set("idle")
        self._forward("on_complete")

    def _on_connection_state(self, generation: int, state: str, error: Any) -> None:
        if not self._current(generation):
            return
        if state == "idle":
            self._set("idle", data=None, error=None)
        elif state == "connecting":
            self._set("connecting", error=error)
        self._forward("on_connection_state_change", state, error)

    def __enter__(self) -> "SubscriptionBridge":
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


__all__ = [
    "StateListener",
    "SubscriptionBridge",
    "SubscriptionState",
    "SubscriptionStatus",
]
