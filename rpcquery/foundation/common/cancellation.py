"""Cooperative cancellation token shared by transports and descriptors."""

from __future__ import annotations

import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)

AbortListener = Callable[[], None]


class CancellationToken:
    """Abort signal that can be triggered once and observed by listeners.

    Listeners are invoked synchronously, in registration order, the first time
    :meth:`abort` is called. Registering a listener on an already aborted
    token does not invoke it; callers check :attr:`aborted` first.
    """

    __slots__ = ("_aborted", "_reason", "_listeners")

    def __init__(self) -> None:
        self._aborted = False
        self._reason: Any = None
        self._listeners: list[AbortListener] = []

    @property
    def aborted(self) -> bool:
        return self._aborted

    @property
    def reason(self) -> Any:
        return self._reason

    def abort(self, reason: Any = None) -> None:
        if self._aborted:
            return
        self._aborted = True
        self._reason = reason
        listeners, self._listeners = self._listeners, []
        for listener in listeners:
            try:
                listener()
            except Exception:
                logger.exception("abort listener %r failed", listener)

    def add_listener(self, listener: AbortListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: AbortListener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def throw_if_aborted(self) -> None:
        """Raise :class:`~rpcquery.runtime.errors.AbortError` when aborted."""
        if not self._aborted:
            return
        from rpcquery.runtime.errors import AbortError

        raise AbortError(reason=self._reason)

    def __repr__(self) -> str:
        state = "aborted" if self._aborted else "active"
        return f"<CancellationToken {state}>"


__all__ = ["AbortListener", "CancellationToken"]
