"""Holder of the single current AppState snapshot."""

import logging
from typing import Callable

from .state import AppState

logger = logging.getLogger(__name__)

Listener = Callable[[AppState], None]


class StateStore:
    """
    Owns the current AppState.

    The snapshot is replaced wholesale on every processed message; listeners
    (renderers, diagnostics) are told about each new snapshot and must treat
    it as read-only.
    """

    def __init__(self, initial: AppState):
        self._state = initial
        self._listeners: list[Listener] = []
        self._version = 0

    def current(self) -> AppState:
        return self._state

    @property
    def version(self) -> int:
        """Number of snapshots published since startup."""
        return self._version

    def replace(self, state: AppState) -> bool:
        """Publish *state*. Returns False (and notifies nobody) if nothing changed."""
        if state is self._state:
            return False
        self._state = state
        self._version += 1

        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception as e:
                logger.error(f"State listener {listener!r} failed: {e}")
        return True

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register *listener*; the returned callable unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe
