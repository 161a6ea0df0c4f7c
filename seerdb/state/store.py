"""State container wrapping the reducer."""

from __future__ import annotations

import logging
from typing import Callable

from .actions import Action
from .reducer import reduce
from .state import INITIAL_STATE, AppState

LOG = logging.getLogger(__name__)

StateListener = Callable[[AppState, Action], None]


class StateStore:
    """Holds the current :class:`AppState`; ``dispatch`` is the only way to change it."""

    def __init__(self, initial_state: AppState = INITIAL_STATE) -> None:
        self._state = initial_state
        self._listeners: set[StateListener] = set()
        self._dispatching = False

    @property
    def state(self) -> AppState:
        return self._state

    def get_state(self) -> AppState:
        return self._state

    def dispatch(self, action: Action) -> AppState:
        if self._dispatching:
            raise RuntimeError("Reducer re-entered while dispatching.")
        self._dispatching = True
        try:
            previous = self._state
            self._state = reduce(previous, action)
        finally:
            self._dispatching = False
        if self._state is not previous:
            self._notify(action)
        return self._state

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Subscribe to state changes; returns an unsubscribe handle."""

        self._listeners.add(listener)

        def _unsubscribe() -> None:
            self._listeners.discard(listener)

        return _unsubscribe

    def _notify(self, action: Action) -> None:
        for listener in tuple(self._listeners):
            try:
                listener(self._state, action)
            except Exception:
                LOG.exception("State listener failed", extra={"action": type(action).__name__})


def create_store(initial_state: AppState | None = None) -> StateStore:
    return StateStore(initial_state or INITIAL_STATE)


__all__ = ["StateListener", "StateStore", "create_store"]
