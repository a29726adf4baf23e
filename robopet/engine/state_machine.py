"""Game state base class and the state manager.

States are opaque to the manager: any state may follow any other. The
manager keeps a bounded history of previous states for back navigation.
"""

import logging
from collections import deque
from typing import Protocol

from robopet.config import settings
from robopet.engine.events import InputEvent

logger = logging.getLogger(__name__)


class RenderView(Protocol):
    def present(self, snapshot) -> None: ...


class GameState:
    """Base for every screen. Subclasses override the on_* hooks."""

    name = "state"

    def __init__(self):
        self.is_active = False
        self.time_in_state = 0.0

    def enter(self, previous: "GameState | None" = None) -> None:
        self.is_active = True
        self.time_in_state = 0.0
        logger.debug("Entering state %s", self.name)
        self.on_enter(previous)

    def exit(self, next_state: "GameState | None" = None) -> None:
        logger.debug("Exiting state %s", self.name)
        self.on_exit(next_state)
        self.is_active = False

    def update(self, dt: float) -> None:
        if not self.is_active:
            return
        self.time_in_state += dt
        self.on_update(dt)

    def render(self, view: RenderView) -> None:
        if not self.is_active:
            return
        self.on_render(view)

    def handle_input(self, event: InputEvent) -> bool:
        if not self.is_active:
            return False
        return self.on_handle_input(event)

    def on_enter(self, previous: "GameState | None") -> None:
        pass

    def on_exit(self, next_state: "GameState | None") -> None:
        pass

    def on_update(self, dt: float) -> None:
        pass

    def on_render(self, view: RenderView) -> None:
        pass

    def on_handle_input(self, event: InputEvent) -> bool:
        return False

    def __repr__(self):
        return f"<{type(self).__name__} {self.name} active={self.is_active}>"


class StateManager:
    def __init__(self, history_limit: int | None = None):
        self.history_limit = history_limit or settings.state_history_limit
        self._current: GameState | None = None
        self._history: deque[GameState] = deque(maxlen=self.history_limit)

    @property
    def current_state(self) -> GameState | None:
        return self._current

    @property
    def previous_state(self) -> GameState | None:
        return self._history[-1] if self._history else None

    @property
    def history(self) -> list[GameState]:
        return list(self._history)

    def change_state(self, next_state: GameState | None) -> bool:
        """Exit the current state, push it onto history and enter next_state."""
        if next_state is None:
            logger.warning("Rejected transition to a null state")
            return False

        previous = self._current
        if previous is not None:
            previous.exit(next_state)
            self._history.append(previous)

        self._current = next_state
        next_state.enter(previous)
        logger.info(
            "State changed: %s -> %s",
            previous.name if previous else None, next_state.name,
        )
        return True

    def go_back(self) -> bool:
        """Return to the most recent previous state. The state being left is not pushed."""
        if not self._history:
            return False

        target = self._history.pop()
        leaving = self._current
        if leaving is not None:
            leaving.exit(target)
        self._current = target
        target.enter(leaving)
        logger.info("Went back: %s -> %s", leaving.name if leaving else None, target.name)
        return True

    def can_go_back(self) -> bool:
        return bool(self._history)

    def clear_history(self) -> None:
        self._history.clear()

    def update(self, dt: float) -> None:
        if self._current is not None:
            self._current.update(dt)

    def render(self, view: RenderView) -> None:
        if self._current is not None:
            self._current.render(view)

    def handle_input(self, event: InputEvent) -> bool:
        if self._current is None:
            return False
        return self._current.handle_input(event)
