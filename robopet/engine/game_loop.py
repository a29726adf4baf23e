"""Frame driver: clamp dt, update, render, then deliver queued events."""

import logging

from robopet.config import settings
from robopet.engine.events import EventQueue, InputEvent
from robopet.engine.state_machine import RenderView, StateManager

logger = logging.getLogger(__name__)


class GameLoop:
    def __init__(
        self,
        state_manager: StateManager,
        events: EventQueue | None = None,
        view: RenderView | None = None,
        max_delta_ms: float | None = None,
    ):
        self.state_manager = state_manager
        self.events = events or EventQueue()
        self.view = view
        self.max_delta_ms = max_delta_ms or settings.max_frame_delta_ms
        self.frame_count = 0
        self.total_time = 0.0

    def tick(self, dt: float) -> int:
        """Advance one frame. Returns the number of progress events delivered."""
        dt = min(max(dt, 0.0), self.max_delta_ms)
        self.frame_count += 1
        self.total_time += dt

        try:
            self.state_manager.update(dt)
        except Exception:
            current = self.state_manager.current_state
            logger.exception("Update failed in state %s", current.name if current else None)

        if self.view is not None:
            self.state_manager.render(self.view)

        return self.events.dispatch_pending()

    def run_for(self, duration_ms: float, step_ms: float = 16.0) -> int:
        """Tick repeatedly until duration_ms of game time has passed."""
        delivered = 0
        elapsed = 0.0
        while elapsed < duration_ms:
            dt = min(step_ms, duration_ms - elapsed)
            delivered += self.tick(dt)
            elapsed += dt
        return delivered

    def handle_input(self, event: InputEvent) -> bool:
        return self.state_manager.handle_input(event)
