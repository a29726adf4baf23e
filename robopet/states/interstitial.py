"""Loading / pause screen that may sit between any two states."""

import logging

from pydantic import BaseModel, ConfigDict

from robopet.engine.events import InputEvent
from robopet.engine.state_machine import GameState, RenderView

logger = logging.getLogger(__name__)


class InterstitialSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    elapsed_ms: float
    can_continue: bool


class InterstitialState(GameState):
    """Shows a message for at least min_display_ms, then lets the player continue.

    A tap or any key after the minimum time marks the screen as finished;
    the host decides where to go next.
    """

    name = "interstitial"

    def __init__(self, message: str = "Loading...", min_display_ms: float = 500.0):
        super().__init__()
        self.message = message
        self.min_display_ms = min_display_ms
        self.is_finished = False

    @property
    def can_continue(self) -> bool:
        return self.time_in_state >= self.min_display_ms

    def on_enter(self, previous: GameState | None) -> None:
        self.is_finished = False
        logger.debug("Interstitial after %s: %s", previous.name if previous else None, self.message)

    def on_render(self, view: RenderView) -> None:
        view.present(InterstitialSnapshot(
            message=self.message,
            elapsed_ms=self.time_in_state,
            can_continue=self.can_continue,
        ))

    def on_handle_input(self, event: InputEvent) -> bool:
        if not self.can_continue:
            return False
        self.is_finished = True
        return True
