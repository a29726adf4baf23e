"""Audio/haptic feedback dispatch.

The engine only names cues; a FeedbackSink supplied by the host plays them.
Feedback is never critical: a failing sink is logged and play continues.
"""

import logging
from enum import Enum
from typing import Protocol

logger = logging.getLogger(__name__)


class FeedbackCue(str, Enum):
    TOOL_SELECTED = "tool_selected"
    COMPONENT_TAP = "component_tap"
    PROBLEM_IDENTIFIED = "problem_identified"
    INCORRECT_SELECTION = "incorrect_selection"
    HINT = "hint"
    REPAIR_SUCCESS = "repair_success"
    WRONG_TOOL = "wrong_tool"
    CLEANING = "cleaning"
    DIAGNOSTIC_COMPLETE = "diagnostic_complete"
    REPAIR_COMPLETE = "repair_complete"


class FeedbackSink(Protocol):
    def play(self, cue: str, intensity: int) -> None: ...


class FeedbackDispatcher:
    def __init__(self, sink: FeedbackSink | None = None):
        self.sink = sink
        self.failures = 0

    def emit(self, cue: FeedbackCue | str, intensity: float = 50) -> bool:
        """Send a cue to the sink. Returns False when there is no sink or it failed."""
        if self.sink is None:
            return False
        level = int(round(min(100.0, max(0.0, intensity))))
        name = cue.value if isinstance(cue, FeedbackCue) else str(cue)
        try:
            self.sink.play(name, level)
        except Exception as e:
            self.failures += 1
            logger.warning("Feedback cue %s failed: %s", name, e)
            return False
        return True
