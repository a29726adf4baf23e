"""Diagnostic mode: the player explores the pet and taps the faulty parts.

Each pet component gets an interactive area. Tapping an area holding an
unidentified problem counts as a correct identification; tapping a healthy
area counts as a mistake. When the player is idle for the bracket's hint
delay, a hint is shown; its kind follows a fixed ladder per age bracket.
"""

import logging
import uuid
from enum import Enum

from pydantic import BaseModel, ConfigDict

from robopet.engine.events import InputEvent
from robopet.engine.state_machine import GameState, RenderView
from robopet.models.device import (
    AgeGroup,
    Bounds,
    COMPONENT_NAMES,
    ComponentType,
    Position,
    Problem,
    RobotPet,
    VisualCue,
    component_bounds,
)
from robopet.services.difficulty import get_profile
from robopet.services.feedback import FeedbackCue, FeedbackDispatcher
from robopet.services.ledger import ProgressLedger
from robopet.services.problem_generator import ProblemGenerator
from robopet.services.static_data import load_data

logger = logging.getLogger(__name__)


class HintKind(str, Enum):
    VISUAL = "visual"
    AUDIO = "audio"
    TEXT = "text"
    GESTURE = "gesture"


class TapOutcome(str, Enum):
    IDENTIFIED = "identified"
    ALREADY_IDENTIFIED = "already_identified"
    NO_PROBLEM = "no_problem"
    MISSED = "missed"
    IGNORED = "ignored"


class DiagnosticHint(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    kind: HintKind
    content: str
    target_component: ComponentType | None = None
    position: Position | None = None
    priority: int = 1


class InteractiveArea(BaseModel):
    id: str
    component: ComponentType
    bounds: Bounds
    problem: Problem | None = None
    is_highlighted: bool = False
    is_identified: bool = False


class DiagnosticProgress(BaseModel):
    total_problems: int = 0
    identified_problems: int = 0
    correct_identifications: int = 0
    incorrect_attempts: int = 0
    hints_used: int = 0
    time_elapsed: float = 0.0
    is_complete: bool = False


class DiagnosticSnapshot(BaseModel):
    """Read-only view handed to the renderer."""

    model_config = ConfigDict(frozen=True)

    pet_id: str
    age_group: AgeGroup
    areas: tuple[InteractiveArea, ...]
    visual_cues: tuple[VisualCue, ...]
    progress: DiagnosticProgress
    active_hint: DiagnosticHint | None
    progress_percent: float


def hint_kind_for(age_group: AgeGroup | str, hints_used: int) -> HintKind:
    """Hint kind for the next hint, given how many were already used."""
    ladder = load_data("hints.yaml")["ladders"][AgeGroup(age_group).value]
    for rung in ladder:
        until = rung.get("until")
        if until is None or hints_used < until:
            return HintKind(rung["kind"])
    return HintKind(ladder[-1]["kind"])


class DiagnosticState(GameState):
    name = "diagnostic"

    def __init__(
        self,
        ledger: ProgressLedger | None = None,
        feedback: FeedbackDispatcher | None = None,
        generator: ProblemGenerator | None = None,
    ):
        super().__init__()
        self.ledger = ledger
        self.feedback = feedback or FeedbackDispatcher()
        self.generator = generator or ProblemGenerator()

        self.pet: RobotPet | None = None
        self.age_group = AgeGroup.MIDDLE
        self.problems: list[Problem] = []
        self.areas: dict[str, InteractiveArea] = {}
        self.progress = DiagnosticProgress()
        self.hint_delay_ms = get_profile(self.age_group).hint_delay_ms
        self.hint_timer = 0.0
        self.active_hint: DiagnosticHint | None = None

    def initialize(
        self, pet: RobotPet, age_group: AgeGroup | str, problems: list[Problem] | None = None
    ) -> None:
        """Start a fresh diagnostic session. The age group is fixed until the next initialize."""
        self.pet = pet
        self.age_group = AgeGroup(age_group)
        self.hint_delay_ms = get_profile(self.age_group).hint_delay_ms
        self.problems = list(problems) if problems is not None else self.generator.generate_problems(pet, self.age_group)

        by_component = {p.component: p for p in self.problems}
        self.areas = {}
        for component in pet.components:
            area_id = f"area_{component.type.value}"
            self.areas[area_id] = InteractiveArea(
                id=area_id,
                component=component.type,
                bounds=component_bounds(component.type, component.position),
                problem=by_component.get(component.type),
            )

        self.progress = DiagnosticProgress(total_problems=len(self.problems))
        self.hint_timer = 0.0
        self.active_hint = None
        logger.info(
            "Diagnostic session started: pet=%s age_group=%s problems=%d",
            pet.id, self.age_group.value, len(self.problems),
        )

    # ── Frame hooks ────────────────────────────────────────────────────

    def on_update(self, dt: float) -> None:
        dt = max(0.0, dt)
        self.progress.time_elapsed += dt

        if self.progress.is_complete or not self._unidentified_areas():
            return

        self.hint_timer += dt
        if self.hint_timer >= self.hint_delay_ms and self.active_hint is None:
            self._show_hint()
            self.hint_timer = 0.0

    def on_render(self, view: RenderView) -> None:
        view.present(self.snapshot())

    def on_handle_input(self, event: InputEvent) -> bool:
        if event.kind == "tap":
            return self.tap(event.x, event.y) not in (TapOutcome.MISSED, TapOutcome.IGNORED)
        key = event.key.lower()
        if key == "h":
            self.request_hint()
            return True
        if key == "s":
            self.skip()
            return True
        return False

    # ── Player actions ─────────────────────────────────────────────────

    def tap(self, x: float, y: float) -> TapOutcome:
        if self.progress.is_complete:
            return TapOutcome.IGNORED

        area = self._area_at(x, y)
        if area is None:
            self.active_hint = None
            self.hint_timer = 0.0
            return TapOutcome.MISSED
        return self.inspect_area(area.id)

    def inspect_area(self, area_id: str) -> TapOutcome:
        """Examine one area, as if the player tapped it."""
        if self.progress.is_complete:
            return TapOutcome.IGNORED

        self.active_hint = None
        self.hint_timer = 0.0

        area = self.areas.get(area_id)
        if area is None:
            return TapOutcome.MISSED

        self.feedback.emit(FeedbackCue.COMPONENT_TAP, 40)
        if area.problem is None:
            self.progress.incorrect_attempts += 1
            self.feedback.emit(FeedbackCue.INCORRECT_SELECTION, 30)
            logger.debug("No problem on %s", area.component.value)
            return TapOutcome.NO_PROBLEM

        if area.is_identified:
            return TapOutcome.ALREADY_IDENTIFIED

        area.is_identified = True
        area.is_highlighted = False
        self.progress.identified_problems += 1
        self.progress.correct_identifications += 1
        self.feedback.emit(FeedbackCue.PROBLEM_IDENTIFIED, 70)
        logger.debug(
            "Identified %s (%d/%d)",
            area.problem.id, self.progress.identified_problems, self.progress.total_problems,
        )

        if self.progress.identified_problems >= self.progress.total_problems:
            self.complete()
        return TapOutcome.IDENTIFIED

    def request_hint(self) -> DiagnosticHint | None:
        """Show a hint now, regardless of the idle timer."""
        if self.progress.is_complete:
            return None
        self.hint_timer = 0.0
        return self._show_hint()

    def dismiss_hint(self) -> None:
        self.active_hint = None
        self.hint_timer = 0.0

    def skip(self) -> None:
        if self.progress.is_complete:
            return
        # Skipped problems still go on to repair; correct_identifications is left as earned
        for area in self.areas.values():
            if area.problem is not None:
                area.is_identified = True
                area.is_highlighted = False
        self.progress.identified_problems = self.progress.total_problems
        logger.info("Diagnostic skipped")
        self.complete()

    def complete(self) -> bool:
        """Finish the session and report it to the ledger. Only the first call has an effect."""
        if self.progress.is_complete:
            return False
        self.progress.is_complete = True
        self.progress.identified_problems = self.progress.total_problems
        self.active_hint = None

        accuracy = self.accuracy()
        logger.info(
            "Diagnostic complete: accuracy=%.2f hints=%d mistakes=%d time=%.0fms",
            accuracy, self.progress.hints_used, self.progress.incorrect_attempts, self.progress.time_elapsed,
        )
        self.feedback.emit(FeedbackCue.DIAGNOSTIC_COMPLETE, 90)
        if self.ledger is not None:
            self.ledger.record_diagnostic_completed(
                self.progress.time_elapsed,
                accuracy,
                hints_used=self.progress.hints_used,
                mistakes=self.progress.incorrect_attempts,
                problem_complexity=len(self.problems),
            )
        return True

    # ── Queries ────────────────────────────────────────────────────────

    def accuracy(self) -> float:
        if self.progress.total_problems == 0:
            return 1.0
        return self.progress.correct_identifications / self.progress.total_problems

    def identified_problems(self) -> list[Problem]:
        return [a.problem for a in self.areas.values() if a.problem is not None and a.is_identified]

    def progress_percent(self) -> float:
        if self.progress.total_problems == 0:
            return 100.0
        return self.progress.identified_problems / self.progress.total_problems * 100

    def snapshot(self) -> DiagnosticSnapshot:
        areas = tuple(a.model_copy(deep=True) for a in self.areas.values())
        cues = tuple(
            cue for a in areas
            if a.problem is not None and not a.is_identified
            for cue in a.problem.visual_cues
        )
        return DiagnosticSnapshot(
            pet_id=self.pet.id if self.pet else "",
            age_group=self.age_group,
            areas=areas,
            visual_cues=cues,
            progress=self.progress.model_copy(),
            active_hint=self.active_hint,
            progress_percent=self.progress_percent(),
        )

    # ── Internals ──────────────────────────────────────────────────────

    def _unidentified_areas(self) -> list[InteractiveArea]:
        return [a for a in self.areas.values() if a.problem is not None and not a.is_identified]

    def _area_at(self, x: float, y: float) -> InteractiveArea | None:
        # Smallest containing area wins so that parts on top of the chassis stay reachable
        hits = [a for a in list(self.areas.values()) if a.bounds.contains(x, y)]
        if not hits:
            return None
        return min(hits, key=lambda a: a.bounds.width * a.bounds.height)

    def _show_hint(self) -> DiagnosticHint | None:
        targets = self._unidentified_areas()
        kind = hint_kind_for(self.age_group, self.progress.hints_used)
        self.progress.hints_used += 1
        if not targets:
            return None

        target = targets[0]
        content = load_data("hints.yaml")["content"][kind.value]
        center = Position(
            x=target.bounds.x + target.bounds.width / 2,
            y=target.bounds.y + target.bounds.height / 2,
        )
        target.is_highlighted = True
        self.active_hint = DiagnosticHint(
            id=f"hint_{uuid.uuid4().hex[:8]}",
            kind=kind,
            content=content["message"].format(component=COMPONENT_NAMES[target.component]),
            target_component=target.component,
            position=center,
            priority=content["priority"],
        )
        self.feedback.emit(FeedbackCue.HINT, 50)
        logger.debug("Hint shown: %s for %s", kind.value, target.component.value)
        return self.active_hint
