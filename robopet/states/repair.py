"""Repair mode: match the right tool to each identified problem.

Selecting a tool highlights every unfixed area that needs it. Using the
matching tool fixes the area, except for dirty parts, which open a
cleaning stage that fills up continuously while the frame loop runs.
"""

import logging
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict

from robopet.engine.events import InputEvent
from robopet.engine.state_machine import GameState, RenderView
from robopet.models.device import (
    AgeGroup,
    BASIC_TOOLS,
    Bounds,
    COMPONENT_NAMES,
    ComponentType,
    Problem,
    ProblemType,
    RobotPet,
    ToolType,
    component_bounds,
)
from robopet.services.feedback import FeedbackCue, FeedbackDispatcher
from robopet.services.ledger import ProgressLedger
from robopet.services.static_data import load_data

logger = logging.getLogger(__name__)

INCORRECT_ATTEMPTS_BEFORE_HINT = 2
CLEANING_DONE = 100.0

TOOL_NAMES = {
    ToolType.SCREWDRIVER: "Screwdriver",
    ToolType.WRENCH: "Wrench",
    ToolType.OIL_CAN: "Oil Can",
    ToolType.BATTERY: "Battery",
    ToolType.CIRCUIT_BOARD: "Circuit Board",
}

TOOL_DESCRIPTIONS = {
    ToolType.SCREWDRIVER: "Tightens loose screws and reconnects wires",
    ToolType.WRENCH: "Fixes bolts and mechanical parts",
    ToolType.OIL_CAN: "Cleans dirt and keeps parts moving",
    ToolType.BATTERY: "Recharges parts with low power",
    ToolType.CIRCUIT_BOARD: "Replaces broken electronics",
}


class TextureType(str, Enum):
    PUFFY = "puffy"
    SOFT = "soft"
    SQUISHY = "squishy"


COMPONENT_TEXTURES = {
    ComponentType.CHASSIS_PLATING: TextureType.SOFT,
    ComponentType.POWER_CORE: TextureType.SQUISHY,
    ComponentType.SENSOR_ARRAY: TextureType.PUFFY,
}

# Cleaning progress gained per millisecond, in percent
TEXTURE_CLEANING_RATES = {
    TextureType.PUFFY: 0.035,
    TextureType.SOFT: 0.030,
    TextureType.SQUISHY: 0.025,
}

AGE_CLEANING_MULTIPLIERS = {
    AgeGroup.YOUNG: 1.5,
    AgeGroup.MIDDLE: 1.0,
    AgeGroup.OLDER: 0.9,
}


class RepairOutcome(str, Enum):
    REPAIRED = "repaired"
    CLEANING_STARTED = "cleaning_started"
    WRONG_TOOL = "wrong_tool"
    NO_TOOL = "no_tool"
    ALREADY_FIXED = "already_fixed"
    CLEANING_BUSY = "cleaning_busy"
    UNKNOWN_AREA = "unknown_area"
    IGNORED = "ignored"


class RepairArea(BaseModel):
    id: str
    component: ComponentType
    problem: Problem
    bounds: Bounds
    required_tool: ToolType
    is_highlighted: bool = False
    is_being_repaired: bool = False
    is_fixed: bool = False
    repair_progress: float = 0.0
    incorrect_attempts: int = 0


class RepairTool(BaseModel):
    type: ToolType
    name: str
    description: str
    hotkey: str
    is_selected: bool = False


class CleaningStage(BaseModel):
    is_active: bool = False
    target_area_id: str | None = None
    cleaning_tool: Literal["brush", "cloth", "spray"] = "brush"
    dirt_level: float = 0.0
    cleaning_progress: float = 0.0
    texture_type: TextureType = TextureType.SOFT

    @property
    def remaining_dirt(self) -> float:
        return self.dirt_level * (1 - self.cleaning_progress / CLEANING_DONE)


class RepairHint(BaseModel):
    model_config = ConfigDict(frozen=True)

    area_id: str
    tool: ToolType
    message: str


class RepairProgress(BaseModel):
    total_problems: int = 0
    fixed_problems: int = 0
    current_problem_id: str | None = None
    selected_tool: ToolType | None = None
    repair_attempts: int = 0
    correct_tool_usages: int = 0
    incorrect_tool_usages: int = 0
    cleaning_stages_completed: int = 0
    hints_used: int = 0
    time_elapsed: float = 0.0
    is_complete: bool = False


class RepairSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    pet_id: str
    age_group: AgeGroup
    areas: tuple[RepairArea, ...]
    tools: tuple[RepairTool, ...]
    cleaning: CleaningStage
    progress: RepairProgress
    active_hint: RepairHint | None
    progress_percent: float


def cleaning_rate(texture: TextureType, age_group: AgeGroup) -> float:
    return TEXTURE_CLEANING_RATES[texture] * AGE_CLEANING_MULTIPLIERS[age_group]


class RepairState(GameState):
    name = "repair"

    def __init__(self, ledger: ProgressLedger | None = None, feedback: FeedbackDispatcher | None = None):
        super().__init__()
        self.ledger = ledger
        self.feedback = feedback or FeedbackDispatcher()

        self.pet: RobotPet | None = None
        self.age_group = AgeGroup.MIDDLE
        self.problems: list[Problem] = []
        self.areas: dict[str, RepairArea] = {}
        self.tools: list[RepairTool] = []
        self.cleaning = CleaningStage()
        self.progress = RepairProgress()
        self.active_hint: RepairHint | None = None
        self._tools_used: list[ToolType] = []

    def initialize(self, pet: RobotPet, problems: list[Problem], age_group: AgeGroup | str) -> None:
        self.pet = pet
        self.age_group = AgeGroup(age_group)
        self.problems = list(problems)

        self.areas = {}
        for problem in self.problems:
            part = pet.component(problem.component)
            if part is None:
                logger.warning("Pet %s has no %s; skipping %s", pet.id, problem.component.value, problem.id)
                continue
            area_id = f"repair_{problem.id}"
            self.areas[area_id] = RepairArea(
                id=area_id,
                component=problem.component,
                problem=problem,
                bounds=component_bounds(problem.component, part.position),
                required_tool=problem.required_tool,
            )

        self.tools = [
            RepairTool(type=t, name=TOOL_NAMES[t], description=TOOL_DESCRIPTIONS[t], hotkey=str(i))
            for i, t in enumerate(BASIC_TOOLS, start=1)
        ]
        self.cleaning = CleaningStage()
        self.progress = RepairProgress(total_problems=len(self.areas))
        self.active_hint = None
        self._tools_used = []
        logger.info(
            "Repair session started: pet=%s age_group=%s problems=%d",
            pet.id, self.age_group.value, len(self.areas),
        )
        if not self.areas:
            self.complete()

    # ── Frame hooks ────────────────────────────────────────────────────

    def on_update(self, dt: float) -> None:
        dt = max(0.0, dt)
        self.progress.time_elapsed += dt
        if self.cleaning.is_active:
            self._advance_cleaning(dt)

    def on_render(self, view: RenderView) -> None:
        view.present(self.snapshot())

    def on_handle_input(self, event: InputEvent) -> bool:
        if event.kind == "tap":
            return self.tap(event.x, event.y) not in (RepairOutcome.UNKNOWN_AREA, RepairOutcome.IGNORED)
        key = event.key.lower()
        for tool in self.tools:
            if tool.hotkey == key:
                return self.select_tool(tool.type)
        if key == "h":
            self.show_hint()
            return True
        if key == "s":
            self.skip()
            return True
        return False

    # ── Player actions ─────────────────────────────────────────────────

    def select_tool(self, tool: ToolType | str) -> bool:
        tool = ToolType(tool)
        if self.progress.is_complete or tool not in {t.type for t in self.tools}:
            return False

        for t in self.tools:
            t.is_selected = t.type == tool
        self.progress.selected_tool = tool
        self._refresh_highlights()
        self.feedback.emit(FeedbackCue.TOOL_SELECTED, 40)
        logger.debug("Tool selected: %s", tool.value)
        return True

    def tap(self, x: float, y: float) -> RepairOutcome:
        if self.progress.is_complete:
            return RepairOutcome.IGNORED
        hits = [a for a in list(self.areas.values()) if a.bounds.contains(x, y) and not a.is_fixed]
        if not hits:
            return RepairOutcome.UNKNOWN_AREA
        target = min(hits, key=lambda a: a.bounds.width * a.bounds.height)
        return self.attempt_repair(target.id)

    def attempt_repair(self, area_id: str) -> RepairOutcome:
        if self.progress.is_complete:
            return RepairOutcome.IGNORED
        area = self.areas.get(area_id)
        if area is None:
            return RepairOutcome.UNKNOWN_AREA
        if area.is_fixed:
            return RepairOutcome.ALREADY_FIXED
        tool = self.progress.selected_tool
        if tool is None:
            return RepairOutcome.NO_TOOL

        matches = tool == area.required_tool
        if matches and area.problem.problem_type == ProblemType.DIRTY and self.cleaning.is_active:
            return RepairOutcome.CLEANING_BUSY

        self.progress.repair_attempts += 1
        self.progress.current_problem_id = area.problem.id

        if not matches:
            self.progress.incorrect_tool_usages += 1
            area.incorrect_attempts += 1
            self.feedback.emit(FeedbackCue.WRONG_TOOL, 30)
            logger.debug("Wrong tool %s on %s (needs %s)", tool.value, area.id, area.required_tool.value)
            if area.incorrect_attempts >= INCORRECT_ATTEMPTS_BEFORE_HINT:
                self._raise_tool_hint(area)
            return RepairOutcome.WRONG_TOOL

        self.progress.correct_tool_usages += 1
        if tool not in self._tools_used:
            self._tools_used.append(tool)
        if self.active_hint is not None and self.active_hint.area_id == area.id:
            self.active_hint = None

        if area.problem.problem_type == ProblemType.DIRTY:
            self._start_cleaning(area)
            return RepairOutcome.CLEANING_STARTED

        self._fix(area)
        return RepairOutcome.REPAIRED

    def show_hint(self) -> RepairHint | None:
        """Point at the tool needed for the first unfixed problem."""
        if self.progress.is_complete:
            return None
        self.progress.hints_used += 1
        for area in self.areas.values():
            if not area.is_fixed:
                return self._raise_tool_hint(area)
        return None

    def skip(self) -> None:
        if self.progress.is_complete:
            return
        self.cleaning = CleaningStage()
        for area in list(self.areas.values()):
            if not area.is_fixed:
                self._fix(area, check_completion=False)
        logger.info("Repair skipped")
        self.complete()

    def complete(self) -> bool:
        """Finish the session and report it to the ledger. Only the first call has an effect."""
        if self.progress.is_complete:
            return False
        self.progress.is_complete = True
        self.active_hint = None

        components = [p.component for p in self.problems]
        logger.info(
            "Repair complete: fixed=%d/%d mistakes=%d time=%.0fms",
            self.progress.fixed_problems, self.progress.total_problems,
            self.progress.incorrect_tool_usages, self.progress.time_elapsed,
        )
        self.feedback.emit(FeedbackCue.REPAIR_COMPLETE, 90)
        if self.ledger is not None:
            self.ledger.record_repair_completed(
                self.progress.time_elapsed,
                components,
                tools_used=list(self._tools_used),
                mistakes=self.progress.incorrect_tool_usages,
                problem_types=[p.problem_type.value for p in self.problems],
            )
        return True

    # ── Queries ────────────────────────────────────────────────────────

    def progress_percent(self) -> float:
        if self.progress.total_problems == 0:
            return 100.0
        return self.progress.fixed_problems / self.progress.total_problems * 100

    def snapshot(self) -> RepairSnapshot:
        return RepairSnapshot(
            pet_id=self.pet.id if self.pet else "",
            age_group=self.age_group,
            areas=tuple(a.model_copy(deep=True) for a in self.areas.values()),
            tools=tuple(t.model_copy() for t in self.tools),
            cleaning=self.cleaning.model_copy(),
            progress=self.progress.model_copy(),
            active_hint=self.active_hint,
            progress_percent=self.progress_percent(),
        )

    # ── Internals ──────────────────────────────────────────────────────

    def _refresh_highlights(self) -> None:
        selected = self.progress.selected_tool
        for area in self.areas.values():
            area.is_highlighted = (not area.is_fixed) and selected is not None and area.required_tool == selected

    def _start_cleaning(self, area: RepairArea) -> None:
        area.is_being_repaired = True
        self.cleaning = CleaningStage(
            is_active=True,
            target_area_id=area.id,
            cleaning_tool="spray" if self.progress.selected_tool == ToolType.OIL_CAN else "brush",
            dirt_level=area.problem.severity * 30 + 10,
            cleaning_progress=0.0,
            texture_type=COMPONENT_TEXTURES.get(area.component, TextureType.SOFT),
        )
        logger.debug("Cleaning started on %s (%s)", area.id, self.cleaning.texture_type.value)

    def _advance_cleaning(self, dt: float) -> None:
        stage = self.cleaning
        area = self.areas.get(stage.target_area_id or "")
        if area is None:
            self.cleaning = CleaningStage()
            return

        rate = cleaning_rate(stage.texture_type, self.age_group)
        stage.cleaning_progress = min(CLEANING_DONE, stage.cleaning_progress + rate * dt)
        area.repair_progress = stage.cleaning_progress
        self.feedback.emit(FeedbackCue.CLEANING, stage.cleaning_progress)

        if stage.cleaning_progress >= CLEANING_DONE:
            self.progress.cleaning_stages_completed += 1
            self.cleaning = CleaningStage()
            logger.debug("Cleaning finished on %s", area.id)
            self._fix(area)

    def _fix(self, area: RepairArea, check_completion: bool = True) -> None:
        area.is_fixed = True
        area.is_being_repaired = False
        area.is_highlighted = False
        area.repair_progress = 100.0
        self.progress.fixed_problems += 1
        self.feedback.emit(FeedbackCue.REPAIR_SUCCESS, 80)
        logger.debug("Fixed %s (%d/%d)", area.id, self.progress.fixed_problems, self.progress.total_problems)

        if check_completion and self.progress.fixed_problems >= self.progress.total_problems:
            self.complete()

    def _raise_tool_hint(self, area: RepairArea) -> RepairHint:
        template = load_data("hints.yaml")["repair"]["message"]
        self.active_hint = RepairHint(
            area_id=area.id,
            tool=area.required_tool,
            message=template.format(
                tool=TOOL_NAMES.get(area.required_tool, area.required_tool.value),
                component=COMPONENT_NAMES[area.component],
            ),
        )
        self.feedback.emit(FeedbackCue.HINT, 50)
        return self.active_hint
