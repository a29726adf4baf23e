"""Ledger document models: activity records, sessions, achievements, player progress."""

from datetime import datetime, timezone
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, model_validator

from robopet.models.device import AgeGroup, BASIC_TOOLS, ComponentType, ToolType


def _now() -> datetime:
    return datetime.now(timezone.utc)


ActivityType = Literal["diagnostic", "repair", "customization", "photo_booth"]


# ── Activity records (tagged by kind) ─────────────────────────────────

class DiagnosticRecord(BaseModel):
    kind: Literal["diagnostic"] = "diagnostic"
    timestamp: datetime = Field(default_factory=_now)
    duration_ms: float = Field(ge=0)
    accuracy: float = Field(ge=0.0, le=1.0)
    hints_used: int = Field(default=0, ge=0)
    mistakes: int = Field(default=0, ge=0)
    problem_complexity: int = Field(default=1, ge=0)


class RepairRecord(BaseModel):
    kind: Literal["repair"] = "repair"
    timestamp: datetime = Field(default_factory=_now)
    duration_ms: float = Field(ge=0)
    components_fixed: list[ComponentType] = []
    tools_used: list[ToolType] = []
    mistakes: int = Field(default=0, ge=0)
    problem_types: list[str] = []


class CustomizationRecord(BaseModel):
    kind: Literal["customization"] = "customization"
    timestamp: datetime = Field(default_factory=_now)
    duration_ms: float = Field(ge=0)
    items_customized: int = Field(default=0, ge=0)
    color_choices: list[str] = []
    accessory_choices: list[str] = []
    uniqueness_score: float = Field(default=50.0, ge=0.0, le=100.0)


ActivityRecord = Annotated[
    Union[DiagnosticRecord, RepairRecord, CustomizationRecord],
    Field(discriminator="kind"),
]


class SessionRecord(BaseModel):
    session_id: str
    started_at: datetime
    ended_at: datetime | None = None
    duration_ms: float = 0.0
    activities_completed: list[ActivityType] = []
    mistakes_per_activity: float = 0.0
    hints_requested: int = 0
    time_distribution: dict[str, float] = {}
    total_mistakes: int = 0


# ── Achievements and metrics ──────────────────────────────────────────

class Achievement(BaseModel):
    id: str
    name: str
    description: str
    category: Literal["repair", "creativity", "learning", "exploration"] = "repair"
    gems_awarded: int = 0
    unlocked_at: datetime = Field(default_factory=_now)


class CreativityMetrics(BaseModel):
    unique_customizations: int = 0
    color_variations_used: list[str] = []
    accessory_combinations: list[str] = []


class StemMetrics(BaseModel):
    mechanical_concepts_learned: list[str] = []
    creativity: CreativityMetrics = Field(default_factory=CreativityMetrics)
    average_repair_ms: float = 0.0
    average_diagnostic_ms: float = 0.0
    diagnostics_completed: int = Field(default=0, ge=0)
    total_play_time_ms: float = 0.0


class PlayerProgress(BaseModel):
    """Everything the ledger persists for one anonymous player."""

    player_id: str
    age_group: AgeGroup = AgeGroup.MIDDLE
    total_repairs: int = Field(default=0, ge=0)
    robo_gems_earned: int = Field(default=0, ge=0)
    robo_gems_spent: int = Field(default=0, ge=0)
    unlocked_tools: list[ToolType] = Field(default_factory=lambda: list(BASIC_TOOLS))
    unlocked_customizations: list[str] = Field(
        default_factory=lambda: ["color_palette", "hat", "bow_tie", "sticker"]
    )
    unlocked_features: list[str] = []
    achievements: list[Achievement] = []
    reached_milestones: list[str] = []
    stem_metrics: StemMetrics = Field(default_factory=StemMetrics)
    activity_history: list[ActivityRecord] = []
    session_history: list[SessionRecord] = []
    created_at: datetime = Field(default_factory=_now)
    last_modified: datetime = Field(default_factory=_now)

    @model_validator(mode="after")
    def _spent_within_earned(self):
        if self.robo_gems_spent > self.robo_gems_earned:
            raise ValueError("robo_gems_spent exceeds robo_gems_earned")
        return self

    @property
    def available_gems(self) -> int:
        return self.robo_gems_earned - self.robo_gems_spent


class Milestone(BaseModel):
    id: str
    name: str
    description: str
    required_repairs: int
    gems: int
    unlock_tools: list[ToolType] = []
    unlock_customizations: list[str] = []
    unlock_features: list[str] = []
    celebration: Literal["small", "medium", "large", "epic"] = "medium"


class MilestoneStatus(BaseModel):
    milestone: Milestone
    reached: bool
    progress: float
