"""Age-bracket difficulty profiles.

Each bracket maps to a fixed profile loaded from difficulty_profiles.yaml.
The profiles form a ladder: every rung up allows more problems, higher
severity, more problem types and components, waits longer before hinting
and shows weaker visual cues.
"""

import logging

from pydantic import BaseModel, ConfigDict, Field

from robopet.models.device import AgeGroup, ComponentType, ProblemType
from robopet.services.static_data import load_data

logger = logging.getLogger(__name__)

BRACKET_ORDER = [AgeGroup.YOUNG, AgeGroup.MIDDLE, AgeGroup.OLDER]


class DifficultyProfile(BaseModel):
    model_config = ConfigDict(frozen=True)

    age_group: AgeGroup
    max_problems: int = Field(ge=1)
    max_severity: int = Field(ge=1, le=3)
    allowed_problem_types: tuple[ProblemType, ...]
    allowed_components: tuple[ComponentType, ...]
    visual_cue_intensity: float = Field(gt=0.0, le=1.0)
    hint_delay_ms: float = Field(gt=0)


_profiles: dict[AgeGroup, DifficultyProfile] | None = None


def _load_profiles() -> dict[AgeGroup, DifficultyProfile]:
    raw = load_data("difficulty_profiles.yaml")
    profiles = {}
    for age_group in BRACKET_ORDER:
        profiles[age_group] = DifficultyProfile(age_group=age_group, **raw[age_group.value])
    _check_ladder(profiles)
    logger.debug("Loaded %d difficulty profiles", len(profiles))
    return profiles


def _check_ladder(profiles: dict[AgeGroup, DifficultyProfile]) -> None:
    for lower, upper in zip(BRACKET_ORDER, BRACKET_ORDER[1:]):
        a, b = profiles[lower], profiles[upper]
        if not (
            a.max_problems <= b.max_problems
            and a.max_severity <= b.max_severity
            and set(a.allowed_problem_types) <= set(b.allowed_problem_types)
            and set(a.allowed_components) <= set(b.allowed_components)
            and a.hint_delay_ms <= b.hint_delay_ms
            and a.visual_cue_intensity >= b.visual_cue_intensity
        ):
            raise ValueError(f"Difficulty profiles for {lower.value} and {upper.value} break the ladder")


def get_profile(age_group: AgeGroup | str) -> DifficultyProfile:
    """Return the difficulty profile for an age bracket."""
    global _profiles
    if _profiles is None:
        _profiles = _load_profiles()
    return _profiles[AgeGroup(age_group)]


def all_profiles() -> list[DifficultyProfile]:
    return [get_profile(a) for a in BRACKET_ORDER]
