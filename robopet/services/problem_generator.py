"""Age-appropriate problem generation for robot pets.

Draws problem types and components by weight, restricted to what the
player's bracket allows, and attaches visual cues scaled to the bracket's
cue ceiling. All randomness goes through an injectable random.Random so
sessions can be replayed from a seed.
"""

import logging
import math
import random
from collections.abc import Iterable, Sequence

from pydantic import BaseModel

from robopet.models.device import (
    AgeGroup,
    COMPONENT_NAMES,
    ComponentType,
    Position,
    Problem,
    ProblemType,
    RobotPet,
    ToolType,
    VisualCue,
)
from robopet.services.difficulty import DifficultyProfile, get_profile

logger = logging.getLogger(__name__)

DEFAULT_PROBLEM_TYPE_WEIGHTS = {
    ProblemType.DIRTY: 0.30,
    ProblemType.LOW_POWER: 0.25,
    ProblemType.DISCONNECTED: 0.25,
    ProblemType.BROKEN: 0.20,
}

DEFAULT_COMPONENT_WEIGHTS = {
    ComponentType.CHASSIS_PLATING: 0.25,
    ComponentType.POWER_CORE: 0.25,
    ComponentType.SENSOR_ARRAY: 0.20,
    ComponentType.MOTOR_SYSTEM: 0.15,
    ComponentType.PROCESSING_UNIT: 0.15,
}

_BROKEN_PART_TOOLS = {
    ComponentType.POWER_CORE: ToolType.CIRCUIT_BOARD,
    ComponentType.MOTOR_SYSTEM: ToolType.WRENCH,
    ComponentType.SENSOR_ARRAY: ToolType.SCREWDRIVER,
    ComponentType.CHASSIS_PLATING: ToolType.WRENCH,
    ComponentType.PROCESSING_UNIT: ToolType.CIRCUIT_BOARD,
}

_PROBLEM_TOOLS = {
    ProblemType.DIRTY: ToolType.OIL_CAN,
    ProblemType.DISCONNECTED: ToolType.SCREWDRIVER,
    ProblemType.LOW_POWER: ToolType.BATTERY,
}

_DESCRIPTIONS = {
    ProblemType.BROKEN: "is broken and needs repair",
    ProblemType.DIRTY: "is dirty and needs cleaning",
    ProblemType.DISCONNECTED: "is disconnected and needs reconnection",
    ProblemType.LOW_POWER: "has low power and needs recharging",
}

_FALLBACK_POSITION = Position(x=100.0, y=100.0)


class ProblemSetValidation(BaseModel):
    is_valid: bool
    issues: list[str] = []
    suggestions: list[str] = []


# ── Deterministic helpers ─────────────────────────────────────────────

def required_tool_for(problem_type: ProblemType, component: ComponentType) -> ToolType:
    """The one tool that fixes this problem on this component."""
    if problem_type == ProblemType.BROKEN:
        return _BROKEN_PART_TOOLS[component]
    return _PROBLEM_TOOLS[problem_type]


def describe_problem(problem_type: ProblemType, component: ComponentType) -> str:
    return f"The {COMPONENT_NAMES[component]} {_DESCRIPTIONS[problem_type]}"


def create_visual_cues(
    problem_type: ProblemType, severity: int, position: Position, ceiling: float = 1.0
) -> tuple[VisualCue, ...]:
    """Visual cues for a problem, scaled by severity and the bracket ceiling."""
    intensity = severity / 3
    raw: list[tuple[str, Position, float]] = []

    if problem_type == ProblemType.BROKEN:
        raw.append(("spark", position, intensity))
        if severity >= 2:
            smoke_at = Position(x=position.x + 5, y=position.y - 10)
            raw.append(("smoke", smoke_at, intensity * 0.8))
    elif problem_type == ProblemType.DIRTY:
        raw.append(("dirt", position, intensity))
    elif problem_type == ProblemType.DISCONNECTED:
        raw.append(("warning_light", position, intensity))
    elif problem_type == ProblemType.LOW_POWER:
        raw.append(("warning_light", position, max(0.3, intensity)))

    return tuple(
        VisualCue(type=cue_type, position=pos, intensity=min(1.0, value) * ceiling)
        for cue_type, pos, value in raw
    )


# ── Generator ─────────────────────────────────────────────────────────

class ProblemGenerator:
    def __init__(self, rng: random.Random | None = None):
        self.rng = rng or random.Random()
        self.problem_type_weights = dict(DEFAULT_PROBLEM_TYPE_WEIGHTS)
        self.component_weights = dict(DEFAULT_COMPONENT_WEIGHTS)

    def update_problem_type_weights(self, weights: dict[ProblemType, float]) -> None:
        for key, value in weights.items():
            if value < 0:
                raise ValueError(f"Weight for {key} must be non-negative")
            self.problem_type_weights[ProblemType(key)] = value

    def update_component_weights(self, weights: dict[ComponentType, float]) -> None:
        for key, value in weights.items():
            if value < 0:
                raise ValueError(f"Weight for {key} must be non-negative")
            self.component_weights[ComponentType(key)] = value

    def generate_problems(self, pet: RobotPet, age_group: AgeGroup | str) -> list[Problem]:
        """Random problem set within the bracket's limits, at most one per component."""
        profile = get_profile(age_group)
        count = self.rng.randint(1, profile.max_problems)
        problems = self._draw(
            pet,
            profile,
            count=count,
            problem_types=profile.allowed_problem_types,
            components=profile.allowed_components,
            max_severity=profile.max_severity,
        )

        if not problems:
            fallback = self._fallback_problem(pet, profile)
            if fallback is not None:
                problems.append(fallback)

        logger.info(
            "Generated %d problem(s) for pet=%s age_group=%s",
            len(problems), pet.id, profile.age_group.value,
        )
        return problems

    def generate_problems_with_constraints(
        self,
        pet: RobotPet,
        age_group: AgeGroup | str,
        *,
        exact_count: int | None = None,
        problem_types: Iterable[ProblemType] | None = None,
        components: Iterable[ComponentType] | None = None,
        max_severity: int | None = None,
    ) -> list[Problem]:
        """Like generate_problems, with overrides clamped to the bracket's limits.

        Requested types and components are intersected with the bracket's
        allowed sets; count and severity never exceed the bracket maximum.
        """
        profile = get_profile(age_group)

        allowed_types = tuple(profile.allowed_problem_types)
        if problem_types is not None:
            wanted = {ProblemType(t) for t in problem_types}
            allowed_types = tuple(t for t in allowed_types if t in wanted)

        allowed_components = tuple(profile.allowed_components)
        if components is not None:
            wanted_components = {ComponentType(c) for c in components}
            allowed_components = tuple(c for c in allowed_components if c in wanted_components)

        severity_cap = profile.max_severity
        if max_severity is not None:
            severity_cap = max(1, min(max_severity, profile.max_severity))

        if exact_count is not None:
            count = max(0, min(exact_count, profile.max_problems))
        else:
            count = self.rng.randint(1, profile.max_problems)

        problems = self._draw(
            pet,
            profile,
            count=count,
            problem_types=allowed_types,
            components=allowed_components,
            max_severity=severity_cap,
        )
        if count and len(problems) < count:
            logger.debug(
                "Only %d of %d requested problems fit the constraints for %s",
                len(problems), count, profile.age_group.value,
            )
        return problems

    def validate_problem_set(
        self, problems: Sequence[Problem], age_group: AgeGroup | str
    ) -> ProblemSetValidation:
        """Check a problem set against a bracket's profile."""
        profile = get_profile(age_group)
        issues: list[str] = []
        suggestions: list[str] = []

        if not problems:
            issues.append("No problems generated")
            return ProblemSetValidation(is_valid=False, issues=issues, suggestions=suggestions)

        if len(problems) > profile.max_problems:
            issues.append(f"Too many problems: {len(problems)} > {profile.max_problems}")

        too_severe = [p for p in problems if p.severity > profile.max_severity]
        if too_severe:
            issues.append(f"Problems with severity too high: {len(too_severe)}")

        bad_types = [p for p in problems if p.problem_type not in profile.allowed_problem_types]
        if bad_types:
            issues.append(f"Invalid problem types: {', '.join(p.problem_type.value for p in bad_types)}")

        bad_components = [p for p in problems if p.component not in profile.allowed_components]
        if bad_components:
            issues.append(f"Invalid components: {', '.join(p.component.value for p in bad_components)}")

        too_bright = [
            p for p in problems
            if any(c.intensity > profile.visual_cue_intensity + 1e-9 for c in p.visual_cues)
        ]
        if too_bright:
            issues.append(f"Visual cues above intensity ceiling: {len(too_bright)}")

        components = [p.component for p in problems]
        if len(set(components)) != len(components):
            suggestions.append("Consider using different components for variety")

        weak_threshold = profile.visual_cue_intensity * 0.5
        if any(c.intensity < weak_threshold for p in problems for c in p.visual_cues):
            suggestions.append("Some visual cues might be too subtle for this age group")

        return ProblemSetValidation(is_valid=not issues, issues=issues, suggestions=suggestions)

    # ── Internals ──────────────────────────────────────────────────────

    def _draw(
        self,
        pet: RobotPet,
        profile: DifficultyProfile,
        *,
        count: int,
        problem_types: Sequence[ProblemType],
        components: Sequence[ComponentType],
        max_severity: int,
    ) -> list[Problem]:
        available = [c for c in components if pet.component(c) is not None]
        problems: list[Problem] = []
        if not problem_types:
            return problems

        for _ in range(count):
            remaining = [c for c in available if c not in {p.component for p in problems}]
            if not remaining:
                break
            component = self._weighted_choice(remaining, self.component_weights)
            problem_type = self._weighted_choice(list(problem_types), self.problem_type_weights)
            severity = self.rng.randint(1, max_severity)
            problems.append(self._build(pet, profile, component, problem_type, severity))

        return problems

    def _build(
        self,
        pet: RobotPet,
        profile: DifficultyProfile,
        component: ComponentType,
        problem_type: ProblemType,
        severity: int,
    ) -> Problem:
        part = pet.component(component)
        position = part.position if part else _FALLBACK_POSITION
        return Problem(
            id=f"problem_{self.rng.getrandbits(48):012x}",
            component=component,
            problem_type=problem_type,
            severity=severity,
            required_tool=required_tool_for(problem_type, component),
            description=describe_problem(problem_type, component),
            visual_cues=create_visual_cues(problem_type, severity, position, profile.visual_cue_intensity),
        )

    def _fallback_problem(self, pet: RobotPet, profile: DifficultyProfile) -> Problem | None:
        if (
            ProblemType.DIRTY not in profile.allowed_problem_types
            or ComponentType.CHASSIS_PLATING not in profile.allowed_components
            or pet.component(ComponentType.CHASSIS_PLATING) is None
        ):
            return None
        logger.warning("Falling back to a dirty chassis problem for pet=%s", pet.id)
        return self._build(pet, profile, ComponentType.CHASSIS_PLATING, ProblemType.DIRTY, 1)

    def _weighted_choice(self, items: list, weights: dict):
        total = sum(weights.get(item, 0.0) for item in items)
        if total <= 0 or math.isclose(total, 0.0):
            return self.rng.choice(items)
        point = self.rng.random() * total
        for item in items:
            point -= weights.get(item, 0.0)
            if point <= 0:
                return item
        return items[-1]
