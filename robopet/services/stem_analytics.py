"""STEM skill assessment and learning-pattern inference.

Every function here is a pure computation over the histories passed in;
nothing is cached between calls. Scores are 0-100 and always clamped.
"""

import logging
from collections.abc import Callable, Sequence
from datetime import datetime, timezone

from robopet.models.analytics import (
    EducationalInsight,
    LearningPattern,
    SkillAssessment,
    SkillMilestone,
    Trend,
)
from robopet.models.device import AgeGroup, ComponentType, ToolType
from robopet.models.progress import (
    CreativityMetrics,
    CustomizationRecord,
    DiagnosticRecord,
    PlayerProgress,
    RepairRecord,
    SessionRecord,
)
from robopet.services.static_data import load_data

logger = logging.getLogger(__name__)

PROBLEM_SOLVING = "Problem Solving"
MECHANICAL_CONCEPTS = "Mechanical Concepts"
CREATIVITY = "Creativity & Design"

RECENT_WINDOW = 10
TREND_WINDOW = 5
TREND_THRESHOLD = 0.1

EXPECTED_DIAGNOSTIC_MS = 60_000
# More time allowed for younger children
SPEED_MULTIPLIERS = {AgeGroup.YOUNG: 1.5, AgeGroup.MIDDLE: 1.0, AgeGroup.OLDER: 0.8}
LENIENCY_BONUS = {AgeGroup.YOUNG: 10, AgeGroup.MIDDLE: 5, AgeGroup.OLDER: 0}
POINTS_LOST_PER_HINT = 20

EXPECTED_CONCEPTS = 10
TOTAL_TOOLS = len(ToolType)
TOTAL_COMPONENTS = len(ComponentType)
COMPLEX_REPAIR_PROBLEMS = 3

COLOR_VARIETY_TARGET = 20
ACCESSORY_VARIETY_TARGET = 15

HARMONIC_PAIRS = frozenset({
    ("blue", "red"), ("blue", "yellow"), ("red", "yellow"),
    ("green", "orange"), ("purple", "yellow"), ("blue", "orange"),
})

# Highest milestone level that counts as age-appropriate
MILESTONE_CEILINGS = {AgeGroup.YOUNG: 60, AgeGroup.MIDDLE: 80, AgeGroup.OLDER: 100}

_MILESTONES = {
    PROBLEM_SOLVING: [
        (25, "Can identify simple problems with guidance"),
        (50, "Independently identifies most problems"),
        (75, "Quickly diagnoses complex issues"),
        (90, "Expert problem solver with systematic approach"),
    ],
    MECHANICAL_CONCEPTS: [
        (20, "Understands basic tool functions"),
        (40, "Recognizes component relationships"),
        (60, "Applies mechanical principles correctly"),
        (80, "Demonstrates systems thinking"),
    ],
    CREATIVITY: [
        (25, "Experiments with different colors and styles"),
        (50, "Creates unique and personal designs"),
        (75, "Shows advanced aesthetic sense"),
        (90, "Demonstrates innovative design thinking"),
    ],
}

LEARNING_STYLES = {
    "diagnostic": "analytical",
    "repair": "hands-on",
    "customization": "creative",
    "photo_booth": "visual",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def progress_trend(values: Sequence[float]) -> Trend:
    """Compare the last five values (0-1 scale) with the five before them."""
    if len(values) < 3:
        return "stable"
    recent = list(values[-TREND_WINDOW:])
    earlier = list(values[-2 * TREND_WINDOW:-TREND_WINDOW])
    if not earlier:
        return "stable"
    difference = _mean(recent) - _mean(earlier)
    if difference > TREND_THRESHOLD:
        return "improving"
    if difference < -TREND_THRESHOLD:
        return "declining"
    return "stable"


def is_harmonic(colors: Sequence[str]) -> bool:
    """Complementary-ish pairs are harmonic; so are simple one- or two-colour schemes."""
    lowered = [c.lower() for c in colors]
    for i, first in enumerate(lowered):
        for second in lowered[i + 1:]:
            if tuple(sorted((first, second))) in HARMONIC_PAIRS:
                return True
    return len(lowered) <= 2


def repair_accuracy(record: RepairRecord) -> float:
    fixed = len(record.components_fixed)
    if fixed == 0:
        return 1.0 if record.mistakes == 0 else 0.0
    return _clamp((fixed - record.mistakes) / fixed, 0.0, 1.0)


def _tool_accuracy(record: RepairRecord) -> float:
    used = len(record.tools_used)
    if used == 0:
        return 1.0 if record.mistakes == 0 else 0.0
    return max(0.0, 1 - record.mistakes / used)


class StemAnalyticsEngine:
    def __init__(self, clock: Callable[[], datetime] = _utcnow):
        self.clock = clock

    # ── Skill assessments ──────────────────────────────────────────────

    def analyze_problem_solving_skills(
        self, history: Sequence[DiagnosticRecord], age_group: AgeGroup | str
    ) -> SkillAssessment:
        """Accuracy, speed and independence over the last ten diagnostics.

        Younger brackets get more time and a flat leniency bonus, so the
        same raw performance scores higher for them.
        """
        if not history:
            return self._empty(PROBLEM_SOLVING)
        age_group = AgeGroup(age_group)
        recent = list(history)[-RECENT_WINDOW:]

        accuracy = _mean([r.accuracy for r in recent]) * 100
        expected = EXPECTED_DIAGNOSTIC_MS * SPEED_MULTIPLIERS[age_group]
        average_time = _mean([r.duration_ms for r in recent])
        speed = _clamp(100 - (average_time - expected) / expected * 50)
        independence = max(0.0, 100 - _mean([r.hints_used for r in recent]) * POINTS_LOST_PER_HINT)

        level = accuracy * 0.5 + speed * 0.25 + independence * 0.25 + LENIENCY_BONUS[age_group]
        return self._assessment(
            PROBLEM_SOLVING, level, progress_trend([r.accuracy for r in history]), age_group
        )

    def analyze_mechanical_concepts(
        self,
        history: Sequence[RepairRecord],
        concepts_learned: Sequence[str],
        age_group: AgeGroup | str | None = None,
    ) -> SkillAssessment:
        if not history:
            return self._empty(MECHANICAL_CONCEPTS)
        history = list(history)
        accuracies = [repair_accuracy(r) for r in history]

        concept_mastery = min(100.0, len(set(concepts_learned)) / EXPECTED_CONCEPTS * 100 * _mean(accuracies))

        tools = {t for r in history for t in r.tools_used}
        tool_proficiency = min(
            100.0, len(tools) / TOTAL_TOOLS * 100 * 0.3 + _mean([_tool_accuracy(r) for r in history]) * 70
        )

        complex_share = sum(1 for r in history if len(r.components_fixed) >= COMPLEX_REPAIR_PROBLEMS) / len(history)
        components = {c for r in history for c in r.components_fixed}
        problem_kinds = {t for r in history for t in r.problem_types}
        systems_thinking = min(
            100.0,
            complex_share * 60 + len(components) / TOTAL_COMPONENTS * 25 + min(1.0, len(problem_kinds) / 4) * 15,
        )

        level = concept_mastery * 0.4 + tool_proficiency * 0.3 + systems_thinking * 0.3
        return self._assessment(MECHANICAL_CONCEPTS, level, progress_trend(accuracies), age_group)

    def analyze_creativity(
        self,
        history: Sequence[CustomizationRecord],
        creativity_metrics: CreativityMetrics | None = None,
        age_group: AgeGroup | str | None = None,
    ) -> SkillAssessment:
        if not history:
            return self._empty(CREATIVITY)
        history = list(history)
        metrics = creativity_metrics or CreativityMetrics()

        originality = _mean([r.uniqueness_score for r in history])

        colors = set(metrics.color_variations_used) | {c for r in history for c in r.color_choices}
        accessories = set(metrics.accessory_combinations) | {a for r in history for a in r.accessory_choices}
        color_variety = min(100.0, len(colors) / COLOR_VARIETY_TARGET * 100)
        accessory_variety = min(100.0, len(accessories) / ACCESSORY_VARIETY_TARGET * 100)
        variety = (color_variety + accessory_variety) / 2

        harmonic = sum(1 for r in history if is_harmonic(r.color_choices)) / len(history)
        paired = sum(1 for r in history if 1 <= len(r.accessory_choices) <= 3) / len(history)
        aesthetics = harmonic * 70 + paired * 30

        level = originality * 0.4 + variety * 0.3 + aesthetics * 0.3
        return self._assessment(
            CREATIVITY, level, progress_trend([r.uniqueness_score / 100 for r in history]), age_group
        )

    def assess_progress(self, progress: PlayerProgress) -> list[SkillAssessment]:
        """The three skill assessments for a ledger document."""
        diagnostics = [r for r in progress.activity_history if r.kind == "diagnostic"]
        repairs = [r for r in progress.activity_history if r.kind == "repair"]
        customizations = [r for r in progress.activity_history if r.kind == "customization"]
        metrics = progress.stem_metrics
        return [
            self.analyze_problem_solving_skills(diagnostics, progress.age_group),
            self.analyze_mechanical_concepts(repairs, metrics.mechanical_concepts_learned, progress.age_group),
            self.analyze_creativity(customizations, metrics.creativity, progress.age_group),
        ]

    # ── Learning patterns ──────────────────────────────────────────────

    def identify_learning_patterns(self, sessions: Sequence[SessionRecord]) -> LearningPattern:
        if not sessions:
            return LearningPattern()

        attention_span = round(_mean([s.duration_ms for s in sessions]) / 60_000, 1)

        totals = dict.fromkeys(LEARNING_STYLES, 0.0)
        for session in sessions:
            for activity, spent in session.time_distribution.items():
                if activity in totals:
                    totals[activity] += spent or 0.0
        favourite, most = "repair", 0.0
        for activity, spent in totals.items():
            if spent > most:
                favourite, most = activity, spent

        mistakes = _mean([s.mistakes_per_activity for s in sessions])
        if mistakes < 1:
            difficulty = "challenging"
        elif mistakes < 3:
            difficulty = "moderate"
        else:
            difficulty = "easy"

        hints = _mean([s.hints_requested for s in sessions])
        if hints < 1:
            help_seeking = "independent"
        elif hints < 3:
            help_seeking = "guided"
        else:
            help_seeking = "collaborative"

        return LearningPattern(
            preferred_learning_style=LEARNING_STYLES[favourite],
            attention_span=attention_span,
            difficulty_preference=difficulty,
            help_seeking_behavior=help_seeking,
        )

    # ── Insights for parents and teachers ──────────────────────────────

    def generate_educational_insights(
        self,
        assessments: Sequence[SkillAssessment],
        pattern: LearningPattern,
        age_group: AgeGroup | str,
    ) -> list[EducationalInsight]:
        age_group = AgeGroup(age_group)
        insights = []

        for a in assessments:
            level = round(a.current_level)
            if a.current_level >= 70:
                insights.append(EducationalInsight(
                    category="strength",
                    title=f"Excellent {a.skill_name} Skills",
                    description=f"Shows strong aptitude in {a.skill_name.lower()} with a skill level of {level}%.",
                    suggested_activities=suggested_activities("strength", a.skill_name, age_group),
                    parent_teacher_note=(
                        f"Consider providing more challenging activities in {a.skill_name.lower()} "
                        "to maintain engagement."
                    ),
                ))
            elif a.current_level < 50:
                insights.append(EducationalInsight(
                    category="improvement_area",
                    title=f"Developing {a.skill_name} Skills",
                    description=(
                        f"Shows potential for growth in {a.skill_name.lower()}. Current skill level: {level}%."
                    ),
                    suggested_activities=suggested_activities("improvement_area", a.skill_name, age_group),
                    parent_teacher_note=(
                        f"Provide additional support and practice opportunities in {a.skill_name.lower()}."
                    ),
                ))

        style = pattern.preferred_learning_style
        insights.append(EducationalInsight(
            category="recommendation",
            title=f"{style.capitalize()} Learning Style",
            description=(
                f"Prefers {style} learning approaches with an average attention span of "
                f"{pattern.attention_span:g} minutes."
            ),
            suggested_activities=suggested_activities("learning_style", style, age_group),
            parent_teacher_note=f"Tailor activities to match the {style} learning preference for optimal engagement.",
        ))
        return insights

    def generate_recommendations(
        self, assessments: Sequence[SkillAssessment], pattern: LearningPattern
    ) -> list[str]:
        recommendations = []
        if pattern.attention_span < 5:
            recommendations.append("Consider shorter, more frequent learning sessions to match attention span.")
        elif pattern.attention_span > 15:
            recommendations.append(
                "Take advantage of extended attention span with more complex, multi-step activities."
            )

        if pattern.help_seeking_behavior == "independent":
            recommendations.append("Provide self-directed learning opportunities and advanced challenges.")
        elif pattern.help_seeking_behavior == "collaborative":
            recommendations.append("Encourage group activities and peer learning opportunities.")

        if assessments:
            average = _mean([a.current_level for a in assessments])
            if average > 75:
                recommendations.append("Consider advanced or accelerated learning opportunities.")
            elif average < 40:
                recommendations.append("Focus on building foundational skills with additional support.")
        return recommendations

    def generate_next_steps(self, assessments: Sequence[SkillAssessment]) -> list[str]:
        steps = []
        for a in assessments:
            upcoming = next((m for m in a.milestones if not m.achieved), None)
            if upcoming is not None:
                steps.append(f"Work towards: {upcoming.description} ({a.skill_name})")
        if not steps:
            steps.append("Continue practicing all skills to maintain proficiency.")
        return steps

    # ── Internals ──────────────────────────────────────────────────────

    def _empty(self, skill_name: str) -> SkillAssessment:
        return SkillAssessment(skill_name=skill_name, current_level=0, progress_trend="stable",
                               last_assessed=self.clock(), milestones=[])

    def _assessment(
        self, skill_name: str, level: float, trend: Trend, age_group: AgeGroup | str | None = None
    ) -> SkillAssessment:
        level = round(_clamp(level))
        logger.debug("Assessed %s: level=%d trend=%s", skill_name, level, trend)
        return SkillAssessment(
            skill_name=skill_name,
            current_level=level,
            progress_trend=trend,
            last_assessed=self.clock(),
            milestones=skill_milestones(skill_name, level, age_group),
        )


def skill_milestones(
    skill_name: str, level: float, age_group: AgeGroup | str | None = None
) -> list[SkillMilestone]:
    """Milestones for a skill. Without an age group every milestone is age-appropriate."""
    ceiling = MILESTONE_CEILINGS[AgeGroup(age_group)] if age_group is not None else 100
    return [
        SkillMilestone(
            level=threshold,
            description=description,
            age_appropriate=threshold <= ceiling,
            achieved=level >= threshold,
        )
        for threshold, description in _MILESTONES[skill_name]
    ]


def suggested_activities(category: str, key: str, age_group: AgeGroup) -> list[str]:
    """Activities from activities.yaml, never empty."""
    table = load_data("activities.yaml")
    activities = table.get(category, {}).get(key, {}).get(age_group.value)
    if activities:
        return list(activities)
    return list(table["fallback"][category])
