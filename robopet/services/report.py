"""Parent/teacher progress report payload.

Builds a plain, JSON-serializable structure from the ledger and the
analytics engine. Templating (HTML, CSV, text) is left to the host; the
payload carries only the anonymous player id, never personal data.
"""

import logging
from datetime import datetime, timedelta, timezone

from pydantic import BaseModel

from robopet.models.analytics import EducationalInsight, LearningPattern, SkillAssessment
from robopet.models.device import AgeGroup
from robopet.models.progress import PlayerProgress
from robopet.services.ledger import ProgressLedger
from robopet.services.stem_analytics import StemAnalyticsEngine

logger = logging.getLogger(__name__)

DEFAULT_PERIOD = timedelta(days=30)


class LedgerSummary(BaseModel):
    player_id: str
    age_group: AgeGroup
    total_repairs: int
    robo_gems_earned: int
    robo_gems_spent: int
    robo_gems_available: int
    achievements: list[str]
    unlocked_tools: list[str]
    unlocked_customizations: list[str]
    concepts_learned: list[str]
    total_play_minutes: int
    sessions_completed: int


class ProgressReport(BaseModel):
    generated_at: datetime
    period_start: datetime
    period_end: datetime
    summary: LedgerSummary
    skill_assessments: list[SkillAssessment]
    learning_pattern: LearningPattern
    insights: list[EducationalInsight]
    recommendations: list[str]
    next_steps: list[str]


def summarize(progress: PlayerProgress, sessions_completed: int | None = None) -> LedgerSummary:
    return LedgerSummary(
        player_id=progress.player_id,
        age_group=progress.age_group,
        total_repairs=progress.total_repairs,
        robo_gems_earned=progress.robo_gems_earned,
        robo_gems_spent=progress.robo_gems_spent,
        robo_gems_available=progress.available_gems,
        achievements=[a.id for a in progress.achievements],
        unlocked_tools=[t.value for t in progress.unlocked_tools],
        unlocked_customizations=list(progress.unlocked_customizations),
        concepts_learned=list(progress.stem_metrics.mechanical_concepts_learned),
        total_play_minutes=round(progress.stem_metrics.total_play_time_ms / 60_000),
        sessions_completed=len(progress.session_history) if sessions_completed is None else sessions_completed,
    )


def build_progress_report(
    ledger: ProgressLedger,
    analytics: StemAnalyticsEngine | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> ProgressReport:
    """Assess the ledger's histories and assemble the report payload.

    Sessions are filtered to [start, end] (default: the last 30 days);
    skill assessments use the whole activity history.
    """
    analytics = analytics or StemAnalyticsEngine(clock=ledger.clock)
    progress = ledger.progress
    end = end or ledger.clock()
    start = start or end - DEFAULT_PERIOD

    sessions = [s for s in progress.session_history if start <= s.started_at <= end]
    assessments = analytics.assess_progress(progress)
    pattern = analytics.identify_learning_patterns(sessions)
    insights = analytics.generate_educational_insights(assessments, pattern, progress.age_group)

    logger.info(
        "Built progress report for %s: %d sessions, levels=%s",
        progress.player_id, len(sessions), [a.current_level for a in assessments],
    )
    return ProgressReport(
        generated_at=ledger.clock(),
        period_start=start,
        period_end=end,
        summary=summarize(progress, len(sessions)),
        skill_assessments=assessments,
        learning_pattern=pattern,
        insights=insights,
        recommendations=analytics.generate_recommendations(assessments, pattern),
        next_steps=analytics.generate_next_steps(assessments),
    )
