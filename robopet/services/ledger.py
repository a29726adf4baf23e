"""Progress & economy ledger.

Owns the player's PlayerProgress document: repair counts, Robo-Gem balance,
unlocks, achievements and the activity/session histories the analytics
engine reads. Every mutation is persisted through a NamespacedStore; a
failed save is logged and reported through `last_save_ok`, and play goes on.

Notifications (gems earned, milestone reached, ...) are queued on an
EventQueue and delivered by the frame loop, never inline.
"""

import logging
import math
import uuid
from collections.abc import Callable, Iterable
from datetime import datetime, timezone

from robopet.config import settings
from robopet.db.storage import MemoryStore, NamespacedStore
from robopet.engine.events import EventQueue, ProgressEventType
from robopet.models.device import AgeGroup, ComponentType, ToolType
from robopet.models.progress import (
    Achievement,
    ActivityType,
    CustomizationRecord,
    DiagnosticRecord,
    Milestone,
    MilestoneStatus,
    PlayerProgress,
    RepairRecord,
    SessionRecord,
)
from robopet.services.static_data import load_data

logger = logging.getLogger(__name__)

STORAGE_KEY = "progress"

REPAIR_BASE_GEMS = 10
QUICK_REPAIR_MS = 120_000
QUICK_REPAIR_BONUS = 5
GEMS_PER_COMPONENT = 2
MIN_REPAIR_GEMS = 5

DIAGNOSTIC_BASE_GEMS = 2
PERFECT_DIAGNOSTIC_BONUS = 5
MAX_CUSTOMIZATION_GEMS = 10

# Extra gems for diagnostics and customizations; younger players earn more
ACTIVITY_AGE_BONUS = {AgeGroup.YOUNG: 2, AgeGroup.MIDDLE: 1, AgeGroup.OLDER: 0}

COMPONENT_CONCEPTS = {
    ComponentType.POWER_CORE: "Electrical Systems",
    ComponentType.MOTOR_SYSTEM: "Mechanical Movement",
    ComponentType.SENSOR_ARRAY: "Input/Output Systems",
    ComponentType.CHASSIS_PLATING: "Structural Engineering",
    ComponentType.PROCESSING_UNIT: "Logic Systems",
}

TOOL_CONCEPTS = {
    ToolType.SCREWDRIVER: "Fastening Systems",
    ToolType.WRENCH: "Mechanical Advantage",
    ToolType.OIL_CAN: "Lubrication Systems",
    ToolType.BATTERY: "Energy Storage",
    ToolType.CIRCUIT_BOARD: "Electronic Systems",
    ToolType.CLEANING_BRUSH: "Maintenance Procedures",
    ToolType.DIAGNOSTIC_SCANNER: "System Analysis",
    ToolType.PREMIUM_WRENCH: "Mechanical Advantage",
    ToolType.SUPER_BATTERY: "Energy Storage",
}

# One-off achievements outside the repair-count milestones
_SPECIAL_ACHIEVEMENTS = {
    "speed_demon": ("Speed Demon", "Completed a repair in under 1 minute", 15),
    "complex_repair": ("Master Mechanic", "Fixed 5 or more problems in one repair", 20),
    "perfect_diagnostic": ("Sharp Eyes", "Found every problem without a wrong tap", 5),
}
SPEED_DEMON_MS = 60_000
COMPLEX_REPAIR_COMPONENTS = 5


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def load_milestones() -> list[Milestone]:
    milestones = [Milestone(**m) for m in load_data("milestones.yaml")]
    return sorted(milestones, key=lambda m: m.required_repairs)


def repair_gems(duration_ms: float, components_fixed: int, age_group: AgeGroup) -> int:
    gems = REPAIR_BASE_GEMS
    if duration_ms < QUICK_REPAIR_MS:
        gems += QUICK_REPAIR_BONUS
    gems += components_fixed * GEMS_PER_COMPONENT
    if age_group == AgeGroup.YOUNG:
        gems += 5
    elif age_group == AgeGroup.OLDER:
        gems = math.floor(gems * 0.8)
    return max(MIN_REPAIR_GEMS, gems)


def diagnostic_gems(accuracy: float, age_group: AgeGroup) -> int:
    gems = DIAGNOSTIC_BASE_GEMS + ACTIVITY_AGE_BONUS[age_group]
    if accuracy >= 1.0:
        gems += PERFECT_DIAGNOSTIC_BONUS
    return gems


def customization_gems(items: int, age_group: AgeGroup) -> int:
    return min(items * 2, MAX_CUSTOMIZATION_GEMS) + ACTIVITY_AGE_BONUS[age_group]


class ProgressLedger:
    def __init__(
        self,
        store: NamespacedStore | None = None,
        events: EventQueue | None = None,
        milestones: list[Milestone] | None = None,
        clock: Callable[[], datetime] = _utcnow,
        age_group: AgeGroup | str | None = None,
    ):
        self.store = store or NamespacedStore(MemoryStore())
        self.events = events or EventQueue()
        self.milestones = milestones if milestones is not None else load_milestones()
        self.clock = clock
        self.history_limit = settings.activity_history_limit
        self.last_save_ok = True
        self._open_session: SessionRecord | None = None

        self._progress = self._load()
        if age_group is not None and AgeGroup(age_group) != self._progress.age_group:
            self.set_age_group(age_group)

    # ── Read access ────────────────────────────────────────────────────

    @property
    def progress(self) -> PlayerProgress:
        """A deep copy; mutating it does not touch the ledger."""
        return self._progress.model_copy(deep=True)

    @property
    def age_group(self) -> AgeGroup:
        return self._progress.age_group

    @property
    def available_gems(self) -> int:
        return self._progress.available_gems

    def diagnostic_history(self) -> list[DiagnosticRecord]:
        return [r.model_copy() for r in self._progress.activity_history if r.kind == "diagnostic"]

    def repair_history(self) -> list[RepairRecord]:
        return [r.model_copy() for r in self._progress.activity_history if r.kind == "repair"]

    def customization_history(self) -> list[CustomizationRecord]:
        return [r.model_copy() for r in self._progress.activity_history if r.kind == "customization"]

    def session_history(self) -> list[SessionRecord]:
        return [s.model_copy(deep=True) for s in self._progress.session_history]

    def has_achievement(self, achievement_id: str) -> bool:
        return any(a.id == achievement_id for a in self._progress.achievements)

    def milestone_status(self) -> list[MilestoneStatus]:
        repairs = self._progress.total_repairs
        return [
            MilestoneStatus(
                milestone=m,
                reached=m.id in self._progress.reached_milestones,
                progress=min(1.0, repairs / m.required_repairs) if m.required_repairs else 1.0,
            )
            for m in self.milestones
        ]

    def next_milestone(self) -> Milestone | None:
        for m in self.milestones:
            if m.id not in self._progress.reached_milestones:
                return m
        return None

    # ── Activity recording ─────────────────────────────────────────────

    def record_repair_completed(
        self,
        duration_ms: float,
        components_fixed: Iterable[ComponentType],
        *,
        tools_used: Iterable[ToolType] = (),
        mistakes: int = 0,
        problem_types: Iterable[str] = (),
    ) -> int:
        """Record a finished repair session. Returns the gems awarded for it."""
        record = RepairRecord(
            timestamp=self.clock(),
            duration_ms=max(0.0, duration_ms),
            components_fixed=list(components_fixed),
            tools_used=list(tools_used),
            mistakes=mistakes,
            problem_types=[str(t) for t in problem_types],
        )
        p = self._progress
        p.total_repairs += 1
        gems = repair_gems(record.duration_ms, len(record.components_fixed), p.age_group)

        for component in record.components_fixed:
            self._learn_concept(COMPONENT_CONCEPTS.get(component))
        for tool in record.tools_used:
            self._learn_concept(TOOL_CONCEPTS.get(tool))

        p.stem_metrics.average_repair_ms = self._running_average(
            p.stem_metrics.average_repair_ms, record.duration_ms, p.total_repairs
        )
        self._append_activity(record)
        self._note_in_session("repair", record.duration_ms, record.mistakes, 0)

        logger.info(
            "Repair recorded: total_repairs=%d components=%d gems=%d",
            p.total_repairs, len(record.components_fixed), gems,
        )
        self._earn(gems, "repair_completed")
        self.events.publish(ProgressEventType.REPAIR_COMPLETED, {
            "total_repairs": p.total_repairs,
            "gems": gems,
            "components": [c.value for c in record.components_fixed],
        })

        self._check_milestones()
        if record.duration_ms < SPEED_DEMON_MS:
            self._unlock_achievement("speed_demon")
        if len(record.components_fixed) >= COMPLEX_REPAIR_COMPONENTS:
            self._unlock_achievement("complex_repair")

        self.save()
        return gems

    def record_diagnostic_completed(
        self,
        duration_ms: float,
        accuracy: float,
        *,
        hints_used: int = 0,
        mistakes: int = 0,
        problem_complexity: int = 1,
    ) -> int:
        record = DiagnosticRecord(
            timestamp=self.clock(),
            duration_ms=max(0.0, duration_ms),
            accuracy=min(1.0, max(0.0, accuracy)),
            hints_used=hints_used,
            mistakes=mistakes,
            problem_complexity=problem_complexity,
        )
        p = self._progress
        gems = diagnostic_gems(record.accuracy, p.age_group)
        p.stem_metrics.diagnostics_completed += 1
        p.stem_metrics.average_diagnostic_ms = self._running_average(
            p.stem_metrics.average_diagnostic_ms, record.duration_ms, p.stem_metrics.diagnostics_completed
        )
        self._append_activity(record)
        self._note_in_session("diagnostic", record.duration_ms, record.mistakes, record.hints_used)

        logger.info("Diagnostic recorded: accuracy=%.2f hints=%d gems=%d", record.accuracy, hints_used, gems)
        self._earn(gems, "diagnostic_completed")
        self.events.publish(ProgressEventType.DIAGNOSTIC_COMPLETED, {
            "accuracy": record.accuracy,
            "duration_ms": record.duration_ms,
            "gems": gems,
        })
        if record.accuracy >= 1.0 and record.mistakes == 0:
            self._unlock_achievement("perfect_diagnostic")

        self.save()
        return gems

    def record_customization_completed(
        self,
        duration_ms: float,
        items_customized: int,
        *,
        color_choices: Iterable[str] | None = None,
        accessory_choices: Iterable[str] | None = None,
        uniqueness_score: float | None = None,
    ) -> int:
        colors = [c.lower() for c in (color_choices or [])]
        accessories = list(accessory_choices or [])
        record = CustomizationRecord(
            timestamp=self.clock(),
            duration_ms=max(0.0, duration_ms),
            items_customized=items_customized,
            color_choices=colors,
            accessory_choices=accessories,
            uniqueness_score=50.0 if uniqueness_score is None else min(100.0, max(0.0, uniqueness_score)),
        )
        p = self._progress
        gems = customization_gems(items_customized, p.age_group)

        creativity = p.stem_metrics.creativity
        creativity.unique_customizations += 1
        for color in colors:
            if color not in creativity.color_variations_used:
                creativity.color_variations_used.append(color)
        if accessories:
            combo = "+".join(sorted(accessories))
            if combo not in creativity.accessory_combinations:
                creativity.accessory_combinations.append(combo)

        self._append_activity(record)
        self._note_in_session("customization", record.duration_ms, 0, 0)

        logger.info("Customization recorded: items=%d gems=%d", items_customized, gems)
        self._earn(gems, "customization_completed")
        self.events.publish(ProgressEventType.CUSTOMIZATION_COMPLETED, {
            "items": items_customized,
            "gems": gems,
        })
        self.save()
        return gems

    # ── Economy ────────────────────────────────────────────────────────

    def spend_gems(self, amount: int, item_id: str) -> bool:
        """Spend gems on an item. Fails, changing nothing, if the balance is short."""
        if amount <= 0:
            logger.warning("Rejected spend of %d gems on %s", amount, item_id)
            return False
        if amount > self.available_gems:
            logger.info("Not enough gems for %s: need %d, have %d", item_id, amount, self.available_gems)
            return False

        self._progress.robo_gems_spent += amount
        self.events.publish(ProgressEventType.GEMS_SPENT, {
            "amount": amount,
            "item_id": item_id,
            "remaining": self.available_gems,
        })
        self.save()
        return True

    def grant_gems(self, amount: int, reason: str) -> int:
        """Award bonus gems outside normal play (events, parent rewards)."""
        if amount < 0:
            raise ValueError("amount must be non-negative")
        self._earn(amount, reason)
        self.save()
        return self.available_gems

    # ── Profile / sessions ─────────────────────────────────────────────

    def set_age_group(self, age_group: AgeGroup | str) -> None:
        self._progress.age_group = AgeGroup(age_group)
        logger.info("Age group set to %s", self._progress.age_group.value)
        self.save()

    def start_session(self) -> SessionRecord:
        if self._open_session is not None:
            logger.warning("Session %s still open; ending it first", self._open_session.session_id)
            self.end_session()
        self._open_session = SessionRecord(session_id=f"session_{uuid.uuid4().hex[:12]}", started_at=self.clock())
        self.events.publish(ProgressEventType.SESSION_STARTED, {"session_id": self._open_session.session_id})
        return self._open_session.model_copy(deep=True)

    def end_session(self, duration_ms: float | None = None) -> SessionRecord | None:
        """Close the open session and add it to the history."""
        session = self._open_session
        if session is None:
            return None
        self._open_session = None

        session.ended_at = self.clock()
        if duration_ms is None:
            duration_ms = (session.ended_at - session.started_at).total_seconds() * 1000
        session.duration_ms = max(0.0, duration_ms)
        if session.activities_completed:
            session.mistakes_per_activity = session.total_mistakes / len(session.activities_completed)

        p = self._progress
        p.session_history.append(session)
        if len(p.session_history) > self.history_limit:
            del p.session_history[: len(p.session_history) - self.history_limit]
        p.stem_metrics.total_play_time_ms += session.duration_ms

        logger.info(
            "Session %s ended: %.0f ms, %d activities",
            session.session_id, session.duration_ms, len(session.activities_completed),
        )
        self.events.publish(ProgressEventType.SESSION_ENDED, {
            "session_id": session.session_id,
            "duration_ms": session.duration_ms,
        })
        self.save()
        return session.model_copy(deep=True)

    def reset_progress(self) -> None:
        """Wipe the player's progress back to the starting state."""
        self._progress = PlayerProgress(
            player_id=self._progress.player_id,
            age_group=self._progress.age_group,
            created_at=self.clock(),
            last_modified=self.clock(),
        )
        self._open_session = None
        logger.info("Progress reset for %s", self._progress.player_id)
        self.events.publish(ProgressEventType.PROGRESS_RESET, {})
        self.save()

    # ── Persistence ────────────────────────────────────────────────────

    def save(self) -> bool:
        self._progress.last_modified = self.clock()
        self.last_save_ok = self.store.write(STORAGE_KEY, self._progress)
        if not self.last_save_ok:
            logger.error("Progress could not be saved; continuing with in-memory state")
        return self.last_save_ok

    def _load(self) -> PlayerProgress:
        stored = self.store.read_model(STORAGE_KEY, PlayerProgress)
        if stored is not None:
            logger.info("Loaded progress for %s (%d repairs)", stored.player_id, stored.total_repairs)
            return stored
        return PlayerProgress(
            player_id=f"player_{uuid.uuid4().hex[:12]}",
            age_group=AgeGroup(settings.default_age_group),
            created_at=self.clock(),
            last_modified=self.clock(),
        )

    # ── Internals ──────────────────────────────────────────────────────

    def _earn(self, gems: int, reason: str) -> None:
        if gems <= 0:
            return
        self._progress.robo_gems_earned += gems
        self.events.publish(ProgressEventType.GEMS_EARNED, {
            "amount": gems,
            "reason": reason,
            "total": self.available_gems,
        })

    def _check_milestones(self) -> None:
        p = self._progress
        for m in self.milestones:
            if m.id in p.reached_milestones or p.total_repairs < m.required_repairs:
                continue
            p.reached_milestones.append(m.id)
            for tool in m.unlock_tools:
                if tool not in p.unlocked_tools:
                    p.unlocked_tools.append(tool)
            for item in m.unlock_customizations:
                if item not in p.unlocked_customizations:
                    p.unlocked_customizations.append(item)
            for feature in m.unlock_features:
                if feature not in p.unlocked_features:
                    p.unlocked_features.append(feature)
            p.achievements.append(Achievement(
                id=m.id, name=m.name, description=m.description,
                gems_awarded=m.gems, unlocked_at=self.clock(),
            ))

            logger.info("Milestone reached: %s at %d repairs", m.id, p.total_repairs)
            self._earn(m.gems, f"milestone:{m.id}")
            self.events.publish(ProgressEventType.MILESTONE_REACHED, {
                "milestone_id": m.id,
                "celebration": m.celebration,
                "unlocked_tools": [t.value for t in m.unlock_tools],
                "unlocked_customizations": list(m.unlock_customizations),
            })

    def _unlock_achievement(self, achievement_id: str) -> None:
        if self.has_achievement(achievement_id):
            return
        name, description, gems = _SPECIAL_ACHIEVEMENTS[achievement_id]
        self._progress.achievements.append(Achievement(
            id=achievement_id, name=name, description=description,
            gems_awarded=gems, unlocked_at=self.clock(),
        ))
        logger.info("Achievement unlocked: %s", achievement_id)
        self._earn(gems, f"achievement:{achievement_id}")
        self.events.publish(ProgressEventType.ACHIEVEMENT_UNLOCKED, {"achievement_id": achievement_id})

    def _learn_concept(self, concept: str | None) -> None:
        learned = self._progress.stem_metrics.mechanical_concepts_learned
        if concept and concept not in learned:
            learned.append(concept)

    def _append_activity(self, record) -> None:
        history = self._progress.activity_history
        history.append(record)
        if len(history) > self.history_limit:
            del history[: len(history) - self.history_limit]

    def _note_in_session(self, activity: ActivityType, duration_ms: float, mistakes: int, hints: int) -> None:
        session = self._open_session
        if session is None:
            return
        session.activities_completed.append(activity)
        session.time_distribution[activity] = session.time_distribution.get(activity, 0.0) + duration_ms
        session.total_mistakes += mistakes
        session.hints_requested += hints

    @staticmethod
    def _running_average(current: float, value: float, count: int) -> float:
        if count <= 1:
            return value
        return current + (value - current) / count
