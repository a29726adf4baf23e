"""Tests for the progress & economy ledger."""

import pytest

from robopet.db.storage import MemoryStore, NamespacedStore
from robopet.engine.events import EventQueue, ProgressEventType
from robopet.models.device import AgeGroup, ComponentType, ToolType
from robopet.services.ledger import ProgressLedger, repair_gems


class FailingBackend(MemoryStore):
    def set(self, key, value):
        return False


class RaisingBackend(MemoryStore):
    """Host store whose disk has gone away."""

    def get(self, key):
        raise RuntimeError("store unavailable")

    def set(self, key, value):
        raise OSError("disk full")


def milestone_events(events):
    return [e.data["milestone_id"] for e in events.drain() if e.type == ProgressEventType.MILESTONE_REACHED]


class TestGemAwards:
    """Gem amounts per activity and age bracket."""

    def test_younger_brackets_earn_more_per_repair(self):
        """The same repair pays more the younger the player."""
        young = repair_gems(90_000, 2, AgeGroup.YOUNG)
        middle = repair_gems(90_000, 2, AgeGroup.MIDDLE)
        older = repair_gems(90_000, 2, AgeGroup.OLDER)
        assert young > middle > older
        assert young >= 10

    def test_repair_award_breakdown(self, ledger):
        # 10 base + 5 quick + 2 per component
        gems = ledger.record_repair_completed(90_000, [ComponentType.POWER_CORE, ComponentType.SENSOR_ARRAY])
        assert gems == 19

    def test_slow_repair_gets_no_quick_bonus(self, ledger):
        """Repairs over two minutes earn only base plus components."""
        assert ledger.record_repair_completed(300_000, [ComponentType.POWER_CORE]) == 12

    def test_diagnostic_award(self, young_ledger, ledger):
        """Diagnostic gems scale with accuracy and the bracket bonus."""
        assert young_ledger.record_diagnostic_completed(30_000, 1.0) == 9
        assert ledger.record_diagnostic_completed(30_000, 0.5) == 3

    def test_customization_award_is_capped(self, ledger):
        """Customizing many items stops paying past the cap."""
        assert ledger.record_customization_completed(10_000, 2) == 5
        assert ledger.record_customization_completed(10_000, 20) == 11


class TestSpending:
    """Spending and granting gems."""

    def test_spend_scenario(self, ledger):
        """50 earned: spending 60 fails, spending 30 leaves 20."""
        ledger.grant_gems(50, "test")
        p = ledger.progress
        assert (p.robo_gems_earned, p.robo_gems_spent) == (50, 0)

        assert ledger.spend_gems(60, "x") is False
        assert ledger.progress.robo_gems_spent == 0

        assert ledger.spend_gems(30, "x") is True
        assert ledger.progress.robo_gems_spent == 30
        assert ledger.available_gems == 20

    @pytest.mark.parametrize("amount", [0, -5])
    def test_non_positive_spend_is_rejected(self, ledger, amount):
        """Zero or negative spends change nothing."""
        ledger.grant_gems(10, "test")
        assert ledger.spend_gems(amount, "x") is False
        assert ledger.progress.robo_gems_spent == 0

    def test_balance_never_negative(self, ledger):
        """Any sequence of spends keeps spent within earned."""
        ledger.record_repair_completed(90_000, [ComponentType.POWER_CORE])
        for amount in (7, 50, 3, 1000, 5, 8, 40):
            ledger.spend_gems(amount, "item")
            p = ledger.progress
            assert p.robo_gems_spent <= p.robo_gems_earned
            assert p.available_gems >= 0

    def test_grant_rejects_negative(self, ledger):
        """A negative grant is a programming error."""
        with pytest.raises(ValueError):
            ledger.grant_gems(-1, "oops")


class TestMilestones:
    """Repair-count milestones and one-off achievements."""

    def test_milestones_follow_repair_count(self, ledger):
        """Each milestone is held exactly when the repair count reaches it."""
        for n in range(1, 12):
            ledger.record_repair_completed(200_000, [ComponentType.POWER_CORE])
            ids = {a.id for a in ledger.progress.achievements}
            assert ("first_repair" in ids) == (n >= 1)
            assert ("repair_apprentice" in ids) == (n >= 5)
            assert ("repair_expert" in ids) == (n >= 10)

    def test_each_milestone_event_is_emitted_once(self, ledger, events):
        """Milestone events fire once each, in order."""
        for _ in range(10):
            ledger.record_repair_completed(200_000, [ComponentType.POWER_CORE])
        assert milestone_events(events) == ["first_repair", "repair_apprentice", "repair_expert"]

    def test_milestones_unlock_tools_and_customizations(self, ledger):
        """Reaching five repairs unlocks the brush and premium colors."""
        for _ in range(5):
            ledger.record_repair_completed(200_000, [ComponentType.POWER_CORE])
        p = ledger.progress
        assert ToolType.CLEANING_BRUSH in p.unlocked_tools
        assert "premium_color_red" in p.unlocked_customizations

    def test_milestone_status(self, ledger):
        """Status reports reached flags, fractional progress and the next target."""
        ledger.record_repair_completed(200_000, [ComponentType.POWER_CORE])
        status = {s.milestone.id: s for s in ledger.milestone_status()}
        assert status["first_repair"].reached is True
        assert status["repair_apprentice"].progress == pytest.approx(0.2)
        assert ledger.next_milestone().id == "repair_apprentice"

    def test_special_achievements(self, ledger):
        """Speed, complexity and perfect diagnosis achievements unlock once."""
        components = [
            ComponentType.POWER_CORE, ComponentType.MOTOR_SYSTEM, ComponentType.SENSOR_ARRAY,
            ComponentType.CHASSIS_PLATING, ComponentType.PROCESSING_UNIT,
        ]
        ledger.record_repair_completed(30_000, components)
        assert ledger.has_achievement("speed_demon")
        assert ledger.has_achievement("complex_repair")

        ledger.record_diagnostic_completed(10_000, 1.0)
        ledger.record_diagnostic_completed(10_000, 1.0)
        ids = [a.id for a in ledger.progress.achievements]
        assert ids.count("perfect_diagnostic") == 1


class TestHistories:
    """Activity records, averages and play sessions."""

    def test_records_are_tagged_by_kind(self, ledger):
        """Every record carries its activity kind."""
        ledger.record_diagnostic_completed(40_000, 0.75, hints_used=2, mistakes=1)
        ledger.record_repair_completed(60_000, [ComponentType.POWER_CORE], tools_used=[ToolType.BATTERY])
        ledger.record_customization_completed(20_000, 3, color_choices=["Red", "blue"], accessory_choices=["hat"])

        assert [r.kind for r in ledger.progress.activity_history] == ["diagnostic", "repair", "customization"]
        assert ledger.diagnostic_history()[0].hints_used == 2
        assert ledger.customization_history()[0].color_choices == ["red", "blue"]

    def test_repairs_teach_concepts(self, ledger):
        """Components and tools used add their concepts once."""
        ledger.record_repair_completed(60_000, [ComponentType.POWER_CORE], tools_used=[ToolType.BATTERY])
        concepts = ledger.progress.stem_metrics.mechanical_concepts_learned
        assert concepts == ["Electrical Systems", "Energy Storage"]

    def test_averages_count_every_activity_past_the_history_limit(self, ledger):
        """Trimming old records does not skew the running averages."""
        ledger.history_limit = 2
        for seconds in (10, 20, 30, 40, 50):
            ledger.record_diagnostic_completed(seconds * 1000, 1.0)
            ledger.record_repair_completed(seconds * 1000, [ComponentType.POWER_CORE])

        metrics = ledger.progress.stem_metrics
        assert len(ledger.progress.activity_history) == 2
        assert metrics.diagnostics_completed == 5
        assert metrics.average_diagnostic_ms == pytest.approx(30_000)
        assert metrics.average_repair_ms == pytest.approx(30_000)

    def test_session_collects_activity_telemetry(self, ledger):
        """A session sums time, mistakes and hints per activity."""
        ledger.start_session()
        ledger.record_diagnostic_completed(40_000, 1.0, hints_used=2, mistakes=1)
        ledger.record_repair_completed(80_000, [ComponentType.POWER_CORE], mistakes=3)
        session = ledger.end_session(duration_ms=600_000)

        assert session.duration_ms == 600_000
        assert session.activities_completed == ["diagnostic", "repair"]
        assert session.hints_requested == 2
        assert session.mistakes_per_activity == 2.0
        assert session.time_distribution == {"diagnostic": 40_000, "repair": 80_000}
        assert len(ledger.session_history()) == 1
        assert ledger.progress.stem_metrics.total_play_time_ms == 600_000

    def test_end_session_without_start(self, ledger):
        """Ending with no open session is a no-op."""
        assert ledger.end_session() is None

    def test_progress_is_a_copy(self, ledger):
        """Callers cannot mutate the ledger through its progress view."""
        ledger.progress.total_repairs = 99
        assert ledger.progress.total_repairs == 0


class TestResetAndPersistence:
    """Reset, reload and storage failures."""

    def test_reset_returns_to_zero_state(self, ledger):
        """Reset clears counters and history but keeps the age group."""
        ledger.record_repair_completed(60_000, [ComponentType.POWER_CORE])
        ledger.spend_gems(5, "hat")
        ledger.reset_progress()

        p = ledger.progress
        assert p.total_repairs == 0
        assert p.robo_gems_earned == 0
        assert p.robo_gems_spent == 0
        assert p.achievements == []
        assert p.activity_history == []
        assert p.age_group == AgeGroup.MIDDLE

    def test_progress_survives_reload(self, store):
        """A second ledger on the same store picks up where the first left off."""
        first = ProgressLedger(store=store, age_group="9-12")
        first.record_repair_completed(60_000, [ComponentType.POWER_CORE])

        second = ProgressLedger(store=store)
        assert second.progress.player_id == first.progress.player_id
        assert second.progress.total_repairs == 1
        assert second.age_group == AgeGroup.OLDER
        assert second.available_gems == first.available_gems

    def test_failed_save_keeps_playing(self):
        """A store that refuses writes is reported, not fatal."""
        ledger = ProgressLedger(store=NamespacedStore(FailingBackend()), events=EventQueue())
        gems = ledger.record_repair_completed(60_000, [ComponentType.POWER_CORE])
        assert ledger.last_save_ok is False
        assert ledger.save() is False
        assert ledger.progress.total_repairs == 1
        assert gems > 0

    def test_raising_store_keeps_playing(self):
        """Errors thrown by the host store become failed saves and empty loads."""
        ledger = ProgressLedger(store=NamespacedStore(RaisingBackend()), events=EventQueue())
        assert ledger.progress.total_repairs == 0

        gems = ledger.record_repair_completed(60_000, [ComponentType.POWER_CORE])
        assert gems > 0
        assert ledger.last_save_ok is False
        assert ledger.progress.total_repairs == 1
        assert ledger.spend_gems(1, "hat") is True

    def test_corrupt_stored_progress_is_discarded(self, store):
        """Stored progress that breaks spent <= earned is replaced by a fresh one."""
        store.write("progress", {"player_id": "p1", "robo_gems_earned": 5, "robo_gems_spent": 9})
        ledger = ProgressLedger(store=store)
        assert ledger.progress.player_id != "p1"
        assert ledger.available_gems == 0
