"""Tests for the frame loop, event queue, feedback dispatch and report payload."""

import json

from robopet.db.privacy import find_privacy_issues
from robopet.engine.events import EventQueue, InputEvent, ProgressEventType
from robopet.engine.game_loop import GameLoop
from robopet.engine.state_machine import GameState, StateManager
from robopet.models.device import ComponentType, ToolType
from robopet.services.feedback import FeedbackCue, FeedbackDispatcher
from robopet.services.report import build_progress_report
from robopet.states.repair import RepairState

from conftest import BrokenSink, RecordingSink, RecordingView, make_pet, make_problem


class CountingState(GameState):
    name = "counting"

    def __init__(self):
        super().__init__()
        self.deltas = []

    def on_update(self, dt):
        self.deltas.append(dt)


class ExplodingState(GameState):
    name = "exploding"

    def on_update(self, dt):
        raise RuntimeError("boom")


class TestGameLoop:
    """Per-frame update, render and event dispatch."""

    def test_dt_is_clamped(self):
        """Frame time is clamped to zero and the configured maximum."""
        manager = StateManager()
        state = CountingState()
        manager.change_state(state)
        loop = GameLoop(manager, max_delta_ms=100)

        loop.tick(5000)
        loop.tick(-3)
        loop.tick(16)
        assert state.deltas == [100, 0, 16]
        assert loop.frame_count == 3
        assert loop.total_time == 116

    def test_render_follows_update(self):
        """Each tick renders the state it just updated."""
        manager = StateManager()
        view = RecordingView()
        repair = RepairState()
        repair.initialize(make_pet(), [make_problem(ComponentType.POWER_CORE, "low_power")], "6-8")
        manager.change_state(repair)
        GameLoop(manager, view=view).tick(16)
        assert view.snapshots[0].progress.time_elapsed == 16

    def test_failing_state_update_does_not_stop_the_loop(self):
        """A state that raises in update does not stop the frame."""
        manager = StateManager()
        manager.change_state(ExplodingState())
        loop = GameLoop(manager)
        assert loop.tick(16) == 0
        assert loop.frame_count == 1

    def test_events_delivered_once_per_tick(self, ledger, events):
        """Progress events reach subscribers on the next tick, once."""
        received = []
        events.subscribe(ProgressEventType.MILESTONE_REACHED, received.append)
        manager = StateManager()
        repair = RepairState(ledger=ledger)
        repair.initialize(make_pet(), [make_problem(ComponentType.POWER_CORE, "low_power")], "6-8")
        manager.change_state(repair)
        loop = GameLoop(manager, events)

        loop.handle_input(InputEvent.press("4"))
        repair.attempt_repair(next(iter(repair.areas)))
        assert received == []

        assert loop.tick(16) > 0
        assert [e.data["milestone_id"] for e in received] == ["first_repair"]
        assert loop.tick(16) == 0

    def test_run_for(self):
        """run_for splits the time into fixed steps plus a remainder."""
        manager = StateManager()
        state = CountingState()
        manager.change_state(state)
        GameLoop(manager).run_for(100, step_ms=30)
        assert state.deltas == [30, 30, 30, 10]


class TestEventQueue:
    """Queued progress events and their subscribers."""

    def test_failing_subscriber_does_not_block_others(self):
        """One broken subscriber does not starve the rest."""
        queue = EventQueue()
        seen = []

        def bad(event):
            raise ValueError("subscriber bug")

        queue.subscribe(ProgressEventType.GEMS_EARNED, bad)
        queue.subscribe(ProgressEventType.GEMS_EARNED, seen.append)
        queue.publish(ProgressEventType.GEMS_EARNED, {"amount": 5})
        assert queue.dispatch_pending() == 1
        assert seen[0].data == {"amount": 5}

    def test_events_published_during_dispatch_wait(self):
        """Events raised by a subscriber wait for the next dispatch."""
        queue = EventQueue()
        queue.subscribe(
            ProgressEventType.GEMS_SPENT,
            lambda e: queue.publish(ProgressEventType.GEMS_EARNED),
        )
        queue.publish(ProgressEventType.GEMS_SPENT)
        queue.dispatch_pending()
        assert queue.pending == 1

    def test_unsubscribe(self):
        """Unsubscribed callbacks get nothing."""
        queue = EventQueue()
        seen = []
        queue.subscribe(ProgressEventType.PROGRESS_RESET, seen.append)
        queue.unsubscribe(ProgressEventType.PROGRESS_RESET, seen.append)
        queue.publish(ProgressEventType.PROGRESS_RESET)
        queue.dispatch_pending()
        assert seen == []


class TestFeedback:
    """Audio and haptic cue dispatch."""

    def test_intensity_is_clamped(self):
        """Intensity is clamped to 0-100 before it reaches the sink."""
        sink = RecordingSink()
        feedback = FeedbackDispatcher(sink)
        feedback.emit(FeedbackCue.CLEANING, 250)
        feedback.emit("custom", -4)
        assert sink.played == [("cleaning", 100), ("custom", 0)]

    def test_failing_sink_is_swallowed(self):
        """A failing sink is counted, not raised."""
        feedback = FeedbackDispatcher(BrokenSink())
        assert feedback.emit(FeedbackCue.REPAIR_SUCCESS) is False
        assert feedback.failures == 1

    def test_no_sink(self):
        """Without a sink nothing is played."""
        assert FeedbackDispatcher().emit(FeedbackCue.HINT) is False


class TestReport:
    """The progress report payload for parents and teachers."""

    def test_report_is_serializable_and_private(self, ledger):
        """The report dumps to JSON with no personal data in it."""
        ledger.start_session()
        ledger.record_diagnostic_completed(30_000, 1.0, hints_used=1)
        ledger.record_repair_completed(60_000, [ComponentType.POWER_CORE], tools_used=[ToolType.BATTERY])
        ledger.record_customization_completed(20_000, 2, color_choices=["red", "blue"])
        ledger.end_session(duration_ms=300_000)

        report = build_progress_report(ledger)
        payload = report.model_dump(mode="json")
        json.dumps(payload)

        assert find_privacy_issues(payload) == []
        assert payload["summary"]["total_repairs"] == 1
        assert payload["summary"]["sessions_completed"] == 1
        assert len(payload["skill_assessments"]) == 3
        assert any(i["category"] == "recommendation" for i in payload["insights"])
        assert payload["next_steps"]

    def test_empty_ledger_report(self, ledger):
        """A new player gets a zeroed report."""
        report = build_progress_report(ledger)
        assert [a.current_level for a in report.skill_assessments] == [0, 0, 0]
        assert report.learning_pattern.preferred_learning_style == "hands-on"
        assert report.summary.robo_gems_available == 0
