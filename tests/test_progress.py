"""Tests for the step tracker and the event bus."""

from __future__ import annotations

from factscout.events import CompletionEvent, ErrorEvent, EventBus, ProgressEvent, StepEvent, event_to_dict
from factscout.progress import DEFAULT_STEPS, StepStatus, StepTracker


def _collect(bus: EventBus) -> list:
    seen: list = []
    bus.subscribe(seen.append)
    return seen


class TestStepTracker:
    def test_default_steps_start_pending(self) -> None:
        tracker = StepTracker()
        assert [s.id for s in tracker.steps] == [step_id for step_id, _ in DEFAULT_STEPS]
        assert all(s.status is StepStatus.PENDING for s in tracker.steps)

    def test_complete_advances_next_pending_step(self) -> None:
        tracker = StepTracker()
        tracker.start("init")
        tracker.complete("init", "ready")

        assert tracker.get("init").status is StepStatus.COMPLETED
        assert tracker.get("init").detail == "ready"
        assert tracker.get("page-load").status is StepStatus.IN_PROGRESS
        assert tracker.get("dom-analyze").status is StepStatus.PENDING

    def test_transitions_never_go_backwards(self) -> None:
        tracker = StepTracker([("a", "A")])
        tracker.start("a")
        tracker.complete("a")

        assert tracker.start("a") is False
        assert tracker.fail("a") is False
        assert tracker.get("a").status is StepStatus.COMPLETED

    def test_pending_step_can_fail_directly(self) -> None:
        tracker = StepTracker([("a", "A")])
        assert tracker.fail("a", "skipped") is True
        assert tracker.get("a").status is StepStatus.FAILED

    def test_unknown_step_is_ignored(self) -> None:
        tracker = StepTracker([("a", "A")])
        assert tracker.start("nope") is False

    def test_declare_is_idempotent(self) -> None:
        tracker = StepTracker([("a", "A")])
        tracker.start("a")
        step = tracker.declare("a", "Other label")
        assert step.label == "A"
        assert step.status is StepStatus.IN_PROGRESS
        assert len(tracker.steps) == 1

    def test_each_transition_is_published(self) -> None:
        bus = EventBus()
        seen = _collect(bus)
        tracker = StepTracker([("a", "A"), ("b", "B")], events=bus)

        tracker.start("a")
        tracker.complete("a")
        tracker.fail("b", "boom")

        assert [(e.step_id, e.status) for e in seen] == [
            ("a", "in-progress"),
            ("a", "completed"),
            ("b", "in-progress"),
            ("b", "failed"),
        ]
        assert seen[-1].detail == "boom"


class TestEventBus:
    def test_fan_out_to_every_subscriber(self) -> None:
        bus = EventBus()
        first, second = _collect(bus), _collect(bus)
        bus.publish(ErrorEvent("x"))
        assert first == second == [ErrorEvent("x")]

    def test_unsubscribe_stops_delivery(self) -> None:
        bus = EventBus()
        seen: list = []
        unsubscribe = bus.subscribe(seen.append)
        unsubscribe()
        bus.publish(ErrorEvent("x"))
        assert seen == []

    def test_failing_subscriber_does_not_block_others(self) -> None:
        bus = EventBus()

        def _boom(_event) -> None:
            raise RuntimeError("subscriber bug")

        bus.subscribe(_boom)
        seen = _collect(bus)
        bus.publish(ProgressEvent(50.0, "half"))
        assert len(seen) == 1

    def test_event_to_dict_tags_event_kind(self) -> None:
        assert event_to_dict(ProgressEvent(10.0, "m"))["event"] == "progress"
        assert event_to_dict(CompletionEvent({"ok": True})) == {"result": {"ok": True}, "event": "done"}
        assert event_to_dict(StepEvent("a", "A", "completed"))["status"] == "completed"
