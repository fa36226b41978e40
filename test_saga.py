"""Tests for the saga runner."""

import pytest

from core.observability.metrics import get_metrics
from core.provisioning.saga import Saga, SagaStep


class Recorder:
    """Collects the order in which steps and compensations ran."""

    def __init__(self):
        self.events = []

    def step(self, name, fail=False):
        async def action():
            self.events.append(name)
            if fail:
                raise RuntimeError(f"{name} failed")
        return action


class TestSaga:

    async def test_runs_steps_in_order_and_tracks_state(self):
        rec = Recorder()
        saga = Saga("provision", initial_state="UNPROVISIONED")

        await saga.run([
            SagaStep("a", rec.step("a"), reaches="A_DONE"),
            SagaStep("b", rec.step("b"), reaches="B_DONE"),
        ])

        assert rec.events == ["a", "b"]
        assert saga.completed_steps == ["a", "b"]
        assert saga.state == "B_DONE"
        assert saga.failed_step is None

    async def test_compensates_in_reverse_and_reraises(self):
        rec = Recorder()
        saga = Saga("provision", initial_state="UNPROVISIONED")

        with pytest.raises(RuntimeError, match="c failed"):
            await saga.run([
                SagaStep("a", rec.step("a"), compensation=rec.step("undo-a"), reaches="A_DONE"),
                SagaStep("b", rec.step("b"), compensation=rec.step("undo-b"), reaches="B_DONE"),
                SagaStep("c", rec.step("c", fail=True)),
            ])

        assert rec.events == ["a", "b", "c", "undo-b", "undo-a"]
        assert saga.failed_step == "c"
        assert saga.compensated_steps == ["b", "a"]
        assert saga.state == "UNPROVISIONED"
        assert get_metrics().get_summary()["sagas"]["compensated"] == 2

    async def test_failed_step_is_not_compensated(self):
        rec = Recorder()
        saga = Saga("provision")

        with pytest.raises(RuntimeError):
            await saga.run([SagaStep("a", rec.step("a", fail=True), compensation=rec.step("undo-a"))])

        assert rec.events == ["a"]
        assert saga.compensated_steps == []

    async def test_needs_compensation_predicate(self):
        rec = Recorder()
        saga = Saga("provision")

        with pytest.raises(RuntimeError):
            await saga.run([
                SagaStep("a", rec.step("a"), compensation=rec.step("undo-a"), needs_compensation=lambda: False),
                SagaStep("b", rec.step("b", fail=True)),
            ])

        assert "undo-a" not in rec.events

    async def test_compensation_failure_collected_not_raised(self):
        rec = Recorder()
        saga = Saga("deactivate")

        with pytest.raises(RuntimeError, match="b failed"):
            await saga.run([
                SagaStep("a", rec.step("a"), compensation=rec.step("undo-a", fail=True)),
                SagaStep("b", rec.step("b", fail=True)),
            ])

        assert len(saga.compensation_failures) == 1
        failure = saga.compensation_failures[0]
        assert failure.step == "a"
        assert str(failure.original_error) == "b failed"
        assert str(failure.cause) == "undo-a failed"
        assert saga.compensated_steps == []

        summary = get_metrics().get_summary()["sagas"]
        assert summary["compensation_failed"] == 1
        assert summary["by_type"]["deactivate"]["compensation_failed"] == 1

    async def test_step_timings_recorded(self):
        rec = Recorder()
        await Saga("provision").run([SagaStep("a", rec.step("a"))])
        assert get_metrics().get_timing_stats("provision.a")["sample_count"] == 1
