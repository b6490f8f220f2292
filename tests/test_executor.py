"""Tests for plan execution, abort rules and exit codes."""

import json
import signal
from unittest.mock import MagicMock

import pytest

from conftest import make_object
from dockspace.errors import (
    EngineCommandError,
    EngineTimeoutError,
    EngineUnreachableError,
    ExecutionErrorKind,
    GateErrorKind,
)
from dockspace.executor import CancellationToken, ExecutionReporter, exit_code
from dockspace.gate import AuthorizedStep
from dockspace.models import (
    AbortReason,
    Category,
    GateRejection,
    ObjectState,
    PlanStep,
    RunReport,
    Tier,
)


def _authorized(category, sizes):
    objects = tuple(make_object(object_id, category, size, ObjectState.UNUSED) for object_id, size in sizes.items())
    step = PlanStep(
        category=category,
        object_ids=tuple(sizes),
        estimated_bytes_freed=sum(sizes.values()),
        objects=objects,
    )
    return AuthorizedStep(step=step)


@pytest.fixture
def reporter(engine):
    return ExecutionReporter(engine)


class TestExecute:
    """Tests for ExecutionReporter.execute."""

    def test_steps_run_in_order(self, engine, reporter):
        steps = [
            _authorized(Category.BUILD_CACHE, {"bc": 100}),
            _authorized(Category.IMAGES, {"img1": 50, "img2": 25}),
            _authorized(Category.CONTAINERS, {"ctr": 5}),
        ]
        report = reporter.execute(steps, tier=Tier.AGGRESSIVE)

        assert engine.deleted == [
            (Category.BUILD_CACHE, "bc"),
            (Category.IMAGES, "img1"),
            (Category.IMAGES, "img2"),
            (Category.CONTAINERS, "ctr"),
        ]
        assert report.total_bytes_freed == 180
        assert [r.step_index for r in report.steps] == [0, 1, 1, 2]
        assert report.finalized
        assert not report.aborted

    def test_single_failure_continues(self, engine, reporter):
        engine.failures = {"img1": EngineCommandError("image is being used by container abc")}
        steps = [
            _authorized(Category.IMAGES, {"img1": 50, "img2": 25, "img3": 10}),
            _authorized(Category.CONTAINERS, {"ctr": 5}),
        ]
        report = reporter.execute(steps)

        assert not report.aborted
        assert len(report.steps) == 4
        assert [r.object_id for r in report.failures] == ["img1"]
        assert report.failures[0].error is ExecutionErrorKind.OBJECT_FAILED
        assert "being used" in report.failures[0].message
        assert report.total_bytes_freed == 40

    def test_majority_failure_aborts_remaining_steps(self, engine, reporter):
        engine.failures = {
            "a": EngineUnreachableError("Cannot connect to the Docker daemon"),
            "b": EngineUnreachableError("Cannot connect to the Docker daemon"),
            "c": EngineTimeoutError("timed out"),
        }
        steps = [
            _authorized(Category.IMAGES, {"a": 1, "b": 1, "c": 1, "d": 1}),
            _authorized(Category.CONTAINERS, {"ctr": 5}),
        ]
        report = reporter.execute(steps)

        assert report.aborted
        assert report.abort_reason is AbortReason.ENGINE_UNREACHABLE
        assert [r.object_id for r in report.steps] == ["a", "b", "c", "d"]
        assert (Category.CONTAINERS, "ctr") not in engine.deleted
        assert report.steps[2].error is ExecutionErrorKind.TIMEOUT

    def test_exactly_half_failing_does_not_abort(self, engine, reporter):
        engine.failures = {"a": EngineCommandError("no"), "b": EngineCommandError("no")}
        steps = [
            _authorized(Category.IMAGES, {"a": 1, "b": 1, "c": 1, "d": 1}),
            _authorized(Category.CONTAINERS, {"ctr": 5}),
        ]
        report = reporter.execute(steps)

        assert not report.aborted
        assert (Category.CONTAINERS, "ctr") in engine.deleted

    def test_cancellation_between_steps(self, engine, reporter):
        calls = iter([False, True])
        steps = [
            _authorized(Category.BUILD_CACHE, {"bc": 100}),
            _authorized(Category.IMAGES, {"img": 50}),
        ]
        report = reporter.execute(steps, cancel_check=lambda: next(calls))

        assert report.aborted
        assert report.abort_reason is AbortReason.CANCELLED
        assert [r.object_id for r in report.steps] == ["bc"]
        assert engine.deleted == [(Category.BUILD_CACHE, "bc")]

    def test_target_reached_stops_early(self, engine, reporter):
        steps = [
            _authorized(Category.BUILD_CACHE, {"bc": 100}),
            _authorized(Category.IMAGES, {"img": 50}),
        ]
        report = reporter.execute(steps, tier=Tier.EMERGENCY, target_free_bytes=80)

        assert report.target_reached
        assert engine.deleted == [(Category.BUILD_CACHE, "bc")]
        assert any("target reached" in note for note in report.notes)

    def test_os_error_recorded_as_object_failure(self, engine, reporter):
        engine.failures = {"img1": PermissionError(13, "Permission denied")}
        steps = [
            _authorized(Category.IMAGES, {"img1": 50, "img2": 25, "img3": 10}),
            _authorized(Category.CONTAINERS, {"ctr": 5}),
        ]
        report = reporter.execute(steps)

        assert not report.aborted
        assert report.failures[0].object_id == "img1"
        assert report.failures[0].error is ExecutionErrorKind.OBJECT_FAILED
        assert (Category.CONTAINERS, "ctr") in engine.deleted

    def test_unexpected_error_still_finalizes_report(self, engine, reporter):
        engine.failures = {"img": RuntimeError("engine client bug")}
        steps = [
            _authorized(Category.BUILD_CACHE, {"bc": 100}),
            _authorized(Category.IMAGES, {"img": 50}),
        ]
        with pytest.raises(RuntimeError):
            reporter.execute(steps, tier=Tier.SAFE)

        report = reporter.report
        assert report.finalized
        assert report.aborted
        assert [r.object_id for r in report.steps] == ["bc"]
        assert any("unexpected error during step 2" in note for note in report.notes)

    def test_backups_of_skipped_steps_are_noted(self, engine, reporter, tmp_path):
        archive = tmp_path / "orphan.tar.gz"
        volume_step = _authorized(Category.VOLUMES, {"orphan": 10})
        steps = [
            _authorized(Category.BUILD_CACHE, {"bc": 100}),
            AuthorizedStep(step=volume_step.step, backups={"orphan": archive}),
        ]
        report = reporter.execute(steps, target_free_bytes=80)

        assert report.target_reached
        assert (Category.VOLUMES, "orphan") not in engine.deleted
        assert any(str(archive) in note and "not removed" in note for note in report.notes)

    def test_backups_of_removed_objects_are_not_noted(self, engine, reporter, tmp_path):
        volume_step = _authorized(Category.VOLUMES, {"orphan": 10})
        steps = [AuthorizedStep(step=volume_step.step, backups={"orphan": tmp_path / "orphan.tar.gz"})]
        report = reporter.execute(steps)

        assert engine.deleted == [(Category.VOLUMES, "orphan")]
        assert not any("not removed" in note for note in report.notes)

    def test_emergency_is_audited(self, reporter):
        steps = [
            _authorized(Category.IMAGES, {"img": 50}),
            _authorized(Category.LOGS, {"ctr": 10}),
        ]
        report = reporter.execute(steps, tier=Tier.EMERGENCY)

        assert report.confirmation_bypassed
        assert report.ungated_categories == ["images", "logs"]

    def test_non_emergency_is_not_marked_bypassed(self, reporter):
        report = reporter.execute([_authorized(Category.IMAGES, {"img": 50})], tier=Tier.SAFE)
        assert not report.confirmation_bypassed
        assert report.ungated_categories == []

    def test_rejections_and_notes_recorded(self, reporter):
        rejection = GateRejection(Category.VOLUMES, GateErrorKind.BACKUP_FAILED, ("vol",), "disk full")
        report = reporter.execute([], rejections=[rejection], notes=["Skipped Logs: usage unknown"])

        assert report.rejections == [rejection]
        assert report.notes == ["Skipped Logs: usage unknown"]

    def test_measured_bytes_from_probe(self, engine):
        probe = MagicMock()
        probe.available_bytes.side_effect = [1_000, 1_600]
        report = ExecutionReporter(engine, probe).execute(
            [_authorized(Category.IMAGES, {"img": 500})], root_path="/var/lib/docker"
        )

        assert report.measured_bytes_freed == 600
        probe.available_bytes.assert_called_with("/var/lib/docker")

    def test_report_serializes(self, engine, reporter):
        engine.failures = {"img": EngineTimeoutError("timed out")}
        report = reporter.execute([_authorized(Category.IMAGES, {"img": 50})], tier=Tier.SAFE)
        data = json.loads(json.dumps(report.to_dict()))

        assert data["tier"] == "safe"
        assert data["steps"][0]["error"] == "timeout"
        assert data["ended_at"] is not None


class TestFinalizedReport:
    """Tests for RunReport immutability after finalize."""

    def test_finalized_report_rejects_changes(self, reporter):
        report = reporter.execute([])
        with pytest.raises(RuntimeError):
            report.note("late")
        with pytest.raises(RuntimeError):
            report.abort(AbortReason.CANCELLED)


class TestExitCode:
    """Tests for the run outcome to exit code mapping."""

    def _report(self, **kwargs):
        report = RunReport(tier=Tier.SAFE)
        for key, value in kwargs.items():
            setattr(report, key, value)
        return report

    def _rejection(self, kind):
        return GateRejection(Category.VOLUMES, kind, ("vol",))

    def test_success(self):
        assert exit_code(self._report()) == 0

    def test_partial_failure(self, engine, reporter):
        engine.failures = {"a": EngineCommandError("no")}
        report = reporter.execute([_authorized(Category.IMAGES, {"a": 1, "b": 1, "c": 1})])
        assert exit_code(report) == 3

    def test_declined(self):
        report = self._report(rejections=[self._rejection(GateErrorKind.CONFIRMATION_REQUIRED)])
        assert exit_code(report) == 2

    @pytest.mark.parametrize("kind", [GateErrorKind.BACKUP_REQUIRED, GateErrorKind.BACKUP_FAILED])
    def test_backup_failure(self, kind):
        assert exit_code(self._report(rejections=[self._rejection(kind)])) == 4

    def test_backup_outranks_decline(self):
        report = self._report(
            rejections=[
                self._rejection(GateErrorKind.CONFIRMATION_REQUIRED),
                self._rejection(GateErrorKind.BACKUP_FAILED),
            ]
        )
        assert exit_code(report) == 4

    def test_unreachable_outranks_everything(self):
        report = self._report(
            aborted=True,
            abort_reason=AbortReason.ENGINE_UNREACHABLE,
            rejections=[self._rejection(GateErrorKind.BACKUP_FAILED)],
        )
        assert exit_code(report) == 1

    def test_cancelled_run_without_failures_is_success(self):
        assert exit_code(self._report(aborted=True, abort_reason=AbortReason.CANCELLED)) == 0


class TestCancellationToken:
    """Tests for the SIGINT-driven cancellation flag."""

    def test_cancel(self):
        token = CancellationToken()
        assert not token()
        token.cancel()
        assert token()

    def test_sigint_sets_flag_and_restores_handler(self):
        token = CancellationToken()
        previous = signal.getsignal(signal.SIGINT)

        with token.on_sigint():
            signal.raise_signal(signal.SIGINT)
            assert token()

        assert signal.getsignal(signal.SIGINT) is previous
