"""
Execution reporter: runs authorized steps in plan order and records the
outcome of every object into a RunReport.

A failing object never stops its step. A step where more than half of the
objects failed is treated as a systemic failure and the remaining steps
are abandoned.
"""

import logging
import signal
import threading
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager

from dockspace.engine import DockerEngine
from dockspace.errors import EngineError, ExecutionErrorKind, GateErrorKind
from dockspace.gate import AuthorizedStep
from dockspace.models import (
    AbortReason,
    ExecutionResult,
    GateRejection,
    PlanStep,
    RunReport,
    Tier,
)
from dockspace.probe import StorageProbe
from dockspace.units import format_bytes

logger = logging.getLogger(__name__)

MAX_STEP_FAILURE_RATE = 0.5

CancelCheck = Callable[[], bool]


class CancellationToken:
    """Cancellation flag checked between steps.

    ``on_sigint()`` routes Ctrl-C to the flag for the duration of a run so
    the step in flight finishes and is recorded before the run stops.
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    def __call__(self) -> bool:
        return self._event.is_set()

    @contextmanager
    def on_sigint(self) -> Iterator["CancellationToken"]:
        def _handler(signum, frame):
            logger.warning("Cancellation requested; stopping after the current step")
            self.cancel()

        previous = signal.signal(signal.SIGINT, _handler)
        try:
            yield self
        finally:
            signal.signal(signal.SIGINT, previous)


class ExecutionReporter:
    def __init__(self, engine: DockerEngine, probe: StorageProbe | None = None):
        self.engine = engine
        self.probe = probe
        self.report: RunReport | None = None

    def execute(
        self,
        authorized_steps: Sequence[AuthorizedStep],
        tier: Tier | None = None,
        root_path: str = "",
        rejections: Sequence[GateRejection] = (),
        notes: Sequence[str] = (),
        target_free_bytes: int | None = None,
        cancel_check: CancelCheck | None = None,
    ) -> RunReport:
        """
        Execute steps strictly in order.

        The report is also kept on ``self.report`` and is finalized even when
        an unexpected error escapes, so callers can still record it.

        Args:
            authorized_steps: Steps cleared by the gate, in plan order
            tier: Tier the plan was built for (None for manual actions)
            root_path: Engine root, recorded and re-measured after the run
            rejections: Steps the gate refused, recorded for the audit trail
            notes: Planning notes carried into the report
            target_free_bytes: Stop between steps once this many bytes are freed
            cancel_check: Polled before each step; True cancels the run

        Returns:
            Finalized RunReport
        """
        report = self.report = RunReport(tier=tier, root_path=root_path)
        for rejection in rejections:
            report.reject(rejection)
        for message in notes:
            report.note(message)

        if tier is Tier.EMERGENCY:
            report.confirmation_bypassed = True
            report.ungated_categories = [a.step.category.value for a in authorized_steps]
            report.note("Emergency tier: steps executed without confirmation gates")
            logger.warning("Emergency tier: executing without confirmation gates")

        before = self.probe.available_bytes(root_path or None) if self.probe else None
        executed = 0
        try:
            for index, authorized in enumerate(authorized_steps):
                if cancel_check is not None and cancel_check():
                    report.abort(AbortReason.CANCELLED)
                    report.note(f"Cancelled before step {index + 1} of {len(authorized_steps)}")
                    break

                failures = self._run_step(report, authorized.step, index)
                executed = index + 1

                total = len(authorized.step.object_ids)
                if total and failures / total > MAX_STEP_FAILURE_RATE:
                    logger.error(
                        f"{failures}/{total} {authorized.step.category.value} failed; "
                        "aborting remaining steps"
                    )
                    report.abort(AbortReason.ENGINE_UNREACHABLE)
                    break

                if target_free_bytes and target_free_bytes > 0 and report.total_bytes_freed >= target_free_bytes:
                    report.target_reached = True
                    remaining = len(authorized_steps) - executed
                    if remaining:
                        report.note(
                            f"Freed {format_bytes(report.total_bytes_freed)}, target reached; "
                            f"{remaining} step(s) not executed"
                        )
                    break
        except Exception:
            report.abort(AbortReason.ENGINE_UNREACHABLE)
            report.note(f"Run stopped by an unexpected error during step {executed + 1}")
            raise
        finally:
            self._note_unused_backups(report, authorized_steps)
            measured = None
            if before is not None:
                after = self.probe.available_bytes(root_path or None)
                if after is not None:
                    measured = after - before
            report.finalize(measured_bytes_freed=measured)

        logger.info(
            f"Run finished: {format_bytes(report.total_bytes_freed)} freed, "
            f"{len(report.failures)} failure(s), aborted={report.aborted}"
        )
        return report

    @staticmethod
    def _note_unused_backups(report: RunReport, authorized_steps: Sequence[AuthorizedStep]) -> None:
        removed = {result.object_id for result in report.steps if result.succeeded}
        for authorized in authorized_steps:
            for object_id, path in authorized.backups.items():
                if object_id in removed:
                    continue
                report.note(
                    f"Backup of {authorized.step.category.value} {object_id} kept at {path}; "
                    "the object was not removed"
                )

    def _run_step(self, report: RunReport, step: PlanStep, index: int) -> int:
        sizes = step.sizes()
        failures = 0
        for object_id in step.object_ids:
            try:
                self.engine.delete(step.category, object_id)
            except (EngineError, OSError) as e:
                failures += 1
                logger.error(f"Failed to reclaim {step.category.value} {object_id[:12]}: {e}")
                report.record(
                    ExecutionResult(
                        object_id=object_id,
                        category=step.category,
                        succeeded=False,
                        error=e.kind if isinstance(e, EngineError) else ExecutionErrorKind.OBJECT_FAILED,
                        message=str(e),
                        step_index=index,
                    )
                )
                continue
            report.record(
                ExecutionResult(
                    object_id=object_id,
                    category=step.category,
                    succeeded=True,
                    bytes_freed=sizes.get(object_id, 0),
                    step_index=index,
                )
            )
        return failures


def exit_code(report: RunReport) -> int:
    """
    Map a finished run onto the CLI exit code.

    0 success, 1 engine unreachable, 2 confirmation declined,
    3 partial failure, 4 backup required/failed. When several apply the
    precedence is 1 > 4 > 2 > 3.
    """
    if report.aborted and report.abort_reason is AbortReason.ENGINE_UNREACHABLE:
        return 1
    kinds = {rejection.kind for rejection in report.rejections}
    if kinds & {GateErrorKind.BACKUP_REQUIRED, GateErrorKind.BACKUP_FAILED}:
        return 4
    if GateErrorKind.CONFIRMATION_REQUIRED in kinds:
        return 2
    if report.failures:
        return 3
    return 0
