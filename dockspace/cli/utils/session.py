"""Wiring shared by every command: collaborators built from one config,
plus the gate -> execute -> log pipeline used by the destructive commands.
"""

import logging
import sys
from dataclasses import dataclass

from dockspace.backup import BackupArchiver
from dockspace.catalog import ReclaimCatalog
from dockspace.config import ReclaimConfig
from dockspace.engine import DockerEngine
from dockspace.executor import CancellationToken, ExecutionReporter, exit_code
from dockspace.gate import Confirmer, GateController
from dockspace.models import ReclaimPlan, RunReport
from dockspace.policy import PolicyEngine
from dockspace.probe import StorageProbe
from dockspace.runlog import RunLog
from dockspace.ui import RichConfirmer, console, render_plan, render_report

from .output import _print_json

logger = logging.getLogger(__name__)


@dataclass
class Session:
    config: ReclaimConfig
    engine: DockerEngine
    catalog: ReclaimCatalog
    probe: StorageProbe
    policy: PolicyEngine
    run_log: RunLog

    @classmethod
    def from_config(cls, config: ReclaimConfig, engine: DockerEngine | None = None) -> "Session":
        engine = engine or DockerEngine(config)
        catalog = ReclaimCatalog(engine)
        return cls(
            config=config,
            engine=engine,
            catalog=catalog,
            probe=StorageProbe(engine, config, catalog),
            policy=PolicyEngine(),
            run_log=RunLog(config.run_log_path),
        )


def default_confirmer(assume_yes: bool, json_output: bool) -> Confirmer | None:
    """Interactive confirmer only when a human is actually at the terminal."""
    if assume_yes or json_output or not sys.stdin.isatty():
        return None
    return RichConfirmer()


def reclaim(
    session: Session,
    plan: ReclaimPlan,
    assume_yes: bool = False,
    backup: bool = False,
    json_output: bool = False,
    confirmer: Confirmer | None = None,
) -> int:
    """
    Gate, execute and record a plan.

    Returns:
        Process exit code for the finished run
    """
    if not json_output:
        render_plan(plan)

    gate = GateController(
        archiver=BackupArchiver(session.engine, session.config),
        confirmer=confirmer if confirmer is not None else default_confirmer(assume_yes, json_output),
        backup_enabled=backup,
    )
    authorized, rejections = gate.authorize_plan(plan, assume_yes=assume_yes)

    reporter = ExecutionReporter(session.engine, session.probe)
    token = CancellationToken()
    try:
        with token.on_sigint():
            report = reporter.execute(
                authorized,
                tier=plan.tier,
                root_path=session.config.root_path,
                rejections=rejections,
                notes=plan.notes,
                target_free_bytes=plan.target_free_bytes,
                cancel_check=token,
            )
    finally:
        if reporter.report is not None:
            _record(session, reporter.report)

    if json_output:
        _print_json({"plan": plan.to_dict(), "report": report.to_dict()})
    else:
        render_report(report)
    return exit_code(report)


def _record(session: Session, report: RunReport) -> None:
    try:
        session.run_log.append(report)
    except OSError as e:
        logger.error(f"Failed to write run log {session.run_log.path}: {e}")
        console.warning(f"Run log not updated: {e}")
