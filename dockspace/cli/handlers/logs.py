"""Logs command handler for dockspace CLI.

Truncates container json logs, for one container or all of them.
"""

import argparse

from dockspace.errors import ProbeError, RunLockedError
from dockspace.gate import Confirmer
from dockspace.lock import RunLock
from dockspace.models import Category

from ..utils.output import _print_error
from ..utils.session import Session, reclaim


class LogsHandler:
    """Handler for logs command."""

    def __init__(self, session: Session, verbose: bool = False, confirmer: Confirmer | None = None):
        self.session = session
        self.verbose = verbose
        self.confirmer = confirmer

    def logs(self, args: argparse.Namespace) -> int:
        if args.logs_action != "clean":
            _print_error("Usage: dockspace logs clean [--container ID]")
            return 1
        return self._clean(args)

    def _clean(self, args: argparse.Namespace) -> int:
        try:
            with RunLock(self.session.config.root_path, self.session.config.lock_dir):
                try:
                    snapshot = self.session.probe.capture()
                except ProbeError as e:
                    _print_error(str(e))
                    return 1
                if args.container:
                    plan = self.session.policy.plan_manual(
                        self.session.catalog, Category.LOGS, [args.container]
                    )
                else:
                    plan = self.session.policy.plan_category(snapshot, self.session.catalog, Category.LOGS)
                return reclaim(
                    self.session,
                    plan,
                    assume_yes=args.yes,
                    json_output=args.json,
                    confirmer=self.confirmer,
                )
        except RunLockedError as e:
            _print_error(str(e))
            return 5


def add_logs_parser(subparsers) -> argparse.ArgumentParser:
    """Add logs parser to subparsers."""
    logs_parser = subparsers.add_parser("logs", help="Container log maintenance")
    logs_subs = logs_parser.add_subparsers(dest="logs_action", help="Log actions")

    clean_parser = logs_subs.add_parser("clean", help="Truncate container log files")
    clean_parser.add_argument("--container", metavar="ID", help="Only this container's log")
    clean_parser.add_argument("--yes", "-y", action="store_true", help="Skip the confirmation prompt")
    clean_parser.add_argument("--json", action="store_true", help="Output as JSON")
    return logs_parser
