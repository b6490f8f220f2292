"""Volumes command handler for dockspace CLI.

Removes dangling volumes, or the named ones. Volume removal always needs
confirmation and an archive of each volume (``--backup``).
"""

import argparse

from dockspace.errors import ProbeError, RunLockedError
from dockspace.gate import Confirmer
from dockspace.lock import RunLock
from dockspace.models import Category, ListFilter

from ..utils.output import _print_error
from ..utils.session import Session, reclaim


class VolumesHandler:
    """Handler for volumes command."""

    def __init__(self, session: Session, verbose: bool = False, confirmer: Confirmer | None = None):
        self.session = session
        self.verbose = verbose
        self.confirmer = confirmer

    def volumes(self, args: argparse.Namespace) -> int:
        if args.volumes_action != "cleanup":
            _print_error("Usage: dockspace volumes cleanup [--backup] [--volume NAME ...]")
            return 1
        return self._cleanup(args)

    def _cleanup(self, args: argparse.Namespace) -> int:
        try:
            with RunLock(self.session.config.root_path, self.session.config.lock_dir):
                try:
                    snapshot = self.session.probe.capture()
                except ProbeError as e:
                    _print_error(str(e))
                    return 1
                if args.volume:
                    plan = self.session.policy.plan_manual(self.session.catalog, Category.VOLUMES, args.volume)
                else:
                    plan = self.session.policy.plan_category(
                        snapshot, self.session.catalog, Category.VOLUMES, ListFilter.DANGLING
                    )
                return reclaim(
                    self.session,
                    plan,
                    assume_yes=args.yes,
                    backup=args.backup,
                    json_output=args.json,
                    confirmer=self.confirmer,
                )
        except RunLockedError as e:
            _print_error(str(e))
            return 5


def add_volumes_parser(subparsers) -> argparse.ArgumentParser:
    """Add volumes parser to subparsers."""
    volumes_parser = subparsers.add_parser("volumes", help="Volume maintenance")
    volumes_subs = volumes_parser.add_subparsers(dest="volumes_action", help="Volume actions")

    cleanup_parser = volumes_subs.add_parser("cleanup", help="Remove dangling volumes")
    cleanup_parser.add_argument("--backup", action="store_true", help="Archive each volume before removal")
    cleanup_parser.add_argument(
        "--volume",
        action="append",
        metavar="NAME",
        help="Remove this volume even if not dangling (repeatable)",
    )
    cleanup_parser.add_argument("--yes", "-y", action="store_true", help="Skip the confirmation prompt")
    cleanup_parser.add_argument("--json", action="store_true", help="Output as JSON")
    return volumes_parser
