"""Cleanup command handler for dockspace CLI.

Plans a tiered reclamation run, then gates, executes and records it.
"""

import argparse

from dockspace.errors import ProbeError, RunLockedError
from dockspace.gate import Confirmer
from dockspace.lock import RunLock
from dockspace.models import Tier
from dockspace.ui import console, render_plan
from dockspace.units import parse_size

from ..utils.output import _print_error, _print_json
from ..utils.session import Session, reclaim


def size_argument(value: str) -> int:
    """argparse type for ``--target-free``: raw bytes or a human size."""
    size = parse_size(value)
    if size is None:
        raise argparse.ArgumentTypeError(f"invalid size: {value!r} (try 500MB or 2GiB)")
    return size


class CleanupHandler:
    """Handler for cleanup command."""

    def __init__(self, session: Session, verbose: bool = False, confirmer: Confirmer | None = None):
        self.session = session
        self.verbose = verbose
        self.confirmer = confirmer

    def cleanup(self, args: argparse.Namespace) -> int:
        tier = Tier(args.tier)
        json_output = getattr(args, "json", False)

        if args.dry_run:
            return self._dry_run(tier, args.target_free, json_output)

        try:
            with RunLock(self.session.config.root_path, self.session.config.lock_dir):
                try:
                    snapshot = self.session.probe.capture()
                except ProbeError as e:
                    _print_error(str(e))
                    return 1
                plan = self.session.policy.plan(snapshot, self.session.catalog, tier, args.target_free)
                if tier is Tier.EMERGENCY and not json_output:
                    console.warning("Emergency tier runs without confirmation or backups")
                return reclaim(
                    self.session,
                    plan,
                    assume_yes=args.yes,
                    backup=args.backup,
                    json_output=json_output,
                    confirmer=self.confirmer,
                )
        except RunLockedError as e:
            _print_error(str(e))
            return 5

    def _dry_run(self, tier: Tier, target: int | None, json_output: bool) -> int:
        try:
            snapshot = self.session.probe.capture()
        except ProbeError as e:
            _print_error(str(e))
            return 1
        plan = self.session.policy.plan(snapshot, self.session.catalog, tier, target)
        if json_output:
            _print_json({"dry_run": True, "plan": plan.to_dict()})
        else:
            render_plan(plan, dry_run=True)
            console.info("Dry run - no changes made")
        return 0


def add_cleanup_parser(subparsers) -> argparse.ArgumentParser:
    """Add cleanup parser to subparsers."""
    cleanup_parser = subparsers.add_parser("cleanup", help="Reclaim space by aggressiveness tier")
    cleanup_parser.add_argument(
        "--tier",
        required=True,
        choices=[tier.value for tier in Tier],
        help="How aggressively to reclaim",
    )
    cleanup_parser.add_argument(
        "--target-free",
        type=size_argument,
        default=None,
        metavar="BYTES",
        help="Stop once this much space is freed (e.g. 5GB)",
    )
    cleanup_parser.add_argument("--yes", "-y", action="store_true", help="Confirm all gated steps")
    cleanup_parser.add_argument("--backup", action="store_true", help="Archive volumes before removal")
    cleanup_parser.add_argument("--dry-run", action="store_true", help="Show the plan without executing")
    cleanup_parser.add_argument("--json", action="store_true", help="Output as JSON")
    return cleanup_parser
