"""Analyze command handler for dockspace CLI.

Read-only: shows disk usage of the engine root, the per-category breakdown
and the tier suggested by the current pressure level.
"""

import argparse

from dockspace.errors import ProbeError
from dockspace.probe import assess_pressure
from dockspace.ui import render_snapshot

from ..utils.output import _print_error, _print_json
from ..utils.session import Session


class AnalyzeHandler:
    """Handler for analyze command."""

    def __init__(self, session: Session, verbose: bool = False):
        self.session = session
        self.verbose = verbose

    def analyze(self, args: argparse.Namespace) -> int:
        try:
            snapshot = self.session.probe.capture()
        except ProbeError as e:
            _print_error(str(e))
            return 1

        assessment = assess_pressure(snapshot, self.session.config)
        if getattr(args, "json", False):
            payload = snapshot.to_dict()
            payload["pressure"] = {
                "level": assessment.level.value,
                "recommended_tier": assessment.recommended_tier.value if assessment.recommended_tier else None,
                "message": assessment.message,
            }
            _print_json(payload)
        else:
            render_snapshot(snapshot, assessment)
        return 0


def add_analyze_parser(subparsers) -> argparse.ArgumentParser:
    """Add analyze parser to subparsers."""
    analyze_parser = subparsers.add_parser("analyze", help="Show disk usage and reclaimable space")
    analyze_parser.add_argument("--json", action="store_true", help="Output as JSON")
    return analyze_parser
