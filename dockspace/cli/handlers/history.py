"""History command handler for dockspace CLI.

Lists past runs from the JSON-lines run log.
"""

import argparse

from dockspace.runlog import RunLog
from dockspace.ui import render_history

from ..utils.output import _print_json


class HistoryHandler:
    """Handler for history command."""

    def __init__(self, run_log: RunLog, verbose: bool = False):
        self.run_log = run_log
        self.verbose = verbose

    def history(self, args: argparse.Namespace) -> int:
        entries = self.run_log.read(limit=args.limit)
        if args.json:
            _print_json(entries)
        else:
            render_history(entries)
        return 0


def add_history_parser(subparsers) -> argparse.ArgumentParser:
    """Add history parser to subparsers."""
    history_parser = subparsers.add_parser("history", help="Show past reclamation runs")
    history_parser.add_argument("--limit", type=int, default=20, help="Number of runs to show")
    history_parser.add_argument("--json", action="store_true", help="Output as JSON")
    return history_parser
