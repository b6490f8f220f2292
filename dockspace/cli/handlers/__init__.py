"""Dockspace CLI Handlers.

Modular command handlers for dockspace CLI.
"""

from dockspace.cli.handlers.analyze import AnalyzeHandler, add_analyze_parser
from dockspace.cli.handlers.cleanup import CleanupHandler, add_cleanup_parser
from dockspace.cli.handlers.history import HistoryHandler, add_history_parser
from dockspace.cli.handlers.logs import LogsHandler, add_logs_parser
from dockspace.cli.handlers.volumes import VolumesHandler, add_volumes_parser

__all__ = [
    # Analyze
    "AnalyzeHandler",
    "add_analyze_parser",
    # Cleanup
    "CleanupHandler",
    "add_cleanup_parser",
    # History
    "HistoryHandler",
    "add_history_parser",
    # Logs
    "LogsHandler",
    "add_logs_parser",
    # Volumes
    "VolumesHandler",
    "add_volumes_parser",
]
