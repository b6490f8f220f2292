"""Dockspace command line interface."""

import argparse
import logging
import sys

from dockspace import __version__
from dockspace.config import SUPPORTED_ENGINES, load_config, load_env
from dockspace.gate import Confirmer

from .handlers import (
    AnalyzeHandler,
    CleanupHandler,
    HistoryHandler,
    LogsHandler,
    VolumesHandler,
    add_analyze_parser,
    add_cleanup_parser,
    add_history_parser,
    add_logs_parser,
    add_volumes_parser,
)
from .utils.output import _print_error
from .utils.session import Session

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format=LOG_FORMAT,
        stream=sys.stderr,
        force=True,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dockspace",
        description="Staged disk-space reclamation for Docker and Podman hosts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  dockspace analyze
  dockspace cleanup --tier safe
  dockspace cleanup --tier aggressive --target-free 10GB --yes
  dockspace cleanup --tier nuclear --backup --dry-run
  dockspace logs clean --container web
  dockspace volumes cleanup --backup
  dockspace history --limit 5

Exit codes:
  0 success   1 engine unreachable   2 confirmation declined
  3 partial failure   4 backup required or failed   5 another run holds the lock

Environment Variables:
  DOCKSPACE_ENGINE_BINARY   docker or podman
  DOCKSPACE_ROOT_PATH       engine data root to measure and lock
  DOCKSPACE_RUN_LOG_PATH    JSON-lines run log
        """,
    )
    parser.add_argument("--version", "-V", action="version", version=f"dockspace {__version__}")
    parser.add_argument("--verbose", "-v", action="store_true", help="Show detailed output")
    parser.add_argument("--config", metavar="PATH", help="YAML config file")
    parser.add_argument("--engine", choices=SUPPORTED_ENGINES, help="Container engine CLI")
    parser.add_argument("--root", metavar="PATH", help="Engine data root")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")
    add_analyze_parser(subparsers)
    add_cleanup_parser(subparsers)
    add_logs_parser(subparsers)
    add_volumes_parser(subparsers)
    add_history_parser(subparsers)
    return parser


def dispatch(args: argparse.Namespace, session: Session, confirmer: Confirmer | None = None) -> int:
    """Route parsed arguments to the matching handler."""
    if args.command == "analyze":
        return AnalyzeHandler(session, verbose=args.verbose).analyze(args)
    if args.command == "cleanup":
        return CleanupHandler(session, verbose=args.verbose, confirmer=confirmer).cleanup(args)
    if args.command == "logs":
        return LogsHandler(session, verbose=args.verbose, confirmer=confirmer).logs(args)
    if args.command == "volumes":
        return VolumesHandler(session, verbose=args.verbose, confirmer=confirmer).volumes(args)
    if args.command == "history":
        return HistoryHandler(session.run_log, verbose=args.verbose).history(args)
    _print_error(f"Unknown command: {args.command}")
    return 1


def main(argv: list[str] | None = None) -> int:
    load_env()

    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    if not args.command:
        parser.print_help()
        return 0

    try:
        config = load_config(args.config).with_overrides(
            engine_binary=args.engine,
            root_path=args.root,
        )
        session = Session.from_config(config)
        return dispatch(args, session)
    except KeyboardInterrupt:
        print("\nOperation cancelled", file=sys.stderr)
        return 130
    except (ValueError, OSError) as e:
        _print_error(f"Error: {e}")
        return 1
    except Exception as e:
        _print_error(f"Unexpected error: {e}")
        if args.verbose:
            import traceback

            traceback.print_exc()
        return 1
