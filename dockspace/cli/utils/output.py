"""Output utilities for dockspace CLI.

Provides print helpers for errors and JSON payloads.
"""

import json
from typing import Any

from dockspace.ui import console


def _print_error(message: str, details: str | None = None) -> None:
    """Print an error message to stderr."""
    console.error(message, details)


def _print_json(payload: dict[str, Any] | list[Any]) -> None:
    """Emit machine-readable output on stdout."""
    console.json(json.dumps(payload, indent=2, sort_keys=True, default=str))

