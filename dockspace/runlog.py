"""
Append-only JSON-lines audit trail of reclamation runs.
"""

import json
import logging
from pathlib import Path
from typing import Any

from dockspace.models import RunReport

logger = logging.getLogger(__name__)


class RunLog:
    """One finalized RunReport per line; existing lines are never rewritten."""

    def __init__(self, path: str | Path):
        self.path = Path(path).expanduser()

    def append(self, report: RunReport) -> None:
        """
        Append a finalized report.

        Raises:
            ValueError: If the report has not been finalized
            OSError: If the log cannot be written
        """
        if not report.finalized:
            raise ValueError("Only finalized reports can be logged")
        self.path.parent.mkdir(parents=True, exist_ok=True)
        line = json.dumps(report.to_dict(), sort_keys=True)
        with open(self.path, "a", encoding="utf-8") as fh:
            fh.write(line + "\n")
        logger.debug(f"Appended run report to {self.path}")

    def read(self, limit: int | None = None) -> list[dict[str, Any]]:
        """Most recent entries first. Corrupt lines are skipped with a warning."""
        if not self.path.exists():
            return []
        entries: list[dict[str, Any]] = []
        with open(self.path, encoding="utf-8") as fh:
            for lineno, line in enumerate(fh, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    entries.append(json.loads(line))
                except json.JSONDecodeError:
                    logger.warning(f"Skipping corrupt run log line {lineno} in {self.path}")
        entries.reverse()
        return entries[:limit] if limit else entries
