"""
Backup archiver used by the gate before destructive steps.

Volumes are tarred through a throwaway helper container so the archive
works even when the engine root is not readable by the current user.
Images are exported with ``save``. Nothing else can be archived.
"""

import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Protocol

from dockspace.config import ReclaimConfig
from dockspace.engine import DockerEngine
from dockspace.errors import BackupError, EngineError
from dockspace.models import Category, ReclaimableObject

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]+")


class Archiver(Protocol):
    def archive(self, obj: ReclaimableObject) -> Path: ...


class BackupArchiver:
    """Archives engine objects into ``config.backup_dir``."""

    def __init__(self, engine: DockerEngine, config: ReclaimConfig):
        self.engine = engine
        self.config = config
        self.backup_dir = Path(config.backup_dir).expanduser()

    def _ensure_backup_dir(self) -> Path:
        try:
            self.backup_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise BackupError("-", f"cannot create backup directory {self.backup_dir}: {e}") from e
        return self.backup_dir.resolve()

    @staticmethod
    def _archive_name(obj: ReclaimableObject, suffix: str) -> str:
        stamp = datetime.now().strftime("%Y%m%d-%H%M%S")
        base = _UNSAFE_CHARS.sub("_", obj.name or obj.id.split(":", 1)[-1][:12])
        return f"{obj.category.value}-{base}-{stamp}{suffix}"

    def archive(self, obj: ReclaimableObject) -> Path:
        """
        Archive one object.

        Returns:
            Path of the written archive

        Raises:
            BackupError: If the object cannot be archived or the archive is empty
        """
        if obj.category is Category.VOLUMES:
            target = self._archive_volume(obj)
        elif obj.category is Category.IMAGES:
            target = self._archive_image(obj)
        else:
            raise BackupError(obj.id, f"{obj.category.value} cannot be archived")

        if not target.exists() or target.stat().st_size == 0:
            raise BackupError(obj.id, f"archive {target} is missing or empty")

        logger.info(f"Archived {obj.category.value} {obj.display_name} to {target}")
        return target

    def _archive_volume(self, obj: ReclaimableObject) -> Path:
        backup_dir = self._ensure_backup_dir()
        name = self._archive_name(obj, ".tar.gz")
        try:
            self.engine.run_helper(
                [
                    "run",
                    "--rm",
                    "-v",
                    f"{obj.id}:/source:ro",
                    "-v",
                    f"{backup_dir}:/backup",
                    self.config.backup_image,
                    "tar",
                    "czf",
                    f"/backup/{name}",
                    "-C",
                    "/source",
                    ".",
                ]
            )
        except EngineError as e:
            raise BackupError(obj.id, str(e)) from e
        return backup_dir / name

    def _archive_image(self, obj: ReclaimableObject) -> Path:
        target = self._ensure_backup_dir() / self._archive_name(obj, ".tar")
        try:
            self.engine.run_helper(["save", "-o", str(target), obj.id])
        except EngineError as e:
            raise BackupError(obj.id, str(e)) from e
        return target
