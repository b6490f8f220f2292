"""
Shared fixtures for dockspace tests.

FakeEngine stands in for the docker CLI: it serves canned JSON rows and
records every mutation so tests can assert on what would have been run.
"""

import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import pytest

from dockspace.catalog import ReclaimCatalog, sort_key
from dockspace.config import ReclaimConfig
from dockspace.errors import EngineUnreachableError, ProbeError, ProbeErrorKind
from dockspace.models import (
    Category,
    CategoryUsage,
    ObjectState,
    ReclaimableObject,
    UsageSnapshot,
)


class FakeEngine:
    """In-memory replacement for DockerEngine."""

    def __init__(self, config: ReclaimConfig | None = None):
        self.config = config or ReclaimConfig()
        self.reachable = True
        self.df_rows: list[dict[str, Any]] = []
        self.containers: list[dict[str, Any]] = []
        self.images: list[dict[str, Any]] = []
        self.volumes: list[dict[str, Any]] = []
        self.build_cache: list[dict[str, Any]] = []
        self.networks: list[dict[str, Any]] = []
        self.log_paths: dict[str, str] = {}
        self.unreadable_logs: set[str] = set()
        self.failures: dict[str, Exception] = {}
        self.deleted: list[tuple[Category, str]] = []
        self.helper_calls: list[list[str]] = []

    def _check(self) -> None:
        if not self.reachable:
            raise EngineUnreachableError("Cannot connect to the Docker daemon")

    def ping(self) -> str:
        self._check()
        return "27.0.3"

    def system_df(self) -> list[dict[str, Any]]:
        self._check()
        return list(self.df_rows)

    def list_containers(self) -> list[dict[str, Any]]:
        self._check()
        return list(self.containers)

    def list_images(self) -> list[dict[str, Any]]:
        self._check()
        return list(self.images)

    def list_volumes(self) -> list[dict[str, Any]]:
        self._check()
        return list(self.volumes)

    def list_build_cache(self) -> list[dict[str, Any]]:
        self._check()
        return list(self.build_cache)

    def list_networks(self) -> list[dict[str, Any]]:
        self._check()
        return list(self.networks)

    def container_log_paths(self, container_ids: list[str]) -> dict[str, str]:
        self._check()
        return {cid: path for cid, path in self.log_paths.items() if cid in container_ids}

    def log_size(self, log_path: str) -> int | None:
        if log_path in self.unreadable_logs:
            if not self.config.use_sudo_for_logs:
                raise PermissionError(f"Permission denied: '{log_path}'")
            return None
        return os.stat(log_path).st_size

    def delete(self, category: Category, object_id: str) -> None:
        if object_id in self.failures:
            raise self.failures[object_id]
        self.deleted.append((category, object_id))

    def run_helper(self, args: list[str], timeout: float | None = None) -> str:
        self.helper_calls.append(list(args))
        return ""


class StaticCatalog(ReclaimCatalog):
    """Catalog over a fixed set of objects; categories in ``failing`` raise ProbeError."""

    def __init__(self, objects: list[ReclaimableObject] = (), failing: tuple[Category, ...] = ()):
        super().__init__(engine=None)
        self.objects = list(objects)
        self.failing = failing

    def _load(self, category: Category) -> list[ReclaimableObject]:
        if category in self.failing:
            raise ProbeError(ProbeErrorKind.UNREACHABLE, f"Cannot list {category.value}")
        return sorted((obj for obj in self.objects if obj.category is category), key=sort_key)


def make_object(
    object_id: str,
    category: Category,
    size: int,
    state: ObjectState = ObjectState.DANGLING,
    referenced_by: frozenset[str] = frozenset(),
    created_day: int = 1,
    name: str | None = None,
) -> ReclaimableObject:
    return ReclaimableObject(
        id=object_id,
        category=category,
        size_bytes=size,
        state=state,
        referenced_by=referenced_by,
        created_at=datetime(2024, 1, created_day, tzinfo=timezone.utc),
        name=name,
    )


def make_snapshot(unknown: tuple[Category, ...] = (), used_percent: float = 50.0) -> UsageSnapshot:
    per_category = {
        category: (
            CategoryUsage.unknown(category, "permission denied")
            if category in unknown
            else CategoryUsage(category=category, total_bytes=1000, reclaimable_bytes=500)
        )
        for category in Category
    }
    total = 100 * 1000**3
    used = int(total * used_percent / 100)
    return UsageSnapshot(
        root_path="/var/lib/docker",
        total_bytes=total,
        used_bytes=used,
        available_bytes=total - used,
        used_percent=used_percent,
        per_category=per_category,
    )


@pytest.fixture
def config(tmp_path: Path) -> ReclaimConfig:
    return ReclaimConfig(
        root_path=str(tmp_path),
        backup_dir=str(tmp_path / "backups"),
        run_log_path=str(tmp_path / "runs.jsonl"),
        lock_dir=str(tmp_path / "locks"),
        command_timeout=5.0,
    )


@pytest.fixture
def engine(config: ReclaimConfig) -> FakeEngine:
    return FakeEngine(config)
