"""
Storage probe: filesystem usage of the engine root plus a per-category
breakdown. Read-only.

A category that cannot be measured is reported as unknown rather than
failing the whole probe; only an unreachable engine or an unreadable root
filesystem aborts ``capture``.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

import psutil

from dockspace.catalog import ReclaimCatalog
from dockspace.config import ReclaimConfig
from dockspace.engine import DockerEngine
from dockspace.errors import EngineError, ProbeError, ProbeErrorKind
from dockspace.models import Category, CategoryUsage, ListFilter, ObjectState, Tier, UsageSnapshot
from dockspace.units import parse_size

logger = logging.getLogger(__name__)

# `system df` type labels
_DF_TYPES = {
    "images": Category.IMAGES,
    "containers": Category.CONTAINERS,
    "local volumes": Category.VOLUMES,
    "build cache": Category.BUILD_CACHE,
}


class StorageProbe:
    """Captures UsageSnapshots for a managed engine root."""

    def __init__(self, engine: DockerEngine, config: ReclaimConfig, catalog: ReclaimCatalog | None = None):
        self.engine = engine
        self.config = config
        self.catalog = catalog or ReclaimCatalog(engine)

    def capture(self, root_path: str | None = None) -> UsageSnapshot:
        """
        Capture current usage.

        Args:
            root_path: Filesystem path to measure (defaults to config.root_path)

        Returns:
            UsageSnapshot with an entry for every Category

        Raises:
            ProbeError: UNREACHABLE if the engine does not answer,
                PERMISSION_DENIED if the root cannot be stat'ed
        """
        root = root_path or self.config.root_path

        try:
            self.engine.ping()
        except EngineError as e:
            raise ProbeError(ProbeErrorKind.UNREACHABLE, f"Container engine unreachable: {e}") from e

        try:
            disk = psutil.disk_usage(root)
        except OSError as e:
            raise ProbeError(ProbeErrorKind.PERMISSION_DENIED, f"Cannot stat {root}: {e}") from e

        per_category = self._engine_usage()
        per_category[Category.NETWORKS] = self._network_usage()
        per_category[Category.LOGS] = self._log_usage()

        snapshot = UsageSnapshot(
            root_path=root,
            total_bytes=disk.total,
            used_bytes=disk.used,
            available_bytes=disk.free,
            used_percent=float(disk.percent),
            per_category={category: per_category[category] for category in Category},
            captured_at=datetime.now(),
        )
        logger.debug(f"Captured usage for {root}: {snapshot.used_percent:.1f}% used")
        return snapshot

    def available_bytes(self, root_path: str | None = None) -> int | None:
        """Free bytes on the root filesystem, or None if it cannot be read."""
        try:
            return psutil.disk_usage(root_path or self.config.root_path).free
        except OSError as e:
            logger.warning(f"Cannot re-measure free space: {e}")
            return None

    def _engine_usage(self) -> dict[Category, CategoryUsage]:
        usage = {
            category: CategoryUsage.unknown(category, "not reported by engine")
            for category in _DF_TYPES.values()
        }
        try:
            rows = self.engine.system_df()
        except EngineError as e:
            logger.warning(f"Per-category usage unavailable: {e}")
            return {category: CategoryUsage.unknown(category, str(e)) for category in usage}

        for row in rows:
            category = _DF_TYPES.get(str(row.get("Type", "")).lower())
            if category is None:
                continue
            total = parse_size(row.get("Size"))
            if total is None:
                usage[category] = CategoryUsage.unknown(category, f"unparseable size {row.get('Size')!r}")
                continue
            usage[category] = CategoryUsage(
                category=category,
                total_bytes=total,
                reclaimable_bytes=parse_size(row.get("Reclaimable")) or 0,
                object_count=int(row.get("TotalCount") or 0),
                active_count=int(row.get("Active") or 0),
            )
        return usage

    def _network_usage(self) -> CategoryUsage:
        try:
            networks = self.catalog.list(Category.NETWORKS, ListFilter.ALL)
        except ProbeError as e:
            return CategoryUsage.unknown(Category.NETWORKS, str(e))
        active = sum(1 for obj in networks if obj.state is ObjectState.IN_USE)
        return CategoryUsage(
            category=Category.NETWORKS,
            object_count=len(networks),
            active_count=active,
        )

    def _log_usage(self) -> CategoryUsage:
        try:
            logs = self.catalog.list(Category.LOGS, ListFilter.ALL)
        except ProbeError as e:
            return CategoryUsage.unknown(Category.LOGS, str(e))

        unreadable = [obj for obj in logs if obj.state is ObjectState.UNKNOWN]
        if unreadable:
            return CategoryUsage.unknown(
                Category.LOGS, f"permission denied reading {len(unreadable)} log file(s)"
            )
        total = sum(obj.size_bytes for obj in logs)
        return CategoryUsage(
            category=Category.LOGS,
            total_bytes=total,
            reclaimable_bytes=total,
            object_count=len(logs),
        )


class PressureLevel(Enum):
    OK = "ok"
    WARNING = "warning"
    CRITICAL = "critical"
    EMERGENCY = "emergency"


_RECOMMENDED_TIER = {
    PressureLevel.OK: None,
    PressureLevel.WARNING: Tier.SAFE,
    PressureLevel.CRITICAL: Tier.AGGRESSIVE,
    PressureLevel.EMERGENCY: Tier.EMERGENCY,
}


@dataclass(frozen=True)
class PressureAssessment:
    level: PressureLevel
    used_percent: float
    recommended_tier: Tier | None
    message: str


def assess_pressure(snapshot: UsageSnapshot, config: ReclaimConfig) -> PressureAssessment:
    """Map disk usage of the root onto a pressure level and a suggested tier."""
    used = snapshot.used_percent
    if used >= config.emergency_percent:
        level = PressureLevel.EMERGENCY
        message = f"Disk is {used:.1f}% full; immediate relief needed"
    elif used >= config.critical_percent:
        level = PressureLevel.CRITICAL
        message = f"Disk is {used:.1f}% full; reclaim unused images"
    elif used >= config.warning_percent:
        level = PressureLevel.WARNING
        message = f"Disk is {used:.1f}% full; a safe cleanup is recommended"
    else:
        level = PressureLevel.OK
        message = f"Disk usage is healthy ({used:.1f}%)"
    return PressureAssessment(
        level=level,
        used_percent=used,
        recommended_tier=_RECOMMENDED_TIER[level],
        message=message,
    )
