"""
Data model for dockspace.

Snapshots and plans are rebuilt on every invocation and never mutated once
handed on. RunReport is the only record that outlives a run: it is appended
to while executing and frozen by ``finalize()``.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from dockspace.errors import ExecutionErrorKind, GateErrorKind


class Category(Enum):
    """Kinds of reclaimable engine storage."""

    CONTAINERS = "containers"
    IMAGES = "images"
    VOLUMES = "volumes"
    BUILD_CACHE = "build_cache"
    LOGS = "logs"
    NETWORKS = "networks"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").title()


# Build cache and unreferenced images carry no data-loss risk, so they are
# reclaimed before anything that can require confirmation.
PRIORITY_ORDER: tuple[Category, ...] = (
    Category.BUILD_CACHE,
    Category.IMAGES,
    Category.CONTAINERS,
    Category.NETWORKS,
    Category.VOLUMES,
    Category.LOGS,
)


class Tier(Enum):
    """Aggressiveness levels, ordered from least to most destructive."""

    SAFE = "safe"
    AGGRESSIVE = "aggressive"
    NUCLEAR = "nuclear"
    EMERGENCY = "emergency"


class ObjectState(Enum):
    DANGLING = "dangling"
    UNUSED = "unused"
    IN_USE = "in_use"
    UNKNOWN = "unknown"


class ListFilter(Enum):
    """Catalog filters. UNUSED also matches dangling objects."""

    DANGLING = "dangling"
    UNUSED = "unused"
    ALL = "all"

    def accepts(self, state: ObjectState) -> bool:
        if self is ListFilter.ALL:
            return True
        if self is ListFilter.DANGLING:
            return state is ObjectState.DANGLING
        return state in (ObjectState.DANGLING, ObjectState.UNUSED)


@dataclass(frozen=True)
class CategoryUsage:
    """Disk usage of one category. ``known`` is False when it could not be measured."""

    category: Category
    total_bytes: int = 0
    reclaimable_bytes: int = 0
    object_count: int = 0
    active_count: int = 0
    known: bool = True
    reason: str | None = None

    @classmethod
    def unknown(cls, category: Category, reason: str) -> "CategoryUsage":
        return cls(category=category, known=False, reason=reason)

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category.value,
            "total_bytes": self.total_bytes,
            "reclaimable_bytes": self.reclaimable_bytes,
            "object_count": self.object_count,
            "active_count": self.active_count,
            "known": self.known,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class UsageSnapshot:
    root_path: str
    total_bytes: int
    used_bytes: int
    available_bytes: int
    used_percent: float
    per_category: dict[Category, CategoryUsage]
    captured_at: datetime = field(default_factory=datetime.now)

    def is_unknown(self, category: Category) -> bool:
        usage = self.per_category.get(category)
        return usage is None or not usage.known

    def to_dict(self) -> dict[str, Any]:
        return {
            "root_path": self.root_path,
            "total_bytes": self.total_bytes,
            "used_bytes": self.used_bytes,
            "available_bytes": self.available_bytes,
            "used_percent": round(self.used_percent, 1),
            "captured_at": self.captured_at.isoformat(),
            "per_category": {
                category.value: usage.to_dict() for category, usage in self.per_category.items()
            },
        }


@dataclass(frozen=True)
class ReclaimableObject:
    """One deletable unit as reported by the engine."""

    id: str
    category: Category
    size_bytes: int
    state: ObjectState
    referenced_by: frozenset[str] = frozenset()
    created_at: datetime | None = None
    name: str | None = None

    @property
    def display_name(self) -> str:
        return self.name or self.id[:12]


@dataclass(frozen=True)
class PlanStep:
    category: Category
    object_ids: tuple[str, ...]
    estimated_bytes_freed: int
    requires_confirmation: bool = False
    requires_backup: bool = False
    objects: tuple[ReclaimableObject, ...] = ()
    description: str = ""

    def sizes(self) -> dict[str, int]:
        return {obj.id: obj.size_bytes for obj in self.objects}

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category.value,
            "description": self.description,
            "object_ids": list(self.object_ids),
            "estimated_bytes_freed": self.estimated_bytes_freed,
            "requires_confirmation": self.requires_confirmation,
            "requires_backup": self.requires_backup,
        }


@dataclass(frozen=True)
class ReclaimPlan:
    tier: Tier | None
    steps: tuple[PlanStep, ...]
    target_free_bytes: int | None = None
    notes: tuple[str, ...] = ()
    manual: bool = False

    @property
    def estimated_bytes_freed(self) -> int:
        return sum(step.estimated_bytes_freed for step in self.steps)

    @property
    def is_empty(self) -> bool:
        return not self.steps

    def to_dict(self) -> dict[str, Any]:
        return {
            "tier": self.tier.value if self.tier else None,
            "manual": self.manual,
            "target_free_bytes": self.target_free_bytes,
            "estimated_bytes_freed": self.estimated_bytes_freed,
            "steps": [step.to_dict() for step in self.steps],
            "notes": list(self.notes),
        }


@dataclass(frozen=True)
class ExecutionResult:
    object_id: str
    category: Category
    succeeded: bool
    bytes_freed: int = 0
    error: ExecutionErrorKind | None = None
    message: str | None = None
    step_index: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "object_id": self.object_id,
            "category": self.category.value,
            "step_index": self.step_index,
            "succeeded": self.succeeded,
            "bytes_freed": self.bytes_freed,
            "error": self.error.value if self.error else None,
            "message": self.message,
        }


@dataclass(frozen=True)
class GateRejection:
    """A plan step excluded from execution by the gate."""

    category: Category
    kind: GateErrorKind
    object_ids: tuple[str, ...]
    message: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category.value,
            "kind": self.kind.value,
            "object_ids": list(self.object_ids),
            "message": self.message,
        }


class AbortReason(Enum):
    ENGINE_UNREACHABLE = "engine_unreachable"
    CANCELLED = "cancelled"


@dataclass
class RunReport:
    """Append-only record of one reclamation run."""

    tier: Tier | None
    root_path: str = ""
    started_at: datetime = field(default_factory=datetime.now)
    ended_at: datetime | None = None
    steps: list[ExecutionResult] = field(default_factory=list)
    rejections: list[GateRejection] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)
    aborted: bool = False
    abort_reason: AbortReason | None = None
    target_reached: bool = False
    confirmation_bypassed: bool = False
    ungated_categories: list[str] = field(default_factory=list)
    measured_bytes_freed: int | None = None
    dry_run: bool = False

    @property
    def finalized(self) -> bool:
        return self.ended_at is not None

    @property
    def total_bytes_freed(self) -> int:
        return sum(result.bytes_freed for result in self.steps if result.succeeded)

    @property
    def failures(self) -> list[ExecutionResult]:
        return [result for result in self.steps if not result.succeeded]

    def _check_open(self) -> None:
        if self.finalized:
            raise RuntimeError("RunReport is finalized and can no longer be modified")

    def record(self, result: ExecutionResult) -> None:
        self._check_open()
        self.steps.append(result)

    def reject(self, rejection: GateRejection) -> None:
        self._check_open()
        self.rejections.append(rejection)

    def note(self, message: str) -> None:
        self._check_open()
        self.notes.append(message)

    def abort(self, reason: AbortReason) -> None:
        self._check_open()
        self.aborted = True
        self.abort_reason = reason

    def finalize(self, measured_bytes_freed: int | None = None) -> None:
        self._check_open()
        self.measured_bytes_freed = measured_bytes_freed
        self.ended_at = datetime.now()

    def to_dict(self) -> dict[str, Any]:
        return {
            "tier": self.tier.value if self.tier else None,
            "root_path": self.root_path,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "total_bytes_freed": self.total_bytes_freed,
            "measured_bytes_freed": self.measured_bytes_freed,
            "aborted": self.aborted,
            "abort_reason": self.abort_reason.value if self.abort_reason else None,
            "target_reached": self.target_reached,
            "confirmation_bypassed": self.confirmation_bypassed,
            "ungated_categories": list(self.ungated_categories),
            "dry_run": self.dry_run,
            "steps": [result.to_dict() for result in self.steps],
            "rejections": [rejection.to_dict() for rejection in self.rejections],
            "notes": list(self.notes),
        }

