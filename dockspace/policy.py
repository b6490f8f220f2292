"""
Policy engine: decides what a reclamation run may touch and in what order.

Tiers map to category rules (a category plus the catalog filter used for
it). Rules are walked in a fixed priority order, each producing at most one
batched PlanStep. With a target, planning stops as soon as the estimated
bytes of the steps planned so far reach it.
"""

import logging
from dataclasses import dataclass

from dockspace.catalog import ReclaimCatalog
from dockspace.errors import ProbeError
from dockspace.models import (
    PRIORITY_ORDER,
    Category,
    ListFilter,
    ObjectState,
    PlanStep,
    ReclaimableObject,
    ReclaimPlan,
    Tier,
    UsageSnapshot,
)
from dockspace.units import format_bytes

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CategoryRule:
    category: Category
    list_filter: ListFilter


_SAFE_RULES = (
    CategoryRule(Category.BUILD_CACHE, ListFilter.DANGLING),
    CategoryRule(Category.IMAGES, ListFilter.DANGLING),
    CategoryRule(Category.CONTAINERS, ListFilter.UNUSED),
    CategoryRule(Category.NETWORKS, ListFilter.UNUSED),
)

TIER_RULES: dict[Tier, tuple[CategoryRule, ...]] = {
    Tier.SAFE: _SAFE_RULES,
    Tier.AGGRESSIVE: _SAFE_RULES + (CategoryRule(Category.IMAGES, ListFilter.UNUSED),),
    Tier.NUCLEAR: _SAFE_RULES
    + (
        CategoryRule(Category.IMAGES, ListFilter.UNUSED),
        CategoryRule(Category.VOLUMES, ListFilter.DANGLING),
    ),
}

# Emergency is a fixed sequence, not a merged rule set: everything Safe
# reclaims, then all unused images, then all unused build cache, then logs.
EMERGENCY_SEQUENCE: tuple[CategoryRule, ...] = (
    *sorted(_SAFE_RULES, key=lambda rule: PRIORITY_ORDER.index(rule.category)),
    CategoryRule(Category.IMAGES, ListFilter.UNUSED),
    CategoryRule(Category.BUILD_CACHE, ListFilter.UNUSED),
    CategoryRule(Category.LOGS, ListFilter.UNUSED),
)

_FILTER_WIDTH = {ListFilter.DANGLING: 0, ListFilter.UNUSED: 1, ListFilter.ALL: 2}


def rules_for(tier: Tier) -> tuple[CategoryRule, ...]:
    """Ordered rules for a tier, one per category with the widest filter the tier allows."""
    if tier is Tier.EMERGENCY:
        return EMERGENCY_SEQUENCE

    widest: dict[Category, ListFilter] = {}
    for rule in TIER_RULES[tier]:
        current = widest.get(rule.category)
        if current is None or _FILTER_WIDTH[rule.list_filter] > _FILTER_WIDTH[current]:
            widest[rule.category] = rule.list_filter
    return tuple(
        CategoryRule(category, widest[category]) for category in PRIORITY_ORDER if category in widest
    )


def tier_categories(tier: Tier) -> frozenset[Category]:
    return frozenset(rule.category for rule in rules_for(tier))


def _describe(category: Category, list_filter: ListFilter, count: int) -> str:
    verbs = {
        Category.CONTAINERS: "Remove {n} stopped container(s)",
        Category.NETWORKS: "Remove {n} unused network(s)",
        Category.VOLUMES: "Remove {n} {kind} volume(s)",
        Category.IMAGES: "Remove {n} {kind} image(s)",
        Category.BUILD_CACHE: "Prune {n} {kind} build cache record(s)",
        Category.LOGS: "Truncate {n} container log(s)",
    }
    kind = list_filter.value if list_filter is not ListFilter.ALL else "selected"
    return verbs[category].format(n=count, kind=kind)


class PolicyEngine:
    """Builds ReclaimPlans from a snapshot and a catalog view."""

    def plan(
        self,
        snapshot: UsageSnapshot,
        catalog: ReclaimCatalog,
        tier: Tier,
        target_free_bytes: int | None = None,
    ) -> ReclaimPlan:
        """
        Build the ordered plan for a tier.

        Args:
            snapshot: Current usage; categories it marks unknown are skipped
            catalog: Source of reclaimable objects
            tier: Aggressiveness tier
            target_free_bytes: Stop planning once estimates reach this many
                bytes. None or <= 0 plans every eligible category.

        Returns:
            ReclaimPlan (possibly with no steps)
        """
        target = target_free_bytes if target_free_bytes and target_free_bytes > 0 else None
        return self._build(snapshot, catalog, rules_for(tier), tier, target)

    def plan_category(
        self,
        snapshot: UsageSnapshot,
        catalog: ReclaimCatalog,
        category: Category,
        list_filter: ListFilter = ListFilter.UNUSED,
    ) -> ReclaimPlan:
        """Plan an explicit single-category action (``volumes cleanup``, ``logs clean``)."""
        return self._build(snapshot, catalog, (CategoryRule(category, list_filter),), None, None)

    def plan_manual(
        self,
        catalog: ReclaimCatalog,
        category: Category,
        identifiers: list[str],
    ) -> ReclaimPlan:
        """
        Plan deletion of human-entered ids.

        This is the only path that may target in-use objects, and the
        resulting step always needs explicit confirmation.
        """
        objects = catalog.get(category, identifiers)
        notes = tuple(
            f"{obj.display_name} is in use; removing it may disrupt a running container"
            for obj in objects
            if obj.state is ObjectState.IN_USE
        )
        if not objects:
            return ReclaimPlan(tier=None, steps=(), notes=notes, manual=True)
        step = PlanStep(
            category=category,
            object_ids=tuple(obj.id for obj in objects),
            estimated_bytes_freed=sum(obj.size_bytes for obj in objects),
            requires_confirmation=True,
            requires_backup=category is Category.VOLUMES,
            objects=tuple(objects),
            description=_describe(category, ListFilter.ALL, len(objects)),
        )
        return ReclaimPlan(tier=None, steps=(step,), notes=notes, manual=True)

    def _build(
        self,
        snapshot: UsageSnapshot,
        catalog: ReclaimCatalog,
        rules: tuple[CategoryRule, ...],
        tier: Tier | None,
        target: int | None,
    ) -> ReclaimPlan:
        steps: list[PlanStep] = []
        notes: list[str] = []
        planned: set[str] = set()
        cumulative = 0

        for index, rule in enumerate(rules):
            if target is not None and cumulative >= target:
                skipped = ", ".join(r.category.label for r in rules[index:])
                notes.append(
                    f"Target of {format_bytes(target)} reached by estimate; not planning: {skipped}"
                )
                break

            if snapshot.is_unknown(rule.category):
                reason = snapshot.per_category.get(rule.category)
                detail = f" ({reason.reason})" if reason and reason.reason else ""
                notes.append(f"Skipped {rule.category.label}: usage unknown{detail}")
                continue

            try:
                candidates = catalog.list(rule.category, rule.list_filter)
            except ProbeError as e:
                notes.append(f"Skipped {rule.category.label}: {e}")
                continue

            eligible, blocked = self._select(candidates, planned)
            if blocked:
                notes.append(
                    f"Kept {len(blocked)} {rule.category.label.lower()} still referenced by containers"
                )
            if not eligible:
                continue

            step = self._make_step(rule, eligible, tier)
            steps.append(step)
            planned.update(step.object_ids)
            cumulative += step.estimated_bytes_freed
            logger.debug(
                f"Planned {step.category.value}: {len(step.object_ids)} object(s), "
                f"~{format_bytes(step.estimated_bytes_freed)}"
            )

        return ReclaimPlan(
            tier=tier,
            steps=tuple(steps),
            target_free_bytes=target,
            notes=tuple(notes),
        )

    @staticmethod
    def _select(
        candidates: list[ReclaimableObject], planned: set[str]
    ) -> tuple[list[ReclaimableObject], list[ReclaimableObject]]:
        eligible, blocked = [], []
        for obj in candidates:
            if obj.id in planned or obj.state in (ObjectState.IN_USE, ObjectState.UNKNOWN):
                continue
            # Deleting an object still referenced by something outside the
            # plan would fail in the engine.
            if obj.referenced_by - planned:
                blocked.append(obj)
                continue
            eligible.append(obj)
        return eligible, blocked

    @staticmethod
    def _make_step(rule: CategoryRule, objects: list[ReclaimableObject], tier: Tier | None) -> PlanStep:
        category = rule.category
        if tier is Tier.EMERGENCY:
            confirm = backup = False
        elif category is Category.VOLUMES:
            confirm = backup = True
        elif category is Category.LOGS:
            confirm, backup = True, False
        elif category is Category.IMAGES and tier in (Tier.AGGRESSIVE, Tier.NUCLEAR):
            confirm = any(obj.state is not ObjectState.DANGLING for obj in objects)
            backup = False
        else:
            confirm = backup = False

        return PlanStep(
            category=category,
            object_ids=tuple(obj.id for obj in objects),
            estimated_bytes_freed=sum(obj.size_bytes for obj in objects),
            requires_confirmation=confirm,
            requires_backup=backup,
            objects=tuple(objects),
            description=_describe(category, rule.list_filter, len(objects)),
        )
