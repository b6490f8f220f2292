"""Table and panel rendering for snapshots, plans, reports and run history."""

from typing import Any

from rich.table import Table
from rich.text import Text

from dockspace.models import RunReport, UsageSnapshot, ReclaimPlan
from dockspace.probe import PressureAssessment
from dockspace.units import format_bytes

from .console import console
from .theme import LEVEL_STYLES, SYMBOLS


def _size(value: int | None) -> str:
    return "-" if value is None else format_bytes(value)


def render_snapshot(snapshot: UsageSnapshot, assessment: PressureAssessment | None = None) -> None:
    summary = Text()
    summary.append(f"Root: {snapshot.root_path}\n", style="bold")
    summary.append(
        f"Used {format_bytes(snapshot.used_bytes)} of {format_bytes(snapshot.total_bytes)} "
        f"({snapshot.used_percent:.1f}%), {format_bytes(snapshot.available_bytes)} free"
    )
    if assessment is not None:
        style = LEVEL_STYLES.get(assessment.level.value, "info")
        summary.append("\nPressure: ")
        summary.append(assessment.level.value.upper(), style=style)
        summary.append(f"  {assessment.message}")
        if assessment.recommended_tier is not None:
            summary.append(f"\nSuggested: dockspace cleanup --tier {assessment.recommended_tier.value}")
    console.panel(summary, title="Disk usage", style="brand")

    table = Table(title="Per-category usage", show_lines=False)
    table.add_column("Category", style="bold")
    table.add_column("Size", justify="right")
    table.add_column("Reclaimable", justify="right")
    table.add_column("Objects", justify="right")
    table.add_column("Active", justify="right")

    for category, usage in snapshot.per_category.items():
        if not usage.known:
            table.add_row(category.label, "[muted]unknown[/]", "-", "-", "-")
            continue
        table.add_row(
            category.label,
            _size(usage.total_bytes),
            _size(usage.reclaimable_bytes),
            str(usage.object_count),
            str(usage.active_count),
        )
    console.print(table)

    for category, usage in snapshot.per_category.items():
        if not usage.known and usage.reason:
            console.secondary(f"{category.label}: {usage.reason}")


def render_plan(plan: ReclaimPlan, dry_run: bool = False) -> None:
    heading = f"{plan.tier.value} plan" if plan.tier else "Manual plan"
    if dry_run:
        heading += " (dry run)"

    if plan.is_empty:
        console.info("Nothing to reclaim")
    else:
        table = Table(title=heading.capitalize())
        table.add_column("#", justify="right", style="secondary")
        table.add_column("Step")
        table.add_column("Objects", justify="right")
        table.add_column("Estimated", justify="right")
        table.add_column("Gate")
        for index, step in enumerate(plan.steps, start=1):
            gates = []
            if step.requires_confirmation:
                gates.append("confirm")
            if step.requires_backup:
                gates.append("backup")
            table.add_row(
                str(index),
                step.description or step.category.label,
                str(len(step.object_ids)),
                format_bytes(step.estimated_bytes_freed),
                ", ".join(gates) or "-",
            )
        console.print(table)
        console.info(f"Estimated total: {format_bytes(plan.estimated_bytes_freed)}")
        if plan.target_free_bytes:
            console.secondary(f"Target: {format_bytes(plan.target_free_bytes)}")

    for note in plan.notes:
        console.secondary(note)


def render_report(report: RunReport) -> None:
    freed = format_bytes(report.total_bytes_freed)
    failures = report.failures

    if report.confirmation_bypassed:
        console.warning(
            "Emergency run: confirmation gates bypassed for "
            + (", ".join(report.ungated_categories) or "no categories")
        )

    for rejection in report.rejections:
        console.warning(f"{rejection.category.label} not executed: {rejection.message}")

    if failures:
        table = Table(title="Failures")
        table.add_column("Object")
        table.add_column("Category")
        table.add_column("Error")
        for result in failures:
            table.add_row(
                result.object_id[:19],
                result.category.label,
                result.message or (result.error.value if result.error else ""),
            )
        console.print(table)

    if report.aborted:
        reason = report.abort_reason.value if report.abort_reason else "unknown"
        console.error(f"Run aborted ({reason}) after freeing {freed}")
    elif failures:
        console.warning(f"Freed {freed} with {len(failures)} failure(s)")
    else:
        console.success(f"Freed {freed}")

    if report.measured_bytes_freed is not None:
        console.secondary(f"Measured change in free space: {format_bytes(report.measured_bytes_freed)}")
    for note in report.notes:
        console.secondary(note)


def render_history(entries: list[dict[str, Any]]) -> None:
    if not entries:
        console.info("No runs recorded yet")
        return

    table = Table(title="Run history")
    table.add_column("Started")
    table.add_column("Tier")
    table.add_column("Freed", justify="right")
    table.add_column("Objects", justify="right")
    table.add_column("Failed", justify="right")
    table.add_column("Status")

    for entry in entries:
        steps = entry.get("steps", [])
        failed = sum(1 for step in steps if not step.get("succeeded"))
        if entry.get("aborted"):
            status = f"[error]{SYMBOLS['error']} {entry.get('abort_reason') or 'aborted'}[/]"
        elif failed or entry.get("rejections"):
            status = f"[warning]{SYMBOLS['warning']} partial[/]"
        else:
            status = f"[success]{SYMBOLS['success']} ok[/]"
        if entry.get("confirmation_bypassed"):
            status += " [muted](ungated)[/]"
        table.add_row(
            str(entry.get("started_at", ""))[:19].replace("T", " "),
            entry.get("tier") or "manual",
            format_bytes(int(entry.get("total_bytes_freed") or 0)),
            str(len(steps)),
            str(failed),
            status,
        )
    console.print(table)
