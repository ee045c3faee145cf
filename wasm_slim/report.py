"""
Pipeline outcome rendering: Rich console text and CI-friendly JSON.
"""

from __future__ import annotations

import json
from typing import Optional

from rich.table import Table

from .budget import BudgetResult, BudgetStatus
from .history import RegressionResult
from .utils import console, format_bytes, format_duration, format_percent


########################################################################
# JSON
########################################################################

def size_info(size_bytes: int) -> dict:
    kb = size_bytes / 1024.0
    mb = kb / 1024.0
    return {
        "bytes": size_bytes,
        "kb": kb,
        "mb": mb,
        "formatted": f"{mb:.2f} MB" if mb >= 1.0 else f"{kb:.2f} KB",
    }


def budget_info(budget: BudgetResult) -> dict:
    info = {"status": budget.status.value, "passed": budget.passed}
    for key, value in (
        ("target_kb", budget.target_kb),
        ("warn_threshold_kb", budget.warn_kb),
        ("max_size_kb", budget.max_kb),
        ("delta_kb", budget.delta_kb),
    ):
        if value is not None:
            info[key] = value
    info["message"] = budget.message
    return info


def regression_info(regression: RegressionResult) -> dict:
    return {
        "is_regression": regression.is_regression,
        "previous_bytes": regression.previous_size,
        "previous_kb": regression.previous_size / 1024.0,
        "diff_bytes": regression.size_diff,
        "diff_kb": regression.size_diff / 1024.0,
        "percent_change": regression.percent_change,
    }


def build_json(result, error: Optional[str] = None) -> dict:
    """JSON outcome for a (possibly partial) pipeline result."""
    output = {"success": error is None and result.success}
    if error is not None:
        output["error"] = error
    if result.dry_run:
        output["dry_run"] = True
        output["changes"] = list(result.changes)
        output["planned"] = list(result.planned)
        return output
    if result.final_size is not None:
        output["size"] = size_info(result.final_size)
    if result.budget is not None:
        output["budget"] = budget_info(result.budget)
    if result.regression is not None:
        output["regression"] = regression_info(result.regression)
    return output


def dumps(data: dict) -> str:
    return json.dumps(data, indent=2)


########################################################################
# Console
########################################################################

_STATUS_STYLE = {
    BudgetStatus.UNDER_TARGET: ("✅", "green"),
    BudgetStatus.ABOVE_TARGET: ("✓", "green"),
    BudgetStatus.WARNING: ("⚠️", "yellow"),
    BudgetStatus.OVER_BUDGET: ("❌", "red"),
}


def print_changes(changes) -> None:
    if not changes:
        console.print("[dim]Cargo.toml already optimized[/]")
        return
    console.print("[bold]Manifest changes:[/]")
    for change in changes:
        console.print(f"   [green]✓[/] {change}")


def print_budget(budget: BudgetResult) -> None:
    icon, color = _STATUS_STYLE[budget.status]
    console.print(f"\n{icon} Size Budget Check: [{color}]{budget.size_kb:.2f} KB[/]")
    console.print(f"   {budget.message}")
    if budget.target_kb is not None:
        console.print(f"   [dim]Target: {budget.target_kb} KB[/]")
    if budget.warn_kb is not None:
        console.print(f"   [dim]Warning: {budget.warn_kb} KB[/]")
    if budget.max_kb is not None:
        exceeded = " (EXCEEDED)" if budget.status is BudgetStatus.OVER_BUDGET else ""
        style = "red" if exceeded else "dim"
        console.print(f"   [{style}]Max: {budget.max_kb} KB{exceeded}[/]")


def print_regression(regression: RegressionResult) -> None:
    if regression.is_regression:
        console.print(
            f"\n[red]⚠️ Size regression: {format_percent(regression.percent_change)} "
            f"({format_bytes(regression.previous_size)} -> {format_bytes(regression.current_size)})[/]"
        )
    else:
        console.print(
            f"\n[dim]Size change since last build: {format_percent(regression.percent_change)} "
            f"({regression.size_diff:+,} bytes)[/]"
        )


def print_result(result) -> None:
    print_changes(result.changes)

    if result.dry_run:
        console.print("\n[yellow]Dry run, no files written and no tools run. Planned steps:[/]")
        for step in result.planned:
            console.print(f"   • {step}")
        return

    table = Table(title="Build stages", show_lines=False)
    table.add_column("Stage")
    table.add_column("Status")
    table.add_column("Size", justify="right")
    table.add_column("Time", justify="right")
    for stage_result in result.stage_results:
        status = "[yellow]skipped[/]" if stage_result.skipped else "[green]ok[/]"
        size = format_bytes(stage_result.size_bytes) if stage_result.size_bytes is not None else "-"
        table.add_row(stage_result.stage.value, status, size, format_duration(stage_result.duration))
    console.print(table)

    metrics = result.metrics
    if metrics is not None:
        console.print(
            f"\n[bold]Size:[/] {format_bytes(metrics.before_bytes)} -> "
            f"[bold green]{format_bytes(metrics.after_bytes)}[/] "
            f"({metrics.reduction_percent:.1f}% reduction)"
        )
    if result.budget is not None:
        print_budget(result.budget)
    if result.regression is not None:
        print_regression(result.regression)
    if result.history_error:
        console.print(f"\n[yellow]Build history not saved: {result.history_error}[/]")
