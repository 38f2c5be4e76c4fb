"""Result output formatters.

Rich table and JSON output for pipeline runs and check suites.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from lucius_build.checks.models import CheckStatus
from lucius_build.models import PipelineState, StageStatus

if TYPE_CHECKING:
    from lucius_build.checks.models import CheckResult, CheckSuiteResult
    from lucius_build.models import PipelineResult


def _status_icon(status: CheckStatus) -> str:
    """Get icon for check status."""
    icons = {
        CheckStatus.PASSED: "✓",
        CheckStatus.FAILED: "✗",
        CheckStatus.WARNING: "⚠",
        CheckStatus.SKIPPED: "-",
        CheckStatus.ERROR: "!",
    }
    return icons.get(status, "?")


def _status_color(status: CheckStatus) -> str:
    """Get color for check status."""
    colors = {
        CheckStatus.PASSED: "green",
        CheckStatus.FAILED: "red",
        CheckStatus.WARNING: "yellow",
        CheckStatus.SKIPPED: "dim",
        CheckStatus.ERROR: "red bold",
    }
    return colors.get(status, "white")


def _state_color(state: PipelineState) -> str:
    if state == PipelineState.READY:
        return "green"
    if state.terminal:
        return "red"
    return "yellow"


def _write_raw(text: str, console: Console) -> None:
    # Raw write keeps JSON parseable
    console.file.write(text + "\n")


# -- Check suites -----------------------------------------------------------


def format_checks_table(result: CheckSuiteResult, console: Console | None = None) -> None:
    """Format check suite results as a Rich table.

    Args:
        result: CheckSuiteResult to display
        console: Optional Rich console (creates one if not provided)
    """
    if console is None:
        console = Console()

    overall_icon = _status_icon(result.overall_status)
    overall_color = _status_color(result.overall_status)
    header_text = Text()
    header_text.append(f"Status: {overall_icon} ", style=overall_color)
    header_text.append(result.overall_status.value.upper(), style=f"bold {overall_color}")
    header_text.append(f"\nChecks: {result.passed_count} passed, {result.failed_count} failed")
    if result.total_duration_ms > 0:
        header_text.append(f"\nDuration: {result.total_duration_ms}ms")

    console.print(Panel(header_text, title=f"[bold]{result.suite.capitalize()} Results[/bold]"))

    table = Table(show_header=True, header_style="bold")
    table.add_column("Status", width=3, justify="center")
    table.add_column("Check", min_width=20)
    table.add_column("Message", min_width=30)
    table.add_column("Duration", justify="right", width=10)

    for check in result.checks:
        color = _status_color(check.status)
        duration = f"{check.duration_ms}ms" if check.duration_ms > 0 else "-"
        table.add_row(
            Text(_status_icon(check.status), style=color),
            Text(check.name, style=color),
            Text(check.message or "-", style="dim" if not check.message else ""),
            duration,
        )

    console.print(table)

    failed_checks = [c for c in result.checks if c.failed]
    if failed_checks:
        console.print()
        console.print("[bold red]Failed Check Details:[/bold red]")
        for check in failed_checks:
            console.print(f"  [red]• {check.name}[/red]: {check.message}", markup=True)
            for key, value in check.details.items():
                console.print(f"    {key}: {value}", style="dim", markup=False)


def checks_to_dict(result: CheckSuiteResult) -> dict[str, Any]:
    """Convert CheckSuiteResult to dictionary for JSON serialization."""
    return {
        "suite": result.suite,
        "status": result.overall_status.value,
        "passed": result.passed,
        "summary": {
            "total": len(result.checks),
            "passed": result.passed_count,
            "failed": result.failed_count,
        },
        "duration_ms": result.total_duration_ms,
        "started_at": result.started_at.isoformat() if result.started_at else None,
        "finished_at": result.finished_at.isoformat() if result.finished_at else None,
        "checks": [_check_to_dict(check) for check in result.checks],
    }


def _check_to_dict(check: CheckResult) -> dict[str, Any]:
    return {
        "name": check.name,
        "status": check.status.value,
        "passed": check.passed,
        "message": check.message,
        "details": check.details,
        "duration_ms": check.duration_ms,
        "timestamp": check.timestamp.isoformat() if check.timestamp else None,
    }


def print_checks(
    result: CheckSuiteResult,
    output_format: str = "table",
    console: Console | None = None,
) -> None:
    """Print check suite results in the specified format ("table" or "json")."""
    if console is None:
        console = Console()

    if output_format == "json":
        _write_raw(json.dumps(checks_to_dict(result), indent=2, default=str), console)
    else:
        format_checks_table(result, console)


# -- Pipeline runs ----------------------------------------------------------


def format_pipeline_table(result: PipelineResult, console: Console | None = None) -> None:
    """Format a pipeline run as a Rich panel plus a per-stage table.

    Args:
        result: PipelineResult to display
        console: Optional Rich console (creates one if not provided)
    """
    if console is None:
        console = Console()

    color = _state_color(result.state)
    header_text = Text()
    header_text.append("State: ", style="bold")
    header_text.append(result.state.value.upper(), style=f"bold {color}")
    if result.image is not None:
        header_text.append(f"\nImage: {result.image.tag}")
        header_text.append(f"\nCommand: {json.dumps(result.image.command)}")
    if result.artifact is not None:
        header_text.append(
            f"\nArtifact: {result.artifact.name} "
            f"({result.artifact.size_bytes} bytes, sha256 {result.artifact.sha256[:12]})"
        )
    header_text.append(f"\nDuration: {result.total_duration_ms}ms")

    console.print(Panel(header_text, title=f"[bold]Build {result.name}[/bold]"))

    table = Table(show_header=True, header_style="bold")
    table.add_column("Stage", min_width=10)
    table.add_column("Status", min_width=10)
    table.add_column("Message", min_width=30)
    table.add_column("Duration", justify="right", width=10)

    for stage in result.stages:
        stage_color = "green" if stage.status == StageStatus.SUCCEEDED else "red"
        table.add_row(
            stage.stage.value,
            Text(stage.status.value, style=stage_color),
            Text(stage.message or "-"),
            f"{stage.duration_ms}ms",
        )

    console.print(table)

    for stage in result.stages:
        log_tail = stage.details.get("log_tail")
        if stage.status == StageStatus.FAILED and log_tail:
            console.print()
            console.print(f"[bold red]{stage.stage.value} output (last lines):[/bold red]")
            for line in log_tail:
                console.print(f"  {line}", style="dim", markup=False, highlight=False)


def print_pipeline_result(
    result: PipelineResult,
    output_format: str = "table",
    console: Console | None = None,
) -> None:
    """Print a pipeline run in the specified format ("table" or "json")."""
    if console is None:
        console = Console()

    if output_format == "json":
        _write_raw(json.dumps(result.to_report(), indent=2, default=str), console)
    else:
        format_pipeline_table(result, console)
