"""Rich-based terminal display layer for pipeline progress.

Provides formatted output for the run header, per-stage completion
markers, the stage table, build history and the final summary.  Uses a
module-level :class:`~rich.console.Console` singleton for consistent
output.
"""

from __future__ import annotations

from typing import Any, Sequence

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from src.pipeline_shared.constants import STAGE_TITLES

# ---------------------------------------------------------------------------
# Module-level Console singleton
# ---------------------------------------------------------------------------

_console = Console()

_STATUS_STYLE = {
    "ok": ("green", "OK"),
    "soft_fail": ("yellow", "SOFT FAIL"),
    "fatal_fail": ("red", "FATAL"),
    "skipped": ("dim", "SKIPPED"),
}

_RUN_STYLE = {
    "success": ("green", "SUCCESS"),
    "unstable": ("yellow", "UNSTABLE"),
    "failure": ("red", "FAILURE"),
}


# ---------------------------------------------------------------------------
# Display functions
# ---------------------------------------------------------------------------


def print_run_header(run: Any) -> None:
    """Print a Rich panel identifying the build run.

    Parameters
    ----------
    run:
        A ``PipelineRun`` instance (or duck-typed dict with
        ``build_number``, ``trigger``, ``ref``, ``revision``).
    """
    header = Text()
    header.append("MEAN Pipeline", style="bold white")
    header.append(" v1.0.0\n", style="dim")
    header.append("Build: ", style="bold")
    header.append(f"#{_get_attr(run, 'build_number', '?')}\n", style="cyan")
    header.append("Trigger: ", style="bold")
    header.append(
        f"{_get_attr(run, 'trigger', 'manual')} ({_get_attr(run, 'ref', '') or '-'})\n",
        style="green",
    )
    revision = _get_attr(run, "revision", "")
    if revision:
        header.append("Revision: ", style="bold")
        header.append(revision, style="yellow")

    _console.print(
        Panel(header, title="[bold]Build Run[/bold]", border_style="blue", expand=False)
    )


def print_stage_start(name: str) -> None:
    """Print the marker that a stage began."""
    _console.print(f"[bold blue]>>[/bold blue] {STAGE_TITLES.get(name, name)}")


def print_stage_result(result: Any) -> None:
    """Print the completion marker for one stage."""
    status = _value(_get_attr(result, "status", "ok"))
    style, label = _STATUS_STYLE.get(status, ("dim", status.upper()))
    name = _get_attr(result, "name", "?")
    duration = _get_attr(result, "duration_seconds", 0.0) or 0.0
    line = f"[{style}]{label}[/{style}] {STAGE_TITLES.get(name, name)} ({duration:.1f}s)"
    reason = _get_attr(result, "reason", "")
    if reason:
        line += f"\n   [dim]{reason}[/dim]"
    _console.print(line)


def print_stage_table(run: Any) -> None:
    """Print a Rich table of every stage result of *run*."""
    table = Table(title="Stages", show_header=True, header_style="bold magenta")
    table.add_column("Stage", style="cyan", min_width=28)
    table.add_column("Policy", justify="center", min_width=10)
    table.add_column("Status", justify="center", min_width=10)
    table.add_column("Duration", justify="right", min_width=9)
    table.add_column("Notes")

    results = _get_attr(run, "stage_results", []) or []
    if not results:
        _console.print("[dim]No stages recorded.[/dim]")
        return

    for result in results:
        name = _get_attr(result, "name", "?")
        status = _value(_get_attr(result, "status", "ok"))
        style, label = _STATUS_STYLE.get(status, ("dim", status.upper()))
        duration = _get_attr(result, "duration_seconds", 0.0) or 0.0
        notes = _get_attr(result, "notes", []) or []
        table.add_row(
            STAGE_TITLES.get(name, name),
            _value(_get_attr(result, "policy", "fatal")),
            f"[{style}]{label}[/{style}]",
            f"{duration:.1f}s" if status != "skipped" else "-",
            ", ".join(notes) or _get_attr(result, "reason", ""),
        )

    _console.print(table)


def print_history_table(runs: Sequence[Any]) -> None:
    """Print one row per retained build run."""
    if not runs:
        _console.print("[dim]No builds recorded.[/dim]")
        return
    table = Table(title="Build History", show_header=True, header_style="bold magenta")
    table.add_column("#", justify="right", style="cyan")
    table.add_column("Trigger")
    table.add_column("Ref")
    table.add_column("Revision")
    table.add_column("Status", justify="center")
    table.add_column("Started")
    for run in runs:
        status = _value(_get_attr(run, "status", None) or "unknown")
        style, label = _RUN_STYLE.get(status, ("dim", status.upper()))
        table.add_row(
            str(_get_attr(run, "build_number", "?")),
            _get_attr(run, "trigger", ""),
            _get_attr(run, "ref", ""),
            (_get_attr(run, "revision", "") or "")[:7],
            f"[{style}]{label}[/{style}]",
            _get_attr(run, "started_at", ""),
        )
    _console.print(table)


def print_error_panel(error: str | Exception) -> None:
    """Print an error message in a red Rich panel."""
    _console.print(
        Panel(
            Text(str(error), style="bold white"),
            title="[bold red]Error[/bold red]",
            border_style="red",
            expand=False,
        )
    )


def print_final_summary(run: Any) -> None:
    """Print the final run summary with status, images and artifacts.

    Parameters
    ----------
    run:
        A finished ``PipelineRun`` instance.
    """
    status = _value(_get_attr(run, "status", None) or "failure")
    style, label = _RUN_STYLE.get(status, ("dim", status.upper()))

    content = Text()
    content.append("Build: ", style="bold")
    content.append(f"#{_get_attr(run, 'build_number', '?')}\n", style="cyan")
    content.append("Status: ", style="bold")
    content.append(f"{label}\n", style=f"bold {style}")

    results = _get_attr(run, "stage_results", []) or []
    executed = [r for r in results if _value(_get_attr(r, "status", "ok")) != "skipped"]
    content.append(f"Stages run: {len(executed)}/{len(results)}\n")

    failures = [
        r for r in results
        if _value(_get_attr(r, "status", "ok")) in ("soft_fail", "fatal_fail")
    ]
    if failures:
        content.append("\nFailures:\n", style="bold")
        for r in failures:
            content.append(f"  {_get_attr(r, 'name', '?')}: {_get_attr(r, 'reason', '')}\n")

    images = _get_attr(run, "images", []) or []
    if images:
        content.append("\nImages:\n", style="bold")
        for image in images:
            ref = image.reference if hasattr(image, "reference") else str(image)
            content.append(f"  {ref}\n")

    archive = _get_attr(run, "archive_path", "")
    if archive:
        content.append("\nArchive: ", style="bold")
        content.append(f"{archive}\n")

    if _get_attr(run, "interrupted", False):
        content.append(f"\nInterrupted: {_get_attr(run, 'interrupt_reason', '')}\n", style="yellow")

    _console.print(
        Panel(
            content,
            title=f"[bold]Build {label.title()}[/bold]",
            border_style=style,
            expand=False,
        )
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _get_attr(obj: Any, name: str, default: Any = None) -> Any:
    """Get attribute from object or dict, with fallback to default."""
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _value(value: Any) -> str:
    """Unwrap enum members to their string value."""
    return value.value if hasattr(value, "value") else str(value)
