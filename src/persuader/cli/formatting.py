"""Rich formatting helpers for the Persuader CLI.

Provides functions that format pipeline results for terminal display.
Rich auto-detects TTY and degrades gracefully when piped (no ANSI codes).
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from rich.console import Console
from rich.markup import escape
from rich.table import Table

if TYPE_CHECKING:
    from persuader.models.result import Attempt, PersuadeResult
    from persuader.models.session import InitSessionResult
    from persuader.providers.protocols import ProviderHealth


def get_console() -> Console:
    """Create a Rich Console that auto-detects TTY for graceful pipe degradation."""
    return Console(stderr=False)


def to_jsonable(value: Any) -> Any:
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json")
    return value


def format_value(value: Any) -> str:
    return json.dumps(to_jsonable(value), indent=2, ensure_ascii=False, default=str)


def format_attempts(attempts: tuple[Attempt, ...], console: Console, title: str = "Attempts") -> None:
    """Display one row per attempt."""
    if not attempts:
        console.print("[dim]No attempts.[/dim]")
        return

    table = Table(title=title, show_header=True, header_style="bold", box=None, pad_edge=False)
    table.add_column("#", justify="right", style="yellow")
    table.add_column("Status")
    table.add_column("Time", justify="right", style="dim")
    table.add_column("Tokens", justify="right", style="green")
    table.add_column("Detail")

    for attempt in attempts:
        if attempt.passed:
            status = "[green]passed[/green]"
            detail = ""
        elif attempt.provider_error is not None:
            status = f"[red]{escape(attempt.provider_error_kind or 'error')}[/red]"
            detail = escape(attempt.provider_error)
        else:
            status = "[yellow]invalid[/yellow]"
            detail = escape("; ".join(str(issue) for issue in attempt.issues))
        tokens = str(attempt.token_usage.total_tokens) if attempt.token_usage else "-"
        table.add_row(
            str(attempt.index),
            status,
            f"{attempt.duration_ms:.0f}ms",
            tokens,
            detail,
        )

    console.print(table)


def format_result(result: PersuadeResult, console: Console, *, show_attempts: bool = True) -> None:
    """Display a pipeline result: value or errors, then the attempt log."""
    meta = result.metadata
    if result.ok:
        console.print(
            f"[green]Success[/green] after {result.attempt_count} attempt(s) "
            f"in {meta.execution_time_ms:.0f}ms"
        )
        console.print(escape(format_value(result.value)), highlight=False)
    else:
        reason = result.failure.reason.value if result.failure else "unknown"
        console.print(
            f"[red]Failed[/red] ({reason}) after {result.attempt_count} attempt(s)"
        )
        if result.failure is not None:
            console.print(f"  {escape(result.failure.detail)}", highlight=False)
        for issue in result.errors:
            line = f"  - {issue}"
            if issue.suggestions:
                line += f" (did you mean: {', '.join(issue.suggestions)})"
            console.print(escape(line), highlight=False)

    if result.session_id:
        console.print(f"  Session: [cyan]{escape(result.session_id)}[/cyan]")
    if meta.token_usage is not None:
        console.print(
            f"  Tokens:  {meta.token_usage.input_tokens} in / "
            f"{meta.token_usage.output_tokens} out"
        )
    if meta.cost is not None:
        console.print(f"  Cost:    ${meta.cost:.4f}")
    if meta.enhancement_rounds:
        verdict = "improved" if meta.enhancement_improved else "baseline kept"
        console.print(f"  Enhance: {meta.enhancement_rounds} round(s), {verdict}")

    if show_attempts:
        console.print()
        format_attempts(result.attempts, console)
        if result.enhancement_attempts:
            format_attempts(result.enhancement_attempts, console, title="Enhancement rounds")


def format_health(health: ProviderHealth, name: str, console: Console) -> None:
    if health.healthy:
        console.print(f"[green]{escape(name)} healthy[/green] ({health.response_time_ms:.0f}ms)")
    else:
        console.print(f"[red]{escape(name)} unhealthy[/red] ({health.response_time_ms:.0f}ms)")
        if health.error:
            console.print(f"  {escape(health.error)}", highlight=False)
    for key, value in health.details.items():
        console.print(f"  {escape(str(key))}: {escape(str(value))}", highlight=False)


def format_session(info: InitSessionResult, console: Console) -> None:
    console.print(f"Session: [cyan]{escape(info.session_id)}[/cyan]")
    if info.response:
        console.print(escape(info.response), highlight=False)


def format_error(message: str, console: Console) -> None:
    """Display an error message."""
    console.print(f"[red]Error:[/red] {escape(message)}", highlight=False)
