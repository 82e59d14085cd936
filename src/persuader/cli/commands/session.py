"""persuader session -- manage provider sessions."""

from __future__ import annotations

from typing import Any

import click


@click.group()
def session() -> None:
    """Create and inspect provider sessions."""


@session.command("init")
@click.option("--context", "-c", default=None, help="Context the session starts with.")
@click.option(
    "--context-file", type=click.File("r"), default=None,
    help="Read the session context from a file.",
)
@click.option("--prompt", "initial_prompt", default=None, help="Optional first prompt.")
@click.option("--temperature", type=float, default=None, help="Sampling temperature.")
@click.pass_context
def init(
    ctx: click.Context,
    context: str | None,
    context_file: Any,
    initial_prompt: str | None,
    temperature: float | None,
) -> None:
    """Create a session and print its id."""
    from persuader.cli import _persuader_session
    from persuader.cli.formatting import format_session

    if context is not None and context_file is not None:
        raise click.UsageError("Use either --context or --context-file, not both.")
    text = context_file.read() if context_file is not None else context
    if not text:
        raise click.UsageError("A session needs --context or --context-file.")

    with _persuader_session(ctx) as (persuader, console):
        info = persuader.init_session(
            text,
            initial_prompt=initial_prompt,
            model=ctx.obj["model"],
            temperature=temperature,
        )
        format_session(info, console)
