"""Persuader CLI -- run schema-validated prompts from the terminal.

This module is NEVER imported from persuader/__init__.py.
It is only loaded via the ``persuader`` entry point defined in pyproject.toml.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING

try:
    import click
except ImportError:
    raise ImportError(
        "CLI dependencies not installed. Install with: pip install persuader[cli]"
    ) from None

from persuader.cli.formatting import format_error, get_console

if TYPE_CHECKING:
    from collections.abc import Iterator

    from rich.console import Console

    from persuader.orchestrator.loop import Persuader
    from persuader.providers.protocols import ProviderAdapter

PROVIDERS = ("claude-cli", "openai")


@click.group()
@click.option(
    "--provider",
    type=click.Choice(PROVIDERS),
    default="claude-cli",
    envvar="PERSUADER_PROVIDER",
    show_default=True,
    help="Provider back-end.",
)
@click.option(
    "--model",
    default=None,
    envvar="PERSUADER_MODEL",
    help="Model hint passed to the provider.",
)
@click.option(
    "--timeout",
    type=float,
    default=120.0,
    show_default=True,
    help="Per-call provider timeout in seconds.",
)
@click.option("-v", "--verbose", count=True, help="Log to stderr (-vv for debug).")
@click.pass_context
def cli(
    ctx: click.Context,
    provider: str,
    model: str | None,
    timeout: float,
    verbose: int,
) -> None:
    """Persuader: validation-driven retries for structured LLM output."""
    ctx.ensure_object(dict)
    ctx.obj["provider"] = provider
    ctx.obj["model"] = model
    ctx.obj["timeout"] = timeout
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG if verbose > 1 else logging.INFO,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )


def _build_provider(ctx: click.Context) -> ProviderAdapter:
    """Instantiate the provider selected with --provider."""
    name = ctx.obj["provider"]
    timeout = ctx.obj["timeout"]
    if name == "openai":
        from persuader.providers.openai import OpenAIProvider

        if ctx.obj["model"]:
            return OpenAIProvider(default_model=ctx.obj["model"], timeout=timeout)
        return OpenAIProvider(timeout=timeout)

    from persuader.providers.claude_cli import ClaudeCLIProvider

    return ClaudeCLIProvider(timeout=timeout)


def _get_persuader(ctx: click.Context) -> Persuader:
    from persuader.models.config import PersuaderConfig
    from persuader.orchestrator.loop import Persuader

    overrides = {}
    if ctx.obj["model"]:
        overrides["default_model"] = ctx.obj["model"]
    return Persuader(_build_provider(ctx), PersuaderConfig.from_env(**overrides))


@contextmanager
def _persuader_session(ctx: click.Context) -> Iterator[tuple[Persuader, Console]]:
    """Yield (persuader, console), close the persuader, and format errors.

    Any exception escaping the ``with`` block is printed as a CLI error
    and turned into exit code 1.
    """
    console = get_console()
    try:
        persuader = _get_persuader(ctx)
        try:
            yield persuader, console
        finally:
            persuader.close()
    except SystemExit:
        raise
    except click.exceptions.Exit:
        raise
    except Exception as e:
        format_error(str(e), console)
        raise SystemExit(1) from None


# Register subcommands after cli group is defined
from persuader.cli.commands.run import run  # noqa: E402
from persuader.cli.commands.health import health  # noqa: E402
from persuader.cli.commands.session import session  # noqa: E402

cli.add_command(run)
cli.add_command(health)
cli.add_command(session)
