"""persuader health -- probe the configured provider."""

from __future__ import annotations

import click


@click.command()
@click.pass_context
def health(ctx: click.Context) -> None:
    """Send a minimal probe to the provider and report its health."""
    from persuader.cli import _persuader_session
    from persuader.cli.formatting import format_health

    with _persuader_session(ctx) as (persuader, console):
        status = persuader.health()
        format_health(status, persuader.provider_name, console)
        if not status.healthy:
            raise SystemExit(1)
