"""persuader run -- validate a model's output against a schema, retrying until it passes."""

from __future__ import annotations

import importlib
import json
from typing import Any

import click


def load_schema(ref: str) -> Any:
    """Resolve a ``module:attribute`` reference to a schema object.

    Raises:
        click.BadParameter: If the reference is malformed or cannot be imported.
    """
    module_name, sep, attr = ref.partition(":")
    if not sep or not module_name or not attr:
        raise click.BadParameter(
            f"expected 'module:Class', got {ref!r}", param_hint="SCHEMA_REF"
        )
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise click.BadParameter(
            f"cannot import {module_name!r}: {e}", param_hint="SCHEMA_REF"
        ) from None
    obj = module
    for part in attr.split("."):
        try:
            obj = getattr(obj, part)
        except AttributeError:
            raise click.BadParameter(
                f"{module_name!r} has no attribute {attr!r}", param_hint="SCHEMA_REF"
            ) from None
    return obj


def parse_input(text: str) -> Any:
    """JSON input is passed through as data; anything else as plain text."""
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return text


@click.command()
@click.argument("schema_ref")
@click.option(
    "--input", "-i", "input_file",
    type=click.File("r"), default="-",
    help="Input file (JSON or text). Defaults to stdin.",
)
@click.option("--context", "-c", default=None, help="Task instructions.")
@click.option(
    "--context-file", type=click.File("r"), default=None,
    help="Read task instructions from a file.",
)
@click.option("--lens", default=None, help="Extra perspective applied to the task.")
@click.option("--retries", "-r", type=click.IntRange(min=0), default=3, show_default=True,
              help="Corrective attempts after the first.")
@click.option("--enhance", type=click.IntRange(min=0), default=0, show_default=True,
              help="Enhancement rounds after the first valid value.")
@click.option("--session-id", default=None, help="Run inside an existing session.")
@click.option("--language", "output_language", default=None,
              help="Language for text values in the output.")
@click.option("--json", "as_json", is_flag=True, help="Print only the value as JSON.")
@click.option("--quiet", "-q", is_flag=True, help="Hide the attempt table.")
@click.pass_context
def run(
    ctx: click.Context,
    schema_ref: str,
    input_file: Any,
    context: str | None,
    context_file: Any,
    lens: str | None,
    retries: int,
    enhance: int,
    session_id: str | None,
    output_language: str | None,
    as_json: bool,
    quiet: bool,
) -> None:
    """Run SCHEMA_REF (``module:Class``) against the input until it validates.

    Exits with status 1 when the run fails.
    """
    from persuader.cli import _persuader_session
    from persuader.cli.formatting import format_result, format_value
    from persuader.models.request import PipelineRequest

    if context is not None and context_file is not None:
        raise click.UsageError("Use either --context or --context-file, not both.")

    schema = load_schema(schema_ref)
    payload = parse_input(input_file.read())
    task = context_file.read() if context_file is not None else (context or "")

    with _persuader_session(ctx) as (persuader, console):
        result = persuader.persuade(PipelineRequest(
            schema=schema,
            input=payload,
            context=task,
            lens=lens,
            retries=retries,
            model=ctx.obj["model"],
            session_id=session_id,
            enhancement=enhance,
            output_language=output_language,
        ))
        if as_json and result.ok:
            click.echo(format_value(result.value))
        else:
            format_result(result, console, show_attempts=not quiet)
        if not result.ok:
            raise SystemExit(1)
