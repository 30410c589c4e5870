"""
Run the moderation pipeline from the command line.

Usage:
    huddle sanitize "this is so damn late"
    huddle sanitize --tone formal "gonna need the report"
    huddle sanitize --instruction "Keep it very short." "..."
    huddle sanitize --offline "hello idiot, call me at 555-123-4567"
"""

import asyncio
import json

import click
from loguru import logger

from ...errors import ValidationFailed
from ...services.moderation import ModerationPipeline, ToneDirective


@click.command()
@click.argument("text")
@click.option(
    "--tone",
    "-t",
    type=click.Choice([t.value for t in ToneDirective]),
    default=None,
    help="Tone directive (defaults to MODERATION__DEFAULT_TONE)",
)
@click.option("--instruction", "-i", default=None, help="Replace the tone instruction")
@click.option("--offline", is_flag=True, help="Skip generative backends, use the deterministic rewrite")
def sanitize(text: str, tone: str | None, instruction: str | None, offline: bool):
    """
    Sanitize TEXT and print the result as JSON.

    Backend failures never fail the command; the result shows
    ``succeeded: false`` and the diagnostic instead.
    """
    if not text.strip():
        raise click.BadParameter("text must not be empty", param_hint="TEXT")

    try:
        result = asyncio.run(_sanitize_async(text, tone, instruction, offline))
    except ValidationFailed as e:
        raise click.ClickException(e.message)

    click.echo(json.dumps(result.model_dump(), indent=2, ensure_ascii=False))


async def _sanitize_async(
    text: str, tone: str | None, instruction: str | None, offline: bool
):
    if offline:
        pipeline = ModerationPipeline(backends=[])
        logger.debug("Offline mode: deterministic rewrite only")
        return pipeline.sanitize_offline(text)

    pipeline = ModerationPipeline()
    return await pipeline.sanitize(text, tone=tone, instruction_override=instruction)


def register_command(cli_group):
    """Register the sanitize command."""
    cli_group.add_command(sanitize)
