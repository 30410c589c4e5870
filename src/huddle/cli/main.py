"""
Huddle CLI entry point.

Usage:
    huddle sanitize "hello idiot, call me at 555-123-4567"
    huddle sanitize --tone polite --offline "pls fix this asap"
    huddle db schema
    huddle db init
"""

import sys

import click
from loguru import logger

from ..settings import settings


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
def cli(verbose: bool):
    """Huddle - message lifecycle and content visibility engine."""
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else settings.log_level)


@cli.group()
def db():
    """Database operations (schema, init)."""
    pass


# Register commands
from .commands.db import register_commands as register_db_commands
from .commands.sanitize import register_command as register_sanitize_command

register_db_commands(db)
register_sanitize_command(cli)


def main():
    """Main entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()
