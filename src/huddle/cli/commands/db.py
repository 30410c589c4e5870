"""
Database management commands.

Usage:
    huddle db schema                 # Print the chat schema DDL
    huddle db init                   # Apply the schema to POSTGRES__CONNECTION_STRING
    huddle db init -c postgresql://...
"""

import asyncio

import click
from loguru import logger

from ...errors import ResourceUnavailable
from ...services.persistence.postgres import SCHEMA_SQL, PostgresChatStore


@click.command()
def schema():
    """Print the PostgreSQL DDL for messages, conversations, reactions and receipts."""
    click.echo(SCHEMA_SQL.strip())


@click.command()
@click.option(
    "--connection",
    "-c",
    help="PostgreSQL connection string (overrides environment)",
)
def init(connection: str | None):
    """Create the chat tables (idempotent)."""
    try:
        asyncio.run(_init_async(connection))
    except ResourceUnavailable as e:
        raise click.ClickException(e.message)


async def _init_async(connection: str | None) -> None:
    store = PostgresChatStore(connection_string=connection)
    await store.connect()
    try:
        await store.apply_schema()
        logger.success("Database initialized")
    finally:
        await store.disconnect()


def register_commands(db_group):
    """Register all db commands."""
    db_group.add_command(schema)
    db_group.add_command(init)
