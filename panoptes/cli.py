"""``panoptes-create-table`` — render or apply the audit table DDL.

Examples:
    panoptes-create-table --engine postgres                 # print DDL
    panoptes-create-table --engine mysql --output audit.sql # write DDL to a file
    panoptes-create-table --engine sqlite --sqlite-db app.db
    panoptes-create-table --engine oracle --table-name app_audit
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import aiosqlite
import click

from panoptes.audit.schema import get_audit_table_schema
from panoptes.constants import DEFAULT_AUDIT_TABLE, ENGINE_SQLITE, SUPPORTED_ENGINES
from panoptes.utils.logger import get_logger

logger = get_logger(__name__)


def generate_audit_table_sql(engine: str, table_name: str = DEFAULT_AUDIT_TABLE) -> str:
    """Programmatic equivalent of the command: the CREATE script for ``engine``."""
    return get_audit_table_schema(engine, table_name)


async def apply_sqlite_schema(db_path: str, table_name: str = DEFAULT_AUDIT_TABLE) -> None:
    """Create the audit table (and its indexes) in a SQLite database file."""
    async with aiosqlite.connect(db_path) as db:
        await db.executescript(get_audit_table_schema(ENGINE_SQLITE, table_name))
        await db.commit()
    logger.info("audit_table_applied", engine=ENGINE_SQLITE, path=db_path, table=table_name)


@click.command(name="panoptes-create-table")
@click.option(
    "--engine",
    required=True,
    type=click.Choice(SUPPORTED_ENGINES, case_sensitive=False),
    help="Target database engine",
)
@click.option("--table-name", default=DEFAULT_AUDIT_TABLE, show_default=True, help="Audit table name")
@click.option(
    "--output",
    type=click.Path(dir_okay=False, writable=True),
    help="Write the DDL to this file instead of stdout",
)
@click.option(
    "--sqlite-db",
    type=click.Path(dir_okay=False),
    help="Apply the DDL directly to this SQLite database (engine must be sqlite)",
)
def main(engine: str, table_name: str, output: Optional[str], sqlite_db: Optional[str]) -> None:
    """Generate the Panoptes audit table schema for ENGINE."""
    engine = engine.lower()
    ddl = generate_audit_table_sql(engine, table_name)

    if sqlite_db:
        if engine != ENGINE_SQLITE:
            raise click.UsageError("--sqlite-db can only be used with --engine sqlite")
        asyncio.run(apply_sqlite_schema(sqlite_db, table_name))
        click.echo(f"Audit table '{table_name}' is ready in {sqlite_db}")
        return

    if output:
        Path(output).write_text(ddl, encoding="utf-8")
        click.echo(f"Wrote {engine} audit table schema to {output}")
        return

    click.echo(ddl)


if __name__ == "__main__":
    main()
