"""DatabaseTransport — one INSERT per audit event into the audit table.

Driver calling conventions (async drivers only):
    postgres  asyncpg Connection/Pool     fetchval() / execute(sql, *args)
    mysql     aiomysql Connection         async with cursor(): execute(sql, args)
    mssql     aioodbc Connection          async with cursor(): execute(sql, *args)
    sqlite    aiosqlite Connection        execute(sql, args); commit() if no transaction was open
    oracle    oracledb AsyncConnection    with cursor(): await execute(sql, args); same commit rule

The sink never commits a transaction it did not start. When the client is the
application's own connection mid-transaction, the audit row joins that
transaction and is kept or rolled back with it. A dedicated aiomysql or
aioodbc audit connection needs ``autocommit=True``.

Auto-provisioning (``auto_create_table=True``), tracked per client handle:

    UNVERIFIED ──probe──▶ (missing? run CREATE script) ──▶ VERIFIED

VERIFIED is terminal for the life of the process: the probe is not repeated
even if the table is dropped later. Two first-inserts racing on one handle may
both probe and both create; the CREATE scripts are idempotent, so both win.
Without ``auto_create_table`` the table is assumed to exist.

All failures are logged at ERROR and swallowed: a down audit database never
surfaces in the application.
"""

from __future__ import annotations

from typing import Any, Optional

from panoptes.audit import schema
from panoptes.audit.models import AuditEvent
from panoptes.constants import (
    DEFAULT_AUDIT_TABLE,
    ENGINE_MSSQL,
    ENGINE_MYSQL,
    ENGINE_ORACLE,
    ENGINE_POSTGRES,
    ENGINE_SQLITE,
    TRANSPORT_DATABASE,
)
from panoptes.utils.logger import get_logger

logger = get_logger(__name__)


# ─── Provisioning state ───────────────────────────────────────────────────────


class TableProvisioner:
    """Tracks which client handles have a verified audit table.

    Keyed by object identity; the handle itself is kept alive alongside its id
    so a recycled id can never be mistaken for a verified client.
    """

    def __init__(self) -> None:
        self._verified: dict[int, Any] = {}

    def is_verified(self, client: Any) -> bool:
        return self._verified.get(id(client)) is client

    def mark_verified(self, client: Any) -> None:
        self._verified[id(client)] = client

    async def ensure_table(self, client: Any, engine: str, table_name: str) -> None:
        if self.is_verified(client):
            return

        exists = await _table_exists(client, engine, table_name)
        if exists:
            logger.info("audit_table_exists", table=table_name, engine=engine)
        else:
            logger.info("audit_table_creating", table=table_name, engine=engine)
            await _create_table(client, engine, table_name)
            logger.info("audit_table_created", table=table_name, engine=engine)
        self.mark_verified(client)

    def reset(self) -> None:
        self._verified.clear()


provisioner = TableProvisioner()


# ─── DatabaseTransport ────────────────────────────────────────────────────────


class DatabaseTransport:
    name = TRANSPORT_DATABASE

    def __init__(
        self,
        client: Any,
        engine: Optional[str],
        table_name: str = DEFAULT_AUDIT_TABLE,
        auto_create_table: bool = False,
        table_provisioner: Optional[TableProvisioner] = None,
    ) -> None:
        # Audit writes go to the raw driver object, never through an AuditedClient.
        self._client = getattr(client, "__wrapped__", client)
        self._engine = (engine or "").lower()
        self._table_name = table_name
        self._auto_create_table = auto_create_table
        self._provisioner = table_provisioner or provisioner

    async def send(self, event: AuditEvent) -> None:
        try:
            owns_commit = _sink_owns_commit(self._client, self._engine)
            if self._auto_create_table:
                await self._provisioner.ensure_table(self._client, self._engine, self._table_name)

            row = schema.flatten_event(event, self._engine)
            sql, values = schema.build_insert(self._engine, self._table_name, row)
            await _execute(self._client, self._engine, sql, values)
            if owns_commit:
                await self._client.commit()
        except Exception as exc:
            logger.error(
                "database_transport_failed",
                table=self._table_name,
                engine=self._engine,
                error=str(exc),
                error_type=type(exc).__name__,
            )


# ─── Per-engine driver calls ──────────────────────────────────────────────────


async def _table_exists(client: Any, engine: str, table_name: str) -> bool:
    query = schema.table_exists_query(engine)

    if engine == ENGINE_POSTGRES:
        return bool(await client.fetchval(query, table_name))

    if engine == ENGINE_SQLITE:
        async with client.execute(query, (table_name,)) as cursor:
            return await cursor.fetchone() is not None

    if engine == ENGINE_MYSQL:
        async with client.cursor() as cursor:
            await cursor.execute(query, (table_name,))
            return bool(await cursor.fetchall())

    if engine == ENGINE_MSSQL:
        async with client.cursor() as cursor:
            await cursor.execute(query, table_name)
            row = await cursor.fetchone()
            return row is not None and row[0] is not None

    if engine == ENGINE_ORACLE:
        with client.cursor() as cursor:
            await cursor.execute(query, [table_name])
            row = await cursor.fetchone()
            return row is not None and row[0] > 0

    raise ValueError(f"Unsupported database engine: {engine}")


async def _create_table(client: Any, engine: str, table_name: str) -> None:
    if engine == ENGINE_POSTGRES:
        await client.execute(schema.get_audit_table_schema(engine, table_name))
    elif engine == ENGINE_SQLITE:
        # executescript() would COMMIT the connection's pending transaction first.
        for statement in schema.sqlite_statements(table_name):
            await client.execute(statement)
    elif engine in (ENGINE_MYSQL, ENGINE_MSSQL):
        async with client.cursor() as cursor:
            await cursor.execute(schema.get_audit_table_schema(engine, table_name))
    elif engine == ENGINE_ORACLE:
        with client.cursor() as cursor:
            await cursor.execute(schema.get_audit_table_schema(engine, table_name))
    else:
        raise ValueError(f"Unsupported database engine: {engine}")


async def _execute(client: Any, engine: str, sql: str, values: list[Any]) -> None:
    if engine == ENGINE_POSTGRES:
        await client.execute(sql, *values)
    elif engine == ENGINE_SQLITE:
        await client.execute(sql, values)
    elif engine == ENGINE_MYSQL:
        async with client.cursor() as cursor:
            await cursor.execute(sql, values)
    elif engine == ENGINE_MSSQL:
        async with client.cursor() as cursor:
            await cursor.execute(sql, *values)
    elif engine == ENGINE_ORACLE:
        with client.cursor() as cursor:
            await cursor.execute(sql, values)
    else:
        raise ValueError(f"Unsupported database engine: {engine}")


def _sink_owns_commit(client: Any, engine: str) -> bool:
    """True when no transaction was open on ``client`` before the audit write."""
    if engine == ENGINE_SQLITE:
        return not client.in_transaction
    if engine == ENGINE_ORACLE:
        return not client.transaction_in_progress
    return False
