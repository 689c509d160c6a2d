"""Audit table layout shared by the database transport and the CLI.

One logical row shape across all five engines. Each column is declared once
with a portable logical type; ``get_audit_table_schema()`` renders the
engine-native DDL from it:

    postgres  BIGSERIAL id, JSONB structured columns, CREATE ... IF NOT EXISTS
    mysql     AUTO_INCREMENT id, JSON columns, inline indexes, InnoDB/utf8mb4
    mssql     IDENTITY id, NVARCHAR(MAX), OBJECT_ID / sys.indexes guards
    sqlite    TEXT/INTEGER/REAL affinity, CREATE ... IF NOT EXISTS
    oracle    sequence-backed id, CLOB, one PL/SQL block ignoring ORA-00955

Every rendered script is idempotent and runs as a single driver call, so two
first-inserts racing on the same connection both succeed.

Oracle reserves DATE as a column name: there the ``date``/``time`` columns are
``audit_date``/``audit_time``.
"""

from __future__ import annotations

import json
from datetime import date, datetime, time, timezone
from typing import Any, NamedTuple, Optional

from panoptes.audit.models import AuditEvent
from panoptes.constants import (
    DEFAULT_AUDIT_TABLE,
    ENGINE_MSSQL,
    ENGINE_MYSQL,
    ENGINE_ORACLE,
    ENGINE_POSTGRES,
    ENGINE_SQLITE,
    SUPPORTED_ENGINES,
)


class Column(NamedTuple):
    name: str
    kind: str
    not_null: bool = False
    default: Optional[str] = None


# ─── Column layout ────────────────────────────────────────────────────────────

AUDIT_COLUMNS: tuple[Column, ...] = (
    # meta
    Column("app_name", "name", not_null=True),
    Column("environment", "short", not_null=True),
    Column("timestamp", "timestamp", not_null=True, default="now"),
    Column("timestamp_unix", "bigint", not_null=True),
    Column("date", "date", not_null=True),
    Column("time", "time", not_null=True),
    Column("duration_ms", "decimal"),
    Column("reason", "name"),
    # db
    Column("db_engine", "short", not_null=True),
    Column("db_host", "name"),
    Column("db_name", "name"),
    Column("db_user", "name"),
    Column("db_schema", "name"),
    # operation
    Column("operation_type", "short", not_null=True),
    Column("operation_category", "short"),
    Column("main_table", "name"),
    Column("tables_involved", "json"),
    # sql
    Column("sql_raw", "text", not_null=True),
    Column("sql_normalized", "text"),
    Column("sql_parameters", "json"),
    Column("row_count", "int"),
    Column("success", "bool", not_null=True, default="true"),
    Column("error_code", "name"),
    Column("error_message", "text"),
    # data
    Column("data_before", "json"),
    Column("data_after", "json"),
    # actor
    Column("actor_type", "short"),
    Column("actor_user_id", "name"),
    Column("actor_username", "name"),
    Column("actor_roles", "json"),
    Column("actor_tenant_id", "name"),
    # request
    Column("request_ip", "ip"),
    Column("request_user_agent", "text"),
    Column("request_id", "name"),
    Column("request_session_id", "name"),
    # bookkeeping
    Column("created_at", "timestamp", not_null=True, default="now"),
)

INDEXED_COLUMNS: tuple[str, ...] = (
    "timestamp",
    "app_name",
    "main_table",
    "operation_type",
    "actor_user_id",
    "success",
    "date",
)

# Sent as explicit NULL when empty; every other empty field is left out of the INSERT.
_NULLABLE_COLUMNS = frozenset({"duration_ms", "row_count", "data_before", "data_after"})

_ORACLE_RENAMES = {"date": "audit_date", "time": "audit_time"}

_TYPES: dict[str, dict[str, str]] = {
    ENGINE_POSTGRES: {
        "id": "BIGSERIAL PRIMARY KEY",
        "short": "VARCHAR(50)",
        "name": "VARCHAR(255)",
        "ip": "VARCHAR(45)",
        "text": "TEXT",
        "json": "JSONB",
        "int": "INTEGER",
        "bigint": "BIGINT",
        "decimal": "NUMERIC(10, 2)",
        "bool": "BOOLEAN",
        "timestamp": "TIMESTAMP",
        "date": "DATE",
        "time": "TIME",
    },
    ENGINE_MYSQL: {
        "id": "BIGINT AUTO_INCREMENT PRIMARY KEY",
        "short": "VARCHAR(50)",
        "name": "VARCHAR(255)",
        "ip": "VARCHAR(45)",
        "text": "TEXT",
        "json": "JSON",
        "int": "INT",
        "bigint": "BIGINT",
        "decimal": "DECIMAL(10, 2)",
        "bool": "BOOLEAN",
        "timestamp": "TIMESTAMP",
        "date": "DATE",
        "time": "TIME",
    },
    ENGINE_MSSQL: {
        "id": "BIGINT IDENTITY(1,1) PRIMARY KEY",
        "short": "NVARCHAR(50)",
        "name": "NVARCHAR(255)",
        "ip": "NVARCHAR(45)",
        "text": "NVARCHAR(MAX)",
        "json": "NVARCHAR(MAX)",
        "int": "INT",
        "bigint": "BIGINT",
        "decimal": "DECIMAL(10, 2)",
        "bool": "BIT",
        "timestamp": "DATETIME2",
        "date": "DATE",
        "time": "TIME",
    },
    ENGINE_SQLITE: {
        "id": "INTEGER PRIMARY KEY AUTOINCREMENT",
        "short": "TEXT",
        "name": "TEXT",
        "ip": "TEXT",
        "text": "TEXT",
        "json": "TEXT",
        "int": "INTEGER",
        "bigint": "INTEGER",
        "decimal": "REAL",
        "bool": "INTEGER",
        "timestamp": "TEXT",
        "date": "TEXT",
        "time": "TEXT",
    },
    ENGINE_ORACLE: {
        "id": "NUMBER PRIMARY KEY",
        "short": "VARCHAR2(50)",
        "name": "VARCHAR2(255)",
        "ip": "VARCHAR2(45)",
        "text": "CLOB",
        "json": "CLOB",
        "int": "NUMBER",
        "bigint": "NUMBER",
        "decimal": "NUMBER(10, 2)",
        "bool": "NUMBER(1)",
        "timestamp": "TIMESTAMP",
        "date": "DATE",
        "time": "VARCHAR2(20)",
    },
}

_DEFAULTS: dict[str, dict[str, str]] = {
    ENGINE_POSTGRES: {"now": "CURRENT_TIMESTAMP", "true": "TRUE"},
    ENGINE_MYSQL: {"now": "CURRENT_TIMESTAMP", "true": "TRUE"},
    ENGINE_MSSQL: {"now": "GETDATE()", "true": "1"},
    ENGINE_SQLITE: {"now": "CURRENT_TIMESTAMP", "true": "1"},
    ENGINE_ORACLE: {"now": "CURRENT_TIMESTAMP", "true": "1"},
}


# ─── Identifiers ──────────────────────────────────────────────────────────────


def column_name(engine: str, name: str) -> str:
    """Physical column name for ``engine``."""
    if engine == ENGINE_ORACLE:
        return _ORACLE_RENAMES.get(name, name)
    return name


def quote_column(engine: str, name: str) -> str:
    physical = column_name(engine, name)
    if engine == ENGINE_MYSQL:
        return f"`{physical}`"
    if engine == ENGINE_MSSQL:
        return f"[{physical}]"
    if engine == ENGINE_ORACLE:
        # Quoted Oracle identifiers are case-sensitive; columns are created unquoted.
        return physical
    return f'"{physical}"'


def placeholder(engine: str, index: int) -> str:
    """Bind placeholder for the 1-based parameter ``index``."""
    if engine == ENGINE_POSTGRES:
        return f"${index}"
    if engine == ENGINE_MYSQL:
        return "%s"
    if engine == ENGINE_ORACLE:
        return f":{index}"
    return "?"


def index_name(table: str, column: str) -> str:
    base = table.split(".")[-1].strip('"`[]')
    return f"idx_{base}_{column}"


def _check_engine(engine: Optional[str]) -> str:
    normalized = (engine or "").lower()
    if normalized not in SUPPORTED_ENGINES:
        raise ValueError(
            f"Unsupported database engine: {engine}. "
            f"Supported: {', '.join(SUPPORTED_ENGINES)}"
        )
    return normalized


# ─── DDL ──────────────────────────────────────────────────────────────────────


def get_audit_table_schema(engine: str, table_name: str = DEFAULT_AUDIT_TABLE) -> str:
    """Render the idempotent CREATE script for ``engine`` and ``table_name``.

    Raises:
        ValueError: For engines outside postgres/mysql/mssql/sqlite/oracle.
    """
    engine = _check_engine(engine)
    if engine == ENGINE_POSTGRES:
        return _render_postgres(table_name)
    if engine == ENGINE_MYSQL:
        return _render_mysql(table_name)
    if engine == ENGINE_MSSQL:
        return _render_mssql(table_name)
    if engine == ENGINE_SQLITE:
        return _render_sqlite(table_name)
    return _render_oracle(table_name)


def _column_lines(engine: str, id_type: Optional[str] = None) -> list[str]:
    types = _TYPES[engine]
    defaults = _DEFAULTS[engine]
    lines = [f"  id {id_type or types['id']}"]
    for column in AUDIT_COLUMNS:
        line = f"  {quote_column(engine, column.name)} {types[column.kind]}"
        if column.default is not None:
            line += f" DEFAULT {defaults[column.default]}"
        if column.not_null:
            line += " NOT NULL"
        lines.append(line)
    return lines


def _render_postgres(table: str) -> str:
    body = ",\n".join(_column_lines(ENGINE_POSTGRES))
    statements = [f"CREATE TABLE IF NOT EXISTS {table} (\n{body}\n)"]
    for column in INDEXED_COLUMNS:
        statements.append(
            f"CREATE INDEX IF NOT EXISTS {index_name(table, column)} "
            f"ON {table}({quote_column(ENGINE_POSTGRES, column)})"
        )
    return ";\n".join(statements) + ";\n"


def sqlite_statements(table: str) -> list[str]:
    """The SQLite DDL as separate statements, for drivers that run one at a time."""
    body = ",\n".join(_column_lines(ENGINE_SQLITE))
    statements = [f"CREATE TABLE IF NOT EXISTS {table} (\n{body}\n)"]
    for column in INDEXED_COLUMNS:
        statements.append(
            f"CREATE INDEX IF NOT EXISTS {index_name(table, column)} "
            f"ON {table}({quote_column(ENGINE_SQLITE, column)})"
        )
    return statements


def _render_sqlite(table: str) -> str:
    return ";\n".join(sqlite_statements(table)) + ";\n"


def _render_mysql(table: str) -> str:
    lines = _column_lines(ENGINE_MYSQL)
    for column in INDEXED_COLUMNS:
        lines.append(f"  INDEX {index_name(table, column)} ({quote_column(ENGINE_MYSQL, column)})")
    body = ",\n".join(lines)
    return (
        f"CREATE TABLE IF NOT EXISTS {table} (\n{body}\n) "
        "ENGINE=InnoDB DEFAULT CHARSET=utf8mb4 COLLATE=utf8mb4_unicode_ci"
    )


def _render_mssql(table: str) -> str:
    body = ",\n".join(_column_lines(ENGINE_MSSQL))
    statements = [f"IF OBJECT_ID(N'{table}', N'U') IS NULL\nCREATE TABLE {table} (\n{body}\n)"]
    for column in INDEXED_COLUMNS:
        name = index_name(table, column)
        statements.append(
            f"IF NOT EXISTS (SELECT 1 FROM sys.indexes WHERE name = N'{name}' "
            f"AND object_id = OBJECT_ID(N'{table}'))\n"
            f"CREATE INDEX {name} ON {table}({quote_column(ENGINE_MSSQL, column)})"
        )
    return ";\n".join(statements) + ";\n"


def _render_oracle(table: str) -> str:
    sequence = f"{table}_seq"
    body = ",\n".join(
        _column_lines(ENGINE_ORACLE, id_type=f"NUMBER DEFAULT {sequence}.NEXTVAL PRIMARY KEY")
    )
    ddl = [
        f"CREATE SEQUENCE {sequence} START WITH 1 INCREMENT BY 1",
        f"CREATE TABLE {table} (\n{body}\n)",
    ]
    for column in INDEXED_COLUMNS:
        ddl.append(
            f"CREATE INDEX {index_name(table, column)} "
            f"ON {table}({quote_column(ENGINE_ORACLE, column)})"
        )
    calls = "\n".join(f"  run_ddl('{statement}');" for statement in ddl)
    # ORA-00955: name already used; ORA-01408: column list already indexed.
    return (
        "DECLARE\n"
        "  PROCEDURE run_ddl(stmt VARCHAR2) IS\n"
        "  BEGIN\n"
        "    EXECUTE IMMEDIATE stmt;\n"
        "  EXCEPTION\n"
        "    WHEN OTHERS THEN\n"
        "      IF SQLCODE NOT IN (-955, -1408) THEN\n"
        "        RAISE;\n"
        "      END IF;\n"
        "  END;\n"
        "BEGIN\n"
        f"{calls}\n"
        "END;"
    )


# ─── Existence probes ─────────────────────────────────────────────────────────


def table_exists_query(engine: str) -> str:
    """Existence probe taking the table name as its single bound parameter."""
    engine = _check_engine(engine)
    if engine == ENGINE_POSTGRES:
        return "SELECT to_regclass($1) IS NOT NULL"
    if engine == ENGINE_MYSQL:
        return "SHOW TABLES LIKE %s"
    if engine == ENGINE_MSSQL:
        return "SELECT OBJECT_ID(?, 'U')"
    if engine == ENGINE_SQLITE:
        return "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?"
    return "SELECT COUNT(*) FROM user_tables WHERE table_name = UPPER(:1)"


# ─── INSERT ───────────────────────────────────────────────────────────────────


def flatten_event(event: AuditEvent, engine: str) -> dict[str, Any]:
    """Map an AuditEvent onto the audit table columns, in column order.

    Structured fields are JSON text. Empty fields are left out (the column
    default applies) except duration_ms, row_count and the snapshots, which
    are sent as explicit NULL. Temporal and boolean values are coerced to
    what each engine's driver binds natively.
    """
    engine = _check_engine(engine)
    meta, sql, actor, request = event.meta, event.sql, event.actor, event.request

    values: dict[str, Any] = {
        "app_name": meta.app_name,
        "environment": meta.environment,
        "timestamp": meta.timestamp,
        "timestamp_unix": meta.timestamp_unix,
        "date": meta.date,
        "time": meta.time,
        "duration_ms": meta.duration_ms,
        "reason": meta.reason,
        "db_engine": event.db.engine,
        "db_host": event.db.host,
        "db_name": event.db.name,
        "db_user": event.db.user,
        "db_schema": event.db.schema,
        "operation_type": event.operation.type,
        "operation_category": event.operation.category,
        "main_table": event.operation.main_table,
        "tables_involved": _to_json(list(event.operation.tables_involved)),
        "sql_raw": sql.raw,
        "sql_normalized": sql.normalized,
        "sql_parameters": _to_json(list(sql.parameters)),
        "row_count": sql.row_count,
        "success": sql.success,
        "error_code": sql.error_code,
        "error_message": sql.error_message,
        "data_before": _to_json(list(event.data.before)) if event.data.before else None,
        "data_after": _to_json(list(event.data.after)) if event.data.after else None,
        "actor_type": actor.actor_type,
        "actor_user_id": _to_text(actor.app_user_id),
        "actor_username": actor.app_username,
        "actor_roles": _to_json(list(actor.app_roles)) if actor.app_roles is not None else None,
        "actor_tenant_id": _to_text(actor.tenant_id),
        "request_ip": request.ip_address,
        "request_user_agent": request.user_agent,
        "request_id": request.request_id,
        "request_session_id": request.session_id,
    }

    _coerce_for_engine(engine, values)

    return {
        column_name(engine, key): value
        for key, value in values.items()
        if value is not None or key in _NULLABLE_COLUMNS
    }


def build_insert(engine: str, table_name: str, row: dict[str, Any]) -> tuple[str, list[Any]]:
    """Parameterized INSERT for a flattened row (see ``flatten_event``)."""
    engine = _check_engine(engine)
    reverse = {v: k for k, v in _ORACLE_RENAMES.items()} if engine == ENGINE_ORACLE else {}
    columns = ", ".join(quote_column(engine, reverse.get(name, name)) for name in row)
    marks = ", ".join(placeholder(engine, i) for i in range(1, len(row) + 1))
    return f"INSERT INTO {table_name} ({columns}) VALUES ({marks})", list(row.values())


def _coerce_for_engine(engine: str, values: dict[str, Any]) -> None:
    if engine == ENGINE_SQLITE:
        values["success"] = 1 if values["success"] else 0
        return

    # Server engines bind native temporal types; the timestamp column is naive UTC.
    moment = datetime.fromtimestamp(values["timestamp_unix"], tz=timezone.utc)
    parsed = _parse_iso(values["timestamp"])
    if parsed is not None:
        moment = parsed
    values["timestamp"] = moment.astimezone(timezone.utc).replace(tzinfo=None)
    values["date"] = date.fromisoformat(values["date"])
    if engine != ENGINE_ORACLE:
        values["time"] = time.fromisoformat(values["time"])
    else:
        values["success"] = 1 if values["success"] else 0


def _parse_iso(value: str) -> Optional[datetime]:
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _to_json(value: Any) -> str:
    return json.dumps(value, default=str)


def _to_text(value: Any) -> Optional[str]:
    return None if value is None else str(value)
