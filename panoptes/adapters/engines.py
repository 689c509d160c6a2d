"""Per-engine adapters for the supported async drivers.

    PostgresAdapter  asyncpg Connection / Pool
    MySQLAdapter     aiomysql / asyncmy Cursor
    MSSQLAdapter     aioodbc Cursor
    SQLiteAdapter    aiosqlite Connection
    OracleAdapter    python-oracledb AsyncConnection

Each adapter satisfies the DbAdapter Protocol on its own; there is no shared
base class. ``db_options`` describes the connection for the event ``db``
section (keys: host, database, user, schema; SQLite also reads filename).
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any, Optional, Sequence

from panoptes.adapters.protocol import QueryInfo
from panoptes.audit.models import DbInfo
from panoptes.constants import (
    ENGINE_MSSQL,
    ENGINE_MYSQL,
    ENGINE_ORACLE,
    ENGINE_POSTGRES,
    ENGINE_SQLITE,
)
from panoptes.errors import AdapterValidationError

_STATUS_COUNT_RE = re.compile(r"(\d+)\s*$")


# ─── Shared helpers ───────────────────────────────────────────────────────────


def _require_methods(engine: str, client: Any, methods: Sequence[str], expected: str) -> None:
    missing = [name for name in methods if not callable(getattr(client, name, None))]
    if client is None or missing:
        raise AdapterValidationError(
            f"[panoptes][{engine}] Invalid client object: missing {', '.join(missing) or 'client'}. "
            f"Expected {expected}."
        )


def _sql_arg(args: tuple[Any, ...], kwargs: Mapping[str, Any], *names: str) -> str:
    if args and isinstance(args[0], str):
        return args[0]
    for name in names:
        value = kwargs.get(name)
        if isinstance(value, str):
            return value
    return ""


def _params_arg(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, Mapping):
        return [dict(value)]
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def _second_arg(args: tuple[Any, ...], kwargs: Mapping[str, Any], *names: str) -> Any:
    if len(args) > 1:
        return args[1]
    for name in names:
        if name in kwargs:
            return kwargs[name]
    return None


def _db_info(engine: str, options: Mapping[str, Any]) -> DbInfo:
    return DbInfo(
        engine=engine,
        host=options.get("host"),
        name=options.get("database"),
        user=options.get("user"),
        schema=options.get("schema"),
    )


def _non_negative(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value if value >= 0 else None


# ─── PostgreSQL (asyncpg) ─────────────────────────────────────────────────────


class PostgresAdapter:
    """asyncpg: ``execute(sql, *args)``, ``fetch*(sql, *args)``, ``executemany(sql, args)``."""

    engine = ENGINE_POSTGRES
    intercepted_methods = frozenset({"execute", "executemany", "fetch", "fetchrow", "fetchval"})

    def __init__(self, db_options: Optional[Mapping[str, Any]] = None) -> None:
        self._options = dict(db_options or {})

    def validate_client(self, client: Any) -> None:
        _require_methods(self.engine, client, ("execute", "fetch"), "an asyncpg Connection or Pool")

    def extract_query_info(
        self, method: str, args: tuple[Any, ...], kwargs: Mapping[str, Any]
    ) -> QueryInfo:
        sql = _sql_arg(args, kwargs, "query", "command")
        if method == "executemany":
            batches = _second_arg(args, kwargs, "args")
            return QueryInfo(sql, [list(batch) for batch in batches or ()])
        return QueryInfo(sql, list(args[1:]))

    def extract_row_count(self, method: str, result: Any) -> Optional[int]:
        if method == "execute" and isinstance(result, str):
            # Command status tag: "UPDATE 3", "INSERT 0 1", "SELECT 5".
            match = _STATUS_COUNT_RE.search(result)
            return int(match.group(1)) if match else None
        if method == "fetch" and isinstance(result, list):
            return len(result)
        if method in ("fetchrow", "fetchval"):
            return 0 if result is None else 1
        return None

    def get_db_info(self) -> DbInfo:
        return _db_info(self.engine, self._options)


# ─── MySQL (aiomysql / asyncmy cursor) ────────────────────────────────────────


class MySQLAdapter:
    """aiomysql/asyncmy cursor: ``execute(query, args)`` returns the affected row count."""

    engine = ENGINE_MYSQL
    intercepted_methods = frozenset({"execute", "executemany"})

    def __init__(self, db_options: Optional[Mapping[str, Any]] = None) -> None:
        self._options = dict(db_options or {})

    def validate_client(self, client: Any) -> None:
        _require_methods(
            self.engine, client, ("execute", "executemany", "fetchall"), "an aiomysql/asyncmy Cursor"
        )

    def extract_query_info(
        self, method: str, args: tuple[Any, ...], kwargs: Mapping[str, Any]
    ) -> QueryInfo:
        sql = _sql_arg(args, kwargs, "query")
        params = _second_arg(args, kwargs, "args")
        if method == "executemany":
            return QueryInfo(sql, [_params_arg(batch) for batch in params or ()])
        return QueryInfo(sql, _params_arg(params))

    def extract_row_count(self, method: str, result: Any) -> Optional[int]:
        return _non_negative(result)

    def get_db_info(self) -> DbInfo:
        return _db_info(self.engine, self._options)


# ─── SQL Server (aioodbc cursor) ──────────────────────────────────────────────


class MSSQLAdapter:
    """aioodbc cursor: ``execute(sql, *params)`` returns the cursor itself."""

    engine = ENGINE_MSSQL
    intercepted_methods = frozenset({"execute", "executemany"})

    def __init__(self, db_options: Optional[Mapping[str, Any]] = None) -> None:
        self._options = dict(db_options or {})

    def validate_client(self, client: Any) -> None:
        _require_methods(self.engine, client, ("execute", "fetchall"), "an aioodbc Cursor")

    def extract_query_info(
        self, method: str, args: tuple[Any, ...], kwargs: Mapping[str, Any]
    ) -> QueryInfo:
        sql = _sql_arg(args, kwargs, "sql")
        if method == "executemany":
            batches = args[1] if len(args) > 1 else ()
            return QueryInfo(sql, [_params_arg(batch) for batch in batches])
        rest = args[1:]
        # pyodbc style: execute(sql, p1, p2) or execute(sql, [p1, p2])
        if len(rest) == 1 and isinstance(rest[0], (list, tuple)):
            return QueryInfo(sql, list(rest[0]))
        return QueryInfo(sql, list(rest))

    def extract_row_count(self, method: str, result: Any) -> Optional[int]:
        # rowcount is -1 when the driver cannot tell (most SELECTs).
        return _non_negative(getattr(result, "rowcount", None))

    def get_db_info(self) -> DbInfo:
        return _db_info(self.engine, self._options)


# ─── SQLite (aiosqlite) ───────────────────────────────────────────────────────


class SQLiteAdapter:
    """aiosqlite Connection: ``execute(sql, parameters)`` resolves to a Cursor."""

    engine = ENGINE_SQLITE
    intercepted_methods = frozenset(
        {"execute", "executemany", "executescript", "execute_fetchall", "execute_insert"}
    )

    def __init__(self, db_options: Optional[Mapping[str, Any]] = None) -> None:
        self._options = dict(db_options or {})

    def validate_client(self, client: Any) -> None:
        _require_methods(self.engine, client, ("execute", "commit"), "an aiosqlite Connection")

    def extract_query_info(
        self, method: str, args: tuple[Any, ...], kwargs: Mapping[str, Any]
    ) -> QueryInfo:
        sql = _sql_arg(args, kwargs, "sql", "sql_script")
        if method == "executescript":
            return QueryInfo(sql, [])
        params = _second_arg(args, kwargs, "parameters")
        if method == "executemany":
            return QueryInfo(sql, [_params_arg(batch) for batch in params or ()])
        return QueryInfo(sql, _params_arg(params))

    def extract_row_count(self, method: str, result: Any) -> Optional[int]:
        if method == "execute_fetchall" and isinstance(result, (list, tuple)):
            return len(result)
        if method == "execute_insert":
            return 0 if result is None else 1
        # sqlite3 reports -1 for SELECT and for executescript.
        return _non_negative(getattr(result, "rowcount", None))

    def get_db_info(self) -> DbInfo:
        return DbInfo(
            engine=self.engine,
            host="local",
            name=self._options.get("database") or self._options.get("filename") or "sqlite",
            user="local",
            schema="main",
        )


# ─── Oracle (python-oracledb async) ───────────────────────────────────────────


class OracleAdapter:
    """oracledb AsyncConnection shortcuts: ``execute/fetch*(statement, parameters)``."""

    engine = ENGINE_ORACLE
    intercepted_methods = frozenset({"execute", "executemany", "fetchone", "fetchall", "fetchmany"})

    def __init__(self, db_options: Optional[Mapping[str, Any]] = None) -> None:
        self._options = dict(db_options or {})

    def validate_client(self, client: Any) -> None:
        _require_methods(
            self.engine, client, ("execute", "cursor", "commit"), "an oracledb AsyncConnection"
        )

    def extract_query_info(
        self, method: str, args: tuple[Any, ...], kwargs: Mapping[str, Any]
    ) -> QueryInfo:
        sql = _sql_arg(args, kwargs, "statement")
        params = _second_arg(args, kwargs, "parameters")
        if method == "executemany":
            if isinstance(params, int):
                # executemany(statement, num_iterations) binds nothing.
                return QueryInfo(sql, [])
            return QueryInfo(sql, [_params_arg(batch) for batch in params or ()])
        return QueryInfo(sql, _params_arg(params))

    def extract_row_count(self, method: str, result: Any) -> Optional[int]:
        if method in ("fetchall", "fetchmany") and isinstance(result, list):
            return len(result)
        if method == "fetchone":
            return 0 if result is None else 1
        return None

    def get_db_info(self) -> DbInfo:
        return _db_info(self.engine, self._options)
