"""Best-effort before/after row snapshots.

``capture_before_state()`` runs a bounded ``SELECT *`` against the main table of
an UPDATE or DELETE, reusing the statement's own WHERE clause and the bound
parameters that belong to it. ``capture_after_state()`` turns rows returned by
the statement itself (``RETURNING``, ``OUTPUT``) into plain dicts.

Snapshot failures never reach the application: they are logged and the
snapshot degrades to an empty list, which the event builder then omits.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any, Optional, Sequence

from panoptes.audit.models import ParsedSql
from panoptes.constants import (
    ENGINE_MSSQL,
    ENGINE_MYSQL,
    ENGINE_ORACLE,
    ENGINE_POSTGRES,
    ENGINE_SQLITE,
    SNAPSHOT_ROW_LIMIT,
)
from panoptes.utils.logger import get_logger

logger = get_logger(__name__)

_SNAPSHOT_OPERATIONS = frozenset({"UPDATE", "DELETE"})

_WHERE_RE = re.compile(
    r"\bWHERE\b(?P<clause>.*?)(?=\bRETURNING\b|\bORDER\s+BY\b|\bLIMIT\b|;|$)",
    re.IGNORECASE | re.DOTALL,
)
_DOLLAR_PARAM_RE = re.compile(r"\$(\d+)")
_COLON_PARAM_RE = re.compile(r":(\w+)")
_QMARK_RE = re.compile(r"\?")
_PYFORMAT_RE = re.compile(r"%s")


# ─── Before state ─────────────────────────────────────────────────────────────


async def capture_before_state(
    client: Any,
    adapter: Any,
    parsed_sql: ParsedSql,
    sql: str,
    params: Any,
) -> list[dict[str, Any]]:
    """Snapshot the rows an UPDATE/DELETE is about to touch.

    ``client`` must be the raw driver object, never an audited wrapper, so the
    snapshot query itself is not audited.
    """
    if parsed_sql.operation_type not in _SNAPSHOT_OPERATIONS or not parsed_sql.main_table:
        return []

    engine = adapter.engine
    if isinstance(params, list) and len(params) == 1 and isinstance(params[0], Mapping):
        # Adapters report named binds as a single-element list.
        params = params[0]
    try:
        select_sql, select_params = build_snapshot_query(
            engine, parsed_sql.main_table, sql, params
        )
        return await _fetch_rows(engine, client, select_sql, select_params)
    except Exception as exc:
        logger.warning(
            "before_state_capture_failed",
            engine=engine,
            table=parsed_sql.main_table,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        return []


def build_snapshot_query(engine: str, table: str, sql: str, params: Any) -> tuple[str, Any]:
    """Build the bounded SELECT for a snapshot and re-base its parameters."""
    match = _WHERE_RE.search(sql)
    if match is None:
        where, where_params = "", _empty_like(params)
    else:
        where, where_params = _rebase_params(
            engine, match.group("clause").strip(), sql[: match.start()], params
        )

    where_sql = f" WHERE {where}" if where else ""
    if engine == ENGINE_MSSQL:
        return f"SELECT TOP {SNAPSHOT_ROW_LIMIT} * FROM {table}{where_sql}", where_params
    if engine == ENGINE_ORACLE:
        return (
            f"SELECT * FROM {table}{where_sql} FETCH FIRST {SNAPSHOT_ROW_LIMIT} ROWS ONLY",
            where_params,
        )
    return f"SELECT * FROM {table}{where_sql} LIMIT {SNAPSHOT_ROW_LIMIT}", where_params


def _rebase_params(engine: str, where: str, prefix: str, params: Any) -> tuple[str, Any]:
    if isinstance(params, Mapping):
        # Named binds keep their names; only pass the ones the clause uses.
        names = set(_COLON_PARAM_RE.findall(where))
        return where, {k: v for k, v in params.items() if k in names}

    values = list(params or ())

    if engine == ENGINE_POSTGRES or (engine == ENGINE_ORACLE and _COLON_PARAM_RE.search(where)):
        pattern = _DOLLAR_PARAM_RE if engine == ENGINE_POSTGRES else _COLON_PARAM_RE
        marker = "$" if engine == ENGINE_POSTGRES else ":"
        picked: list[Any] = []

        def renumber(m: re.Match[str]) -> str:
            picked.append(values[int(m.group(1)) - 1])
            return f"{marker}{len(picked)}"

        return pattern.sub(renumber, where), picked

    positional = _PYFORMAT_RE if engine == ENGINE_MYSQL else _QMARK_RE
    skip = len(positional.findall(prefix))
    take = len(positional.findall(where))
    return where, values[skip : skip + take]


def _empty_like(params: Any) -> Any:
    return {} if isinstance(params, Mapping) else []


async def _fetch_rows(engine: str, client: Any, sql: str, params: Any) -> list[dict[str, Any]]:
    if engine == ENGINE_POSTGRES:
        records = await client.fetch(sql, *params)
        return [dict(record) for record in records]

    if engine == ENGINE_SQLITE:
        async with client.execute(sql, params) as cursor:
            rows = await cursor.fetchall()
            return _rows_to_dicts(rows, cursor.description)

    if engine == ENGINE_MYSQL:
        await client.execute(sql, params)
        rows = await client.fetchall()
        return _rows_to_dicts(rows, client.description)

    if engine == ENGINE_MSSQL:
        await client.execute(sql, *params)
        rows = await client.fetchall()
        return _rows_to_dicts(rows, client.description)

    if engine == ENGINE_ORACLE:
        with client.cursor() as cursor:
            await cursor.execute(sql, params)
            rows = await cursor.fetchall()
            return _rows_to_dicts(rows, cursor.description)

    return []


# ─── After state ──────────────────────────────────────────────────────────────


def capture_after_state(result: Any) -> list[dict[str, Any]]:
    """Rows returned by the statement itself, as dicts.

    Only list-shaped results of mapping-like rows qualify (asyncpg Records,
    sqlite3.Row, dict cursors). Status strings and bare cursors yield [].
    """
    if not isinstance(result, (list, tuple)):
        return []
    try:
        rows = [_row_to_dict(row) for row in result]
    except Exception as exc:
        logger.warning(
            "after_state_capture_failed",
            error=str(exc),
            error_type=type(exc).__name__,
        )
        return []
    return [row for row in rows if row is not None]


def _rows_to_dicts(rows: Sequence[Any], description: Optional[Sequence[Any]]) -> list[dict[str, Any]]:
    columns = [col[0] for col in description] if description else None
    converted = []
    for row in rows:
        as_dict = _row_to_dict(row)
        if as_dict is None and columns is not None:
            as_dict = dict(zip(columns, row))
        if as_dict is not None:
            converted.append(as_dict)
    return converted


def _row_to_dict(row: Any) -> Optional[dict[str, Any]]:
    if isinstance(row, Mapping):
        return dict(row)
    keys = getattr(row, "keys", None)
    if callable(keys):
        return {key: row[key] for key in keys()}
    return None
