"""AuditedClient — transparent auditing wrapper around an async driver object.

Calls to the adapter's intercepted methods are timed, reported to
``audit_query()`` and then returned (or re-raised) exactly as the driver
produced them. Every other attribute is delegated to the wrapped client.

Usage:
    conn = await asyncpg.connect(dsn)
    db = create_audited_postgres_client(conn, {"host": "db1", "database": "shop"})
    await db.execute("UPDATE users SET email = $1 WHERE id = $2", email, user_id)

    async with aiosqlite.connect("app.db") as raw:
        db = create_audited_sqlite_client(raw, {"filename": "app.db"})
        async with db.execute("SELECT * FROM users") as cursor:
            rows = await cursor.fetchall()

Ordering per call:
  1. Optional before-snapshot (``capture_data=True``, UPDATE/DELETE only)
  2. The driver call itself
  3. ``audit_query()`` (awaited; dispatch completes before the call returns)
  4. Return the driver's result, or re-raise the driver's exception unchanged
"""

from __future__ import annotations

import functools
import inspect
import time
from collections.abc import Iterator
from typing import Any, Callable, Mapping, Optional

from panoptes.adapters import get_adapter
from panoptes.adapters.protocol import DbAdapter
from panoptes.audit.models import QueryPayload
from panoptes.constants import (
    ENGINE_MSSQL,
    ENGINE_MYSQL,
    ENGINE_ORACLE,
    ENGINE_POSTGRES,
    ENGINE_SQLITE,
)
from panoptes.core.audit_engine import audit_query
from panoptes.core.data_capture import capture_after_state, capture_before_state
from panoptes.core.sql_parser import classify_sql

# Row snapshots only make sense for single statements that change rows.
_AFTER_STATE_OPERATIONS = frozenset({"INSERT", "UPDATE", "DELETE"})
_BATCH_METHODS = frozenset({"executemany", "executescript"})
_BATCH_KEYWORDS = ("args", "parameters", "seq_of_parameters", "params")


class AuditedClient:
    def __init__(self, client: Any, adapter: DbAdapter, *, capture_data: bool = False) -> None:
        adapter.validate_client(client)
        self.__wrapped__ = client
        self._adapter = adapter
        self._capture_data = capture_data

    @property
    def adapter(self) -> DbAdapter:
        return self._adapter

    def __getattr__(self, name: str) -> Any:
        wrapped = self.__dict__.get("__wrapped__")
        if wrapped is None:
            raise AttributeError(name)
        attr = getattr(wrapped, name)
        if name in self._adapter.intercepted_methods and callable(attr):
            return self._intercept(name, attr)
        return attr

    def _intercept(self, name: str, method: Callable[..., Any]) -> Callable[..., Any]:
        @functools.wraps(method)
        def audited(*args: Any, **kwargs: Any) -> _AuditedCall:
            return _AuditedCall(self._run(name, method, args, kwargs))

        return audited

    async def _run(
        self,
        name: str,
        method: Callable[..., Any],
        args: tuple[Any, ...],
        kwargs: Mapping[str, Any],
    ) -> Any:
        adapter = self._adapter
        if name == "executemany":
            args, kwargs = _materialize_batch(args, kwargs)
        sql, params = adapter.extract_query_info(name, args, kwargs)

        parsed = None
        before_data: Optional[list[dict[str, Any]]] = None
        if self._capture_data and name not in _BATCH_METHODS:
            parsed = classify_sql(sql)
            before_data = await capture_before_state(self.__wrapped__, adapter, parsed, sql, params)

        start = time.perf_counter()
        try:
            result = method(*args, **kwargs)
            if inspect.isawaitable(result):
                result = await result
        except Exception as exc:
            await audit_query(
                QueryPayload(
                    db=adapter.get_db_info(),
                    sql=sql,
                    params=params,
                    duration_ms=_elapsed_ms(start),
                    row_count=None,
                    success=False,
                    error=exc,
                    before_data=before_data,
                )
            )
            raise

        duration_ms = _elapsed_ms(start)
        after_data = None
        if parsed is not None and parsed.operation_type in _AFTER_STATE_OPERATIONS:
            after_data = capture_after_state(result)

        await audit_query(
            QueryPayload(
                db=adapter.get_db_info(),
                sql=sql,
                params=params,
                duration_ms=duration_ms,
                row_count=adapter.extract_row_count(name, result),
                success=True,
                before_data=before_data,
                after_data=after_data,
            )
        )
        return result

    async def __aenter__(self) -> "AuditedClient":
        enter = getattr(self.__wrapped__, "__aenter__", None)
        if enter is not None:
            await enter()
        return self

    async def __aexit__(self, *exc_info: Any) -> Any:
        exit_ = getattr(self.__wrapped__, "__aexit__", None)
        if exit_ is not None:
            return await exit_(*exc_info)
        return None

    def __repr__(self) -> str:
        return f"<AuditedClient engine={self._adapter.engine} wrapped={self.__wrapped__!r}>"


class _AuditedCall:
    """Result of an intercepted call: awaitable, and usable with ``async with``.

    aiosqlite's ``async with db.execute(...) as cursor`` form is preserved: the
    audited call runs on enter and the driver's result handles its own context.
    """

    def __init__(self, coro: Any) -> None:
        self._coro = coro
        self._result: Any = None

    def __await__(self) -> Any:
        return self._coro.__await__()

    async def __aenter__(self) -> Any:
        self._result = await self._coro
        enter = getattr(self._result, "__aenter__", None)
        if enter is None:
            return self._result
        return await enter()

    async def __aexit__(self, *exc_info: Any) -> Any:
        exit_ = getattr(self._result, "__aexit__", None)
        if exit_ is not None:
            return await exit_(*exc_info)
        return None


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 3)


def _materialize_batch(
    args: tuple[Any, ...], kwargs: Mapping[str, Any]
) -> tuple[tuple[Any, ...], dict[str, Any]]:
    """Turn a one-shot batch iterator into a list shared by the adapter and the driver."""
    kwargs = dict(kwargs)
    if len(args) > 1:
        if isinstance(args[1], Iterator):
            args = (args[0], list(args[1]), *args[2:])
        return args, kwargs
    for key in _BATCH_KEYWORDS:
        if key in kwargs and isinstance(kwargs[key], Iterator):
            kwargs[key] = list(kwargs[key])
    return args, kwargs


# ─── Factories ────────────────────────────────────────────────────────────────


def create_audited_client(
    client: Any,
    engine: str,
    db_options: Optional[Mapping[str, Any]] = None,
    *,
    capture_data: bool = False,
) -> AuditedClient:
    """Wrap ``client`` with the adapter registered for ``engine``.

    Args:
        client: The driver object to audit (connection, pool or cursor).
        engine: postgres, mysql, mssql, sqlite or oracle (case-insensitive).
        db_options: Connection description for the event ``db`` section.
        capture_data: Snapshot affected rows before and after UPDATE/DELETE.

    Raises:
        ConfigurationError: ``engine`` has no adapter.
        AdapterValidationError: ``client`` lacks the driver methods the adapter needs.
    """
    return AuditedClient(client, get_adapter(engine, db_options), capture_data=capture_data)


def create_audited_postgres_client(
    client: Any, db_options: Optional[Mapping[str, Any]] = None, *, capture_data: bool = False
) -> AuditedClient:
    return create_audited_client(client, ENGINE_POSTGRES, db_options, capture_data=capture_data)


def create_audited_mysql_client(
    client: Any, db_options: Optional[Mapping[str, Any]] = None, *, capture_data: bool = False
) -> AuditedClient:
    return create_audited_client(client, ENGINE_MYSQL, db_options, capture_data=capture_data)


def create_audited_mssql_client(
    client: Any, db_options: Optional[Mapping[str, Any]] = None, *, capture_data: bool = False
) -> AuditedClient:
    return create_audited_client(client, ENGINE_MSSQL, db_options, capture_data=capture_data)


def create_audited_sqlite_client(
    client: Any, db_options: Optional[Mapping[str, Any]] = None, *, capture_data: bool = False
) -> AuditedClient:
    return create_audited_client(client, ENGINE_SQLITE, db_options, capture_data=capture_data)


def create_audited_oracle_client(
    client: Any, db_options: Optional[Mapping[str, Any]] = None, *, capture_data: bool = False
) -> AuditedClient:
    return create_audited_client(client, ENGINE_ORACLE, db_options, capture_data=capture_data)
