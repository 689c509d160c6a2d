"""Unit tests for panoptes.adapters.interceptor.AuditedClient.

Uses a real aiosqlite connection for the SQLite paths and AsyncMock-backed
stand-ins for the server drivers. Dispatch is patched so the emitted events
can be inspected directly.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import aiosqlite
import pytest

from panoptes.adapters.interceptor import (
    AuditedClient,
    create_audited_client,
    create_audited_mssql_client,
    create_audited_postgres_client,
    create_audited_sqlite_client,
)
from panoptes.config import init_config
from panoptes.context import set_user_context
from panoptes.errors import AdapterValidationError, ConfigurationError


@pytest.fixture
def dispatch() -> AsyncMock:
    with patch("panoptes.core.audit_engine.dispatch_audit_event", new_callable=AsyncMock) as mock:
        yield mock


@pytest.fixture
async def sqlite_db(tmp_path: Path):
    async with aiosqlite.connect(str(tmp_path / "app.db")) as db:
        await db.execute("CREATE TABLE users (id INTEGER PRIMARY KEY, email TEXT)")
        await db.execute("INSERT INTO users (id, email) VALUES (1, 'old@x.io'), (2, 'two@x.io')")
        await db.commit()
        yield db


def _events(dispatch: AsyncMock) -> list:
    return [call.args[0] for call in dispatch.await_args_list]


# ─── SQLite ───────────────────────────────────────────────────────────────────


class TestSQLiteInterception:
    async def test_update_audited(self, sqlite_db, dispatch: AsyncMock) -> None:
        init_config({"app_name": "svc"})
        set_user_context({"actor_type": "USER", "app_user_id": 42})
        db = create_audited_sqlite_client(sqlite_db, {"filename": "app.db"})

        cursor = await db.execute("UPDATE users SET email = ? WHERE id = ?", ("new@x.io", 1))

        assert cursor.rowcount == 1
        (event,) = _events(dispatch)
        assert event.operation.type == "UPDATE"
        assert event.operation.main_table == "users"
        assert event.sql.parameters == ("new@x.io", 1)
        assert event.sql.normalized == "UPDATE users SET email = ? WHERE id = ?"
        assert event.sql.row_count == 1
        assert event.sql.success is True
        assert event.meta.duration_ms >= 0
        assert event.db.name == "app.db"
        assert event.actor.app_user_id == 42

    async def test_async_with_execute(self, sqlite_db, dispatch: AsyncMock) -> None:
        init_config({"app_name": "svc"})
        db = create_audited_sqlite_client(sqlite_db)

        async with db.execute("SELECT id FROM users ORDER BY id") as cursor:
            rows = await cursor.fetchall()

        assert [row[0] for row in rows] == [1, 2]
        (event,) = _events(dispatch)
        assert event.operation.type == "SELECT"
        assert event.sql.row_count is None

    async def test_execute_fetchall_row_count(self, sqlite_db, dispatch: AsyncMock) -> None:
        init_config({"app_name": "svc"})
        db = create_audited_sqlite_client(sqlite_db)

        rows = await db.execute_fetchall("SELECT * FROM users")

        assert len(rows) == 2
        assert _events(dispatch)[0].sql.row_count == 2

    async def test_failure_reraised_unchanged(self, sqlite_db, dispatch: AsyncMock) -> None:
        init_config({"app_name": "svc"})
        db = create_audited_sqlite_client(sqlite_db)

        with pytest.raises(sqlite3.OperationalError, match="no such table"):
            await db.execute("DELETE FROM missing_table WHERE id = 1")

        (event,) = _events(dispatch)
        assert event.sql.success is False
        assert "no such table" in event.sql.error_message
        assert event.sql.row_count is None
        assert event.operation.main_table == "missing_table"

    async def test_not_initialized_passthrough(self, sqlite_db, dispatch: AsyncMock) -> None:
        db = create_audited_sqlite_client(sqlite_db)
        cursor = await db.execute("SELECT COUNT(*) FROM users")
        assert (await cursor.fetchone())[0] == 2
        dispatch.assert_not_awaited()

    async def test_vetoed_query_still_runs(self, sqlite_db, dispatch: AsyncMock) -> None:
        init_config({"app_name": "svc", "operation_rules": {"audit_update": False}})
        db = create_audited_sqlite_client(sqlite_db)

        await db.execute("UPDATE users SET email = 'z' WHERE id = 2")
        await db.commit()

        dispatch.assert_not_awaited()
        cursor = await sqlite_db.execute("SELECT email FROM users WHERE id = 2")
        assert (await cursor.fetchone())[0] == "z"

    async def test_non_intercepted_attributes_delegated(self, sqlite_db, dispatch: AsyncMock) -> None:
        init_config({"app_name": "svc"})
        db = create_audited_sqlite_client(sqlite_db)

        await db.commit()

        assert db.total_changes == sqlite_db.total_changes
        assert db.__wrapped__ is sqlite_db
        dispatch.assert_not_awaited()

    async def test_capture_data_snapshots(self, sqlite_db, dispatch: AsyncMock) -> None:
        init_config({"app_name": "svc"})
        db = create_audited_sqlite_client(sqlite_db, capture_data=True)

        await db.execute("UPDATE users SET email = ? WHERE id = ?", ("new@x.io", 1))

        (event,) = _events(dispatch)
        assert event.data.before == ({"id": 1, "email": "old@x.io"},)
        # a cursor is not a row list
        assert event.data.after is None

    async def test_capture_data_skips_batches(self, sqlite_db, dispatch: AsyncMock) -> None:
        init_config({"app_name": "svc"})
        db = create_audited_sqlite_client(sqlite_db, capture_data=True)

        await db.executemany("DELETE FROM users WHERE id = ?", [(1,), (2,)])

        (event,) = _events(dispatch)
        assert event.data.before is None
        assert event.sql.parameters == ([1], [2])

    async def test_executemany_generator_reaches_driver(self, sqlite_db, dispatch: AsyncMock) -> None:
        init_config({"app_name": "svc"})
        db = create_audited_sqlite_client(sqlite_db)

        await db.executemany(
            "INSERT INTO users (id, email) VALUES (?, ?)",
            ((i, f"{i}@x.io") for i in range(10, 15)),
        )

        cursor = await sqlite_db.execute("SELECT COUNT(*) FROM users WHERE id >= 10")
        assert (await cursor.fetchone())[0] == 5
        (event,) = _events(dispatch)
        assert event.sql.parameters == tuple([i, f"{i}@x.io"] for i in range(10, 15))


# ─── Server drivers (stand-ins) ───────────────────────────────────────────────


class TestPostgresInterception:
    async def test_status_tag_row_count(self, dispatch: AsyncMock) -> None:
        init_config({"app_name": "svc"})
        raw = SimpleNamespace(execute=AsyncMock(return_value="UPDATE 2"), fetch=AsyncMock())
        db = create_audited_postgres_client(raw, {"host": "db1", "database": "shop"})

        result = await db.execute("UPDATE users SET active = $1", False)

        assert result == "UPDATE 2"
        raw.execute.assert_awaited_once_with("UPDATE users SET active = $1", False)
        (event,) = _events(dispatch)
        assert event.sql.row_count == 2
        assert event.db.host == "db1"
        assert event.db.engine == "postgres"

    async def test_driver_error_code_recorded(self, dispatch: AsyncMock) -> None:
        class UniqueViolationError(Exception):
            sqlstate = "23505"

        init_config({"app_name": "svc"})
        raw = SimpleNamespace(execute=AsyncMock(side_effect=UniqueViolationError("duplicate")), fetch=AsyncMock())
        db = create_audited_postgres_client(raw)

        with pytest.raises(UniqueViolationError):
            await db.execute("INSERT INTO users (id) VALUES ($1)", 1)

        (event,) = _events(dispatch)
        assert event.sql.error_code == "23505"

    async def test_capture_data_returning_rows(self, dispatch: AsyncMock) -> None:
        init_config({"app_name": "svc"})
        raw = SimpleNamespace(
            execute=AsyncMock(),
            fetch=AsyncMock(side_effect=[[{"id": 7, "n": 1}], [{"id": 7, "n": 2}]]),
        )
        db = create_audited_postgres_client(raw, capture_data=True)

        await db.fetch("UPDATE counters SET n = n + 1 WHERE id = $1 RETURNING *", 7)

        snapshot_call = raw.fetch.await_args_list[0]
        assert snapshot_call.args == ("SELECT * FROM counters WHERE id = $1 LIMIT 100", 7)
        (event,) = _events(dispatch)
        assert event.data.before == ({"id": 7, "n": 1},)
        assert event.data.after == ({"id": 7, "n": 2},)
        assert event.sql.row_count == 1

    async def test_executemany_keyword_iterator_shared(self, dispatch: AsyncMock) -> None:
        init_config({"app_name": "svc"})
        raw = SimpleNamespace(execute=AsyncMock(), executemany=AsyncMock(), fetch=AsyncMock())
        db = create_audited_postgres_client(raw)

        await db.executemany("DELETE FROM users WHERE id = $1", args=iter([(1,), (2,)]))

        assert raw.executemany.await_args.kwargs["args"] == [(1,), (2,)]
        (event,) = _events(dispatch)
        assert event.sql.parameters == ([1], [2])


class TestMSSQLInterception:
    async def test_cursor_execute(self, dispatch: AsyncMock) -> None:
        init_config({"app_name": "svc"})
        cursor = SimpleNamespace(fetchall=AsyncMock(), rowcount=3)
        cursor.execute = AsyncMock(return_value=cursor)
        db = create_audited_mssql_client(cursor, {"host": "sql1"})

        await db.execute("DELETE FROM sessions WHERE expires < ?", "2026-01-01")

        (event,) = _events(dispatch)
        assert event.sql.row_count == 3
        assert event.sql.parameters == ("2026-01-01",)


class TestConstruction:
    def test_invalid_client_rejected(self) -> None:
        with pytest.raises(AdapterValidationError):
            create_audited_postgres_client(object())

    def test_repr_names_engine(self) -> None:
        raw = SimpleNamespace(execute=AsyncMock(), fetch=AsyncMock())
        assert "engine=postgres" in repr(create_audited_postgres_client(raw))

    def test_generic_factory_picks_adapter_by_engine(self, sqlite_db) -> None:
        db = create_audited_client(sqlite_db, "SQLite", {"filename": "app.db"})
        assert db.adapter.engine == "sqlite"
        assert db.adapter.get_db_info().name == "app.db"

    def test_generic_factory_unknown_engine(self) -> None:
        with pytest.raises(ConfigurationError, match="Unsupported database engine: db2"):
            create_audited_client(object(), "db2")

    async def test_async_context_manager_delegates(self) -> None:
        entered = []

        class _Conn:
            async def execute(self, *args):
                return "OK"

            async def fetch(self, *args):
                return []

            async def __aenter__(self):
                entered.append("enter")
                return self

            async def __aexit__(self, *exc):
                entered.append("exit")
                return None

        async with create_audited_postgres_client(_Conn()) as db:
            assert isinstance(db, AuditedClient)

        assert entered == ["enter", "exit"]
