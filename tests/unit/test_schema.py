"""Unit tests for panoptes.audit.schema — DDL rendering and row flattening."""

from __future__ import annotations

import json
from datetime import date, datetime, time, timezone

import aiosqlite
import pytest

from panoptes.audit.models import AuditEvent, DbInfo
from panoptes.audit.schema import (
    AUDIT_COLUMNS,
    INDEXED_COLUMNS,
    build_insert,
    flatten_event,
    get_audit_table_schema,
    placeholder,
    sqlite_statements,
)
from panoptes.config import PanoptesConfig
from panoptes.constants import SUPPORTED_ENGINES
from panoptes.context import UserContext
from panoptes.core.event_builder import build_audit_event
from panoptes.core.sql_parser import classify_sql

_NOW = datetime(2026, 7, 4, 10, 30, 15, 250000, tzinfo=timezone.utc)


def _make_event(**overrides) -> AuditEvent:
    sql = overrides.pop("sql", "UPDATE users SET email = ? WHERE id = ?")
    kwargs = dict(
        config=PanoptesConfig(app_name="svc", environment="stage"),
        db=DbInfo(engine="postgres", host="db1", name="app"),
        sql=sql,
        parsed_sql=classify_sql(sql),
        reason="default:allowed",
        params=["a@b.c", 7],
        duration_ms=2.5,
        row_count=1,
        user_context=UserContext(actor_type="USER", app_user_id=42, app_roles=["admin"]),
        now=_NOW,
    )
    kwargs.update(overrides)
    return build_audit_event(**kwargs)


class TestDdl:
    @pytest.mark.parametrize("engine", SUPPORTED_ENGINES)
    def test_every_column_present(self, engine: str) -> None:
        ddl = get_audit_table_schema(engine)
        renames = {"date": "audit_date", "time": "audit_time"} if engine == "oracle" else {}
        for column in AUDIT_COLUMNS:
            assert renames.get(column.name, column.name) in ddl

    @pytest.mark.parametrize("engine", SUPPORTED_ENGINES)
    def test_indexes_rendered(self, engine: str) -> None:
        ddl = get_audit_table_schema(engine)
        for column in INDEXED_COLUMNS:
            assert f"idx_panoptes_audit_log_{column}" in ddl

    @pytest.mark.parametrize("engine", SUPPORTED_ENGINES)
    def test_custom_table_name(self, engine: str) -> None:
        ddl = get_audit_table_schema(engine, "app_audit")
        assert "app_audit" in ddl
        assert "panoptes_audit_log" not in ddl

    def test_guarded_creates(self) -> None:
        assert "CREATE TABLE IF NOT EXISTS" in get_audit_table_schema("postgres")
        assert "CREATE INDEX IF NOT EXISTS" in get_audit_table_schema("postgres")
        assert "CREATE TABLE IF NOT EXISTS" in get_audit_table_schema("mysql")
        assert "IF OBJECT_ID(N'panoptes_audit_log', N'U') IS NULL" in get_audit_table_schema("mssql")
        assert "SQLCODE NOT IN (-955, -1408)" in get_audit_table_schema("oracle")

    def test_engine_native_types(self) -> None:
        assert "BIGSERIAL PRIMARY KEY" in get_audit_table_schema("postgres")
        assert "JSONB" in get_audit_table_schema("postgres")
        assert "ENGINE=InnoDB" in get_audit_table_schema("mysql")
        assert "NVARCHAR(MAX)" in get_audit_table_schema("mssql")
        assert "INTEGER PRIMARY KEY AUTOINCREMENT" in get_audit_table_schema("sqlite")
        assert "panoptes_audit_log_seq.NEXTVAL" in get_audit_table_schema("oracle")

    def test_unknown_engine(self) -> None:
        with pytest.raises(ValueError, match="Unsupported database engine"):
            get_audit_table_schema("db2")

    async def test_sqlite_script_is_idempotent(self, tmp_path) -> None:
        async with aiosqlite.connect(str(tmp_path / "a.db")) as db:
            await db.executescript(get_audit_table_schema("sqlite"))
            await db.executescript(get_audit_table_schema("sqlite"))
            cursor = await db.execute(
                "SELECT COUNT(*) FROM sqlite_master WHERE type = 'index' AND name LIKE 'idx_panoptes_audit_log_%'"
            )
            assert (await cursor.fetchone())[0] == len(INDEXED_COLUMNS)

    def test_sqlite_statements_match_script(self) -> None:
        statements = sqlite_statements("app_audit")
        assert len(statements) == 1 + len(INDEXED_COLUMNS)
        assert ";\n".join(statements) + ";\n" == get_audit_table_schema("sqlite", "app_audit")
        assert not any(";" in statement for statement in statements)


class TestFlattenEvent:
    def test_structured_fields_json_encoded(self) -> None:
        row = flatten_event(_make_event(), "sqlite")
        assert json.loads(row["tables_involved"]) == ["users"]
        assert json.loads(row["sql_parameters"]) == ["a@b.c", 7]
        assert json.loads(row["actor_roles"]) == ["admin"]
        assert row["actor_user_id"] == "42"
        assert row["success"] == 1

    def test_absent_fields_omitted_nullable_kept(self) -> None:
        row = flatten_event(_make_event(duration_ms=None, row_count=None, user_context=None), "sqlite")
        assert "error_code" not in row
        assert "actor_type" not in row
        assert "actor_roles" not in row
        assert "request_id" not in row
        assert row["duration_ms"] is None
        assert row["row_count"] is None
        assert row["data_before"] is None
        assert row["data_after"] is None

    def test_snapshots_encoded(self) -> None:
        row = flatten_event(_make_event(before_data=[{"id": 7, "email": "old"}]), "sqlite")
        assert json.loads(row["data_before"]) == [{"id": 7, "email": "old"}]
        assert row["data_after"] is None

    def test_sqlite_keeps_text_temporals(self) -> None:
        row = flatten_event(_make_event(), "sqlite")
        assert row["timestamp"] == "2026-07-04T10:30:15.250Z"
        assert row["date"] == "2026-07-04"
        assert row["time"] == "10:30:15"

    def test_postgres_native_temporals(self) -> None:
        row = flatten_event(_make_event(), "postgres")
        assert row["timestamp"] == datetime(2026, 7, 4, 10, 30, 15, 250000)
        assert row["date"] == date(2026, 7, 4)
        assert row["time"] == time(10, 30, 15)
        assert row["success"] is True

    def test_oracle_renames_and_flags(self) -> None:
        row = flatten_event(_make_event(), "oracle")
        assert "date" not in row and "time" not in row
        assert row["audit_date"] == date(2026, 7, 4)
        assert row["audit_time"] == "10:30:15"
        assert row["success"] == 1

    def test_column_order_follows_layout(self) -> None:
        row = flatten_event(_make_event(), "sqlite")
        layout = [c.name for c in AUDIT_COLUMNS]
        assert list(row) == [name for name in layout if name in row]


class TestBuildInsert:
    @pytest.mark.parametrize(
        "engine,first,second",
        [
            ("postgres", "$1", "$2"),
            ("mysql", "%s", "%s"),
            ("mssql", "?", "?"),
            ("sqlite", "?", "?"),
            ("oracle", ":1", ":2"),
        ],
    )
    def test_placeholder_styles(self, engine: str, first: str, second: str) -> None:
        assert placeholder(engine, 1) == first
        assert placeholder(engine, 2) == second

    def test_insert_matches_row(self) -> None:
        row = {"app_name": "svc", "environment": "dev", "date": "2026-01-01"}
        sql, values = build_insert("mysql", "audit", row)
        assert sql == "INSERT INTO audit (`app_name`, `environment`, `date`) VALUES (%s, %s, %s)"
        assert values == ["svc", "dev", "2026-01-01"]

    def test_oracle_insert_uses_renamed_columns(self) -> None:
        row = flatten_event(_make_event(), "oracle")
        sql, values = build_insert("oracle", "panoptes_audit_log", row)
        assert "audit_date" in sql and "audit_time" in sql
        assert f":{len(values)})" in sql

    def test_mssql_brackets(self) -> None:
        sql, _ = build_insert("mssql", "audit", {"timestamp": None, "time": None})
        assert sql == "INSERT INTO audit ([timestamp], [time]) VALUES (?, ?)"
