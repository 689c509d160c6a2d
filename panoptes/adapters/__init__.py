"""Panoptes database adapters.

Layout:
    protocol.py    — DbAdapter Protocol + QueryInfo
    engines.py     — Postgres/MySQL/MSSQL/SQLite/Oracle adapters
    interceptor.py — AuditedClient wrapper and create_audited_*_client() factories

``get_adapter(engine, db_options)`` picks the adapter for an engine name.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

from panoptes.adapters.engines import (
    MSSQLAdapter,
    MySQLAdapter,
    OracleAdapter,
    PostgresAdapter,
    SQLiteAdapter,
)
from panoptes.adapters.protocol import DbAdapter, QueryInfo
from panoptes.constants import SUPPORTED_ENGINES
from panoptes.errors import ConfigurationError

ADAPTERS: dict[str, type] = {
    PostgresAdapter.engine: PostgresAdapter,
    MySQLAdapter.engine: MySQLAdapter,
    MSSQLAdapter.engine: MSSQLAdapter,
    SQLiteAdapter.engine: SQLiteAdapter,
    OracleAdapter.engine: OracleAdapter,
}


def get_adapter(engine: str, db_options: Optional[Mapping[str, Any]] = None) -> DbAdapter:
    adapter_cls = ADAPTERS.get((engine or "").lower())
    if adapter_cls is None:
        raise ConfigurationError(
            f"Unsupported database engine: {engine}. Supported: {', '.join(SUPPORTED_ENGINES)}"
        )
    return adapter_cls(db_options)


for _adapter_cls in ADAPTERS.values():
    assert isinstance(_adapter_cls(), DbAdapter), (
        f"{_adapter_cls.__name__} does not satisfy DbAdapter protocol — implementation error"
    )

__all__ = [
    "ADAPTERS",
    "DbAdapter",
    "MSSQLAdapter",
    "MySQLAdapter",
    "OracleAdapter",
    "PostgresAdapter",
    "QueryInfo",
    "SQLiteAdapter",
    "get_adapter",
]
