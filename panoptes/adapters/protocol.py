"""DbAdapter Protocol — the per-engine driver capability interface.

An adapter knows one async driver's calling convention: which client methods
run SQL, how to pull ``(sql, params)`` out of a call, and how to read a row
count out of its result. Adapters hold no state beyond the connection
description passed in ``db_options``.
"""

from __future__ import annotations

from typing import Any, Mapping, NamedTuple, Optional, Protocol, runtime_checkable

from panoptes.audit.models import DbInfo


class QueryInfo(NamedTuple):
    sql: str
    params: list[Any]


@runtime_checkable
class DbAdapter(Protocol):
    engine: str
    intercepted_methods: frozenset[str]

    def validate_client(self, client: Any) -> None:
        """Raise AdapterValidationError if ``client`` lacks the driver's methods."""
        ...

    def extract_query_info(
        self, method: str, args: tuple[Any, ...], kwargs: Mapping[str, Any]
    ) -> QueryInfo:
        ...

    def extract_row_count(self, method: str, result: Any) -> Optional[int]:
        ...

    def get_db_info(self) -> DbInfo:
        ...
