"""AuditEvent dataclass and the value types flowing through the audit pipeline.

Every audited query produces exactly one AuditEvent. The event is built once by
``build_audit_event()``, handed to the dispatcher, and never mutated afterwards
(all dataclasses here are frozen).

Type aliases enforce the Literal string unions used throughout the pipeline.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Any, Literal, Optional

# ─── Type Aliases ─────────────────────────────────────────────────────────────

OperationType = Literal["SELECT", "INSERT", "UPDATE", "DELETE", "DDL", "OTHER"]
OperationCategory = Literal["DML", "DDL", "OTHER"]
ActorType = Literal["USER", "SYSTEM", "SERVICE"]


# ─── Classifier output ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ParsedSql:
    """Classification of one SQL statement. Derived per query, never persisted."""

    operation_type: OperationType = "OTHER"
    operation_category: OperationCategory = "OTHER"
    main_table: Optional[str] = None
    tables_involved: tuple[str, ...] = ()
    normalized_sql: str = ""


# ─── Adapter contract ─────────────────────────────────────────────────────────


@dataclass(frozen=True)
class DbInfo:
    """Connection description attached to every event (``db`` section)."""

    engine: str
    host: Optional[str] = None
    name: Optional[str] = None
    user: Optional[str] = None
    schema: Optional[str] = None


# Driver exception attributes probed, in order, for an error code.
_ERROR_CODE_ATTRS = ("sqlstate", "pgcode", "errno", "full_code", "code")


@dataclass(frozen=True)
class QueryError:
    """Normalized application query failure, recorded as data in the event."""

    message: str
    code: Optional[str] = None

    @classmethod
    def from_exception(cls, exc: BaseException) -> "QueryError":
        """Build a QueryError from any driver exception.

        The code is taken from the first populated driver attribute
        (asyncpg ``sqlstate``, psycopg ``pgcode``, MySQL ``errno``, oracledb
        ``full_code``), falling back to a leading int arg as in
        ``pymysql.err.OperationalError(1045, "...")``.
        """
        code: Any = None
        for attr in _ERROR_CODE_ATTRS:
            value = getattr(exc, attr, None)
            if value not in (None, ""):
                code = value
                break
        if code is None and len(exc.args) > 1 and isinstance(exc.args[0], int):
            code = exc.args[0]
        return cls(message=str(exc), code=str(code) if code is not None else None)


@dataclass
class QueryPayload:
    """Everything an interceptor reports about one executed query.

    ``error`` accepts either a QueryError or the raw driver exception; the
    orchestrator normalizes it.
    """

    db: DbInfo
    sql: str
    params: list[Any] = field(default_factory=list)
    duration_ms: Optional[float] = None
    row_count: Optional[int] = None
    success: bool = True
    error: Optional[QueryError | BaseException] = None
    before_data: Optional[list[dict[str, Any]]] = None
    after_data: Optional[list[dict[str, Any]]] = None


# ─── AuditEvent ───────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class EventMeta:
    app_name: str
    environment: str
    timestamp: str
    """ISO 8601 UTC, millisecond precision, ``Z`` suffix."""
    timestamp_unix: int
    date: str
    time: str
    reason: str
    source_app: Optional[str] = None
    duration_ms: Optional[float] = None


@dataclass(frozen=True)
class EventDb:
    engine: str
    host: Optional[str] = None
    name: Optional[str] = None
    user: Optional[str] = None
    schema: Optional[str] = None


@dataclass(frozen=True)
class EventOperation:
    type: OperationType
    category: OperationCategory
    main_table: Optional[str] = None
    tables_involved: tuple[str, ...] = ()


@dataclass(frozen=True)
class EventSql:
    raw: str
    normalized: str
    parameters: tuple[Any, ...] = ()
    row_count: Optional[int] = None
    success: bool = True
    error_code: Optional[str] = None
    error_message: Optional[str] = None


@dataclass(frozen=True)
class EventData:
    """Row snapshots. A None field means "not captured", never "zero rows"."""

    before: Optional[tuple[dict[str, Any], ...]] = None
    after: Optional[tuple[dict[str, Any], ...]] = None


@dataclass(frozen=True)
class EventActor:
    actor_type: Optional[ActorType] = None
    app_user_id: Optional[Any] = None
    app_username: Optional[str] = None
    app_roles: Optional[tuple[str, ...]] = None
    tenant_id: Optional[Any] = None


@dataclass(frozen=True)
class EventRequest:
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    request_id: Optional[str] = None
    session_id: Optional[str] = None


@dataclass(frozen=True)
class AuditEvent:
    """Complete audit record for one audited database operation.

    Sections mirror the persisted audit table (see ``panoptes.audit.schema``):
        meta      — app, environment, timing and the rules-engine reason
        db        — engine and connection identity
        operation — classifier output
        sql       — raw/normalized text, parameters, outcome
        data      — optional before/after snapshots
        actor     — who, from the user context
        request   — request metadata, from the user context
    """

    meta: EventMeta
    db: EventDb
    operation: EventOperation
    sql: EventSql
    data: EventData = field(default_factory=EventData)
    actor: EventActor = field(default_factory=EventActor)
    request: EventRequest = field(default_factory=EventRequest)

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready mapping shared by every transport.

        Snapshot keys are dropped from ``data`` when not captured so consumers
        can tell "no snapshot" apart from "snapshot with zero rows".
        """
        payload = dataclasses.asdict(self)
        payload["data"] = {k: v for k, v in payload["data"].items() if v is not None}
        return payload
