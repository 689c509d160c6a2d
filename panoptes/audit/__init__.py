"""Panoptes audit event and transport package.

Re-exports the public API for ergonomic imports:

    from panoptes.audit import AuditEvent, AuditTransport, dispatch_audit_event

Layout:
    models.py             — AuditEvent, ParsedSql, DbInfo, QueryError, QueryPayload
    protocol.py           — AuditTransport Protocol + NullTransport
    factory.py            — create_transport() — transport selection by name
    dispatcher.py         — dispatch_audit_event() — concurrent fan-out
    console_transport.py  — ConsoleTransport (structlog)
    file_transport.py     — FileTransport (JSON lines)
    http_transport.py     — HttpTransport (httpx, 5s timeout)
    database_transport.py — DatabaseTransport + per-client table provisioning
    schema.py             — audit table DDL per engine + row flattening
"""

from panoptes.audit.dispatcher import dispatch_audit_event
from panoptes.audit.models import (
    ActorType,
    AuditEvent,
    DbInfo,
    OperationCategory,
    OperationType,
    ParsedSql,
    QueryError,
    QueryPayload,
)
from panoptes.audit.protocol import AuditTransport, NullTransport

__all__ = [
    # Type aliases
    "ActorType",
    "OperationCategory",
    "OperationType",
    # Dataclasses
    "AuditEvent",
    "DbInfo",
    "ParsedSql",
    "QueryError",
    "QueryPayload",
    # Protocol + implementations
    "AuditTransport",
    "NullTransport",
    # Dispatch
    "dispatch_audit_event",
]
