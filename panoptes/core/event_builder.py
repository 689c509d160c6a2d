"""AuditEvent construction.

``build_audit_event()`` is pure and deterministic given ``now``. The clock is
read once per event: timestamp, unix timestamp, date and time all derive from
the same UTC reading, so an event written at midnight never carries a date
from one day and a timestamp from the next.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional, Sequence

from panoptes.audit.models import (
    AuditEvent,
    DbInfo,
    EventActor,
    EventData,
    EventDb,
    EventMeta,
    EventOperation,
    EventRequest,
    EventSql,
    ParsedSql,
    QueryError,
)
from panoptes.config import PanoptesConfig
from panoptes.context import UserContext


def build_audit_event(
    *,
    config: PanoptesConfig,
    db: DbInfo,
    sql: str,
    parsed_sql: ParsedSql,
    reason: str,
    params: Optional[Sequence[Any]] = None,
    duration_ms: Optional[float] = None,
    row_count: Optional[int] = None,
    success: bool = True,
    error: Optional[QueryError] = None,
    user_context: Optional[UserContext] = None,
    before_data: Optional[Sequence[dict[str, Any]]] = None,
    after_data: Optional[Sequence[dict[str, Any]]] = None,
    now: Optional[datetime] = None,
) -> AuditEvent:
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    else:
        now = now.astimezone(timezone.utc)

    ctx = user_context or UserContext()

    meta = EventMeta(
        app_name=config.app_name,
        environment=config.environment,
        source_app=ctx.source_app,
        timestamp=format_timestamp(now),
        timestamp_unix=int(now.timestamp()),
        date=now.strftime("%Y-%m-%d"),
        time=now.strftime("%H:%M:%S"),
        duration_ms=duration_ms,
        reason=reason,
    )

    failed = not success
    event_sql = EventSql(
        raw=sql,
        normalized=parsed_sql.normalized_sql,
        parameters=tuple(params or ()),
        row_count=row_count,
        success=success,
        error_code=error.code if failed and error is not None else None,
        error_message=error.message if failed and error is not None else None,
    )

    return AuditEvent(
        meta=meta,
        db=EventDb(
            engine=db.engine,
            host=db.host,
            name=db.name,
            user=db.user,
            schema=db.schema,
        ),
        operation=EventOperation(
            type=parsed_sql.operation_type,
            category=parsed_sql.operation_category,
            main_table=parsed_sql.main_table,
            tables_involved=tuple(parsed_sql.tables_involved),
        ),
        sql=event_sql,
        data=EventData(
            before=_snapshot(before_data),
            after=_snapshot(after_data),
        ),
        actor=EventActor(
            actor_type=ctx.actor_type if user_context is not None else None,  # type: ignore[arg-type]
            app_user_id=ctx.app_user_id,
            app_username=ctx.app_username,
            app_roles=tuple(ctx.app_roles) if ctx.app_roles is not None else None,
            tenant_id=ctx.tenant_id,
        ),
        request=EventRequest(
            ip_address=ctx.ip_address,
            user_agent=ctx.user_agent,
            request_id=ctx.request_id,
            session_id=ctx.session_id,
        ),
    )


def format_timestamp(now: datetime) -> str:
    """ISO 8601 in UTC with millisecond precision and a ``Z`` suffix."""
    return now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _snapshot(rows: Optional[Sequence[dict[str, Any]]]) -> Optional[tuple[dict[str, Any], ...]]:
    # An empty snapshot is omitted: None means "not captured".
    if not rows:
        return None
    return tuple(dict(row) for row in rows)
