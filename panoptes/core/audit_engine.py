"""Audit orchestrator: the single entry point interceptors report queries to.

Per call:
  1. No-op unless the configuration store was initialized
  2. Read the user context and a config snapshot, classify the SQL
  3. Ask the rules engine; stop here when the verdict is "do not audit"
  4. Build the AuditEvent and dispatch it to every enabled transport

A failed application query is recorded as data in the event. Nothing here
raises because the audited query failed, and dispatch absorbs sink failures.
"""

from __future__ import annotations

from panoptes.audit.dispatcher import dispatch_audit_event
from panoptes.audit.models import QueryError, QueryPayload
from panoptes.config import get_config, is_initialized
from panoptes.context import get_user_context
from panoptes.core.event_builder import build_audit_event
from panoptes.core.rules_engine import should_audit
from panoptes.core.sql_parser import classify_sql
from panoptes.utils.logger import get_logger

logger = get_logger(__name__)


async def audit_query(payload: QueryPayload) -> None:
    """Classify, filter, build and dispatch the event for one executed query.

    A no-op until configuration is initialized. Called after the driver call
    returns or raises; a failed query is recorded in the event, not re-raised here.

    Args:
        payload: What the interceptor observed about the call.
    """
    if not is_initialized():
        return

    user_context = get_user_context()
    config = get_config()
    parsed = classify_sql(payload.sql)

    decision = should_audit(config, parsed)
    if not decision.audit:
        logger.debug(
            "audit_skipped",
            reason=decision.reason,
            operation=parsed.operation_type,
            main_table=parsed.main_table,
        )
        return

    error = payload.error
    if isinstance(error, BaseException):
        error = QueryError.from_exception(error)

    event = build_audit_event(
        config=config,
        db=payload.db,
        sql=payload.sql,
        params=payload.params,
        duration_ms=payload.duration_ms,
        row_count=payload.row_count,
        success=payload.success,
        error=error,
        user_context=user_context,
        parsed_sql=parsed,
        reason=decision.reason,
        before_data=payload.before_data,
        after_data=payload.after_data,
    )

    logger.debug(
        "audit_event_built",
        reason=decision.reason,
        operation=parsed.operation_type,
        main_table=parsed.main_table,
        success=payload.success,
    )
    await dispatch_audit_event(event, config)
