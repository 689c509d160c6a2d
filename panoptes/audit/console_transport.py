"""ConsoleTransport — one structlog line per audit event."""

from __future__ import annotations

from panoptes.audit.models import AuditEvent
from panoptes.constants import TRANSPORT_CONSOLE
from panoptes.utils.logger import get_logger

logger = get_logger(__name__)


class ConsoleTransport:
    name = TRANSPORT_CONSOLE

    async def send(self, event: AuditEvent) -> None:
        try:
            logger.info("panoptes_audit_event", **event.to_dict())
        except Exception as exc:
            logger.error(
                "console_transport_failed",
                error=str(exc),
                error_type=type(exc).__name__,
            )
