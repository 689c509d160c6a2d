"""Fan-out of one AuditEvent to every enabled transport.

All sends run concurrently under ``asyncio.gather(return_exceptions=True)``: a
failing or slow sink neither prevents nor delays delivery to the others, and
nothing propagates to the caller. No deadline is imposed here; each transport
owns its own timeout.
"""

from __future__ import annotations

import asyncio

from panoptes.audit.factory import create_transport
from panoptes.audit.models import AuditEvent
from panoptes.audit.protocol import AuditTransport
from panoptes.config import PanoptesConfig
from panoptes.utils.logger import get_logger

logger = get_logger(__name__)


async def dispatch_audit_event(event: AuditEvent, config: PanoptesConfig) -> None:
    """Send ``event`` to every transport in ``config.transports.enabled``.

    Args:
        event: The finished audit event.
        config: Supplies the enabled transport names and their settings.
    """
    transports: list[AuditTransport] = []
    for name in config.transports.enabled:
        transport = create_transport(name, config.transports)
        if transport is None:
            logger.debug("transport_skipped", transport=name)
            continue
        transports.append(transport)

    if not transports:
        return

    results = await asyncio.gather(
        *(transport.send(event) for transport in transports),
        return_exceptions=True,
    )
    for transport, result in zip(transports, results):
        if isinstance(result, BaseException):
            logger.error(
                "transport_send_failed",
                transport=transport.name,
                error=str(result),
                error_type=type(result).__name__,
            )
