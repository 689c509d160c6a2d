"""AuditTransport Protocol + NullTransport.

A transport delivers one AuditEvent to one sink (console, file, HTTP collector,
database table). Transports are selected by name through
``create_transport()`` (audit/factory.py) and driven by the dispatcher.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from panoptes.audit.models import AuditEvent
from panoptes.constants import TRANSPORT_NULL
from panoptes.utils.logger import get_logger

logger = get_logger(__name__)


# ─── AuditTransport Protocol ──────────────────────────────────────────────────


@runtime_checkable
class AuditTransport(Protocol):
    """Pluggable audit sink interface.

    Implementations: ConsoleTransport, FileTransport, HttpTransport,
    DatabaseTransport.

    send() must NEVER raise: sink failures are caught and logged inside the
    transport. The dispatcher isolates transports from each other as well, so
    a transport that breaks this rule still cannot affect its siblings.
    """

    name: str

    async def send(self, event: AuditEvent) -> None:
        """Deliver one event to the sink."""
        ...


# ─── NullTransport ────────────────────────────────────────────────────────────


class NullTransport:
    """No-op AuditTransport. Useful in tests and as an explicit "drop" sink."""

    name = TRANSPORT_NULL

    async def send(self, event: AuditEvent) -> None:
        logger.debug("null_transport_send", operation=event.operation.type)


# Protocol drift check at import time.
assert isinstance(NullTransport(), AuditTransport), (
    "NullTransport does not satisfy AuditTransport protocol — implementation error"
)
