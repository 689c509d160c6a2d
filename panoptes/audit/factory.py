"""Transport factory — transport-name to transport-instance selection.

Recognized names (``transports.enabled``):
  console  → ConsoleTransport (structlog line per event)
  file     → FileTransport (JSON line appended to transports.file.path)
  http     → HttpTransport (POST to transports.http.endpoint)
  database → DatabaseTransport (INSERT into transports.database.table_name)
  null     → NullTransport (accepts and drops every event)

Unknown names return None and are skipped by the dispatcher. A database
transport without a configured client is also skipped, with a warning.
"""

from __future__ import annotations

from typing import Optional

from panoptes.audit.protocol import AuditTransport, NullTransport
from panoptes.config import TransportsConfig
from panoptes.constants import (
    TRANSPORT_CONSOLE,
    TRANSPORT_DATABASE,
    TRANSPORT_FILE,
    TRANSPORT_HTTP,
    TRANSPORT_NULL,
)
from panoptes.utils.logger import get_logger

logger = get_logger(__name__)


def create_transport(name: str, transports: TransportsConfig) -> Optional[AuditTransport]:
    """Build the transport registered under ``name``.

    Imports are deferred so a sink's driver is only loaded when enabled.

    Args:
        name: One entry of ``transports.enabled``.
        transports: The transports section of the active configuration.

    Returns:
        A fresh transport, or None for an unknown name or an unconfigured
        database sink.
    """
    if name == TRANSPORT_CONSOLE:
        from panoptes.audit.console_transport import ConsoleTransport

        return ConsoleTransport()

    if name == TRANSPORT_FILE:
        from panoptes.audit.file_transport import FileTransport

        return FileTransport(path=transports.file.path)

    if name == TRANSPORT_HTTP:
        from panoptes.audit.http_transport import HttpTransport

        return HttpTransport(
            endpoint=transports.http.endpoint,
            timeout_s=transports.http.timeout_s,
            headers=transports.http.headers,
        )

    if name == TRANSPORT_DATABASE:
        database = transports.database
        if database is None or database.client is None:
            logger.warning("database_transport_not_configured")
            return None
        from panoptes.audit.database_transport import DatabaseTransport

        return DatabaseTransport(
            client=database.client,
            engine=database.engine,
            table_name=database.table_name,
            auto_create_table=database.auto_create_table,
        )

    if name == TRANSPORT_NULL:
        return NullTransport()

    return None
