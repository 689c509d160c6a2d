"""FileTransport — appends each audit event as one JSON line.

The parent directory is created on first write. File I/O runs in a worker
thread (``asyncio.to_thread``) so a slow disk never blocks the event loop.
Non-JSON values (datetimes, Decimals, bytes from snapshots) are written via
``str()``.
"""

from __future__ import annotations

import asyncio
import json
import os

from panoptes.audit.models import AuditEvent
from panoptes.constants import DEFAULT_AUDIT_LOG_PATH, TRANSPORT_FILE
from panoptes.utils.logger import get_logger

logger = get_logger(__name__)


class FileTransport:
    name = TRANSPORT_FILE

    def __init__(self, path: str = DEFAULT_AUDIT_LOG_PATH) -> None:
        self._path = os.path.expanduser(path)

    @property
    def path(self) -> str:
        return self._path

    async def send(self, event: AuditEvent) -> None:
        try:
            line = json.dumps(event.to_dict(), default=str)
            await asyncio.to_thread(self._append, line)
        except Exception as exc:
            logger.error(
                "file_transport_failed",
                path=self._path,
                error=str(exc),
                error_type=type(exc).__name__,
            )

    def _append(self, line: str) -> None:
        directory = os.path.dirname(self._path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(self._path, "a", encoding="utf-8") as fh:
            fh.write(line + "\n")
