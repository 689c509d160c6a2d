"""HttpTransport — POSTs each audit event as JSON to a collector endpoint.

Every request is bounded by ``timeout_s`` (5 seconds by default): an
unreachable collector only delays its own completion. Non-2xx responses and
transport errors are logged at ERROR and swallowed.

Usage:
    transport = HttpTransport(endpoint="https://audit.internal/events")
    await transport.send(event)

Tests inject ``client_transport=httpx.MockTransport(handler)``.
"""

from __future__ import annotations

import json
from typing import Optional

import httpx

from panoptes.audit.models import AuditEvent
from panoptes.constants import HTTP_TRANSPORT_TIMEOUT_S, TRANSPORT_HTTP
from panoptes.utils.logger import get_logger

logger = get_logger(__name__)


class HttpTransport:
    name = TRANSPORT_HTTP

    def __init__(
        self,
        endpoint: str,
        timeout_s: float = HTTP_TRANSPORT_TIMEOUT_S,
        headers: Optional[dict[str, str]] = None,
        client_transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._endpoint = endpoint
        self._timeout_s = timeout_s
        self._headers = {"Content-Type": "application/json", **(headers or {})}
        self._client_transport = client_transport

    async def send(self, event: AuditEvent) -> None:
        if not self._endpoint:
            logger.warning("http_transport_no_endpoint")
            return

        try:
            body = json.dumps(event.to_dict(), default=str)
            async with httpx.AsyncClient(
                timeout=self._timeout_s,
                transport=self._client_transport,
            ) as client:
                response = await client.post(
                    self._endpoint,
                    content=body,
                    headers=self._headers,
                )
            if not response.is_success:
                logger.error(
                    "http_transport_rejected",
                    endpoint=self._endpoint,
                    status_code=response.status_code,
                )
        except Exception as exc:
            logger.error(
                "http_transport_failed",
                endpoint=self._endpoint,
                error=str(exc),
                error_type=type(exc).__name__,
            )
