"""Starlette middleware binding the Panoptes user context per HTTP request.

Each request gets a fresh UserContext carrying:
  - ip_address  — client host as seen by the ASGI server
  - user_agent  — User-Agent header
  - request_id  — X-Request-ID header, or a generated ULID
  - session_id  — X-Session-ID header, when present
  - any actor fields returned by ``context_factory(request)``

The downstream app runs inside ``user_context(...)``, so every query audited
while handling the request carries these fields, and concurrent requests
never see each other's context. The request id is echoed back in the
X-Request-ID response header.

Registration:
    app.add_middleware(PanoptesContextMiddleware, context_factory=resolve_actor)

where ``resolve_actor`` is a sync or async callable returning a mapping such as
``{"actor_type": "USER", "app_user_id": 42, "app_roles": ["admin"]}``.
"""

from __future__ import annotations

import inspect
from typing import Any, Awaitable, Callable, Mapping, Optional, Union

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from panoptes.context import user_context
from panoptes.utils.logger import get_logger
from panoptes.utils.ulid import generate_ulid

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
SESSION_ID_HEADER = "X-Session-ID"

ContextFactory = Callable[
    [Request], Union[Optional[Mapping[str, Any]], Awaitable[Optional[Mapping[str, Any]]]]
]


class PanoptesContextMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, context_factory: Optional[ContextFactory] = None) -> None:
        super().__init__(app)
        self._context_factory = context_factory

    async def dispatch(self, request: Request, call_next) -> Response:  # type: ignore[override]
        request_id = request.headers.get(REQUEST_ID_HEADER) or generate_ulid()

        context: dict[str, Any] = {
            "ip_address": request.client.host if request.client else None,
            "user_agent": request.headers.get("user-agent"),
            "request_id": request_id,
            "session_id": request.headers.get(SESSION_ID_HEADER),
        }

        if self._context_factory is not None:
            extra = self._context_factory(request)
            if inspect.isawaitable(extra):
                extra = await extra
            if extra:
                context.update(extra)

        with user_context(context):
            response = await call_next(request)

        response.headers.setdefault(REQUEST_ID_HEADER, request_id)
        return response
