"""Task-scoped user context for audit events.

The context answers "who is running this query, on behalf of which request".
It is stored in a ``contextvars.ContextVar``, so each asyncio task observes its
own value: two requests served concurrently on one event loop never see each
other's actor, and tasks spawned with ``asyncio.create_task()`` inherit a
snapshot of their parent's context at creation time.

Usage (per unit of work):

    set_user_context({"actor_type": "USER", "app_user_id": 42})
    ...
    clear_user_context()

or, scoped:

    await run_with_user_context({"app_user_id": 42}, handle_request, request)

    with user_context({"actor_type": "SERVICE", "source_app": "billing-worker"}):
        await job()

Readers get a deep copy from ``get_user_context()``; mutating it never affects
the stored context. No context is represented as None.
"""

from __future__ import annotations

import copy
import inspect
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar, Union

from panoptes.constants import ACTOR_TYPES, DEFAULT_ACTOR_TYPE

T = TypeVar("T")


@dataclass
class UserContext:
    """Actor and request metadata attached to every audit event of a unit of work."""

    actor_type: str = DEFAULT_ACTOR_TYPE
    app_user_id: Optional[Any] = None
    app_username: Optional[str] = None
    app_roles: Optional[list[str]] = None
    tenant_id: Optional[Any] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    request_id: Optional[str] = None
    session_id: Optional[str] = None
    source_app: Optional[str] = None


ContextInput = Union[UserContext, Mapping[str, Any], None]

_user_context_var: ContextVar[Optional[UserContext]] = ContextVar(
    "panoptes_user_context", default=None
)


# ─── Public API ───────────────────────────────────────────────────────────────


def set_user_context(context: ContextInput) -> None:
    """Bind the user context for the remainder of the current task."""
    _user_context_var.set(sanitize_user_context(context))


def get_user_context() -> Optional[UserContext]:
    """Return a deep copy of the current user context, or None."""
    current = _user_context_var.get()
    if current is None:
        return None
    return copy.deepcopy(current)


def clear_user_context() -> None:
    """Drop the user context for the remainder of the current task."""
    _user_context_var.set(None)


@contextmanager
def user_context(context: ContextInput) -> Iterator[None]:
    """Bind a user context for the body of a ``with`` block.

    The previous context is restored on exit, including when the body raises.
    """
    token = _user_context_var.set(sanitize_user_context(context))
    try:
        yield
    finally:
        _user_context_var.reset(token)


def run_with_user_context(
    context: ContextInput,
    fn: Callable[..., Any],
    *args: Any,
    **kwargs: Any,
) -> Any:
    """Run ``fn(*args, **kwargs)`` with ``context`` bound, then restore the previous one.

    Coroutine functions (and callables returning an awaitable) get back an
    awaitable which binds the context for the whole await, across every
    suspension point:

        result = await run_with_user_context(ctx, fetch_orders, user_id)
    """
    sanitized = sanitize_user_context(context)

    if inspect.iscoroutinefunction(fn):
        return _await_with(sanitized, fn(*args, **kwargs))

    token = _user_context_var.set(sanitized)
    try:
        result = fn(*args, **kwargs)
    finally:
        _user_context_var.reset(token)

    if inspect.isawaitable(result):
        return _await_with(sanitized, result)
    return result


async def _await_with(context: UserContext, awaitable: Awaitable[T]) -> T:
    token = _user_context_var.set(context)
    try:
        return await awaitable
    finally:
        _user_context_var.reset(token)


# ─── Sanitization ─────────────────────────────────────────────────────────────


def sanitize_user_context(context: ContextInput) -> UserContext:
    """Normalize caller input into a fresh UserContext.

    Accepts a UserContext or a mapping with snake_case keys. Unknown keys are
    ignored, missing keys become None, role lists are copied and the actor
    type is coerced to USER/SYSTEM/SERVICE (USER when unrecognized).
    """
    if isinstance(context, UserContext):
        raw: Mapping[str, Any] = vars(context)
    elif isinstance(context, Mapping):
        raw = context
    else:
        return UserContext()

    roles = raw.get("app_roles")
    return UserContext(
        actor_type=normalize_actor_type(raw.get("actor_type")),
        app_user_id=raw.get("app_user_id"),
        app_username=raw.get("app_username"),
        app_roles=list(roles) if isinstance(roles, (list, tuple)) else None,
        tenant_id=raw.get("tenant_id"),
        ip_address=raw.get("ip_address"),
        user_agent=raw.get("user_agent"),
        request_id=raw.get("request_id"),
        session_id=raw.get("session_id"),
        source_app=raw.get("source_app"),
    )


def normalize_actor_type(actor_type: Any) -> str:
    """Case-insensitive coercion to USER/SYSTEM/SERVICE; USER for anything else."""
    if not actor_type:
        return DEFAULT_ACTOR_TYPE
    upper = str(actor_type).upper()
    return upper if upper in ACTOR_TYPES else DEFAULT_ACTOR_TYPE
