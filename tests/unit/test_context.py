"""Unit tests for panoptes.context — task-scoped user context."""

from __future__ import annotations

import asyncio

import pytest

from panoptes.context import (
    UserContext,
    clear_user_context,
    get_user_context,
    normalize_actor_type,
    run_with_user_context,
    sanitize_user_context,
    set_user_context,
    user_context,
)


class TestSetGetClear:
    def test_no_context_returns_none(self) -> None:
        assert get_user_context() is None

    def test_set_then_get(self) -> None:
        set_user_context({"actor_type": "user", "app_user_id": 42, "app_roles": ["admin"]})
        ctx = get_user_context()
        assert ctx is not None
        assert ctx.actor_type == "USER"
        assert ctx.app_user_id == 42
        assert ctx.app_roles == ["admin"]

    def test_clear(self) -> None:
        set_user_context({"app_user_id": 1})
        clear_user_context()
        assert get_user_context() is None

    def test_get_returns_deep_copy(self) -> None:
        set_user_context({"app_user_id": 1, "app_roles": ["reader"]})
        first = get_user_context()
        first.app_roles.append("admin")
        first.app_user_id = 999

        second = get_user_context()
        assert second.app_roles == ["reader"]
        assert second.app_user_id == 1

    def test_roles_copied_on_set(self) -> None:
        roles = ["reader"]
        set_user_context({"app_roles": roles})
        roles.append("admin")
        assert get_user_context().app_roles == ["reader"]

    def test_accepts_user_context_instance(self) -> None:
        set_user_context(UserContext(actor_type="service", source_app="worker"))
        ctx = get_user_context()
        assert ctx.actor_type == "SERVICE"
        assert ctx.source_app == "worker"


class TestSanitize:
    @pytest.mark.parametrize(
        "raw,expected",
        [("user", "USER"), ("System", "SYSTEM"), ("SERVICE", "SERVICE"), ("robot", "USER"), (None, "USER"), ("", "USER")],
    )
    def test_actor_type_coercion(self, raw: object, expected: str) -> None:
        assert normalize_actor_type(raw) == expected

    def test_missing_fields_become_none(self) -> None:
        ctx = sanitize_user_context({"app_user_id": 7})
        assert ctx.actor_type == "USER"
        assert ctx.app_username is None
        assert ctx.app_roles is None
        assert ctx.request_id is None

    def test_unknown_keys_ignored(self) -> None:
        ctx = sanitize_user_context({"app_user_id": 7, "favourite_colour": "blue"})
        assert not hasattr(ctx, "favourite_colour")

    def test_non_mapping_yields_empty_context(self) -> None:
        assert sanitize_user_context(None) == UserContext()
        assert sanitize_user_context("user-42") == UserContext()  # type: ignore[arg-type]

    def test_tuple_roles_become_list(self) -> None:
        assert sanitize_user_context({"app_roles": ("a", "b")}).app_roles == ["a", "b"]


class TestScopedContext:
    def test_context_manager_restores_previous(self) -> None:
        set_user_context({"app_user_id": "outer"})
        with user_context({"app_user_id": "inner"}):
            assert get_user_context().app_user_id == "inner"
        assert get_user_context().app_user_id == "outer"

    def test_context_manager_restores_on_error(self) -> None:
        with pytest.raises(RuntimeError):
            with user_context({"app_user_id": "inner"}):
                raise RuntimeError("boom")
        assert get_user_context() is None

    def test_run_with_sync_function(self) -> None:
        result = run_with_user_context(
            {"app_user_id": 5}, lambda x: (x, get_user_context().app_user_id), "arg"
        )
        assert result == ("arg", 5)
        assert get_user_context() is None

    def test_run_with_sync_function_restores_on_error(self) -> None:
        set_user_context({"app_user_id": "outer"})

        def fail() -> None:
            raise ValueError("nope")

        with pytest.raises(ValueError):
            run_with_user_context({"app_user_id": "inner"}, fail)
        assert get_user_context().app_user_id == "outer"

    async def test_run_with_coroutine_spans_awaits(self) -> None:
        async def handler(delay: float) -> object:
            await asyncio.sleep(delay)
            seen = get_user_context().app_user_id
            await asyncio.sleep(delay)
            return seen

        result = await run_with_user_context({"app_user_id": 11}, handler, 0)
        assert result == 11
        assert get_user_context() is None

    async def test_run_with_coroutine_restores_on_error(self) -> None:
        async def failing() -> None:
            await asyncio.sleep(0)
            raise KeyError("missing")

        with pytest.raises(KeyError):
            await run_with_user_context({"app_user_id": 1}, failing)
        assert get_user_context() is None

    async def test_run_with_callable_returning_awaitable(self) -> None:
        async def inner() -> object:
            return get_user_context().app_user_id

        result = await run_with_user_context({"app_user_id": "lazy"}, lambda: inner())
        assert result == "lazy"


class TestConcurrentIsolation:
    async def test_concurrent_units_never_cross_talk(self) -> None:
        """Interleaved tasks each observe only their own context."""

        async def unit(user_id: int) -> list[object]:
            seen = []
            for _ in range(5):
                await asyncio.sleep(0)
                seen.append(get_user_context().app_user_id)
            return seen

        results = await asyncio.gather(
            run_with_user_context({"app_user_id": 1}, unit, 1),
            run_with_user_context({"app_user_id": 2}, unit, 2),
        )
        assert results == [[1] * 5, [2] * 5]

    async def test_set_in_task_does_not_leak_to_parent(self) -> None:
        async def child() -> None:
            set_user_context({"app_user_id": "child"})

        await asyncio.create_task(child())
        assert get_user_context() is None

    async def test_child_task_inherits_snapshot(self) -> None:
        set_user_context({"app_user_id": "parent"})

        async def child() -> object:
            return get_user_context().app_user_id

        assert await asyncio.create_task(child()) == "parent"
