"""
Tests for scopes.
"""

import pytest

from provio import Scope, create_scope, provide


class TestScope:

    def test_create_scope(self):
        a = provide("a")
        scope = create_scope(a, a)

        assert isinstance(scope, Scope)
        assert scope.providers == (a,)
        assert len(scope) == 1

    def test_add_and_remove_in_place(self):
        a, b = provide("a"), provide("b")
        scope = create_scope(a)

        assert scope.add(b, a) is scope
        assert scope.providers == (a, b)

        assert scope.remove(a) is scope
        assert scope.providers == (b,)
        assert a not in scope

    def test_remove_missing_raises(self):
        scope = create_scope()
        with pytest.raises(KeyError):
            scope.remove(provide("a"))

    @pytest.mark.asyncio
    async def test_hooks_forwarded_to_current_members(self):
        calls = []
        a, b = provide("a"), provide("b")
        scope = create_scope(a, b, name="request")

        scope.on_start(lambda: calls.append("start"))
        scope.add(provide("late"))
        await scope.start()

        assert calls == ["start", "start"]
        assert len(scope.lifecycle.hooks("start")) == 1

    @pytest.mark.asyncio
    async def test_stop_fires_hooks_then_disposes(self):
        events = []
        a = provide("a", resolver=lambda _: "a", disposer=lambda i: events.append(("dispose", i)))
        scope = create_scope(a).on_stop(lambda: events.append(("stop", None)))

        await a("r1")
        await a("r2")
        await scope.stop()

        assert events[0] == ("stop", None)
        assert sorted(events[1:]) == [("dispose", "a"), ("dispose", "a")]
        assert len(a.inspect().cache) == 0

    @pytest.mark.asyncio
    async def test_stop_without_dispose(self):
        a = provide("a", resolver=lambda _: "a")
        scope = create_scope(a)

        await a("r1")
        await scope.stop(dispose=False)

        assert "r1" in a.inspect().cache

    @pytest.mark.asyncio
    async def test_dispose_one_key(self):
        a = provide("a", resolver=lambda _: object())
        scope = create_scope(a)

        await a("r1")
        await a("r2")
        await scope.dispose("r1")

        assert set(a.inspect().cache.map) == {"r2"}
