"""
Tests for the testing helpers.
"""

import asyncio

import pytest

from provio import provide
from provio.testing import ResolverSpy, override, stub


class TestResolverSpy:

    def test_records_calls(self):
        spy = ResolverSpy(lambda c: c["a"] + 1)

        assert spy({"a": 1}) == 2
        assert spy.call_count == 1
        assert spy.calls == [{"a": 1}]

        spy.reset()
        assert spy.call_count == 0

    def test_default_factory_returns_new_objects(self):
        spy = ResolverSpy()
        assert spy({}) is not spy({})

    @pytest.mark.asyncio
    async def test_delay_returns_awaitable(self):
        spy = ResolverSpy(lambda _: "late", delay=0)
        assert await spy({}) == "late"

    @pytest.mark.asyncio
    async def test_fixture(self, resolver_spy):
        spy = resolver_spy(lambda _: 5, delay=0.01)
        p = provide("p", resolver=spy)

        results = await asyncio.gather(p("k"), p("k"))

        assert results == [5, 5]
        assert spy.call_count == 1


class TestStubAndOverride:

    @pytest.mark.asyncio
    async def test_stub(self):
        value = object()
        assert await stub("db", value)() is value

    @pytest.mark.asyncio
    async def test_override_patches_copy_only(self):
        db = provide("db", resolver=lambda _: "real-db")
        repo = provide("repo", dependencies=[db], resolver=lambda d: f"repo({d['db']})")

        async with override(repo, stub("db", "fake-db")) as patched:
            assert patched is not repo
            assert await patched() == "repo(fake-db)"

        assert await repo() == "repo(real-db)"

    @pytest.mark.asyncio
    async def test_override_disposes_on_exit(self):
        disposed = []
        db = provide("db", resolver=lambda _: "conn", disposer=disposed.append).persisted()
        repo = provide("repo", dependencies=[db], resolver=lambda d: d["db"])

        await repo()

        async with override(repo) as patched:
            await patched()
            assert disposed == []

        assert disposed == ["conn"]
        assert "singleton" in db.inspect().cache
