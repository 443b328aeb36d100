"""
Tests for the resolution cache: entries, TTL expiry and disposal policy.
"""

import asyncio
import dataclasses

import pytest

from provio.cache import CachingOpts, Resolution, ResolutionCache
from provio.diagnostics import DiagnosticEventType


async def _value(value):
    return value


async def _fail(error):
    raise error


class TestResolutionCache:

    @pytest.mark.asyncio
    async def test_set_and_get(self):
        cache = ResolutionCache(owner="x")
        entry = cache.set("k", _value(1))

        assert isinstance(entry, Resolution)
        assert cache.get("k") is entry
        assert "k" in cache
        assert len(cache) == 1
        assert await entry.resolution == 1

    @pytest.mark.asyncio
    async def test_get_missing_key(self):
        cache = ResolutionCache()
        assert cache.get("nope") is None
        assert "nope" not in cache

    @pytest.mark.asyncio
    async def test_empty_string_is_a_valid_key(self):
        cache = ResolutionCache()
        cache.set("", _value("empty"))
        assert "" in cache
        await cache.dispose("")
        assert "" not in cache

    @pytest.mark.asyncio
    async def test_all_lists_entries(self):
        cache = ResolutionCache()
        a = cache.set("a", _value(1))
        b = cache.set("b", _value(2))
        assert cache.all() == [a, b]
        await cache.dispose()

    @pytest.mark.asyncio
    async def test_dispose_one_key(self):
        disposed = []
        cache = ResolutionCache()
        cache.set("a", _value(1), disposer=disposed.append)
        cache.set("b", _value(2), disposer=disposed.append)

        await cache.dispose("a")

        assert disposed == [1]
        assert "a" not in cache
        assert "b" in cache

    @pytest.mark.asyncio
    async def test_dispose_missing_key_is_noop(self):
        cache = ResolutionCache()
        await cache.dispose("missing")
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_dispose_all(self):
        disposed = []
        cache = ResolutionCache()
        cache.set("a", _value(1), disposer=disposed.append)
        cache.set("b", _value(2), disposer=disposed.append)

        await cache.dispose()

        assert sorted(disposed) == [1, 2]
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_async_disposer_is_awaited(self):
        disposed = []

        async def disposer(instance):
            await asyncio.sleep(0)
            disposed.append(instance)

        cache = ResolutionCache()
        cache.set("k", _value("conn"), disposer=disposer)
        await cache.dispose("k")

        assert disposed == ["conn"]


class TestDisposalPolicy:

    @pytest.mark.asyncio
    async def test_entry_removed_before_disposer_runs(self):
        cache = ResolutionCache()
        seen = []

        def disposer(instance):
            seen.append("k" in cache)

        cache.set("k", _value(1), disposer=disposer)
        await cache.dispose("k")

        assert seen == [False]

    @pytest.mark.asyncio
    async def test_failing_disposer_propagates_and_entry_is_gone(self):
        def disposer(instance):
            raise RuntimeError("close failed")

        cache = ResolutionCache()
        cache.set("k", _value(1), disposer=disposer)

        with pytest.raises(RuntimeError, match="close failed"):
            await cache.dispose("k")
        assert "k" not in cache

    @pytest.mark.asyncio
    async def test_failing_disposer_emits_event(self, recorder):
        def disposer(instance):
            raise RuntimeError("close failed")

        cache = ResolutionCache(owner="db")
        cache.set("k", _value(1), disposer=disposer)

        with pytest.raises(RuntimeError):
            await cache.dispose("k")

        assert DiagnosticEventType.DISPOSAL_FAILURE in recorder.types()
        assert DiagnosticEventType.DISPOSAL not in recorder.types()

    @pytest.mark.asyncio
    async def test_failed_construction_skips_disposer(self):
        disposed = []
        cache = ResolutionCache()
        entry = cache.set("k", _fail(ValueError("boom")), disposer=disposed.append)

        with pytest.raises(ValueError):
            await entry.resolution

        await cache.dispose("k")
        assert disposed == []
        assert "k" not in cache

    @pytest.mark.asyncio
    async def test_disposer_runs_once_for_repeated_dispose(self):
        disposed = []
        cache = ResolutionCache()
        entry = cache.set("k", _value(1), disposer=disposed.append)

        await asyncio.gather(entry.dispose(), entry.dispose(), cache.dispose("k"))

        assert disposed == [1]
        assert entry.disposed

    @pytest.mark.asyncio
    async def test_stale_entry_does_not_evict_newer_one(self):
        cache = ResolutionCache()
        old = cache.set("k", _value(1))
        new = cache.set("k", _value(2))

        await old.dispose()

        assert cache.get("k") is new
        await cache.dispose()

    @pytest.mark.asyncio
    async def test_disposal_waits_for_pending_construction(self):
        disposed = []
        release = asyncio.Event()

        async def slow():
            await release.wait()
            return "late"

        cache = ResolutionCache()
        cache.set("k", slow(), disposer=disposed.append)

        disposal = asyncio.ensure_future(cache.dispose("k"))
        await asyncio.sleep(0)
        assert disposed == []

        release.set()
        await disposal
        assert disposed == ["late"]


class TestTimeToLive:

    @pytest.mark.asyncio
    async def test_timer_armed_only_with_ttl(self):
        cache = ResolutionCache()
        plain = cache.set("plain", _value(1))
        timed = cache.set("timed", _value(2), ttl=10_000)

        assert plain.dispose_timer is None
        assert timed.dispose_timer is not None
        await cache.dispose()

    @pytest.mark.asyncio
    async def test_entry_expires(self):
        disposed = []
        cache = ResolutionCache()
        cache.set("k", _value("v"), disposer=disposed.append, ttl=10)

        await asyncio.sleep(0.1)

        assert "k" not in cache
        assert disposed == ["v"]

    @pytest.mark.asyncio
    async def test_expiry_without_disposer_still_evicts(self):
        cache = ResolutionCache()
        cache.set("k", _value("v"), ttl=10)

        await asyncio.sleep(0.1)

        assert "k" not in cache

    @pytest.mark.asyncio
    async def test_manual_dispose_cancels_timer(self):
        disposed = []
        cache = ResolutionCache()
        entry = cache.set("k", _value("v"), disposer=disposed.append, ttl=30)

        await cache.dispose("k")
        assert entry.dispose_timer is None

        await asyncio.sleep(0.1)
        assert disposed == ["v"]

    @pytest.mark.asyncio
    async def test_expiry_failure_is_logged(self, caplog):
        def disposer(instance):
            raise RuntimeError("close failed")

        cache = ResolutionCache(owner="db")
        cache.set("k", _value("v"), disposer=disposer, ttl=10)

        with caplog.at_level("ERROR", logger="provio.cache"):
            await asyncio.sleep(0.1)

        assert "k" not in cache
        assert any("TTL disposal" in record.getMessage() for record in caplog.records)


class TestCachingOpts:

    def test_defaults(self):
        opts = CachingOpts()
        assert opts.disposer is None
        assert opts.ttl is None

    def test_frozen(self):
        opts = CachingOpts(ttl=5)
        with pytest.raises(dataclasses.FrozenInstanceError):
            opts.ttl = 10
