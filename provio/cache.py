"""
Resolution cache - per-provider memoization of constructed instances.

Every provider owns exactly one ResolutionCache. The cache stores the pending
future of a construction (not the settled value), which is what lets concurrent
callers share a single construction per key.
"""

from typing import Any, Awaitable, Callable, Dict, List, Optional
from dataclasses import dataclass
import asyncio
import inspect
import logging

from .diagnostics import DiagnosticEventType, diagnostics

logger = logging.getLogger("provio.cache")

# Called with the resolved instance when its cache entry is removed
Disposer = Callable[[Any], Any]


@dataclass(frozen=True)
class CachingOpts:
    """
    Per-call caching options.

    Attributes:
        disposer: Called with the instance upon disposal
        ttl: Time-to-live in milliseconds
    """
    disposer: Optional[Disposer] = None
    ttl: Optional[float] = None


class Resolution:
    """
    One cached construction: the shared future, its TTL timer and disposal.
    """

    __slots__ = (
        "key",
        "resolution",
        "dispose_timer",
        "_cache",
        "_disposer",
        "_disposal",
    )

    def __init__(
        self,
        cache: "ResolutionCache",
        key: str,
        resolution: Awaitable[Any],
        disposer: Optional[Disposer] = None,
        ttl: Optional[float] = None,
    ):
        self.key = key
        self.resolution: asyncio.Future = asyncio.ensure_future(resolution)
        self.dispose_timer: Optional[asyncio.TimerHandle] = None
        self._cache = cache
        self._disposer = disposer
        self._disposal: Optional[asyncio.Future] = None

        if ttl:
            loop = asyncio.get_running_loop()
            self.dispose_timer = loop.call_later(ttl / 1000, self._expire)

    @property
    def disposer(self) -> Optional[Disposer]:
        return self._disposer

    @property
    def disposed(self) -> bool:
        return self._disposal is not None and self._disposal.done()

    def dispose(self) -> "asyncio.Future[None]":
        """
        Dispose this entry.

        Stops the TTL timer, removes the entry from the cache, waits for the
        construction to settle and calls the disposer with the instance.
        Repeated calls share the first disposal, so the disposer runs once.
        """
        if self._disposal is None:
            self._disposal = asyncio.ensure_future(self._dispose())
        return self._disposal

    async def _dispose(self) -> None:
        self._stop_timer()
        # Removal comes first: a failing disposer must not pin the key.
        self._cache._evict(self.key, self)

        try:
            instance = await asyncio.shield(self.resolution)
        except Exception as e:
            logger.debug(
                "Construction under key %r of %r failed (%r), nothing to dispose",
                self.key, self._cache.owner, e,
            )
            return

        if self._disposer is not None:
            try:
                result = self._disposer(instance)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                diagnostics.emit(
                    DiagnosticEventType.DISPOSAL_FAILURE,
                    provider_id=self._cache.owner,
                    cache_key=self.key,
                    error=e,
                )
                raise

        logger.debug("Disposed key %r of %r", self.key, self._cache.owner)
        diagnostics.emit(
            DiagnosticEventType.DISPOSAL,
            provider_id=self._cache.owner,
            cache_key=self.key,
        )

    def _stop_timer(self) -> None:
        if self.dispose_timer is not None:
            self.dispose_timer.cancel()
            self.dispose_timer = None

    def _expire(self) -> None:
        self.dispose_timer = None
        logger.debug("TTL expired for key %r of %r", self.key, self._cache.owner)
        self.dispose().add_done_callback(self._report_expiry)

    def _report_expiry(self, disposal: asyncio.Future) -> None:
        # Nobody awaits a TTL disposal, so its failure is only logged here
        if disposal.cancelled():
            return
        error = disposal.exception()
        if error is not None:
            logger.error(
                "TTL disposal of key %r of %r failed: %r",
                self.key, self._cache.owner, error,
            )

    def __repr__(self) -> str:
        state = "disposed" if self.disposed else ("settled" if self.resolution.done() else "pending")
        return f"<Resolution key={self.key!r} {state}>"


class ResolutionCache:
    """
    Map of cache key to Resolution, owned by a single provider.

    The cache does not dispose an entry it overwrites; Provider.mount() and
    Provider.complete() await disposal of the previous entry before set().
    """

    __slots__ = ("_map", "owner")

    def __init__(self, owner: Optional[str] = None):
        self._map: Dict[str, Resolution] = {}
        self.owner = owner

    @property
    def map(self) -> Dict[str, Resolution]:
        """Live entries (introspection only)."""
        return self._map

    def get(self, key: str) -> Optional[Resolution]:
        return self._map.get(key)

    def set(
        self,
        key: str,
        resolution: Awaitable[Any],
        disposer: Optional[Disposer] = None,
        ttl: Optional[float] = None,
    ) -> Resolution:
        """
        Install a resolution under a key.

        Args:
            key: Cache key
            resolution: Pending or settled construction
            disposer: Called with the instance when the entry is disposed
            ttl: Milliseconds after which the entry disposes itself

        Returns:
            The new cache entry
        """
        entry = Resolution(self, key, resolution, disposer=disposer, ttl=ttl)
        self._map[key] = entry
        diagnostics.emit(
            DiagnosticEventType.CACHE_SET,
            provider_id=self.owner,
            cache_key=key,
            metadata={"ttl": ttl},
        )
        return entry

    def all(self) -> List[Resolution]:
        return list(self._map.values())

    async def dispose(self, key: Optional[str] = None) -> None:
        """
        Dispose one entry, or every entry when no key is given.

        Args:
            key: Optional key; a missing key is a no-op
        """
        if key is not None:
            entry = self._map.get(key)
            if entry is not None:
                await entry.dispose()
            return

        await asyncio.gather(*(entry.dispose() for entry in self.all()))

    def _evict(self, key: str, entry: Resolution) -> None:
        # Only remove the entry that asked, never a newer one under the same key
        if self._map.get(key) is entry:
            del self._map[key]

    def __len__(self) -> int:
        return len(self._map)

    def __contains__(self, key: object) -> bool:
        return key in self._map

    def __repr__(self) -> str:
        return f"<ResolutionCache owner={self.owner!r} keys={list(self._map)!r}>"
