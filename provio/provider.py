"""
Provider - a named, lazy, asynchronous factory with declared dependencies.

Providers are immutable: every builder method returns a new provider with a
fresh cache and a fresh lifecycle broker. The only state that mutates in place
is the cache map, the lifecycle hook lists and the instance callbacks.

Example:
    config = provide("config").by(lambda _: {"dsn": "sqlite://"}).persisted()
    db = provide("db").using(config).by(lambda d: connect(d["config"]["dsn"]))

    connection = await db("request-1")
"""

from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Generic,
    Iterable,
    List,
    Mapping,
    Optional,
    TypeVar,
    Union,
)
from dataclasses import dataclass
import asyncio
import inspect
import logging

from .cache import CachingOpts, Disposer, Resolution, ResolutionCache
from .config import get_config
from .diagnostics import DiagnosticEventType, diagnostics
from .lifecycle import Hook, Lifecycle
from .traversal import create_clone_resolver, create_mock_resolver, mock_map

logger = logging.getLogger("provio.provider")

T = TypeVar("T")

# (container) -> instance, or (container, lifecycle) -> instance; may be async
Resolver = Callable[..., Any]
InstanceCallback = Callable[[Any], Any]
CacheOptsLike = Union[CachingOpts, Mapping[str, Any], None]


@dataclass(frozen=True)
class ProviderInspection:
    """Debug view of a provider's internals."""
    cache: ResolutionCache
    lifecycle: Lifecycle


class Provider(Generic[T]):
    """
    Creates instances by resolving its dependencies.

    Calling the provider (or `resolve`) returns a coroutine producing the
    instance:

        instance = await provider()
        cached = await provider("key", CachingOpts(ttl=1000))
    """

    __slots__ = (
        "_id",
        "_dependencies",
        "_resolver",
        "_disposer",
        "_default_cache_key",
        "_default_ttl",
        "_cache",
        "_lifecycle",
        "_instance_callbacks",
        "_accepts_lifecycle",
    )

    def __init__(
        self,
        id: str,
        *,
        dependencies: Iterable["Provider"] = (),
        resolver: Optional[Resolver] = None,
        disposer: Optional[Disposer] = None,
        default_cache_key: Optional[str] = None,
        default_ttl: Optional[float] = None,
    ):
        if not isinstance(id, str):
            raise TypeError(f"Provider id must be a string, got {type(id).__name__}")

        self._id = id
        self._dependencies = tuple(unique(dependencies))
        self._resolver = resolver
        self._disposer = disposer
        self._default_cache_key = default_cache_key
        self._default_ttl = default_ttl
        self._cache = ResolutionCache(owner=id)
        self._lifecycle = Lifecycle(owner=id)
        self._instance_callbacks: List[InstanceCallback] = []
        self._accepts_lifecycle = resolver is not None and _accepts_lifecycle(resolver)

        # Loads PROVIO_* settings (diagnostics, log level) on first use
        get_config()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def id(self) -> str:
        return self._id

    @property
    def dependencies(self) -> tuple:
        return self._dependencies

    @property
    def resolver(self) -> Optional[Resolver]:
        return self._resolver

    @property
    def disposer(self) -> Optional[Disposer]:
        return self._disposer

    @property
    def default_cache_key(self) -> Optional[str]:
        return self._default_cache_key

    @property
    def default_ttl(self) -> Optional[float]:
        return self._default_ttl

    @property
    def is_transient(self) -> bool:
        """True when un-keyed resolutions construct a new instance every time."""
        return self._default_cache_key is None

    @property
    def lifecycle(self) -> Lifecycle:
        return self._lifecycle

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def __call__(self, cache_key: Optional[str] = None, cache_opts: CacheOptsLike = None) -> Awaitable[T]:
        return self.resolve(cache_key, cache_opts)

    async def resolve(self, cache_key: Optional[str] = None, cache_opts: CacheOptsLike = None) -> T:
        """
        Resolve an instance with its dependencies.

        Args:
            cache_key: Cache slot; defaults to the provider's default key. No key
                means no caching.
            cache_opts: Disposer/TTL for a newly cached entry

        Returns:
            The instance
        """
        if cache_key is None:
            cache_key = self._default_cache_key

        if cache_key is None:
            return await self._construct()

        # Lookup and insertion happen without a suspension point in between,
        # which is what makes concurrent callers share one construction.
        entry = self._cache.get(cache_key)
        if entry is not None:
            logger.debug("Cache hit for %r under key %r", self._id, cache_key)
            diagnostics.emit(DiagnosticEventType.CACHE_HIT, provider_id=self._id, cache_key=cache_key)
        else:
            entry = self._cache_resolution(cache_key, self._construct(cache_key), cache_opts)

        return await asyncio.shield(entry.resolution)

    async def complete(
        self,
        resolved_part: Mapping[str, Any],
        cache_key: Optional[str] = None,
        cache_opts: CacheOptsLike = None,
    ) -> T:
        """
        Resolve the remaining dependencies on top of an already resolved part.

        Dependencies whose id is a key of `resolved_part` are not resolved. If a
        cache key is in effect, the entry already cached under it is disposed
        and replaced.

        Args:
            resolved_part: Dependency id -> instance supplied by the caller
            cache_key: Optional cache slot for the result
            cache_opts: Disposer/TTL for the cached entry
        """
        if cache_key is None:
            cache_key = self._default_cache_key

        if cache_key is None:
            return await self._construct(resolved_part=resolved_part)

        await self._vacate(cache_key)
        entry = self._cache_resolution(
            cache_key,
            self._construct(cache_key, resolved_part=resolved_part),
            cache_opts,
        )
        return await asyncio.shield(entry.resolution)

    async def mount(self, instance: T, cache_key: str, cache_opts: CacheOptsLike = None) -> T:
        """
        Cache an existing instance under a key, bypassing the resolver.

        An instance already cached under the key is disposed first.
        """
        await self._vacate(cache_key)

        settled = asyncio.get_running_loop().create_future()
        settled.set_result(instance)
        entry = self._cache_resolution(cache_key, settled, cache_opts)
        logger.debug("Mounted instance of %r under key %r", self._id, cache_key)
        return await entry.resolution

    async def dispose(self, cache_key: Optional[str] = None) -> None:
        """
        Dispose cached instances.

        Args:
            cache_key: Dispose only this entry; all entries when omitted
        """
        await self._cache.dispose(cache_key)

    def inspect(self) -> ProviderInspection:
        """Return internals for debugging and test assertions."""
        return ProviderInspection(cache=self._cache, lifecycle=self._lifecycle)

    def on_each(self, callback: InstanceCallback) -> "Provider[T]":
        """
        Register a callback called with every newly constructed instance.

        Cache hits do not call it again.
        """
        self._instance_callbacks.append(callback)
        return self

    async def _construct(
        self,
        cache_key: Optional[str] = None,
        resolved_part: Optional[Mapping[str, Any]] = None,
    ) -> T:
        with diagnostics.measure(provider_id=self._id, cache_key=cache_key):
            container: Dict[str, Any] = dict(resolved_part or {})
            missing = [dep for dep in self._dependencies if dep.id not in container]
            container.update(await resolve_all(missing))
            instance = await self._invoke(container)

        for callback in self._instance_callbacks:
            result = callback(instance)
            if inspect.isawaitable(result):
                await result
        return instance

    async def _invoke(self, container: Dict[str, Any]) -> Any:
        if self._resolver is None:
            return {}

        if self._accepts_lifecycle:
            result = self._resolver(container, self._lifecycle)
        else:
            result = self._resolver(container)

        if inspect.isawaitable(result):
            result = await result
        return result

    def _cache_resolution(
        self,
        cache_key: str,
        resolution: Awaitable[Any],
        cache_opts: CacheOptsLike,
    ) -> Resolution:
        opts = coerce_cache_opts(cache_opts)
        return self._cache.set(
            cache_key,
            resolution,
            disposer=opts.disposer or self._disposer,
            ttl=opts.ttl or self._default_ttl,
        )

    async def _vacate(self, cache_key: str) -> None:
        # Dispose until the slot is empty; another caller may refill it while
        # the previous disposer is running.
        entry = self._cache.get(cache_key)
        while entry is not None:
            await entry.dispose()
            entry = self._cache.get(cache_key)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def on_start(self, hook: Hook, *, name: Optional[str] = None) -> "Provider[T]":
        """Register a start hook on this provider's broker."""
        self._lifecycle.on_start(hook, name=name)
        return self

    def on_stop(self, hook: Hook, *, name: Optional[str] = None) -> "Provider[T]":
        """Register a stop hook on this provider's broker."""
        self._lifecycle.on_stop(hook, name=name)
        return self

    async def start(self) -> None:
        await self._lifecycle.start()

    async def stop(self, dispose: bool = True) -> None:
        """
        Fire stop hooks, then dispose every cached instance.

        Args:
            dispose: Dispose the cache afterwards (even when a hook failed);
                pass False to only fire the hooks
        """
        try:
            await self._lifecycle.stop()
        finally:
            if dispose:
                await self.dispose()

    # ------------------------------------------------------------------
    # Builders
    # ------------------------------------------------------------------

    def _options(self) -> Dict[str, Any]:
        return {
            "dependencies": self._dependencies,
            "resolver": self._resolver,
            "disposer": self._disposer,
            "default_cache_key": self._default_cache_key,
            "default_ttl": self._default_ttl,
        }

    def _derive(self, **changes: Any) -> "Provider":
        new_id = changes.pop("id", self._id)
        options = self._options()
        options.update(changes)
        return Provider(new_id, **options)

    def as_(self, id: str) -> "Provider[T]":
        """Create a new provider with another id."""
        return self._derive(id=id)

    def by(self, resolver: Resolver) -> "Provider":
        """Create a new provider with another resolver."""
        return self._derive(resolver=resolver)

    def using(self, *dependencies: "Provider") -> "Provider":
        """
        Create a new provider with another dependency list.

        The resolver is dropped because it expects the old container; chain
        `by()` afterwards. Until then the provider resolves to `{}`.
        """
        return self._derive(dependencies=dependencies, resolver=None)

    use = using

    def with_dependencies(self, *dependencies: "Provider") -> "Provider[T]":
        """
        Create a new provider with another dependency list, keeping the resolver.

        The new dependencies must provide what the resolver reads from its
        container under the same ids; graph rewrites rely on this.
        """
        return self._derive(dependencies=dependencies)

    def with_disposer(self, disposer: Optional[Disposer] = None) -> "Provider[T]":
        """Create a new provider with a default disposer (None clears it)."""
        return self._derive(disposer=disposer)

    def persisted(self, cache_key: Optional[str] = None) -> "Provider[T]":
        """
        Create a new provider with a default cache key.

        Args:
            cache_key: Defaults to the configured singleton key ("singleton")
        """
        return self._derive(default_cache_key=cache_key or get_config().singleton_cache_key)

    once = persisted
    singleton = persisted

    def transient(self) -> "Provider[T]":
        """Create a new provider without a default cache key."""
        return self._derive(default_cache_key=None)

    def temporary(self, ttl: float) -> "Provider[T]":
        """
        Create a new provider with a default time-to-live.

        Args:
            ttl: Milliseconds
        """
        return self._derive(default_ttl=ttl)

    def mock(self, *mocks: "Provider") -> "Provider[T]":
        """
        Create a new provider whose dependency graph has providers replaced by id.

        Replacement reaches the whole transitive graph. Nodes without a replaced
        descendant stay shared with the original graph.
        """
        resolve_mock = create_mock_resolver(mock_map(mocks))
        return self._derive(dependencies=[resolve_mock(dep) for dep in self._dependencies])

    def clone(self) -> "Provider[T]":
        """Create a new provider with the same properties and an empty cache."""
        return self._derive()

    def isolate(self) -> "Provider[T]":
        """Create a deep copy of this provider's whole dependency graph."""
        return create_clone_resolver()(self)

    def __repr__(self) -> str:
        deps = [dep.id for dep in self._dependencies]
        return f"<Provider {self._id!r} dependencies={deps!r}>"


def provide(
    id: str,
    *,
    dependencies: Iterable[Provider] = (),
    resolver: Optional[Resolver] = None,
    disposer: Optional[Disposer] = None,
    default_cache_key: Optional[str] = None,
    default_ttl: Optional[float] = None,
) -> Provider:
    """
    Create a provider.

    Example:
        greeting = provide("greeting", resolver=lambda _: "hello")
    """
    return Provider(
        id,
        dependencies=dependencies,
        resolver=resolver,
        disposer=disposer,
        default_cache_key=default_cache_key,
        default_ttl=default_ttl,
    )


async def resolve_all(
    providers: Iterable[Provider],
    cache_key: Optional[str] = None,
    cache_opts: CacheOptsLike = None,
) -> Dict[str, Any]:
    """Resolve providers concurrently into an id -> instance map."""
    providers = list(providers)
    instances = await asyncio.gather(*(p.resolve(cache_key, cache_opts) for p in providers))
    return {p.id: instance for p, instance in zip(providers, instances)}


def unique(items: Iterable[Any]) -> List[Any]:
    """Drop repeated items by identity, keeping the first occurrence."""
    seen = set()
    result = []
    for item in items:
        if id(item) in seen:
            continue
        seen.add(id(item))
        result.append(item)
    return result


def coerce_cache_opts(cache_opts: CacheOptsLike) -> CachingOpts:
    if cache_opts is None:
        return CachingOpts()
    if isinstance(cache_opts, CachingOpts):
        return cache_opts
    return CachingOpts(**cache_opts)


def _accepts_lifecycle(resolver: Resolver) -> bool:
    """Whether the resolver requires a second positional argument."""
    try:
        sig = inspect.signature(resolver)
    except (TypeError, ValueError):
        return False

    positional = 0
    for param in sig.parameters.values():
        if param.kind is inspect.Parameter.VAR_POSITIONAL:
            return True
        if param.kind not in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD):
            continue
        # Parameters with a default belong to the resolver, not to us
        if param.default is inspect.Parameter.empty:
            positional += 1
    return positional >= 2
