"""
Provider groups - batched resolution, disposal, lifecycle and graph rewrites.

A group does not own its members' lifetime and has no cache of its own: every
batched operation fans out to the members' own caches and brokers.
"""

from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional
import asyncio
import inspect
import logging

from .cache import CachingOpts
from .errors import SelectionError
from .lifecycle import Hook, Lifecycle, Phase, fire_all
from .provider import CacheOptsLike, Provider, coerce_cache_opts, resolve_all, unique
from .traversal import create_clone_resolver, create_mock_resolver, mock_map

logger = logging.getLogger("provio.group")

InstanceMapCallback = Callable[[Dict[str, Any]], Any]


class Group:
    """
    An ordered, duplicate-free set of providers.

        instances = await group(config, db, api)()
        instances["db"]
    """

    __slots__ = ("_list", "_map", "_lifecycle", "_instance_map_callbacks")

    def __init__(self, *providers: Provider):
        self._list = tuple(unique(providers))

        by_id: Dict[str, Provider] = {}
        for provider in self._list:
            if provider.id in by_id:
                logger.warning(
                    "Group has several providers with id %r, map keeps the last one",
                    provider.id,
                )
            by_id[provider.id] = provider
        self._map = MappingProxyType(by_id)

        self._lifecycle = Lifecycle(owner="group")
        self._instance_map_callbacks: List[InstanceMapCallback] = []

    @property
    def list(self) -> tuple:
        """Grouped providers, in order."""
        return self._list

    @property
    def map(self) -> Mapping[str, Provider]:
        """Read-only provider id -> provider map."""
        return self._map

    @property
    def lifecycle(self) -> Lifecycle:
        return self._lifecycle

    def __len__(self) -> int:
        return len(self._list)

    def __iter__(self) -> Iterator[Provider]:
        return iter(self._list)

    def __contains__(self, provider: object) -> bool:
        return any(member is provider for member in self._list)

    def __repr__(self) -> str:
        return f"<Group {[p.id for p in self._list]!r}>"

    # ------------------------------------------------------------------
    # Batched resolution and disposal
    # ------------------------------------------------------------------

    def __call__(self, cache_key: Optional[str] = None, cache_opts: CacheOptsLike = None):
        return self.resolve(cache_key, cache_opts)

    async def resolve(
        self,
        cache_key: Optional[str] = None,
        cache_opts: CacheOptsLike = None,
    ) -> Dict[str, Any]:
        """
        Resolve every member concurrently into an id -> instance map.

        The key is used in each member's own cache. Only the TTL of the options
        is forwarded, since a disposer is specific to one kind of instance.
        """
        opts = coerce_cache_opts(cache_opts)
        instances = await resolve_all(self._list, cache_key, CachingOpts(ttl=opts.ttl))

        for callback in self._instance_map_callbacks:
            result = callback(instances)
            if inspect.isawaitable(result):
                await result
        return instances

    async def dispose(self, cache_key: Optional[str] = None) -> None:
        """
        Dispose cached instances of all members.

        Args:
            cache_key: Common key to dispose; everything when omitted
        """
        await asyncio.gather(*(p.dispose(cache_key) for p in self._list))

    def on_each(self, callback: InstanceMapCallback) -> "Group":
        """Register a callback called with every resolved instance map."""
        self._instance_map_callbacks.append(callback)
        return self

    # ------------------------------------------------------------------
    # Derivation
    # ------------------------------------------------------------------

    def add(self, *providers: Provider) -> "Group":
        """Create a new group with providers appended."""
        return Group(*self._list, *providers)

    def concat(self, other: "Group") -> "Group":
        """Create a new group merging another group into this one."""
        return Group(*self._list, *other.list)

    def isolate(self) -> "Group":
        """
        Create a group of isolated copies of the entire dependency graph.

        One clone memo serves all members, so a dependency shared between
        members is still shared between their copies.
        """
        resolve_clone = create_clone_resolver()
        return Group(*(resolve_clone(p) for p in self._list))

    def isolate_one(self, selector: Callable[[Mapping[str, Provider]], Provider]) -> Provider:
        """
        Isolate the branch of one member.

            db = g.isolate_one(lambda m: m["db"])
        """
        selected = selector(self._map)
        self._check_member(selected)
        return create_clone_resolver()(selected)

    def isolate_some(self, selector: Callable[[Mapping[str, Provider]], Iterable[Provider]]) -> "Group":
        """
        Isolate the branches of several members into a new group.

            subgroup = g.isolate_some(lambda m: [m["db"], m["cache"]])
        """
        selected = list(selector(self._map))
        for provider in selected:
            self._check_member(provider)
        resolve_clone = create_clone_resolver()
        return Group(*(resolve_clone(p) for p in selected))

    def mock(self, *mocks: Provider) -> "Group":
        """Create a new group with providers replaced by id across all members' graphs."""
        resolve_mock = create_mock_resolver(mock_map(mocks))
        return Group(*(resolve_mock(p) for p in self._list))

    def _check_member(self, provider: Any) -> None:
        if provider not in self:
            raise SelectionError(provider, [p.id for p in self._list])

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def on_start(self, hook: Hook, *, name: Optional[str] = None) -> "Group":
        """Register a start hook on the group and on every member."""
        self._lifecycle.on_start(hook, name=name)
        for provider in self._list:
            provider.on_start(hook, name=name)
        return self

    def on_stop(self, hook: Hook, *, name: Optional[str] = None) -> "Group":
        """Register a stop hook on the group and on every member."""
        self._lifecycle.on_stop(hook, name=name)
        for provider in self._list:
            provider.on_stop(hook, name=name)
        return self

    async def start(self) -> None:
        """Fire start hooks of every member concurrently."""
        await fire_all([p.lifecycle for p in self._list], Phase.START)

    async def stop(self, dispose: bool = True) -> None:
        """
        Fire stop hooks of every member concurrently, then dispose their caches.

        Args:
            dispose: Dispose every member's cache afterwards
        """
        try:
            await fire_all([p.lifecycle for p in self._list], Phase.STOP)
        finally:
            if dispose:
                await self.dispose()


def group(*providers: Provider) -> Group:
    """Combine providers into a group."""
    return Group(*providers)


select = group
