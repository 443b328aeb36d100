"""
Scope - a mutable registry of providers for lifecycle and disposal fan-out.

Unlike a Group, a Scope is changed in place and carries no id map: it only
remembers which providers to start, stop and dispose together.
"""

from typing import List, Optional
import asyncio
import logging

from .lifecycle import Hook, Lifecycle, Phase, fire_all
from .provider import Provider, unique

logger = logging.getLogger("provio.scope")


class Scope:
    """
    Providers that share a lifetime.

    Example:
        request_scope = create_scope(session, unit_of_work)
        ...
        await request_scope.stop(dispose=True)
    """

    __slots__ = ("_providers", "_lifecycle", "name")

    def __init__(self, *providers: Provider, name: str = "scope"):
        self._providers: List[Provider] = unique(providers)
        self._lifecycle = Lifecycle(owner=name)
        self.name = name

    @property
    def providers(self) -> tuple:
        return tuple(self._providers)

    @property
    def lifecycle(self) -> Lifecycle:
        return self._lifecycle

    def add(self, *providers: Provider) -> "Scope":
        """
        Add providers in place.

        Hooks registered on the scope before the call are not forwarded to
        the new members.
        """
        for provider in providers:
            if provider not in self:
                self._providers.append(provider)
        return self

    def remove(self, provider: Provider) -> "Scope":
        """
        Remove a provider in place.

        Raises:
            KeyError: If the provider is not in the scope
        """
        for i, member in enumerate(self._providers):
            if member is provider:
                del self._providers[i]
                return self
        raise KeyError(f"Provider {provider.id!r} is not in scope {self.name!r}")

    def __contains__(self, provider: object) -> bool:
        return any(member is provider for member in self._providers)

    def __len__(self) -> int:
        return len(self._providers)

    def __repr__(self) -> str:
        return f"<Scope {self.name!r} {[p.id for p in self._providers]!r}>"

    def on_start(self, hook: Hook, *, name: Optional[str] = None) -> "Scope":
        """Register a start hook on the scope and its current members."""
        self._lifecycle.on_start(hook, name=name)
        for provider in self._providers:
            provider.on_start(hook, name=name)
        return self

    def on_stop(self, hook: Hook, *, name: Optional[str] = None) -> "Scope":
        """Register a stop hook on the scope and its current members."""
        self._lifecycle.on_stop(hook, name=name)
        for provider in self._providers:
            provider.on_stop(hook, name=name)
        return self

    async def start(self) -> None:
        await fire_all([p.lifecycle for p in self._providers], Phase.START)

    async def stop(self, dispose: bool = True) -> None:
        """
        Fire stop hooks of every member, then dispose their caches.

        Args:
            dispose: Dispose every member's cache afterwards
        """
        try:
            await fire_all([p.lifecycle for p in self._providers], Phase.STOP)
        finally:
            if dispose:
                await self.dispose()

    async def dispose(self, cache_key: Optional[str] = None) -> None:
        """Dispose cached instances of every member."""
        logger.debug("Disposing scope %r (key=%r)", self.name, cache_key)
        await asyncio.gather(*(p.dispose(cache_key) for p in self._providers))


def create_scope(*providers: Provider, name: str = "scope") -> Scope:
    return Scope(*providers, name=name)
