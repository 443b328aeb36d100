"""
Testing utilities for provider graphs.
"""

from typing import Any, Callable, Dict, List, Optional
from contextlib import asynccontextmanager
import asyncio

from .graph import DependencyGraph
from .provider import Provider, provide


class ResolverSpy:
    """
    Resolver that records its calls.

    Tracks construction count for at-most-once assertions.

    Example:
        spy = ResolverSpy(lambda c: c["config"]["dsn"], delay=0.01)
        db = provide("db", dependencies=[config], resolver=spy)
        await asyncio.gather(db("k"), db("k"))
        assert spy.call_count == 1
    """

    def __init__(
        self,
        factory: Optional[Callable[[Dict[str, Any]], Any]] = None,
        *,
        delay: Optional[float] = None,
    ):
        self.factory = factory
        self.delay = delay
        self.calls: List[Dict[str, Any]] = []

    @property
    def call_count(self) -> int:
        return len(self.calls)

    def __call__(self, container: Dict[str, Any]) -> Any:
        self.calls.append(dict(container))
        if self.delay is None:
            return self._produce(container)
        return self._produce_later(container)

    async def _produce_later(self, container: Dict[str, Any]) -> Any:
        await asyncio.sleep(self.delay)
        return self._produce(container)

    def _produce(self, container: Dict[str, Any]) -> Any:
        if self.factory is None:
            return object()
        return self.factory(container)

    def reset(self) -> None:
        """Reset tracking."""
        self.calls.clear()


def stub(id: str, value: Any) -> Provider:
    """
    Provider always resolving to `value`, for use with mock().

    Example:
        service.mock(stub("db", FakeDb()))
    """
    return provide(id, resolver=lambda _: value)


@asynccontextmanager
async def override(target: Provider, *mocks: Provider):
    """
    Context manager yielding an isolated copy of `target` with mocks applied.

    The original graph is untouched; every provider of the copy is disposed on
    exit.

    Example:
        async with override(service, stub("db", FakeDb())) as patched:
            result = await patched()
    """
    patched = target.isolate().mock(*mocks)
    try:
        yield patched
    finally:
        graph = DependencyGraph.from_providers(patched)
        await asyncio.gather(*(provider.dispose() for provider in graph.nodes))


# Pytest fixtures (if pytest is available)
try:
    import pytest

    @pytest.fixture
    def resolver_spy():
        """Factory fixture for creating resolver spies."""
        def _create_spy(factory=None, **kwargs):
            return ResolverSpy(factory, **kwargs)
        return _create_spy

    @pytest.fixture
    def isolated_config():
        """Reset the active provio config around a test."""
        from .config import configure, reset_config

        reset_config()
        yield configure
        reset_config()

except ImportError:
    # pytest not available - skip fixtures
    pass
