"""
Graph traversal - rewrite a provider's transitive dependency graph.

Both resolvers are memoized per traversal: a provider shared by several
dependents is rewritten once and every dependent points at the same
replacement. The memo lives as long as the resolver function and is never
shared between independent traversals.
"""

from typing import TYPE_CHECKING, Callable, Dict, Iterable, Mapping, Optional
import logging

if TYPE_CHECKING:
    from .provider import Provider

logger = logging.getLogger("provio.traversal")

ProviderResolver = Callable[["Provider"], "Provider"]


def create_clone_resolver(
    memo: Optional[Dict["Provider", "Provider"]] = None,
) -> ProviderResolver:
    """
    Build a resolver that deep-clones a provider graph.

    Every reachable provider is replaced by a fresh clone (empty cache, empty
    lifecycle) and every edge points at the clone of its original target, so
    the shape of the graph is preserved while no node is shared with the
    original.

    Args:
        memo: Original provider -> clone map; pass one to share clones across
            several seeds (Group.isolate does)

    Returns:
        resolve_clone(provider) -> cloned provider
    """
    memo = {} if memo is None else memo

    def resolve_clone(provider: "Provider") -> "Provider":
        cloned = memo.get(provider)
        if cloned is not None:
            return cloned

        if provider.dependencies:
            # Graphs are DAGs, so memoizing after the children are done still
            # visits a shared node once and records the finished clone.
            cloned = provider.with_dependencies(
                *[resolve_clone(dep) for dep in provider.dependencies]
            )
        else:
            cloned = provider.clone()

        memo[provider] = cloned
        return cloned

    return resolve_clone


def create_mock_resolver(mocks: Mapping[str, "Provider"]) -> ProviderResolver:
    """
    Build a resolver that substitutes providers by id.

    A provider whose id is in `mocks` is replaced by the mock and its subtree is
    not examined. A provider with a replaced descendant is rebuilt around the
    rewritten dependencies. Everything else is returned as is, shared by
    reference with the original graph.

    Args:
        mocks: Provider id -> replacement

    Returns:
        resolve_mock(provider) -> provider, possibly rewritten
    """
    memo: Dict["Provider", "Provider"] = {}

    def resolve_mock(provider: "Provider") -> "Provider":
        mock = mocks.get(provider.id)
        if mock is not None:
            return mock

        rewritten = memo.get(provider)
        if rewritten is not None:
            return rewritten

        rewritten = provider
        if provider.dependencies:
            dependencies = [resolve_mock(dep) for dep in provider.dependencies]
            if any(new is not old for new, old in zip(dependencies, provider.dependencies)):
                rewritten = provider.with_dependencies(*dependencies)

        memo[provider] = rewritten
        return rewritten

    return resolve_mock


def mock_map(mocks: Iterable["Provider"]) -> Dict[str, "Provider"]:
    """Index mock providers by id; a later mock wins over an earlier one."""
    result: Dict[str, "Provider"] = {}
    for mock in mocks:
        if mock.id in result:
            logger.warning("Mock id %r given more than once, the last one wins", mock.id)
        result[mock.id] = mock
    return result
