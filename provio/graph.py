"""
Graph analysis for provider dependency graphs.

Nodes are provider objects (identity), not ids: two unrelated providers may
share an id and still be different nodes.
"""

from typing import Dict, List, Optional, Set
from collections import deque

from .errors import DependencyCycleError
from .provider import Provider


class DependencyGraph:
    """
    Build and analyze a provider graph.

    A graph collected with from_providers() is always acyclic: dependencies are
    fixed when a provider is created, so a provider can never depend on itself
    through a later one. Cycles only appear in graphs assembled by hand with
    add_provider(); detect_cycles() (Tarjan) and resolution_order() check
    such graphs.
    """

    def __init__(self):
        self.adj_list: Dict[Provider, List[Provider]] = {}  # provider -> [dependencies]
        self._index_counter = 0
        self._stack: List[Provider] = []
        self._lowlinks: Dict[Provider, int] = {}
        self._index: Dict[Provider, int] = {}
        self._on_stack: Set[Provider] = set()
        self._sccs: List[List[Provider]] = []

    @classmethod
    def from_providers(cls, *roots: Provider) -> "DependencyGraph":
        """
        Collect the transitive graph reachable from the given providers.
        """
        graph = cls()
        pending = list(roots)
        while pending:
            provider = pending.pop()
            if provider in graph.adj_list:
                continue
            graph.add_provider(provider, list(provider.dependencies))
            pending.extend(reversed(provider.dependencies))
        return graph

    @property
    def nodes(self) -> List[Provider]:
        return list(self.adj_list)

    @property
    def edges(self) -> List[tuple]:
        return [
            (provider, dep)
            for provider, deps in self.adj_list.items()
            for dep in deps
        ]

    def add_provider(self, provider: Provider, dependencies: List[Provider]) -> None:
        """
        Add provider to graph.

        Args:
            provider: Provider instance
            dependencies: Providers it depends on
        """
        self.adj_list[provider] = list(dependencies)

    def detect_cycles(self) -> List[List[str]]:
        """
        Detect cycles using Tarjan's algorithm.

        Returns:
            Provider ids of every non-trivial strongly connected component
        """
        self._index_counter = 0
        self._stack = []
        self._lowlinks = {}
        self._index = {}
        self._on_stack = set()
        self._sccs = []

        for provider in self.adj_list:
            if provider not in self._index:
                self._strongconnect(provider)

        # Filter out trivial SCCs (single node with no self-loop)
        cycles = [
            scc for scc in self._sccs
            if len(scc) > 1 or scc[0] in self.adj_list.get(scc[0], [])
        ]

        return [[p.id for p in scc] for scc in cycles]

    def _strongconnect(self, provider: Provider) -> None:
        """Tarjan's algorithm recursive helper."""
        self._index[provider] = self._index_counter
        self._lowlinks[provider] = self._index_counter
        self._index_counter += 1
        self._stack.append(provider)
        self._on_stack.add(provider)

        for dep in self.adj_list.get(provider, []):
            if dep not in self.adj_list:
                continue

            if dep not in self._index:
                self._strongconnect(dep)
                self._lowlinks[provider] = min(self._lowlinks[provider], self._lowlinks[dep])
            elif dep in self._on_stack:
                self._lowlinks[provider] = min(self._lowlinks[provider], self._index[dep])

        if self._lowlinks[provider] == self._index[provider]:
            scc = []
            while True:
                w = self._stack.pop()
                self._on_stack.remove(w)
                scc.append(w)
                if w is provider:
                    break
            self._sccs.append(scc)

    def resolution_order(self) -> List[Provider]:
        """
        Topological order of the graph, dependencies first.

        Raises:
            DependencyCycleError: If cycle detected
        """
        # Kahn's algorithm over "is depended on by" edges
        pending_deps = {
            provider: len([d for d in deps if d in self.adj_list])
            for provider, deps in self.adj_list.items()
        }
        dependents: Dict[Provider, List[Provider]] = {p: [] for p in self.adj_list}
        for provider, deps in self.adj_list.items():
            for dep in deps:
                if dep in dependents:
                    dependents[dep].append(provider)

        queue = deque(p for p, count in pending_deps.items() if count == 0)
        result = []

        while queue:
            provider = queue.popleft()
            result.append(provider)
            for dependent in dependents[provider]:
                pending_deps[dependent] -= 1
                if pending_deps[dependent] == 0:
                    queue.append(dependent)

        if len(result) != len(self.adj_list):
            cycles = self.detect_cycles()
            raise DependencyCycleError(cycle=cycles[0] if cycles else [])

        return result

    def export_dot(self) -> str:
        """
        Export graph as Graphviz DOT format.

        Returns:
            DOT string
        """
        names = {provider: f"n{i}" for i, provider in enumerate(self.adj_list)}

        lines = ["digraph DependencyGraph {"]
        lines.append("  rankdir=LR;")
        lines.append("  node [shape=box];")

        for provider, name in names.items():
            mode = "persisted" if provider.default_cache_key is not None else "transient"
            lines.append(f'  {name} [label="{provider.id}\\n({mode})"];')

        for provider, deps in self.adj_list.items():
            for dep in deps:
                if dep in names:
                    lines.append(f"  {names[provider]} -> {names[dep]};")

        lines.append("}")
        return "\n".join(lines)

    def tree_view(self, root: Optional[Provider] = None) -> str:
        """
        Get tree view of dependencies.

        Args:
            root: Optional root provider (if None, show all roots)

        Returns:
            Tree view as string
        """
        if root is not None:
            return self._tree_view_recursive(root, "", set())

        depended_on = {dep for deps in self.adj_list.values() for dep in deps}
        roots = [p for p in self.adj_list if p not in depended_on]

        return "\n".join(self._tree_view_recursive(r, "", set()) for r in roots)

    def _tree_view_recursive(
        self,
        provider: Provider,
        prefix: str,
        visited: Set[Provider],
    ) -> str:
        """Recursive helper for tree view."""
        if provider in visited:
            return f"{prefix}├── {provider.id} (circular)"

        visited.add(provider)

        lines = [f"{prefix}├── {provider.id}"]

        deps = self.adj_list.get(provider, [])
        for i, dep in enumerate(deps):
            is_last = i == len(deps) - 1
            new_prefix = prefix + ("    " if is_last else "│   ")
            lines.append(self._tree_view_recursive(dep, new_prefix, visited.copy()))

        return "\n".join(lines)
