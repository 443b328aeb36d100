"""
Provio error types with rich diagnostics.

Resolver and disposer exceptions are never wrapped: they reach the caller
unchanged. The types below cover failures raised by provio itself.
"""

from typing import Any, List, Optional, Tuple


class ProvioError(Exception):
    """Base exception for provio errors."""
    pass


class LifecycleError(ProvioError):
    """One or more lifecycle hooks failed while firing a phase."""

    def __init__(
        self,
        phase: str,
        failures: List[Tuple[str, BaseException]],
    ):
        self.phase = phase
        self.failures = failures

        msg = f"{len(failures)} {phase} hook(s) failed:"
        for name, error in failures:
            msg += f"\n  - {name}: {type(error).__name__}: {error}"

        super().__init__(msg)


class DependencyCycleError(ProvioError):
    """Circular dependency detected in a provider graph."""

    def __init__(self, cycle: List[str]):
        self.cycle = cycle

        msg = "Detected dependency cycle:"
        for i, provider_id in enumerate(cycle):
            arrow = " -> " if i < len(cycle) - 1 else ""
            msg += f"\n  {provider_id}{arrow}"

        msg += "\n\nSuggested fixes:"
        msg += "\n  - Extract the shared part into a separate provider"
        msg += "\n  - Pass the late value through complete() instead of a dependency"

        super().__init__(msg)


class SelectionError(ProvioError):
    """A group selector returned something that is not a group member."""

    def __init__(self, selected: Any, members: Optional[List[str]] = None):
        self.selected = selected
        self.members = members or []

        msg = f"Selector returned {selected!r}, which is not a member of the group"
        if self.members:
            msg += "\n\nMembers:"
            for member in self.members:
                msg += f"\n  - {member}"

        super().__init__(msg)
