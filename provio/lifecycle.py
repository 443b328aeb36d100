"""
Lifecycle broker - start/stop hook registry for providers, groups and scopes.
"""

from typing import Any, Callable, List, Optional
from dataclasses import dataclass
from enum import Enum
import asyncio
import inspect
import logging

from .diagnostics import DiagnosticEventType, diagnostics
from .errors import LifecycleError

logger = logging.getLogger("provio.lifecycle")

# Zero-argument callable, plain or async
Hook = Callable[[], Any]


class Phase(str, Enum):
    """Lifecycle phases."""

    START = "start"
    STOP = "stop"


@dataclass
class LifecycleHook:
    """
    Lifecycle hook registration.
    """

    name: str
    callback: Hook
    phase: Phase = Phase.STOP

    async def run(self) -> None:
        result = self.callback()
        if inspect.isawaitable(result):
            await result


class Lifecycle:
    """
    Start/stop event hub.

    Hooks of one phase run concurrently. Firing a phase twice runs its hooks
    twice; there is no "already started" guard.
    """

    __slots__ = ("_start_hooks", "_stop_hooks", "owner")

    def __init__(self, owner: Optional[str] = None):
        self._start_hooks: List[LifecycleHook] = []
        self._stop_hooks: List[LifecycleHook] = []
        self.owner = owner

    def on_start(self, callback: Hook, *, name: Optional[str] = None) -> LifecycleHook:
        """
        Register start hook.

        Args:
            callback: Callback to run on start
            name: Hook name for diagnostics
        """
        hook = LifecycleHook(
            name=name or _hook_name(callback),
            callback=callback,
            phase=Phase.START,
        )
        self._start_hooks.append(hook)
        return hook

    def on_stop(self, callback: Hook, *, name: Optional[str] = None) -> LifecycleHook:
        """
        Register stop hook.

        Args:
            callback: Callback to run on stop
            name: Hook name for diagnostics
        """
        hook = LifecycleHook(
            name=name or _hook_name(callback),
            callback=callback,
            phase=Phase.STOP,
        )
        self._stop_hooks.append(hook)
        return hook

    def hooks(self, phase: Phase) -> List[LifecycleHook]:
        """Registered hooks of a phase, in registration order."""
        if Phase(phase) is Phase.START:
            return list(self._start_hooks)
        return list(self._stop_hooks)

    async def start(self) -> None:
        """Run all start hooks concurrently."""
        await self._fire(Phase.START, self._start_hooks)

    async def stop(self) -> None:
        """Run all stop hooks concurrently."""
        await self._fire(Phase.STOP, self._stop_hooks)

    async def _fire(self, phase: Phase, hooks: List[LifecycleHook]) -> None:
        event = DiagnosticEventType.LIFECYCLE_START if phase is Phase.START else DiagnosticEventType.LIFECYCLE_STOP
        diagnostics.emit(
            event,
            provider_id=self.owner,
            metadata={"phase": phase.value, "hooks": len(hooks)},
        )

        hooks = list(hooks)
        results = await asyncio.gather(
            *(hook.run() for hook in hooks),
            return_exceptions=True,
        )

        failures = [
            (hook.name, result)
            for hook, result in zip(hooks, results)
            if isinstance(result, BaseException)
        ]
        if failures:
            for name, error in failures:
                logger.warning("%s hook %r of %r failed: %r", phase.value, name, self.owner, error)
            raise LifecycleError(phase.value, failures) from failures[0][1]

    def clear(self) -> None:
        """Clear all hooks."""
        self._start_hooks.clear()
        self._stop_hooks.clear()

    def __repr__(self) -> str:
        return (
            f"<Lifecycle owner={self.owner!r} start={len(self._start_hooks)} "
            f"stop={len(self._stop_hooks)}>"
        )


async def fire_all(lifecycles: List[Lifecycle], phase: Phase) -> None:
    """
    Fire one phase on several brokers concurrently.

    Every broker is fired even if another one fails; failures are merged into a
    single LifecycleError.
    """
    phase = Phase(phase)
    results = await asyncio.gather(
        *(lc.start() if phase is Phase.START else lc.stop() for lc in lifecycles),
        return_exceptions=True,
    )

    failures = []
    for result in results:
        if isinstance(result, LifecycleError):
            failures.extend(result.failures)
        elif isinstance(result, BaseException):
            failures.append(("<lifecycle>", result))
    if failures:
        raise LifecycleError(phase.value, failures) from failures[0][1]


def _hook_name(callback: Hook) -> str:
    return getattr(callback, "__qualname__", None) or repr(callback)
