"""
Provio Diagnostics - observability and event tracking for providers.
"""

import time
from typing import Any, Dict, List, Optional, Protocol
from enum import Enum
import dataclasses
import logging

logger = logging.getLogger("provio.diagnostics")


class DiagnosticEventType(Enum):
    """Types of provider events."""
    RESOLUTION_START = "resolution_start"
    RESOLUTION_SUCCESS = "resolution_success"
    RESOLUTION_FAILURE = "resolution_failure"
    CACHE_HIT = "cache_hit"
    CACHE_SET = "cache_set"
    DISPOSAL = "disposal"
    DISPOSAL_FAILURE = "disposal_failure"
    LIFECYCLE_START = "lifecycle_start"
    LIFECYCLE_STOP = "lifecycle_stop"


@dataclasses.dataclass
class DiagnosticEvent:
    """A diagnostic event emitted by a provider or its cache."""
    type: DiagnosticEventType
    timestamp: float = dataclasses.field(default_factory=time.time)
    provider_id: Optional[str] = None
    cache_key: Optional[str] = None
    duration: Optional[float] = None
    error: Optional[BaseException] = None
    metadata: Dict[str, Any] = dataclasses.field(default_factory=dict)


class DiagnosticListener(Protocol):
    """Interface for diagnostic listeners."""
    def on_event(self, event: DiagnosticEvent) -> None:
        """Called when an event occurs."""
        ...


class LoggingDiagnosticListener:
    """Diagnostic listener that writes events to the provio.diagnostics logger."""
    def __init__(self, log_level: int = logging.DEBUG):
        self.log_level = log_level

    def on_event(self, event: DiagnosticEvent) -> None:
        where = f"provider={event.provider_id!r} key={event.cache_key!r}"
        if event.type == DiagnosticEventType.RESOLUTION_START:
            logger.log(self.log_level, "Resolving %s...", where)
        elif event.type == DiagnosticEventType.RESOLUTION_SUCCESS:
            logger.log(self.log_level, "Resolved %s in %.4fs", where, event.duration or 0.0)
        elif event.type == DiagnosticEventType.RESOLUTION_FAILURE:
            logger.log(logging.ERROR, "Failed to resolve %s: %r", where, event.error)
        elif event.type == DiagnosticEventType.CACHE_HIT:
            logger.log(self.log_level, "Cache hit %s", where)
        elif event.type == DiagnosticEventType.CACHE_SET:
            logger.log(self.log_level, "Cached %s (ttl=%s)", where, event.metadata.get("ttl"))
        elif event.type == DiagnosticEventType.DISPOSAL:
            logger.log(self.log_level, "Disposed %s", where)
        elif event.type == DiagnosticEventType.DISPOSAL_FAILURE:
            logger.log(logging.ERROR, "Failed to dispose %s: %r", where, event.error)
        elif event.type in (DiagnosticEventType.LIFECYCLE_START, DiagnosticEventType.LIFECYCLE_STOP):
            logger.log(
                self.log_level,
                "Lifecycle %s: %s hook(s)",
                event.metadata.get("phase"),
                event.metadata.get("hooks"),
            )


class Diagnostics:
    """Coordinator for diagnostic listeners."""
    def __init__(self):
        self._listeners: List[DiagnosticListener] = []

    @property
    def listeners(self) -> List[DiagnosticListener]:
        return list(self._listeners)

    def add_listener(self, listener: DiagnosticListener) -> None:
        """Add a diagnostic listener (adding the same one twice is a no-op)."""
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: DiagnosticListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def emit(self, event_type: DiagnosticEventType, **kwargs) -> None:
        """Emit a diagnostic event to all listeners."""
        if not self._listeners:
            return
        event = DiagnosticEvent(type=event_type, **kwargs)
        for listener in self._listeners:
            try:
                listener.on_event(event)
            except Exception as e:
                # Diagnostics should never break resolution
                logger.error(f"Diagnostic listener error: {e}")

    def measure(self, **kwargs) -> "_DiagnosticMeasure":
        """Context manager emitting start and success/failure events around a resolution."""
        return _DiagnosticMeasure(self, **kwargs)


class _DiagnosticMeasure:
    def __init__(self, diagnostics: Diagnostics, **kwargs):
        self.diagnostics = diagnostics
        self.kwargs = kwargs
        self.start_time = None

    def __enter__(self):
        self.start_time = time.perf_counter()
        self.diagnostics.emit(DiagnosticEventType.RESOLUTION_START, **self.kwargs)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration = time.perf_counter() - self.start_time
        if exc_type:
            self.diagnostics.emit(
                DiagnosticEventType.RESOLUTION_FAILURE,
                duration=duration,
                error=exc_val,
                **self.kwargs
            )
        else:
            self.diagnostics.emit(
                DiagnosticEventType.RESOLUTION_SUCCESS,
                duration=duration,
                **self.kwargs
            )
        return False


# Process-wide hub used by every provider and cache
diagnostics = Diagnostics()

logging_listener = LoggingDiagnosticListener()
