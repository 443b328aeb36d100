"""
Provio - async provider graphs

Explicit, composable dependency injection without a container: every provider
is a lazy async factory that declares the providers it depends on.

Key Features:
- Per-provider caches keyed by caller-chosen strings, with TTL and disposers
- At most one construction per cache key under concurrent resolution
- Immutable builders: as_, by, using, persisted, temporary, with_disposer
- Surgical mocking and deep isolation of whole dependency graphs
- Groups and scopes for batched resolution, lifecycle and disposal
- Diagnostic events and graph introspection (cycles, DOT export)
"""

__version__ = "1.0.0"

from .cache import (
    CachingOpts,
    Resolution,
    ResolutionCache,
)

from .provider import (
    Provider,
    ProviderInspection,
    provide,
    resolve_all,
)

from .group import (
    Group,
    group,
    select,
)

from .scope import (
    Scope,
    create_scope,
)

from .lifecycle import (
    Lifecycle,
    LifecycleHook,
    Phase,
)

from .traversal import (
    create_clone_resolver,
    create_mock_resolver,
)

from .graph import (
    DependencyGraph,
)

from .errors import (
    ProvioError,
    LifecycleError,
    DependencyCycleError,
    SelectionError,
)

from .config import (
    ConfigError,
    ConfigLoader,
    ProvioConfig,
    configure,
    get_config,
    reset_config,
)

from .diagnostics import (
    DiagnosticEvent,
    DiagnosticEventType,
    DiagnosticListener,
    LoggingDiagnosticListener,
    diagnostics,
)

__all__ = [
    # Providers
    "Provider",
    "ProviderInspection",
    "provide",
    "resolve_all",
    # Cache
    "CachingOpts",
    "Resolution",
    "ResolutionCache",
    # Groups and scopes
    "Group",
    "group",
    "select",
    "Scope",
    "create_scope",
    # Lifecycle
    "Lifecycle",
    "LifecycleHook",
    "Phase",
    # Traversal
    "create_clone_resolver",
    "create_mock_resolver",
    # Graph
    "DependencyGraph",
    # Errors
    "ProvioError",
    "LifecycleError",
    "DependencyCycleError",
    "SelectionError",
    # Config
    "ConfigError",
    "ConfigLoader",
    "ProvioConfig",
    "configure",
    "get_config",
    "reset_config",
    # Diagnostics
    "DiagnosticEvent",
    "DiagnosticEventType",
    "DiagnosticListener",
    "LoggingDiagnosticListener",
    "diagnostics",
]
