"""
Config system - typed runtime settings with layered loading.

Merge order (later overrides earlier):
1. Dataclass defaults
2. .env file entries with the prefix
3. Environment variables with the prefix (PROVIO_*)
4. Manual overrides
"""

from typing import Any, Dict, Optional
from dataclasses import dataclass, fields, replace
from pathlib import Path
import logging
import os


logger = logging.getLogger("provio.config")


class ConfigError(Exception):
    """Raised when configuration validation fails."""
    pass


@dataclass(frozen=True)
class ProvioConfig:
    """Runtime settings shared by every provider."""

    # Default key used by persisted()/once()/singleton() without an argument
    singleton_cache_key: str = "singleton"
    # Attach the logging diagnostics listener
    diagnostics_enabled: bool = False
    # Level applied to the "provio" logger namespace, empty leaves it untouched
    log_level: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


class ConfigLoader:
    """
    Loads and merges configuration from multiple sources with precedence:
    overrides > environment variables > .env file > defaults
    """

    def __init__(self, env_prefix: str = "PROVIO_"):
        self.env_prefix = env_prefix
        self.config_data: Dict[str, Any] = {}

    @classmethod
    def load(
        cls,
        env_prefix: str = "PROVIO_",
        env_file: Optional[str] = None,
        overrides: Optional[Dict[str, Any]] = None,
    ) -> "ConfigLoader":
        """
        Load configuration from every source.

        Args:
            env_prefix: Prefix for environment variables
            env_file: Path to .env file
            overrides: Manual overrides (highest precedence)

        Returns:
            Configured ConfigLoader instance
        """
        loader = cls(env_prefix=env_prefix)

        if env_file:
            loader._load_env_file(env_file)

        loader._load_from_env()

        if overrides:
            loader.config_data.update(overrides)

        return loader

    def _load_env_file(self, path: str):
        """Load config from .env file."""
        env_path = Path(path)
        if not env_path.exists():
            logger.debug("Env file %s not found, skipping", path)
            return

        with open(env_path) as f:
            for line in f:
                line = line.strip()
                if not line or line.startswith("#"):
                    continue

                if "=" in line:
                    key, value = line.split("=", 1)
                    key = key.strip()
                    value = value.strip().strip('"').strip("'")

                    if key.startswith(self.env_prefix):
                        self._set(key, value)

    def _load_from_env(self):
        """Load config from environment variables."""
        for key, value in os.environ.items():
            if key.startswith(self.env_prefix):
                self._set(key, value)

    def _set(self, key: str, value: str):
        """Convert PROVIO_SINGLETON_CACHE_KEY to singleton_cache_key."""
        name = key[len(self.env_prefix):].lower()
        # String settings keep the raw text, so a key like "1" stays "1"
        if name in _STRING_FIELDS:
            self.config_data[name] = value
        else:
            self.config_data[name] = self._parse_value(value)

    def _parse_value(self, value: str) -> Any:
        """Parse string value to appropriate type."""
        if value.lower() in ("true", "yes", "1"):
            return True
        if value.lower() in ("false", "no", "0"):
            return False

        try:
            if "." in value:
                return float(value)
            return int(value)
        except ValueError:
            pass

        return value

    def get(self, key: str, default: Any = None) -> Any:
        return self.config_data.get(key, default)

    def to_config(self, base: Optional[ProvioConfig] = None) -> ProvioConfig:
        """
        Build a validated ProvioConfig from the loaded data.

        Unknown keys are ignored so unrelated PROVIO_* variables do not break
        loading.

        Raises:
            ConfigError: If a known key holds a value of the wrong type
        """
        base = base or ProvioConfig()
        known = {f.name: f for f in fields(ProvioConfig)}
        values: Dict[str, Any] = {}

        for name, value in self.config_data.items():
            if name not in known:
                logger.debug("Ignoring unknown config key %r", name)
                continue

            expected = type(getattr(base, name))
            if expected is str and not isinstance(value, str):
                value = str(value)
            if not isinstance(value, expected):
                raise ConfigError(
                    f"Config key '{name}' expects {expected.__name__}, "
                    f"got {type(value).__name__} ({value!r})"
                )
            values[name] = value

        config = replace(base, **values)
        if config.log_level and _log_level(config.log_level) is None:
            raise ConfigError(f"Unknown log level: {config.log_level!r}")
        return config


_STRING_FIELDS = {f.name for f in fields(ProvioConfig) if f.type in (str, "str")}


def _log_level(value: str) -> Optional[int]:
    """Numeric level for a name ("debug") or a number ("10"), None if unknown."""
    if value.isdigit():
        return int(value)
    level = logging.getLevelName(value.upper())
    return level if isinstance(level, int) else None


_active: Optional[ProvioConfig] = None


def get_config() -> ProvioConfig:
    """Return the active config, loading it from the environment on first use."""
    global _active
    if _active is None:
        _active = ConfigLoader.load().to_config()
        _apply(_active)
    return _active


def configure(env_file: Optional[str] = None, **overrides: Any) -> ProvioConfig:
    """
    Reload the active config with manual overrides.

    Example:
        configure(singleton_cache_key="main", diagnostics_enabled=True)
    """
    global _active
    _active = ConfigLoader.load(env_file=env_file, overrides=overrides).to_config()
    _apply(_active)
    return _active


def reset_config() -> None:
    """Forget the active config; the next get_config() reloads it."""
    global _active
    _active = None
    from .diagnostics import diagnostics, logging_listener
    diagnostics.remove_listener(logging_listener)


def _apply(config: ProvioConfig) -> None:
    from .diagnostics import diagnostics, logging_listener

    if config.log_level:
        logging.getLogger("provio").setLevel(_log_level(config.log_level))

    if config.diagnostics_enabled:
        diagnostics.add_listener(logging_listener)
    else:
        diagnostics.remove_listener(logging_listener)
