"""Global application context: the configuration the CLI runs with."""

from __future__ import annotations

from pathlib import Path

from .unified_config import UnifiedConfig, find_config, load_unified_config


class _Context:
    """Application context for managing global state."""

    def __init__(self) -> None:
        self.config_path: Path | None = None
        self.config: UnifiedConfig | None = None


# Singleton instance
_context = _Context()


def get_config_path() -> Path | None:
    """Get the explicit config path, falling back to pressplan_config.yaml in cwd."""
    return _context.config_path or find_config()


def set_config_path(path: Path | None) -> None:
    """Set the global config path and drop any cached configuration."""
    _context.config_path = path
    _context.config = None


def get_config() -> UnifiedConfig:
    """Load (once) and return the active configuration.

    Without any config file the defaults apply: no resource definitions,
    Monday to Friday 08:00-16:30 in UTC.
    """
    if _context.config is None:
        path = get_config_path()
        _context.config = load_unified_config(path) if path else UnifiedConfig()
    return _context.config
