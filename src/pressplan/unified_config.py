"""Unified configuration loader for resources, calendar and scheduler settings.

This module provides a single configuration file format (pressplan_config.yaml)
that combines resource definitions with the plant's working calendar and the
scheduler's own settings.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

from .resources import ResourceConfig
from .scheduler.config import CalendarConfig, SchedulingConfig

DEFAULT_CONFIG_NAME = "pressplan_config.yaml"


class UnifiedConfig(BaseModel):
    """Unified configuration containing resources, calendar and scheduler settings."""

    resources: ResourceConfig = Field(default_factory=ResourceConfig)
    calendar: CalendarConfig = Field(default_factory=CalendarConfig)
    scheduler: SchedulingConfig = Field(default_factory=SchedulingConfig)


def load_unified_config(config_path: Path | str) -> UnifiedConfig:
    """Load unified configuration from YAML file.

    Top-level ``holidays`` are merged into the calendar's holiday list so they
    can be maintained separately from shift configuration.

    Args:
        config_path: Path to pressplan_config.yaml file

    Returns:
        UnifiedConfig with resources, calendar and scheduler settings

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config is invalid
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with config_path.open() as f:
        data: dict[str, Any] = yaml.safe_load(f)

    if not data:
        raise ValueError("Empty configuration file")
    if not isinstance(data, dict):
        raise ValueError("Config must be a mapping")

    # Validate resources section exists
    if "resources" not in data:
        raise ValueError("Config must contain 'resources' section")

    resource_config = ResourceConfig.model_validate({"resources": data["resources"] or []})

    calendar_data: dict[str, Any] = dict(data.get("calendar") or {})
    if "holidays" in data:
        calendar_data["holidays"] = [
            *(calendar_data.get("holidays") or []),
            *(data["holidays"] or []),
        ]
    calendar_config = CalendarConfig.model_validate(calendar_data)

    # Build SchedulingConfig if scheduler section exists
    scheduler_config = SchedulingConfig()
    if "scheduler" in data:
        scheduler_config = SchedulingConfig.model_validate(data["scheduler"] or {})

    return UnifiedConfig(
        resources=resource_config,
        calendar=calendar_config,
        scheduler=scheduler_config,
    )


def find_config(start: Path | None = None) -> Path | None:
    """Locate pressplan_config.yaml in ``start`` (default: current directory)."""
    candidate = (start or Path.cwd()) / DEFAULT_CONFIG_NAME
    return candidate if candidate.exists() else None
