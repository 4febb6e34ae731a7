"""Production resource configuration.

This module handles loading and validating resource definitions including:
- Available resources (presses, finishing lines, binders) and their category
- Optional per-resource daily capacity caps
- DNS (Do Not Schedule) periods per resource, e.g. planned maintenance
"""

from __future__ import annotations

from datetime import date

from pydantic import BaseModel, Field, model_validator

from .models import StageCategory


class DNSPeriod(BaseModel):
    """A do-not-schedule period (inclusive dates) for a resource."""

    start: date
    end: date
    reason: str = ""

    @model_validator(mode="after")
    def validate_end_after_start(self) -> DNSPeriod:
        """Ensure end date is not before start date."""
        if self.end < self.start:
            raise ValueError("end date must be after start date")
        return self

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end


class ResourceDefinition(BaseModel):
    """Definition of a single production resource (stage or machine)."""

    id: str
    name: str = ""
    category: StageCategory = StageCategory.OTHER
    daily_capacity_minutes: int | None = Field(
        default=None,
        ge=0,
        description="Caps the minutes bookable per day; defaults to the working window length",
    )
    dns_periods: list[DNSPeriod] = Field(default_factory=list[DNSPeriod])

    @property
    def display_name(self) -> str:
        return self.name or self.id


class ResourceConfig(BaseModel):
    """Complete resource configuration."""

    resources: list[ResourceDefinition] = Field(default_factory=list[ResourceDefinition])

    @model_validator(mode="after")
    def validate_unique_ids(self) -> ResourceConfig:
        """Ensure each resource id is defined once."""
        seen: set[str] = set()
        for resource in self.resources:
            if resource.id in seen:
                raise ValueError(f"Resource '{resource.id}' is defined more than once")
            seen.add(resource.id)
        return self

    def get(self, resource_id: str) -> ResourceDefinition | None:
        for resource in self.resources:
            if resource.id == resource_id:
                return resource
        return None

    def get_category(self, resource_id: str) -> StageCategory:
        """Category of a resource; unknown resources are treated as OTHER."""
        resource = self.get(resource_id)
        return resource.category if resource else StageCategory.OTHER

    def is_down(self, resource_id: str, day: date) -> bool:
        """True if the resource has a DNS period covering the date."""
        resource = self.get(resource_id)
        if resource is None:
            return False
        return any(period.contains(day) for period in resource.dns_periods)

    def get_capacity_cap(self, resource_id: str) -> int | None:
        resource = self.get(resource_id)
        return resource.daily_capacity_minutes if resource else None
