"""Configuration classes for the scheduling system."""

from __future__ import annotations

from datetime import date, time
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from pressplan.models import StageCategory
from pressplan.timezones import get_zone

MINUTES_PER_DAY = 24 * 60


def _coerce_clock(value: Any) -> Any:
    """Accept integer clock values as minutes after midnight.

    YAML 1.1 reads an unquoted ``16:30`` as the sexagesimal integer 990, which
    is exactly the minutes-after-midnight value.
    """
    if isinstance(value, int) and not isinstance(value, bool):
        if not 0 <= value < MINUTES_PER_DAY:
            raise ValueError(f"Clock value {value} is outside a single day")
        return time(hour=value // 60, minute=value % 60)
    return value


class ShiftDefinition(BaseModel):
    """Working window for one weekday (0=Monday ... 6=Sunday, plant-local)."""

    day_of_week: int = Field(ge=0, le=6)
    start: time = time(8, 0)
    end: time = time(16, 30)
    is_working_day: bool = True

    @field_validator("start", "end", mode="before")
    @classmethod
    def coerce_clock(cls, value: Any) -> Any:
        return _coerce_clock(value)

    @model_validator(mode="after")
    def validate_end_after_start(self) -> ShiftDefinition:
        if self.end <= self.start:
            raise ValueError(f"Shift for weekday {self.day_of_week} ends before it starts")
        return self


class BreakPeriod(BaseModel):
    """Daily unavailable period inside the working window (e.g. lunch)."""

    start: time
    minutes: int = Field(gt=0)

    @field_validator("start", mode="before")
    @classmethod
    def coerce_clock(cls, value: Any) -> Any:
        return _coerce_clock(value)


class Holiday(BaseModel):
    """A public holiday; no resource works on this plant-local date."""

    date: date
    name: str = ""


class BusyPeriod(BaseModel):
    """Temporary override of the working window, e.g. extended hours in peak season.

    ``start``/``end`` bound the dates the override applies to (inclusive);
    either may be omitted for an open-ended override.
    """

    work_start: time
    work_end: time
    start: date | None = None
    end: date | None = None
    active: bool = True

    @field_validator("work_start", "work_end", mode="before")
    @classmethod
    def coerce_clock(cls, value: Any) -> Any:
        return _coerce_clock(value)

    @model_validator(mode="after")
    def validate_period(self) -> BusyPeriod:
        if self.work_end <= self.work_start:
            raise ValueError("Busy period window ends before it starts")
        if self.start and self.end and self.end < self.start:
            raise ValueError("Busy period end date must be after start date")
        return self

    def applies_to(self, day: date) -> bool:
        if not self.active:
            return False
        if self.start and day < self.start:
            return False
        return not (self.end and day > self.end)


def _default_shifts() -> list[ShiftDefinition]:
    # Monday to Friday, 08:00-16:30
    return [ShiftDefinition(day_of_week=d) for d in range(5)]


class CalendarConfig(BaseModel):
    """Working-hours calendar of the plant."""

    timezone: str = "UTC"
    shifts: list[ShiftDefinition] = Field(default_factory=_default_shifts)
    breaks: list[BreakPeriod] = Field(default_factory=list[BreakPeriod])
    holidays: list[Holiday] = Field(default_factory=list[Holiday])
    busy_periods: list[BusyPeriod] = Field(default_factory=list[BusyPeriod])

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        get_zone(value)
        return value


class SchedulingConfig(BaseModel):
    """Configuration for the scheduling engine."""

    # Hard cap on the day-advance loop; a calendar with no working time fails fast
    horizon_days: int = Field(default=365, gt=0)

    # Retries of a single stage allocation after a capacity conflict
    max_conflict_retries: int = Field(default=1, ge=0)

    # Defaults for requests that do not set the flags explicitly
    default_as_proposed: bool = True
    default_only_if_unset: bool = True

    # Resource categories that are never capacity-scheduled
    unscheduled_categories: list[StageCategory] = Field(
        default_factory=lambda: [StageCategory.PROOF]
    )
