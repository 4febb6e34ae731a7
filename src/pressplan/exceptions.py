"""Custom exceptions for pressplan."""


class PressPlanError(Exception):
    """Base exception for all pressplan errors."""

    pass


class ValidationError(PressPlanError):
    """Raised when validation fails."""

    pass


class ConfigurationError(ValidationError):
    """Raised when scheduling input is misconfigured (rejected before allocation)."""

    error_code = "CONFIGURATION_ERROR"


class InvalidDurationError(ConfigurationError):
    """Raised when a stage has a zero or negative duration."""

    error_code = "INVALID_DURATION"


class SchedulingError(PressPlanError):
    """Base class for errors raised while allocating a stage."""

    error_code = "SCHEDULING_ERROR"


class BreakOverlapError(SchedulingError):
    """Raised when a placement would overlap a configured break."""

    error_code = "LUNCH_BREAK_OVERLAP"


class OverAllocationError(SchedulingError):
    """Raised when a commit exceeds the minutes quoted by the capacity tracker."""

    error_code = "OVER_ALLOCATION"


class CapacityConflictError(SchedulingError):
    """Raised when a capacity row changed between quote and commit."""

    error_code = "CAPACITY_CONFLICT"


class SchedulingHorizonExceededError(SchedulingError):
    """Raised when no working time can be found within the scheduling horizon."""

    error_code = "HORIZON_EXCEEDED"


class UnresolvedDependencyError(SchedulingError):
    """Raised when a stage's prerequisites can never be scheduled."""

    error_code = "UNRESOLVED_DEPENDENCY"
