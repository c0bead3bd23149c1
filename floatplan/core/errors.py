"""
Error taxonomy for the float planner core.

Geometry and classification errors are data problems: they are returned to the
immediate caller and never retried. Only `UpstreamFetchFailure` is transient.
"""

from typing import Optional


class FloatPlanError(Exception):
    """Base class for float planner errors."""


class NotFound(FloatPlanError):
    """A river, access point or gauge station does not exist."""


class DegenerateGeometry(FloatPlanError):
    """A river polyline cannot be linearly referenced."""

    def __init__(self, river_id: str, reason: str):
        self.river_id = river_id
        self.reason = reason
        super().__init__(f"River {river_id}: {reason}")


class NoPrimaryGauge(FloatPlanError):
    """No active primary gauge association is configured for a river."""

    def __init__(self, river_id: str):
        self.river_id = river_id
        super().__init__(f"River {river_id} has no primary gauge configured")


class InvalidThresholds(FloatPlanError, ValueError):
    """Condition thresholds are not strictly ordered."""


class OutOfRangeSensorValue(FloatPlanError):
    """A sensor value outside the physically sane range."""

    def __init__(self, site_id: str, parameter: str, value: float):
        self.site_id = site_id
        self.parameter = parameter
        self.value = value
        super().__init__(f"Invalid {parameter} {value} for site {site_id}")


class UpstreamFetchFailure(FloatPlanError):
    """The water-data source was unreachable or answered with an error."""

    def __init__(self, message: str, status: Optional[int] = None):
        self.status = status
        super().__init__(message)
