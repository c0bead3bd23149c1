"""
Typed entities for rivers, access points and gauges.

Derived fields (`AccessPoint.snap`, `AccessPoint.mile_from_headwaters`,
`GaugeStation.high_frequency_flag`) are only written by the engine modules
that own them.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, NamedTuple, Optional

from floatplan.core.errors import InvalidThresholds


class LngLat(NamedTuple):
    """A WGS84 coordinate in GeoJSON order."""
    lng: float
    lat: float


@dataclass
class River:
    id: str
    name: str
    vertices: List[LngLat]
    headwaters_first: bool
    direction_verified: bool = False
    slug: Optional[str] = None

    def __post_init__(self):
        self.vertices = [LngLat(float(v[0]), float(v[1])) for v in self.vertices]


@dataclass(frozen=True)
class MileMarker:
    """Authoritative river mile checkpoint."""
    river_id: str
    mile: float
    name: Optional[str] = None
    description: Optional[str] = None


@dataclass
class AccessPoint:
    id: str
    river_id: str
    name: str
    orig: LngLat
    snap: Optional[LngLat] = None
    mile_from_headwaters: Optional[float] = None
    approved: bool = False


@dataclass
class GaugeStation:
    id: str
    usgs_site_id: str
    name: str
    location: Optional[LngLat] = None
    active: bool = True
    high_frequency_flag: bool = False


THRESHOLD_UNITS = ("ft", "cfs")


@dataclass(frozen=True)
class Thresholds:
    """
    Ordered condition band for one river/gauge association.

    too_low < low < optimal_min < optimal_max < high < dangerous, all in `unit`.
    """
    too_low: float
    low: float
    optimal_min: float
    optimal_max: float
    high: float
    dangerous: float
    unit: str = "ft"

    def __post_init__(self):
        if self.unit not in THRESHOLD_UNITS:
            raise InvalidThresholds(f"Unknown threshold unit {self.unit!r}")
        band = self.as_list()
        if not all(math.isfinite(v) for v in band):
            raise InvalidThresholds(f"Thresholds must be finite: {band}")
        if any(a >= b for a, b in zip(band, band[1:])):
            raise InvalidThresholds(f"Thresholds must be strictly increasing: {band}")

    def as_list(self) -> List[float]:
        return [
            self.too_low, self.low, self.optimal_min,
            self.optimal_max, self.high, self.dangerous,
        ]


@dataclass
class RiverGauge:
    """Links a gauge station to a river with river-specific thresholds."""
    id: str
    river_id: str
    gauge_station_id: str
    is_primary: bool = False
    thresholds: Optional[Thresholds] = None
    distance_from_section_miles: Optional[float] = None
    accuracy_warning_threshold_miles: float = 10.0


@dataclass(frozen=True)
class GaugeReading:
    gauge_station_id: str
    timestamp: datetime
    gauge_height_ft: Optional[float] = None
    discharge_cfs: Optional[float] = None
    fetched_at: Optional[datetime] = field(default=None, compare=False)
