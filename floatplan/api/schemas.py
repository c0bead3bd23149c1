"""
Pydantic schemas for API request/response models.
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


# === Request Models ===

class Coordinate(BaseModel):
    """A geographic coordinate."""
    lat: float = Field(..., ge=-90, le=90, description="Latitude")
    lng: float = Field(..., ge=-180, le=180, description="Longitude")


class CorrectMilesRequest(BaseModel):
    """Request to reconcile access point miles against mile markers."""
    tolerance_miles: Optional[float] = Field(
        default=None,
        ge=0,
        description="Allowed difference from the nearest reference (server default if omitted)",
    )
    resnap: bool = False


# === Response Models ===

class SnapResponse(BaseModel):
    """Response from snapping a point to a river."""
    river_id: str
    snap_point: Coordinate
    mile_from_headwaters: float
    mile_from_mouth: float
    distance_off_line_mi: float
    river_length_mi: float


class SegmentResponse(BaseModel):
    """River line between two miles."""
    river_id: str
    start_mile: float
    end_mile: float
    distance_mi: float
    route: dict  # GeoJSON LineString


class FloatPlanResponse(BaseModel):
    """River line and distance between a put-in and a take-out."""
    river_id: str
    put_in_id: str
    take_out_id: str
    start_mile: float
    end_mile: float
    distance_mi: float
    route: dict  # GeoJSON LineString


class Condition(BaseModel):
    code: str
    label: str
    sub_band: Optional[str] = None
    gauge_height_ft: Optional[float] = None
    discharge_cfs: Optional[float] = None
    reading_timestamp: Optional[datetime] = None
    reading_age_hours: Optional[float] = None
    stale: bool = False
    reason: Optional[str] = None
    accuracy_warning: bool = False
    accuracy_warning_reason: Optional[str] = None
    gauge_name: str
    gauge_usgs_id: str
    put_in_mile: Optional[float] = None
    distance_to_put_in_mi: Optional[float] = None


class ConditionResponse(BaseModel):
    condition: Optional[Condition] = None
    available: bool
    diagnostic: Optional[str] = None


class MileCorrectionItem(BaseModel):
    access_point_id: str
    access_point_name: str
    old_mile: Optional[float]
    new_mile: Optional[float]
    corrected: bool
    reference_mile: Optional[float] = None
    reason: Optional[str] = None


class MileCorrectionResponse(BaseModel):
    river_id: str
    tolerance_miles: float
    corrected: int
    unchanged: int
    results: List[MileCorrectionItem]


class PollingStation(BaseModel):
    id: str
    usgs_site_id: str
    name: str


class PollingSetsResponse(BaseModel):
    cadences: Dict[str, List[PollingStation]]


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str
