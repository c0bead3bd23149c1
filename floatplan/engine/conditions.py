"""
Condition classification for gauge readings.

Maps a reading onto the river/gauge specific threshold band:

    value <  too_low                    -> too_low
    too_low     <= value < low          -> low  (very_low sub-band)
    low         <= value < optimal_min  -> low
    optimal_min <= value <= optimal_max -> optimal
    optimal_max <  value < dangerous    -> high (very_high above `high`)
    dangerous   <= value                -> dangerous

A missing reading or value is classified as unknown, never guessed.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Tuple

from floatplan.core.config import FreshnessConfig
from floatplan.core.models import GaugeReading, LngLat, Thresholds
from floatplan.data.store import Store
from floatplan.engine.gauges import select_gauge

logger = logging.getLogger(__name__)

TOO_LOW = "too_low"
LOW = "low"
OPTIMAL = "optimal"
HIGH = "high"
DANGEROUS = "dangerous"
UNKNOWN = "unknown"

CONDITION_CODES = (TOO_LOW, LOW, OPTIMAL, HIGH, DANGEROUS, UNKNOWN)

CONDITION_LABELS = {
    DANGEROUS: "Dangerous - Do Not Float",
    HIGH: "High Water - Experienced Only",
    OPTIMAL: "Optimal Conditions",
    LOW: "Okay - Floatable",
    TOO_LOW: "Too Low - Not Recommended",
    UNKNOWN: "Unknown",
}

SUB_BAND_LABELS = {
    "very_low": "Low - Scraping Likely",
}


@dataclass(frozen=True)
class ConditionResult:
    code: str
    label: str
    value: Optional[float] = None
    unit: Optional[str] = None
    sub_band: Optional[str] = None
    reading_timestamp: Optional[datetime] = None
    reading_age_hours: Optional[float] = None
    stale: bool = False
    reason: Optional[str] = None


@dataclass(frozen=True)
class RiverCondition:
    river_id: str
    gauge_station_id: str
    gauge_name: str
    usgs_site_id: str
    gauge_height_ft: Optional[float]
    discharge_cfs: Optional[float]
    condition: ConditionResult
    accuracy_warning: bool = False
    accuracy_warning_reason: Optional[str] = None
    put_in_mile: Optional[float] = None
    distance_to_put_in_miles: Optional[float] = None


def classify_value(value: float, thresholds: Thresholds) -> Tuple[str, Optional[str]]:
    """Return (code, sub_band) for a finite value."""
    if value >= thresholds.dangerous:
        return DANGEROUS, None
    if value > thresholds.optimal_max:
        return HIGH, ("very_high" if value > thresholds.high else None)
    if value >= thresholds.optimal_min:
        return OPTIMAL, None
    if value >= thresholds.low:
        return LOW, None
    if value >= thresholds.too_low:
        return LOW, "very_low"
    return TOO_LOW, None


def _unknown(reason: str, reading: Optional[GaugeReading] = None, unit=None, age=None):
    return ConditionResult(
        code=UNKNOWN,
        label=CONDITION_LABELS[UNKNOWN],
        unit=unit,
        reading_timestamp=reading.timestamp if reading else None,
        reading_age_hours=age,
        reason=reason,
    )


def reading_age_hours(reading: GaugeReading, now: datetime) -> float:
    timestamp = reading.timestamp
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return (now - timestamp).total_seconds() / 3600.0


def classify_condition(
    reading: Optional[GaugeReading],
    thresholds: Optional[Thresholds],
    freshness: FreshnessConfig = FreshnessConfig(),
    now: Optional[datetime] = None,
) -> ConditionResult:
    """
    Classify a reading against an association's thresholds.

    Feet thresholds compare gauge height, cfs thresholds compare discharge.
    Stale readings are still classified but carry `stale=True` and a reason.
    """
    if reading is None:
        return _unknown("No gauge reading available")
    if thresholds is None:
        return _unknown("No thresholds configured for this gauge", reading)

    unit = thresholds.unit
    value = reading.discharge_cfs if unit == "cfs" else reading.gauge_height_ft
    if value is None or not math.isfinite(value):
        parameter = "discharge" if unit == "cfs" else "gauge height"
        return _unknown(f"Reading has no {parameter} value", reading, unit=unit)

    now = now or datetime.now(timezone.utc)
    age = reading_age_hours(reading, now)
    stale = age > freshness.staleness_hours
    reason = None
    if stale:
        reason = (
            f"Reading is {age:.1f} hours old "
            f"(older than {freshness.staleness_hours:g} hours)"
        )

    code, sub_band = classify_value(value, thresholds)
    label = SUB_BAND_LABELS.get(sub_band, CONDITION_LABELS[code])

    return ConditionResult(
        code=code,
        label=label,
        value=value,
        unit=unit,
        sub_band=sub_band,
        reading_timestamp=reading.timestamp,
        reading_age_hours=round(age, 2),
        stale=stale,
        reason=reason,
    )


def is_floatable(code: str) -> bool:
    return code in (OPTIMAL, HIGH, LOW)


def get_river_condition(
    store: Store,
    river_id: str,
    put_in: Optional[LngLat] = None,
    freshness: FreshnessConfig = FreshnessConfig(),
    now: Optional[datetime] = None,
) -> RiverCondition:
    """Select a gauge for a river (or float segment) and classify its latest reading."""
    selection = select_gauge(store, river_id, put_in)
    reading = store.latest_reading(selection.station.id)
    condition = classify_condition(
        reading, selection.association.thresholds, freshness, now
    )

    if condition.code == UNKNOWN:
        logger.warning(
            f"Condition unknown for river {river_id} "
            f"(gauge {selection.station.usgs_site_id}): {condition.reason}"
        )

    return RiverCondition(
        river_id=river_id,
        gauge_station_id=selection.station.id,
        gauge_name=selection.station.name,
        usgs_site_id=selection.station.usgs_site_id,
        gauge_height_ft=reading.gauge_height_ft if reading else None,
        discharge_cfs=reading.discharge_cfs if reading else None,
        condition=condition,
        accuracy_warning=selection.accuracy_warning,
        accuracy_warning_reason=selection.accuracy_warning_reason,
        put_in_mile=selection.put_in_mile,
        distance_to_put_in_miles=selection.distance_to_put_in_miles,
    )
