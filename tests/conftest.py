"""Shared pytest fixtures for floatplan tests."""

from datetime import datetime, timedelta, timezone

import pytest

from floatplan.core.models import (
    AccessPoint,
    GaugeReading,
    GaugeStation,
    LngLat,
    MileMarker,
    River,
    RiverGauge,
    Thresholds,
)
from floatplan.data.memory import MemoryStore
from floatplan.engine.mile_correction import snap_access_point

# Straight north-to-south reach, headwaters at the north end (~34.55 mi long)
CURRENT_VERTICES = [(-91.0, 37.0), (-91.0, 36.5)]

THRESHOLDS = Thresholds(
    too_low=1.5, low=2.5, optimal_min=3.0, optimal_max=5.0, high=7.0, dangerous=10.0
)


@pytest.fixture
def now():
    return datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def current_river():
    return River(
        id="current",
        name="Current River",
        vertices=CURRENT_VERTICES,
        headwaters_first=True,
        slug="current-river",
    )


@pytest.fixture
def zigzag_river():
    return River(
        id="jacks-fork",
        name="Jacks Fork",
        vertices=[
            (-92.0, 37.0), (-91.9, 37.05), (-91.8, 37.0),
            (-91.7, 37.05), (-91.6, 37.0),
        ],
        headwaters_first=True,
    )


@pytest.fixture
def store(current_river):
    store = MemoryStore()
    store.add_river(current_river, [
        MileMarker("current", 0.0, "Headwaters"),
        MileMarker("current", 10.0, "Cedargrove"),
        MileMarker("current", 14.0, "Akers Ferry"),
    ])
    store.add_access_point(AccessPoint(
        "ap-north", "current", "Baptist Camp", LngLat(-91.0, 37.0), approved=True,
    ))
    store.add_access_point(AccessPoint(
        "ap-mid", "current", "Akers", LngLat(-91.0, 36.8), approved=True,
    ))
    store.add_access_point(AccessPoint(
        "ap-south", "current", "Pulltite", LngLat(-91.0, 36.75), approved=True,
    ))
    for ap_id in ("ap-north", "ap-mid", "ap-south"):
        snap_access_point(store, ap_id)
    return store


@pytest.fixture
def gauged_store(store):
    """Store with a primary gauge near the headwaters and a downstream segment gauge."""
    store.upsert_gauge_station(GaugeStation(
        "g-montauk", "07064440", "Current River at Montauk", LngLat(-91.0, 36.95),
    ))
    store.upsert_gauge_station(GaugeStation(
        "g-akers", "07064533", "Current River above Akers", LngLat(-91.0, 36.6),
    ))
    store.add_river_gauge(RiverGauge(
        "rg-primary", "current", "g-montauk", is_primary=True, thresholds=THRESHOLDS,
    ))
    store.add_river_gauge(RiverGauge(
        "rg-akers", "current", "g-akers", thresholds=THRESHOLDS,
        distance_from_section_miles=2.0, accuracy_warning_threshold_miles=10.0,
    ))
    return store


def reading(station_id, timestamp, height=None, discharge=None):
    return GaugeReading(station_id, timestamp, gauge_height_ft=height, discharge_cfs=discharge)


@pytest.fixture
def recent():
    """A timestamp a few minutes old, so readings are fresh under the wall clock."""
    return datetime.now(timezone.utc) - timedelta(minutes=15)
