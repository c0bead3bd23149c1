"""
In-process implementation of the `Store` protocol.

Thread-safe so the ingestion worker pool can write to it concurrently.
"""

import threading
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from floatplan.core.errors import NotFound
from floatplan.core.models import (
    AccessPoint,
    GaugeReading,
    GaugeStation,
    LngLat,
    MileMarker,
    River,
    RiverGauge,
)


class MemoryStore:
    """Dictionary-backed store."""

    def __init__(self):
        self._lock = threading.Lock()
        self.rivers: Dict[str, River] = {}
        self.mile_markers: Dict[str, List[MileMarker]] = {}
        self.access_points: Dict[str, AccessPoint] = {}
        self.stations: Dict[str, GaugeStation] = {}
        self.river_gauges: Dict[str, RiverGauge] = {}
        self.readings: Dict[Tuple[str, datetime], GaugeReading] = {}

    # ==================== Seeding ====================

    def add_river(self, river: River, markers: Optional[List[MileMarker]] = None):
        ordered = sorted(markers or [], key=lambda m: m.mile)
        miles = [m.mile for m in ordered]
        if len(set(miles)) != len(miles):
            raise ValueError(f"Duplicate mile markers for river {river.id}")
        with self._lock:
            self.rivers[river.id] = river
            self.mile_markers[river.id] = ordered

    def add_access_point(self, access_point: AccessPoint):
        with self._lock:
            self.access_points[access_point.id] = access_point

    def add_river_gauge(self, association: RiverGauge):
        with self._lock:
            self.river_gauges[association.id] = association

    # ==================== Rivers ====================

    def upsert_river(self, river: River, markers: Optional[List[MileMarker]] = None):
        """Replace a river; its markers are only replaced when `markers` is given."""
        if markers is None:
            with self._lock:
                markers = list(self.mile_markers.get(river.id, []))
        self.add_river(river, markers)

    def get_river(self, river_id: str) -> River:
        try:
            return self.rivers[river_id]
        except KeyError:
            raise NotFound(f"River {river_id} not found") from None

    def list_rivers(self) -> List[River]:
        return list(self.rivers.values())

    def list_mile_markers(self, river_id: str) -> List[MileMarker]:
        return list(self.mile_markers.get(river_id, []))

    # ==================== Access points ====================

    def get_access_point(self, access_point_id: str) -> AccessPoint:
        try:
            return self.access_points[access_point_id]
        except KeyError:
            raise NotFound(f"Access point {access_point_id} not found") from None

    def list_access_points(self, river_id: Optional[str] = None) -> List[AccessPoint]:
        points = self.access_points.values()
        if river_id is not None:
            points = [p for p in points if p.river_id == river_id]
        return sorted(points, key=lambda p: p.id)

    def upsert_access_point(self, point: AccessPoint):
        """Insert or update an access point; a moved `orig` or river clears snap and mile."""
        with self._lock:
            existing = self.access_points.get(point.id)
            if (
                existing is not None
                and existing.orig == point.orig
                and existing.river_id == point.river_id
            ):
                point = replace(
                    point,
                    snap=existing.snap,
                    mile_from_headwaters=existing.mile_from_headwaters,
                )
            else:
                point = replace(point, snap=None, mile_from_headwaters=None)
            self.access_points[point.id] = point

    def update_access_point_snap(self, access_point_id: str, snap: LngLat, mile: float):
        with self._lock:
            point = self.get_access_point(access_point_id)
            self.access_points[access_point_id] = replace(
                point, snap=snap, mile_from_headwaters=mile
            )

    def update_access_point_mile(self, access_point_id: str, mile: float):
        with self._lock:
            point = self.get_access_point(access_point_id)
            self.access_points[access_point_id] = replace(point, mile_from_headwaters=mile)

    # ==================== Gauges ====================

    def get_gauge_station(self, station_id: str) -> GaugeStation:
        try:
            return self.stations[station_id]
        except KeyError:
            raise NotFound(f"Gauge station {station_id} not found") from None

    def list_gauge_stations(self, active_only: bool = True) -> List[GaugeStation]:
        stations = sorted(self.stations.values(), key=lambda s: s.id)
        if active_only:
            stations = [s for s in stations if s.active]
        return stations

    def upsert_gauge_station(self, station: GaugeStation):
        with self._lock:
            existing = self.stations.get(station.id)
            if existing is not None:
                # Scheduler owns the flag
                station = replace(station, high_frequency_flag=existing.high_frequency_flag)
            self.stations[station.id] = station

    def set_high_frequency_flag(self, station_id: str, flag: bool):
        with self._lock:
            station = self.get_gauge_station(station_id)
            self.stations[station_id] = replace(station, high_frequency_flag=flag)

    def list_river_gauges(self, river_id: str) -> List[RiverGauge]:
        return sorted(
            (g for g in self.river_gauges.values() if g.river_id == river_id),
            key=lambda g: g.id,
        )

    # ==================== Readings ====================

    def upsert_reading(self, reading: GaugeReading):
        with self._lock:
            self.readings[(reading.gauge_station_id, reading.timestamp)] = reading

    def latest_reading(self, station_id: str) -> Optional[GaugeReading]:
        with self._lock:
            readings = [r for (sid, _), r in self.readings.items() if sid == station_id]
        if not readings:
            return None
        return max(readings, key=lambda r: r.timestamp)

    def readings_since(self, station_id: str, since: datetime) -> List[GaugeReading]:
        with self._lock:
            readings = [
                r for (sid, ts), r in self.readings.items()
                if sid == station_id and ts >= since
            ]
        return sorted(readings, key=lambda r: r.timestamp)
