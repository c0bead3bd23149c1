"""
Storage capability consumed by the engine.

Engine functions take a `Store` argument instead of reaching for a module
level client, so tests can pass a `MemoryStore` and production code a
`PostgresStore`. Every write is its own unit of work.
"""

from datetime import datetime
from typing import List, Optional, Protocol

from floatplan.core.models import (
    AccessPoint,
    GaugeReading,
    GaugeStation,
    LngLat,
    MileMarker,
    River,
    RiverGauge,
)


class Store(Protocol):
    # Rivers
    def get_river(self, river_id: str) -> River: ...
    def list_rivers(self) -> List[River]: ...
    def list_mile_markers(self, river_id: str) -> List[MileMarker]: ...
    def upsert_river(
        self, river: River, markers: Optional[List[MileMarker]] = None
    ) -> None: ...

    # Access points
    def get_access_point(self, access_point_id: str) -> AccessPoint: ...
    def list_access_points(self, river_id: Optional[str] = None) -> List[AccessPoint]: ...
    def upsert_access_point(self, point: AccessPoint) -> None: ...
    def update_access_point_snap(
        self, access_point_id: str, snap: LngLat, mile: float
    ) -> None: ...
    def update_access_point_mile(self, access_point_id: str, mile: float) -> None: ...

    # Gauges
    def get_gauge_station(self, station_id: str) -> GaugeStation: ...
    def list_gauge_stations(self, active_only: bool = True) -> List[GaugeStation]: ...
    def upsert_gauge_station(self, station: GaugeStation) -> None: ...
    def set_high_frequency_flag(self, station_id: str, flag: bool) -> None: ...
    def list_river_gauges(self, river_id: str) -> List[RiverGauge]: ...

    # Readings
    def upsert_reading(self, reading: GaugeReading) -> None: ...
    def latest_reading(self, station_id: str) -> Optional[GaugeReading]: ...
    def readings_since(self, station_id: str, since: datetime) -> List[GaugeReading]: ...
