"""
PostGIS-backed implementation of the `Store` protocol.

Each method opens its own connection and commits on success, so every unit
of work (one corrected mile, one reading, one flag) stands on its own.
"""

import json
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, List, Optional

import psycopg2
from psycopg2.extras import execute_values

from floatplan.core.errors import NotFound
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

logger = logging.getLogger(__name__)


SCHEMA = """
    CREATE EXTENSION IF NOT EXISTS postgis;

    CREATE TABLE IF NOT EXISTS rivers (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        slug TEXT UNIQUE,
        geom GEOMETRY(LineString, 4326) NOT NULL,
        geometry_starts_at_headwaters BOOLEAN NOT NULL DEFAULT TRUE,
        direction_verified BOOLEAN NOT NULL DEFAULT FALSE,
        updated_at TIMESTAMPTZ DEFAULT NOW()
    );

    CREATE TABLE IF NOT EXISTS mile_markers (
        id SERIAL PRIMARY KEY,
        river_id TEXT NOT NULL REFERENCES rivers(id) ON DELETE CASCADE,
        mile DOUBLE PRECISION NOT NULL,
        name TEXT,
        description TEXT,
        UNIQUE (river_id, mile)
    );

    CREATE TABLE IF NOT EXISTS access_points (
        id TEXT PRIMARY KEY,
        river_id TEXT NOT NULL REFERENCES rivers(id),
        name TEXT NOT NULL,
        location_orig GEOMETRY(Point, 4326) NOT NULL,
        location_snap GEOMETRY(Point, 4326),
        river_mile_downstream DOUBLE PRECISION,
        approved BOOLEAN NOT NULL DEFAULT FALSE,
        updated_at TIMESTAMPTZ DEFAULT NOW()
    );

    CREATE INDEX IF NOT EXISTS idx_access_points_river
    ON access_points (river_id, river_mile_downstream);

    CREATE TABLE IF NOT EXISTS gauge_stations (
        id TEXT PRIMARY KEY,
        usgs_site_id VARCHAR(20) UNIQUE NOT NULL,
        name TEXT NOT NULL,
        location GEOMETRY(Point, 4326),
        active BOOLEAN NOT NULL DEFAULT TRUE,
        high_frequency_flag BOOLEAN NOT NULL DEFAULT FALSE
    );

    CREATE TABLE IF NOT EXISTS river_gauges (
        id TEXT PRIMARY KEY,
        river_id TEXT NOT NULL REFERENCES rivers(id),
        gauge_station_id TEXT NOT NULL REFERENCES gauge_stations(id),
        is_primary BOOLEAN NOT NULL DEFAULT FALSE,
        threshold_unit VARCHAR(3) NOT NULL DEFAULT 'ft',
        level_too_low DOUBLE PRECISION,
        level_low DOUBLE PRECISION,
        level_optimal_min DOUBLE PRECISION,
        level_optimal_max DOUBLE PRECISION,
        level_high DOUBLE PRECISION,
        level_dangerous DOUBLE PRECISION,
        distance_from_section_miles DOUBLE PRECISION,
        accuracy_warning_threshold_miles DOUBLE PRECISION NOT NULL DEFAULT 10,
        UNIQUE (river_id, gauge_station_id)
    );

    CREATE TABLE IF NOT EXISTS gauge_readings (
        id SERIAL PRIMARY KEY,
        gauge_station_id TEXT NOT NULL REFERENCES gauge_stations(id),
        reading_timestamp TIMESTAMPTZ NOT NULL,
        gauge_height_ft DOUBLE PRECISION,
        discharge_cfs DOUBLE PRECISION,
        fetched_at TIMESTAMPTZ DEFAULT NOW(),
        UNIQUE (gauge_station_id, reading_timestamp)
    );

    CREATE INDEX IF NOT EXISTS idx_gauge_readings_station_time
    ON gauge_readings (gauge_station_id, reading_timestamp DESC);
"""

ACCESS_POINT_COLUMNS = """
    id, river_id, name,
    ST_X(location_orig), ST_Y(location_orig),
    ST_X(location_snap), ST_Y(location_snap),
    river_mile_downstream, approved
"""

STATION_COLUMNS = """
    id, usgs_site_id, name, ST_X(location), ST_Y(location),
    active, high_frequency_flag
"""

READING_COLUMNS = """
    gauge_station_id, reading_timestamp, gauge_height_ft, discharge_cfs, fetched_at
"""


def _point(lng, lat) -> Optional[LngLat]:
    if lng is None or lat is None:
        return None
    return LngLat(lng, lat)


def _ewkt_point(point: Optional[LngLat]) -> Optional[str]:
    if point is None:
        return None
    return f"SRID=4326;POINT({point.lng} {point.lat})"


def _ewkt_line(vertices: List[LngLat]) -> str:
    coords = ", ".join(f"{v.lng} {v.lat}" for v in vertices)
    return f"SRID=4326;LINESTRING({coords})"


def _access_point(row) -> AccessPoint:
    return AccessPoint(
        id=row[0],
        river_id=row[1],
        name=row[2],
        orig=LngLat(row[3], row[4]),
        snap=_point(row[5], row[6]),
        mile_from_headwaters=row[7],
        approved=row[8],
    )


def _station(row) -> GaugeStation:
    return GaugeStation(
        id=row[0],
        usgs_site_id=row[1],
        name=row[2],
        location=_point(row[3], row[4]),
        active=row[5],
        high_frequency_flag=row[6],
    )


def _reading(row) -> GaugeReading:
    return GaugeReading(
        gauge_station_id=row[0],
        timestamp=row[1],
        gauge_height_ft=row[2],
        discharge_cfs=row[3],
        fetched_at=row[4],
    )


def _river_gauge(row) -> RiverGauge:
    unit, levels = row[4], row[5:11]
    thresholds = None
    if all(v is not None for v in levels):
        thresholds = Thresholds(*levels, unit=unit)
    elif any(v is not None for v in levels):
        logger.warning(f"River gauge {row[0]} has incomplete thresholds")

    return RiverGauge(
        id=row[0],
        river_id=row[1],
        gauge_station_id=row[2],
        is_primary=row[3],
        thresholds=thresholds,
        distance_from_section_miles=row[11],
        accuracy_warning_threshold_miles=row[12],
    )


class PostgresStore:
    """Store backed by PostgreSQL + PostGIS."""

    def __init__(self, database_url: str):
        self.database_url = database_url

    @contextmanager
    def _cursor(self) -> Iterator["psycopg2.extensions.cursor"]:
        conn = psycopg2.connect(self.database_url)
        try:
            cur = conn.cursor()
            yield cur
            conn.commit()
            cur.close()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def setup_tables(self):
        """Create tables if they don't exist."""
        with self._cursor() as cur:
            cur.execute(SCHEMA)
        logger.info("Tables created/verified")

    # ==================== Rivers ====================

    def upsert_river(self, river: River, markers: Optional[List[MileMarker]] = None):
        """
        Replace a river's geometry and (optionally) its mile marker references.

        Stored access point miles are not touched; run `revalidate_river`
        afterwards so they follow the new geometry and references.
        """
        with self._cursor() as cur:
            cur.execute("""
                INSERT INTO rivers (
                    id, name, slug, geom, geometry_starts_at_headwaters, direction_verified
                ) VALUES (%s, %s, %s, ST_GeomFromEWKT(%s), %s, %s)
                ON CONFLICT (id) DO UPDATE SET
                    name = EXCLUDED.name,
                    slug = EXCLUDED.slug,
                    geom = EXCLUDED.geom,
                    geometry_starts_at_headwaters = EXCLUDED.geometry_starts_at_headwaters,
                    direction_verified = EXCLUDED.direction_verified,
                    updated_at = NOW()
            """, (
                river.id, river.name, river.slug, _ewkt_line(river.vertices),
                river.headwaters_first, river.direction_verified,
            ))

            if markers is not None:
                cur.execute("DELETE FROM mile_markers WHERE river_id = %s", (river.id,))
                if markers:
                    execute_values(cur, """
                        INSERT INTO mile_markers (river_id, mile, name, description)
                        VALUES %s
                    """, [(river.id, m.mile, m.name, m.description) for m in markers])

    def _river(self, row) -> River:
        geom = json.loads(row[2])
        return River(
            id=row[0],
            name=row[1],
            vertices=[LngLat(c[0], c[1]) for c in geom["coordinates"]],
            headwaters_first=row[3],
            direction_verified=row[4],
            slug=row[5],
        )

    def get_river(self, river_id: str) -> River:
        with self._cursor() as cur:
            cur.execute("""
                SELECT id, name, ST_AsGeoJSON(geom), geometry_starts_at_headwaters,
                       direction_verified, slug
                FROM rivers WHERE id = %s
            """, (river_id,))
            row = cur.fetchone()
        if row is None:
            raise NotFound(f"River {river_id} not found")
        return self._river(row)

    def list_rivers(self) -> List[River]:
        with self._cursor() as cur:
            cur.execute("""
                SELECT id, name, ST_AsGeoJSON(geom), geometry_starts_at_headwaters,
                       direction_verified, slug
                FROM rivers ORDER BY name
            """)
            rows = cur.fetchall()
        return [self._river(row) for row in rows]

    def list_mile_markers(self, river_id: str) -> List[MileMarker]:
        with self._cursor() as cur:
            cur.execute("""
                SELECT river_id, mile, name, description
                FROM mile_markers WHERE river_id = %s ORDER BY mile
            """, (river_id,))
            rows = cur.fetchall()
        return [MileMarker(*row) for row in rows]

    # ==================== Access points ====================

    def upsert_access_point(self, point: AccessPoint):
        """
        Insert or update an access point from its original coordinate.

        Moving `location_orig` (or the river) clears the snapped location and
        mile, which must be re-derived by snapping.
        """
        with self._cursor() as cur:
            cur.execute("""
                INSERT INTO access_points (id, river_id, name, location_orig, approved)
                VALUES (%s, %s, %s, ST_GeomFromEWKT(%s), %s)
                ON CONFLICT (id) DO UPDATE SET
                    location_snap = CASE
                        WHEN ST_Equals(access_points.location_orig, EXCLUDED.location_orig)
                             AND access_points.river_id = EXCLUDED.river_id
                        THEN access_points.location_snap
                    END,
                    river_mile_downstream = CASE
                        WHEN ST_Equals(access_points.location_orig, EXCLUDED.location_orig)
                             AND access_points.river_id = EXCLUDED.river_id
                        THEN access_points.river_mile_downstream
                    END,
                    river_id = EXCLUDED.river_id,
                    name = EXCLUDED.name,
                    location_orig = EXCLUDED.location_orig,
                    approved = EXCLUDED.approved,
                    updated_at = NOW()
            """, (point.id, point.river_id, point.name, _ewkt_point(point.orig), point.approved))

    def get_access_point(self, access_point_id: str) -> AccessPoint:
        with self._cursor() as cur:
            cur.execute(
                f"SELECT {ACCESS_POINT_COLUMNS} FROM access_points WHERE id = %s",
                (access_point_id,),
            )
            row = cur.fetchone()
        if row is None:
            raise NotFound(f"Access point {access_point_id} not found")
        return _access_point(row)

    def list_access_points(self, river_id: Optional[str] = None) -> List[AccessPoint]:
        sql = f"SELECT {ACCESS_POINT_COLUMNS} FROM access_points"
        params = ()
        if river_id is not None:
            sql += " WHERE river_id = %s"
            params = (river_id,)
        sql += " ORDER BY id"
        with self._cursor() as cur:
            cur.execute(sql, params)
            rows = cur.fetchall()
        return [_access_point(row) for row in rows]

    def update_access_point_snap(self, access_point_id: str, snap: LngLat, mile: float):
        with self._cursor() as cur:
            cur.execute("""
                UPDATE access_points
                SET location_snap = ST_GeomFromEWKT(%s),
                    river_mile_downstream = %s,
                    updated_at = NOW()
                WHERE id = %s
            """, (_ewkt_point(snap), mile, access_point_id))
            if cur.rowcount == 0:
                raise NotFound(f"Access point {access_point_id} not found")

    def update_access_point_mile(self, access_point_id: str, mile: float):
        with self._cursor() as cur:
            cur.execute("""
                UPDATE access_points
                SET river_mile_downstream = %s, updated_at = NOW()
                WHERE id = %s
            """, (mile, access_point_id))
            if cur.rowcount == 0:
                raise NotFound(f"Access point {access_point_id} not found")

    # ==================== Gauges ====================

    def get_gauge_station(self, station_id: str) -> GaugeStation:
        with self._cursor() as cur:
            cur.execute(
                f"SELECT {STATION_COLUMNS} FROM gauge_stations WHERE id = %s",
                (station_id,),
            )
            row = cur.fetchone()
        if row is None:
            raise NotFound(f"Gauge station {station_id} not found")
        return _station(row)

    def list_gauge_stations(self, active_only: bool = True) -> List[GaugeStation]:
        sql = f"SELECT {STATION_COLUMNS} FROM gauge_stations"
        if active_only:
            sql += " WHERE active"
        sql += " ORDER BY id"
        with self._cursor() as cur:
            cur.execute(sql)
            rows = cur.fetchall()
        return [_station(row) for row in rows]

    def upsert_gauge_station(self, station: GaugeStation):
        # high_frequency_flag is owned by the scheduler and never overwritten here
        with self._cursor() as cur:
            cur.execute("""
                INSERT INTO gauge_stations (id, usgs_site_id, name, location, active)
                VALUES (%s, %s, %s, ST_GeomFromEWKT(%s), %s)
                ON CONFLICT (id) DO UPDATE SET
                    usgs_site_id = EXCLUDED.usgs_site_id,
                    name = EXCLUDED.name,
                    location = EXCLUDED.location,
                    active = EXCLUDED.active
            """, (
                station.id, station.usgs_site_id, station.name,
                _ewkt_point(station.location), station.active,
            ))

    def set_high_frequency_flag(self, station_id: str, flag: bool):
        with self._cursor() as cur:
            cur.execute(
                "UPDATE gauge_stations SET high_frequency_flag = %s WHERE id = %s",
                (flag, station_id),
            )
            if cur.rowcount == 0:
                raise NotFound(f"Gauge station {station_id} not found")

    def list_river_gauges(self, river_id: str) -> List[RiverGauge]:
        with self._cursor() as cur:
            cur.execute("""
                SELECT id, river_id, gauge_station_id, is_primary, threshold_unit,
                       level_too_low, level_low, level_optimal_min, level_optimal_max,
                       level_high, level_dangerous,
                       distance_from_section_miles, accuracy_warning_threshold_miles
                FROM river_gauges WHERE river_id = %s ORDER BY id
            """, (river_id,))
            rows = cur.fetchall()
        return [_river_gauge(row) for row in rows]

    # ==================== Readings ====================

    def upsert_reading(self, reading: GaugeReading):
        with self._cursor() as cur:
            cur.execute("""
                INSERT INTO gauge_readings (
                    gauge_station_id, reading_timestamp, gauge_height_ft,
                    discharge_cfs, fetched_at
                ) VALUES (%s, %s, %s, %s, COALESCE(%s, NOW()))
                ON CONFLICT (gauge_station_id, reading_timestamp) DO UPDATE SET
                    gauge_height_ft = EXCLUDED.gauge_height_ft,
                    discharge_cfs = EXCLUDED.discharge_cfs,
                    fetched_at = EXCLUDED.fetched_at
            """, (
                reading.gauge_station_id, reading.timestamp, reading.gauge_height_ft,
                reading.discharge_cfs, reading.fetched_at,
            ))

    def latest_reading(self, station_id: str) -> Optional[GaugeReading]:
        with self._cursor() as cur:
            cur.execute(f"""
                SELECT {READING_COLUMNS} FROM gauge_readings
                WHERE gauge_station_id = %s
                ORDER BY reading_timestamp DESC LIMIT 1
            """, (station_id,))
            row = cur.fetchone()
        return _reading(row) if row else None

    def readings_since(self, station_id: str, since: datetime) -> List[GaugeReading]:
        with self._cursor() as cur:
            cur.execute(f"""
                SELECT {READING_COLUMNS} FROM gauge_readings
                WHERE gauge_station_id = %s AND reading_timestamp >= %s
                ORDER BY reading_timestamp
            """, (station_id, since))
            rows = cur.fetchall()
        return [_reading(row) for row in rows]
