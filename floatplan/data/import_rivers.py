#!/usr/bin/env python3
"""
Load river geometry, mile markers and access points from a GeoJSON file.

Every feature carries a `kind` property:

- "river" (LineString): id, name, slug, headwaters_first (required, never guessed)
- "mile_marker" (geometry optional): river_id, mile, name, description
- "access_point" (Point): id, river_id, name, approved

Rivers are upserted and then revalidated, so access points already on them
follow the new geometry and references. Imported access points are snapped
from their original coordinate and corrected against the mile markers.

Usage:
    python -m floatplan.data.import_rivers ozark_rivers.geojson
    python -m floatplan.data.import_rivers ozark_rivers.geojson --tolerance 0.3
"""

import json
import logging
import sys
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, List, Set, Tuple

from floatplan.core.config import LOG_FORMAT, settings
from floatplan.core.errors import FloatPlanError
from floatplan.core.models import AccessPoint, LngLat, MileMarker, River
from floatplan.data.store import Store
from floatplan.engine.geometry import suggest_direction
from floatplan.engine.mile_correction import (
    correct_access_point_miles,
    revalidate_river,
    snap_access_point,
)

logger = logging.getLogger(__name__)


@dataclass
class ImportReport:
    rivers: int = 0
    mile_markers: int = 0
    access_points: int = 0
    corrected_ids: Set[str] = field(default_factory=set)
    direction_warnings: List[str] = field(default_factory=list)


def _require(props: Dict[str, Any], key: str, kind: str):
    if props.get(key) is None:
        raise ValueError(f"{kind} feature {props.get('id', '?')} is missing '{key}'")
    return props[key]


def parse_features(
    data: Dict[str, Any],
) -> Tuple[List[River], Dict[str, List[MileMarker]], List[AccessPoint]]:
    """Split a FeatureCollection into rivers, mile markers by river, and access points."""
    rivers: List[River] = []
    markers: Dict[str, List[MileMarker]] = defaultdict(list)
    access_points: List[AccessPoint] = []

    for feature in data.get("features", []):
        props = feature.get("properties") or {}
        geometry = feature.get("geometry") or {}
        kind = props.get("kind")

        if kind == "river":
            if geometry.get("type") != "LineString":
                raise ValueError(f"river feature {props.get('id')} must be a LineString")
            rivers.append(River(
                id=_require(props, "id", kind),
                name=_require(props, "name", kind),
                vertices=geometry["coordinates"],
                headwaters_first=bool(_require(props, "headwaters_first", kind)),
                direction_verified=bool(props.get("direction_verified", False)),
                slug=props.get("slug"),
            ))
        elif kind == "mile_marker":
            river_id = _require(props, "river_id", kind)
            mile = float(_require(props, "mile", kind))
            if any(m.mile == mile for m in markers[river_id]):
                raise ValueError(f"Duplicate mile marker {mile} for river {river_id}")
            markers[river_id].append(MileMarker(
                river_id, mile, props.get("name"), props.get("description"),
            ))
        elif kind == "access_point":
            if geometry.get("type") != "Point":
                raise ValueError(f"access_point feature {props.get('id')} must be a Point")
            lng, lat = geometry["coordinates"][:2]
            access_points.append(AccessPoint(
                id=_require(props, "id", kind),
                river_id=_require(props, "river_id", kind),
                name=_require(props, "name", kind),
                orig=LngLat(float(lng), float(lat)),
                approved=bool(props.get("approved", False)),
            ))
        else:
            logger.warning(f"Skipping feature with unknown kind {kind!r}")

    return rivers, dict(markers), access_points


def import_features(
    store: Store, data: Dict[str, Any], tolerance_miles: float
) -> ImportReport:
    """Upsert everything in `data` and bring affected access point miles up to date."""
    rivers, markers, access_points = parse_features(data)
    report = ImportReport()

    # Markers may target a river that is already stored
    by_id = {r.id: r for r in rivers}
    for river_id in markers:
        if river_id not in by_id:
            by_id[river_id] = store.get_river(river_id)

    for river in by_id.values():
        suggestion = suggest_direction(river.vertices)
        declared = "headwaters_first" if river.headwaters_first else "mouth_first"
        if suggestion.recommendation not in ("uncertain", declared):
            message = (
                f"{river.name}: declared {declared}, geometry suggests "
                f"{suggestion.recommendation} ({suggestion.reason})"
            )
            logger.warning(message)
            report.direction_warnings.append(message)

        store.upsert_river(river, markers.get(river.id))
        report.rivers += 1
        report.mile_markers += len(markers.get(river.id, []))

        results = revalidate_river(store, river.id, tolerance_miles)
        report.corrected_ids.update(r.access_point_id for r in results if r.corrected)

    touched = set()
    for point in access_points:
        store.get_river(point.river_id)
        store.upsert_access_point(point)
        snap_access_point(store, point.id)
        touched.add(point.river_id)
        report.access_points += 1

    for river_id in sorted(touched):
        results = correct_access_point_miles(store, tolerance_miles, river_id=river_id)
        report.corrected_ids.update(r.access_point_id for r in results if r.corrected)

    return report


def main(argv=None):
    import argparse

    from floatplan.data.postgres import PostgresStore

    parser = argparse.ArgumentParser(description="Import rivers, mile markers and access points")
    parser.add_argument("path", help="GeoJSON FeatureCollection")
    parser.add_argument(
        "--tolerance", type=float, default=settings.mile_correction_tolerance,
        help="Miles an access point may differ from its nearest reference",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)

    with open(args.path, encoding="utf-8") as f:
        data = json.load(f)

    store = PostgresStore(settings.database_url)
    store.setup_tables()

    try:
        report = import_features(store, data, args.tolerance)
    except (FloatPlanError, ValueError) as e:
        logger.error(f"Import failed: {e}")
        return 1

    print("=" * 60)
    print("✅ Import complete")
    print(f"   Rivers: {report.rivers} | Mile markers: {report.mile_markers}")
    print(f"   Access points: {report.access_points} | Corrected: {len(report.corrected_ids)}")
    for warning in report.direction_warnings:
        print(f"   ⚠️  {warning}")
    print("=" * 60)
    return 0


if __name__ == "__main__":
    sys.exit(main())
