"""
Access point mile maintenance.

Snapped miles come from projecting each access point onto its river line.
They are estimates: the mile marker reference table is ground truth, and
`correct_access_point_miles` pulls outliers back onto it.

Every access point is written as its own unit of work, so an interrupted run
leaves already-corrected points in place and can simply be re-run.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, List, Optional

from floatplan.core.models import LngLat, MileMarker
from floatplan.data.store import Store
from floatplan.engine.geometry import project_onto_river

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SnapResult:
    access_point_id: str
    snapped_point: LngLat
    mile_from_headwaters: float
    distance_off_line_miles: float


@dataclass(frozen=True)
class MileCorrection:
    access_point_id: str
    access_point_name: str
    river_id: str
    old_mile: Optional[float]
    new_mile: Optional[float]
    corrected: bool
    reference_mile: Optional[float] = None
    reference_name: Optional[str] = None
    reason: Optional[str] = None


@dataclass(frozen=True)
class DuplicateMile:
    river_id: str
    mile: float
    access_point_ids: List[str]
    access_point_names: List[str]


def snap_access_point(store: Store, access_point_id: str) -> SnapResult:
    """Re-derive an access point's snapped coordinate and mile from its original coordinate."""
    point = store.get_access_point(access_point_id)
    river = store.get_river(point.river_id)

    projection = project_onto_river(river, point.orig)
    store.update_access_point_snap(
        point.id, projection.snapped_point, projection.mile_from_headwaters
    )

    logger.debug(
        f"Snapped {point.name} to mile {projection.mile_from_headwaters:.2f} "
        f"({projection.distance_off_line_miles:.3f} mi off line)"
    )
    return SnapResult(
        access_point_id=point.id,
        snapped_point=projection.snapped_point,
        mile_from_headwaters=projection.mile_from_headwaters,
        distance_off_line_miles=projection.distance_off_line_miles,
    )


def nearest_marker(markers: List[MileMarker], mile: float) -> Optional[MileMarker]:
    """Nearest reference by absolute mile difference; ties go to the lower mile."""
    if not markers:
        return None
    return min(markers, key=lambda m: (abs(m.mile - mile), m.mile))


def correct_access_point_miles(
    store: Store,
    tolerance_miles: float,
    river_id: Optional[str] = None,
) -> List[MileCorrection]:
    """
    Reconcile access point miles against the mile marker references.

    A point whose mile is further than `tolerance_miles` from its nearest
    reference is moved onto that reference. Points within tolerance are left
    alone. Returns a before/after record for every access point considered.
    """
    if tolerance_miles < 0:
        raise ValueError(f"tolerance_miles must be >= 0, got {tolerance_miles}")

    markers_by_river: Dict[str, List[MileMarker]] = {}
    results: List[MileCorrection] = []

    for point in store.list_access_points(river_id):
        if point.river_id not in markers_by_river:
            markers_by_river[point.river_id] = store.list_mile_markers(point.river_id)
        markers = markers_by_river[point.river_id]

        old_mile = point.mile_from_headwaters
        if old_mile is None:
            results.append(MileCorrection(
                point.id, point.name, point.river_id, None, None, False,
                reason="access point has not been snapped",
            ))
            continue

        marker = nearest_marker(markers, old_mile)
        if marker is None:
            results.append(MileCorrection(
                point.id, point.name, point.river_id, old_mile, old_mile, False,
                reason="river has no mile marker references",
            ))
            continue

        if abs(marker.mile - old_mile) <= tolerance_miles:
            results.append(MileCorrection(
                point.id, point.name, point.river_id, old_mile, old_mile, False,
                reference_mile=marker.mile, reference_name=marker.name,
            ))
            continue

        store.update_access_point_mile(point.id, marker.mile)
        logger.info(f"Corrected {point.name}: {old_mile:.2f} → {marker.mile:.2f}")
        results.append(MileCorrection(
            point.id, point.name, point.river_id, old_mile, marker.mile, True,
            reference_mile=marker.mile, reference_name=marker.name,
        ))

    return results


def revalidate_river(
    store: Store, river_id: str, tolerance_miles: float
) -> List[MileCorrection]:
    """Re-snap every access point on a river, then correct against the references."""
    for point in store.list_access_points(river_id):
        snap_access_point(store, point.id)
    return correct_access_point_miles(store, tolerance_miles, river_id=river_id)


def find_duplicate_miles(
    store: Store,
    river_id: Optional[str] = None,
    approved_only: bool = True,
) -> List[DuplicateMile]:
    """Group access points that share the same river and mile."""
    groups = defaultdict(list)
    for point in store.list_access_points(river_id):
        if approved_only and not point.approved:
            continue
        if point.mile_from_headwaters is None:
            continue
        groups[(point.river_id, round(point.mile_from_headwaters, 3))].append(point)

    return [
        DuplicateMile(
            river_id=rid,
            mile=mile,
            access_point_ids=[p.id for p in points],
            access_point_names=[p.name for p in points],
        )
        for (rid, mile), points in sorted(groups.items())
        if len(points) > 1
    ]
