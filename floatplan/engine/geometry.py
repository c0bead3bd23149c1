"""
Linear referencing for river polylines.

Rivers are stored as ordered lon/lat vertices. This module converts them into
a 1-D "river mile" coordinate measured from the headwaters:

- project_onto_river: snap a point to the line and return its river mile
- point_at_mile / extract_segment: go back from miles to coordinates
- suggest_direction: advisory check of which end is the headwaters

Distances are geodesic (haversine, spherical earth). The foot of the
perpendicular on each segment is found in a local equirectangular frame,
which is accurate at river-segment scale.
"""

import logging
from dataclasses import dataclass
from typing import List, Sequence

import numpy as np

from floatplan.core.errors import DegenerateGeometry
from floatplan.core.models import LngLat, River

logger = logging.getLogger(__name__)

EARTH_RADIUS_MILES = 3958.8

# Equidistant candidates closer than this are treated as ties
TIE_EPSILON_MILES = 1e-9

# Minimum end-to-end offset (degrees) for a direction suggestion
DIRECTION_SIGNIFICANCE_DEG = 0.1


@dataclass(frozen=True)
class Projection:
    snapped_point: LngLat
    mile_from_headwaters: float
    distance_off_line_miles: float
    segment_index: int
    river_length_miles: float

    @property
    def mile_from_mouth(self) -> float:
        return max(0.0, self.river_length_miles - self.mile_from_headwaters)


@dataclass(frozen=True)
class FloatSegment:
    """Sub-polyline between two river miles, ordered downstream."""
    river_id: str
    start_mile: float
    end_mile: float
    distance_miles: float
    vertices: List[LngLat]


@dataclass(frozen=True)
class DirectionSuggestion:
    recommendation: str  # "headwaters_first" | "mouth_first" | "uncertain"
    reason: str


def _haversine(lng1, lat1, lng2, lat2):
    """Vectorised great-circle distance in miles."""
    lng1, lat1, lng2, lat2 = map(np.radians, (lng1, lat1, lng2, lat2))
    a = (
        np.sin((lat2 - lat1) / 2.0) ** 2
        + np.cos(lat1) * np.cos(lat2) * np.sin((lng2 - lng1) / 2.0) ** 2
    )
    return 2.0 * EARTH_RADIUS_MILES * np.arcsin(np.sqrt(np.clip(a, 0.0, 1.0)))


def haversine_miles(a: LngLat, b: LngLat) -> float:
    """Great-circle distance between two coordinates in miles."""
    return float(_haversine(a[0], a[1], b[0], b[1]))


def _river_arrays(river: River):
    """
    Return (coords, segment_lengths, cumulative) for a river.

    Raises DegenerateGeometry rather than letting callers fall back to mile 0.
    Repeated consecutive vertices are rejected. Self-intersection is not
    checked: loaded geometry is trusted to be a simple path.
    """
    if len(river.vertices) < 2:
        raise DegenerateGeometry(
            river.id, f"needs at least 2 vertices, has {len(river.vertices)}"
        )

    coords = np.asarray(river.vertices, dtype=float)
    if not np.all(np.isfinite(coords)):
        raise DegenerateGeometry(river.id, "geometry contains non-finite coordinates")

    seg_len = _haversine(coords[:-1, 0], coords[:-1, 1], coords[1:, 0], coords[1:, 1])
    cumulative = np.concatenate(([0.0], np.cumsum(seg_len)))

    if cumulative[-1] <= 0.0:
        raise DegenerateGeometry(river.id, "geometry has zero length")

    repeated = np.flatnonzero(np.all(coords[1:] == coords[:-1], axis=1))
    if repeated.size:
        raise DegenerateGeometry(
            river.id, f"vertex {int(repeated[0]) + 1} repeats the previous vertex"
        )

    return coords, seg_len, cumulative


def river_length_miles(river: River) -> float:
    """Total haversine length of a river polyline."""
    _, _, cumulative = _river_arrays(river)
    return float(cumulative[-1])


def _along_to_mile(along, total: float, headwaters_first: bool):
    return along if headwaters_first else total - along


def project_onto_river(river: River, point: LngLat) -> Projection:
    """
    Snap a point onto the nearest position of a river polyline.

    Every segment gets a clamped perpendicular projection; the closest one
    wins. Equidistant candidates resolve to the most upstream position.
    """
    coords, seg_len, cumulative = _river_arrays(river)
    total = float(cumulative[-1])

    a = coords[:-1]
    b = coords[1:]
    px, py = float(point[0]), float(point[1])

    # Local equirectangular frame per segment
    kx = np.cos(np.radians((a[:, 1] + b[:, 1]) / 2.0))
    dx = (b[:, 0] - a[:, 0]) * kx
    dy = b[:, 1] - a[:, 1]
    denom = dx * dx + dy * dy
    with np.errstate(divide="ignore", invalid="ignore"):
        t = np.where(
            denom > 0.0,
            ((px - a[:, 0]) * kx * dx + (py - a[:, 1]) * dy) / denom,
            0.0,
        )
    t = np.clip(t, 0.0, 1.0)

    foot_lng = a[:, 0] + t * (b[:, 0] - a[:, 0])
    foot_lat = a[:, 1] + t * (b[:, 1] - a[:, 1])
    dist = _haversine(px, py, foot_lng, foot_lat)

    along = cumulative[:-1] + t * seg_len
    miles = np.clip(_along_to_mile(along, total, river.headwaters_first), 0.0, total)

    candidates = np.flatnonzero(dist <= dist.min() + TIE_EPSILON_MILES)
    best = int(candidates[np.argmin(miles[candidates])])

    return Projection(
        snapped_point=LngLat(float(foot_lng[best]), float(foot_lat[best])),
        mile_from_headwaters=float(miles[best]),
        distance_off_line_miles=float(dist[best]),
        segment_index=best,
        river_length_miles=total,
    )


def _point_at_along(coords, cumulative, along: float) -> LngLat:
    idx = int(np.searchsorted(cumulative, along, side="right")) - 1
    idx = min(max(idx, 0), len(coords) - 2)
    seg = cumulative[idx + 1] - cumulative[idx]
    t = 0.0 if seg <= 0.0 else (along - cumulative[idx]) / seg
    t = min(max(t, 0.0), 1.0)
    start, end = coords[idx], coords[idx + 1]
    return LngLat(
        float(start[0] + t * (end[0] - start[0])),
        float(start[1] + t * (end[1] - start[1])),
    )


def _mile_to_along(river: River, mile: float, total: float) -> float:
    if mile < -TIE_EPSILON_MILES or mile > total + TIE_EPSILON_MILES:
        raise ValueError(
            f"Mile {mile:.3f} is outside river {river.id} (0 - {total:.3f})"
        )
    mile = min(max(mile, 0.0), total)
    return float(_along_to_mile(mile, total, river.headwaters_first))


def point_at_mile(river: River, mile: float) -> LngLat:
    """Coordinate at a given mile from the headwaters."""
    coords, _, cumulative = _river_arrays(river)
    total = float(cumulative[-1])
    return _point_at_along(coords, cumulative, _mile_to_along(river, mile, total))


def extract_segment(river: River, start_mile: float, end_mile: float) -> FloatSegment:
    """
    Cut the polyline between two river miles.

    The returned vertices always run downstream (increasing mile), whatever
    order the miles are given in.
    """
    coords, _, cumulative = _river_arrays(river)
    total = float(cumulative[-1])

    lo_mile, hi_mile = sorted((start_mile, end_mile))
    along_a = _mile_to_along(river, lo_mile, total)
    along_b = _mile_to_along(river, hi_mile, total)
    lo, hi = sorted((along_a, along_b))

    interior = [
        LngLat(float(c[0]), float(c[1]))
        for c, d in zip(coords, cumulative)
        if lo < d < hi
    ]
    vertices = (
        [_point_at_along(coords, cumulative, lo)]
        + interior
        + [_point_at_along(coords, cumulative, hi)]
    )
    if not river.headwaters_first:
        vertices.reverse()

    return FloatSegment(
        river_id=river.id,
        start_mile=lo_mile,
        end_mile=hi_mile,
        distance_miles=hi - lo,
        vertices=vertices,
    )


def suggest_direction(vertices: Sequence[LngLat]) -> DirectionSuggestion:
    """
    Guess which end of a polyline is the headwaters.

    Ozark rivers drain east toward the Mississippi or north toward the
    Missouri, so a west start (or, failing a clear east-west offset, a north
    start) suggests the geometry begins at the headwaters. Advisory only.
    """
    if len(vertices) < 2:
        return DirectionSuggestion("uncertain", "No valid geometry")

    start, end = vertices[0], vertices[-1]
    lng_diff = end[0] - start[0]
    lat_diff = end[1] - start[1]

    if abs(lng_diff) > DIRECTION_SIGNIFICANCE_DEG:
        if lng_diff > 0:
            return DirectionSuggestion(
                "headwaters_first",
                f"Start is {abs(lng_diff):.2f}° WEST of end (typical flow pattern)",
            )
        return DirectionSuggestion(
            "mouth_first",
            f"Start is {abs(lng_diff):.2f}° EAST of end (reversed from typical)",
        )

    if abs(lat_diff) > DIRECTION_SIGNIFICANCE_DEG:
        if lat_diff < 0:
            return DirectionSuggestion(
                "headwaters_first", f"Start is {abs(lat_diff):.2f}° NORTH of end"
            )
        return DirectionSuggestion(
            "mouth_first", f"Start is {abs(lat_diff):.2f}° SOUTH of end"
        )

    return DirectionSuggestion(
        "uncertain", "Minimal directional difference - manual verification needed"
    )
