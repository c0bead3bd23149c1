"""
Float segments between two access points.
"""

from floatplan.core.errors import FloatPlanError
from floatplan.data.store import Store
from floatplan.engine.geometry import FloatSegment, extract_segment


def float_segment(store: Store, start_access_id: str, end_access_id: str) -> FloatSegment:
    """River line and distance between a put-in and a take-out."""
    start = store.get_access_point(start_access_id)
    end = store.get_access_point(end_access_id)

    if start.river_id != end.river_id:
        raise FloatPlanError(
            f"Access points {start.id} and {end.id} are on different rivers"
        )
    if start.mile_from_headwaters is None or end.mile_from_headwaters is None:
        raise FloatPlanError("Both access points must be snapped before segmenting")

    river = store.get_river(start.river_id)
    return extract_segment(river, start.mile_from_headwaters, end.mile_from_headwaters)
