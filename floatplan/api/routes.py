"""
API Routes for the float planner.

Endpoints:
- GET  /rivers/{river_id}/conditions - Current conditions (optionally for a put-in)
- GET  /rivers/{river_id}/snap - Snap a coordinate to the river and get its mile
- GET  /rivers/{river_id}/segment - River line between two miles
- GET  /rivers/{river_id}/float - River line between a put-in and a take-out
- POST /admin/rivers/{river_id}/correct-miles - Reconcile access point miles
- GET  /admin/polling - Stations on each polling cadence
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from floatplan.api.deps import get_store
from floatplan.api.schemas import (
    Condition,
    ConditionResponse,
    Coordinate,
    CorrectMilesRequest,
    FloatPlanResponse,
    MileCorrectionItem,
    MileCorrectionResponse,
    PollingSetsResponse,
    PollingStation,
    SegmentResponse,
    SnapResponse,
)
from floatplan.core.config import settings
from floatplan.core.errors import DegenerateGeometry, FloatPlanError, NoPrimaryGauge, NotFound
from floatplan.core.models import LngLat
from floatplan.data.store import Store
from floatplan.engine.conditions import get_river_condition
from floatplan.engine.geometry import extract_segment, project_onto_river
from floatplan.engine.mile_correction import correct_access_point_miles, revalidate_river
from floatplan.engine.polling import polling_sets
from floatplan.engine.segments import float_segment

logger = logging.getLogger(__name__)

router = APIRouter(tags=["rivers"])


def _load_river(store: Store, river_id: str):
    try:
        return store.get_river(river_id)
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/rivers/{river_id}/conditions", response_model=ConditionResponse)
def get_conditions(
    river_id: str,
    put_in_lat: Optional[float] = Query(None, ge=-90, le=90),
    put_in_lng: Optional[float] = Query(None, ge=-180, le=180),
    store: Store = Depends(get_store),
):
    """
    Current river conditions.

    With a put-in coordinate the gauge closest to that section is used and
    any accuracy warning is reported alongside the condition.
    """
    if (put_in_lat is None) != (put_in_lng is None):
        raise HTTPException(status_code=422, detail="put_in_lat and put_in_lng go together")
    put_in = None if put_in_lat is None else LngLat(put_in_lng, put_in_lat)

    _load_river(store, river_id)
    try:
        result = get_river_condition(
            store, river_id, put_in=put_in, freshness=settings.freshness_config()
        )
    except NoPrimaryGauge as e:
        logger.warning(f"[Conditions API] {e}")
        return ConditionResponse(available=False, diagnostic=str(e))
    except DegenerateGeometry as e:
        raise HTTPException(status_code=422, detail=str(e))

    condition = result.condition
    return ConditionResponse(
        available=True,
        condition=Condition(
            code=condition.code,
            label=condition.label,
            sub_band=condition.sub_band,
            gauge_height_ft=result.gauge_height_ft,
            discharge_cfs=result.discharge_cfs,
            reading_timestamp=condition.reading_timestamp,
            reading_age_hours=condition.reading_age_hours,
            stale=condition.stale,
            reason=condition.reason,
            accuracy_warning=result.accuracy_warning,
            accuracy_warning_reason=result.accuracy_warning_reason,
            gauge_name=result.gauge_name,
            gauge_usgs_id=result.usgs_site_id,
            put_in_mile=result.put_in_mile,
            distance_to_put_in_mi=result.distance_to_put_in_miles,
        ),
    )


@router.get("/rivers/{river_id}/snap", response_model=SnapResponse)
def snap_to_river(
    river_id: str,
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    store: Store = Depends(get_store),
):
    """Snap a coordinate onto the river line and return its river mile."""
    river = _load_river(store, river_id)
    try:
        projection = project_onto_river(river, LngLat(lng, lat))
    except DegenerateGeometry as e:
        raise HTTPException(status_code=422, detail=str(e))

    return SnapResponse(
        river_id=river_id,
        snap_point=Coordinate(
            lat=projection.snapped_point.lat, lng=projection.snapped_point.lng
        ),
        mile_from_headwaters=round(projection.mile_from_headwaters, 3),
        mile_from_mouth=round(projection.mile_from_mouth, 3),
        distance_off_line_mi=round(projection.distance_off_line_miles, 4),
        river_length_mi=round(projection.river_length_miles, 3),
    )


@router.get("/rivers/{river_id}/segment", response_model=SegmentResponse)
def get_segment(
    river_id: str,
    start_mile: float = Query(..., ge=0),
    end_mile: float = Query(..., ge=0),
    store: Store = Depends(get_store),
):
    """River line between two miles, ordered downstream."""
    river = _load_river(store, river_id)
    try:
        segment = extract_segment(river, start_mile, end_mile)
    except (DegenerateGeometry, ValueError) as e:
        raise HTTPException(status_code=422, detail=str(e))

    return SegmentResponse(
        river_id=river_id,
        start_mile=segment.start_mile,
        end_mile=segment.end_mile,
        distance_mi=round(segment.distance_miles, 3),
        route={
            "type": "LineString",
            "coordinates": [[v.lng, v.lat] for v in segment.vertices],
        },
    )


@router.get("/rivers/{river_id}/float", response_model=FloatPlanResponse)
def get_float_plan(
    river_id: str,
    put_in_id: str = Query(...),
    take_out_id: str = Query(...),
    store: Store = Depends(get_store),
):
    """River line and float distance between two access points on a river."""
    _load_river(store, river_id)
    try:
        for access_point_id in (put_in_id, take_out_id):
            if store.get_access_point(access_point_id).river_id != river_id:
                raise FloatPlanError(
                    f"Access point {access_point_id} is not on river {river_id}"
                )
        segment = float_segment(store, put_in_id, take_out_id)
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (FloatPlanError, ValueError) as e:
        raise HTTPException(status_code=422, detail=str(e))

    return FloatPlanResponse(
        river_id=river_id,
        put_in_id=put_in_id,
        take_out_id=take_out_id,
        start_mile=round(segment.start_mile, 3),
        end_mile=round(segment.end_mile, 3),
        distance_mi=round(segment.distance_miles, 3),
        route={
            "type": "LineString",
            "coordinates": [[v.lng, v.lat] for v in segment.vertices],
        },
    )


@router.post("/admin/rivers/{river_id}/correct-miles", response_model=MileCorrectionResponse)
def correct_miles(
    river_id: str,
    request: CorrectMilesRequest,
    store: Store = Depends(get_store),
):
    """Reconcile a river's access point miles against its mile markers."""
    _load_river(store, river_id)
    tolerance = request.tolerance_miles
    if tolerance is None:
        tolerance = settings.mile_correction_tolerance

    try:
        if request.resnap:
            results = revalidate_river(store, river_id, tolerance)
        else:
            results = correct_access_point_miles(store, tolerance, river_id=river_id)
    except DegenerateGeometry as e:
        raise HTTPException(status_code=422, detail=str(e))

    corrected = sum(1 for r in results if r.corrected)
    return MileCorrectionResponse(
        river_id=river_id,
        tolerance_miles=tolerance,
        corrected=corrected,
        unchanged=len(results) - corrected,
        results=[
            MileCorrectionItem(
                access_point_id=r.access_point_id,
                access_point_name=r.access_point_name,
                old_mile=r.old_mile,
                new_mile=r.new_mile,
                corrected=r.corrected,
                reference_mile=r.reference_mile,
                reason=r.reason,
            )
            for r in results
        ],
    )


@router.get("/admin/polling", response_model=PollingSetsResponse)
def get_polling_sets(store: Store = Depends(get_store)):
    """Stations the scheduler should poll on each cadence."""
    sets = polling_sets(store)
    return PollingSetsResponse(cadences={
        cadence: [
            PollingStation(id=s.id, usgs_site_id=s.usgs_site_id, name=s.name)
            for s in stations
        ]
        for cadence, stations in sets.items()
    })
