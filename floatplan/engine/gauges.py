"""
Gauge selection for rivers and float segments.

River level lookups use the primary association. Segment aware lookups
prefer the association configured closest to the section being floated and
fall back to the primary gauge when no association carries a section
distance.
"""

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Tuple

from floatplan.core.errors import NoPrimaryGauge, NotFound
from floatplan.core.models import GaugeStation, LngLat, RiverGauge
from floatplan.data.store import Store
from floatplan.engine.geometry import project_onto_river

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GaugeSelection:
    association: RiverGauge
    station: GaugeStation
    mode: str  # "river" | "segment"
    accuracy_warning: bool = False
    accuracy_warning_reason: Optional[str] = None
    put_in_mile: Optional[float] = None
    distance_to_put_in_miles: Optional[float] = None


def accuracy_warning_for(
    association: RiverGauge, station: GaugeStation
) -> Tuple[bool, Optional[str]]:
    """Flag associations whose configured section distance exceeds their own threshold."""
    distance = association.distance_from_section_miles
    limit = association.accuracy_warning_threshold_miles
    if distance is None or distance <= limit:
        return False, None
    return True, (
        f"Gauge {station.name} is {distance:.1f} miles from this section "
        f"(warning threshold {limit:.1f} mi); conditions may differ"
    )


def _active_associations(store: Store, river_id: str) -> List[Tuple[RiverGauge, GaugeStation]]:
    pairs = []
    for association in store.list_river_gauges(river_id):
        try:
            station = store.get_gauge_station(association.gauge_station_id)
        except NotFound:
            logger.warning(
                f"River gauge {association.id} points at missing station "
                f"{association.gauge_station_id}"
            )
            continue
        if station.active:
            pairs.append((association, station))
    return pairs


def _selection(association, station, mode, put_in_mile=None, distance_to_put_in=None):
    warning, reason = accuracy_warning_for(association, station)
    return GaugeSelection(
        association=association,
        station=station,
        mode=mode,
        accuracy_warning=warning,
        accuracy_warning_reason=reason,
        put_in_mile=put_in_mile,
        distance_to_put_in_miles=distance_to_put_in,
    )


def rank_gauges(
    store: Store, river_id: str, put_in: Optional[LngLat] = None
) -> List[GaugeSelection]:
    """
    All active gauges for a river, most relevant first.

    Without a put-in the primary gauge leads. With a put-in, associations
    with a configured section distance lead (smallest first), then the
    primary gauge, then everything else.
    """
    river = store.get_river(river_id)
    pairs = _active_associations(store, river_id)

    if put_in is None:
        def river_key(pair):
            association, station = pair
            dfs = association.distance_from_section_miles
            return (
                not association.is_primary,
                math.inf if dfs is None else dfs,
                association.id,
            )

        return [_selection(a, s, "river") for a, s in sorted(pairs, key=river_key)]

    put_in_mile = project_onto_river(river, put_in).mile_from_headwaters

    ranked = []
    for association, station in pairs:
        distance_to_put_in = None
        if station.location is not None:
            station_mile = project_onto_river(river, station.location).mile_from_headwaters
            distance_to_put_in = abs(station_mile - put_in_mile)

        dfs = association.distance_from_section_miles
        if dfs is not None:
            tier = 0
        elif association.is_primary:
            tier = 1
        else:
            tier = 2
        key = (
            tier,
            0.0 if dfs is None else dfs,
            not association.is_primary,
            math.inf if distance_to_put_in is None else distance_to_put_in,
            association.id,
        )
        ranked.append((key, _selection(
            association, station, "segment", put_in_mile, distance_to_put_in
        )))

    return [selection for _, selection in sorted(ranked, key=lambda item: item[0])]


def select_gauge(
    store: Store, river_id: str, put_in: Optional[LngLat] = None
) -> GaugeSelection:
    """
    Pick the gauge to report conditions from.

    Raises NoPrimaryGauge when the river has no usable primary gauge and,
    for segment lookups, no association with a section distance either.
    """
    ranked = rank_gauges(store, river_id, put_in)

    if put_in is None:
        if ranked and ranked[0].association.is_primary:
            return ranked[0]
        raise NoPrimaryGauge(river_id)

    if ranked and (
        ranked[0].association.distance_from_section_miles is not None
        or ranked[0].association.is_primary
    ):
        return ranked[0]
    raise NoPrimaryGauge(river_id)
