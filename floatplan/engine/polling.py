"""
Adaptive polling for gauge stations.

Each station is either on the normal cadence or, while its water level is
moving quickly, additionally on the high-frequency cadence. The decision is
re-made after every ingested reading from the oldest and newest heights
inside the trailing lookback window. There is no debounce: a noisy station
can change state on every poll cycle.

Wall-clock timing belongs to the external scheduler (cron); this module only
decides which stations belong to each cadence.
"""

import logging
import math
from dataclasses import dataclass
from datetime import timedelta
from typing import Dict, List, Optional, Sequence

from floatplan.core.config import PollingConfig
from floatplan.core.models import GaugeReading, GaugeStation
from floatplan.data.store import Store

logger = logging.getLogger(__name__)

CADENCE_NORMAL = "normal"
CADENCE_HIGH = "high"
CADENCES = (CADENCE_NORMAL, CADENCE_HIGH)


@dataclass(frozen=True)
class RateOfChange:
    rate_ft_per_hour: Optional[float]
    current_height: Optional[float]
    previous_height: Optional[float]
    hours_elapsed: Optional[float]
    is_rapid_change: bool


@dataclass(frozen=True)
class FrequencyDecision:
    station_id: str
    previous_flag: bool
    high_frequency: bool
    rate: RateOfChange

    @property
    def changed(self) -> bool:
        return self.previous_flag != self.high_frequency


NO_RATE = RateOfChange(None, None, None, None, False)


def compute_rate_of_change(
    readings: Sequence[GaugeReading], config: PollingConfig
) -> RateOfChange:
    """
    Rate between the oldest and newest gauge heights in the lookback window.

    The window trails the newest reading, not the wall clock.
    """
    usable = sorted(
        (
            r for r in readings
            if r.gauge_height_ft is not None and math.isfinite(r.gauge_height_ft)
        ),
        key=lambda r: r.timestamp,
    )
    if len(usable) < 2:
        return NO_RATE

    newest = usable[-1]
    window_start = newest.timestamp - timedelta(hours=config.lookback_hours)
    oldest = next(r for r in usable if r.timestamp >= window_start)

    hours = (newest.timestamp - oldest.timestamp).total_seconds() / 3600.0
    if hours <= 0:
        return RateOfChange(None, newest.gauge_height_ft, None, None, False)

    rate = (newest.gauge_height_ft - oldest.gauge_height_ft) / hours
    return RateOfChange(
        rate_ft_per_hour=rate,
        current_height=newest.gauge_height_ft,
        previous_height=oldest.gauge_height_ft,
        hours_elapsed=hours,
        is_rapid_change=abs(rate) > config.rate_threshold_ft_per_hour,
    )


def station_rate_of_change(
    store: Store, station_id: str, config: PollingConfig
) -> RateOfChange:
    latest = store.latest_reading(station_id)
    if latest is None:
        return NO_RATE
    since = latest.timestamp - timedelta(hours=config.lookback_hours)
    return compute_rate_of_change(store.readings_since(station_id, since), config)


def evaluate_station(
    store: Store, station_id: str, config: PollingConfig
) -> FrequencyDecision:
    """
    Re-derive a station's high-frequency flag from its stored readings.

    Must run after the station's newest reading has been written.
    """
    station = store.get_gauge_station(station_id)
    rate = station_rate_of_change(store, station_id, config)
    high = rate.is_rapid_change

    if high != station.high_frequency_flag:
        store.set_high_frequency_flag(station_id, high)
        rate_text = "n/a" if rate.rate_ft_per_hour is None else f"{rate.rate_ft_per_hour:+.2f}"
        logger.info(
            f"Station {station.usgs_site_id} → {'high' if high else 'normal'} "
            f"frequency (rate {rate_text} ft/hr)"
        )

    return FrequencyDecision(
        station_id=station_id,
        previous_flag=station.high_frequency_flag,
        high_frequency=high,
        rate=rate,
    )


def stations_for_cadence(
    stations: Sequence[GaugeStation], cadence: str
) -> List[GaugeStation]:
    """Normal cadence polls every active station; high cadence only flagged ones."""
    if cadence not in CADENCES:
        raise ValueError(f"Unknown cadence {cadence!r}; expected one of {CADENCES}")
    active = [s for s in stations if s.active]
    if cadence == CADENCE_HIGH:
        return [s for s in active if s.high_frequency_flag]
    return active


def polling_sets(store: Store) -> Dict[str, List[GaugeStation]]:
    stations = store.list_gauge_stations(active_only=True)
    return {cadence: stations_for_cadence(stations, cadence) for cadence in CADENCES}
