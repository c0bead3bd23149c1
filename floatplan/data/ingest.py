#!/usr/bin/env python3
"""
Gauge ingestion pass.

Fetches the latest USGS readings for every station on a cadence, stores
them, and re-evaluates each station's polling frequency. Called by an
external scheduler at two cadences:

Usage:
    python -m floatplan.data.ingest --cadence normal   # all active stations
    python -m floatplan.data.ingest --cadence high     # rapidly changing stations only
"""

import logging
import sys
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Protocol, Sequence

from floatplan.core.config import LOG_FORMAT, PollingConfig, settings
from floatplan.core.errors import UpstreamFetchFailure
from floatplan.core.models import GaugeReading, GaugeStation
from floatplan.data.store import Store
from floatplan.data.usgs import UsgsClient, UsgsReading
from floatplan.engine.polling import (
    CADENCE_NORMAL,
    CADENCES,
    FrequencyDecision,
    evaluate_station,
    stations_for_cadence,
)

logger = logging.getLogger(__name__)


class ReadingFetcher(Protocol):
    def fetch_latest(self, site_ids: Sequence[str]) -> List[UsgsReading]: ...


@dataclass
class IngestionReport:
    cadence: str
    stations: int = 0
    fetched: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0
    decisions: List[FrequencyDecision] = field(default_factory=list)

    @property
    def high_frequency_station_ids(self) -> List[str]:
        return sorted(d.station_id for d in self.decisions if d.high_frequency)


def _ingest_station(
    store: Store,
    station: GaugeStation,
    reading: UsgsReading,
    polling: PollingConfig,
    fetched_at: datetime,
) -> Optional[FrequencyDecision]:
    """Write one station's reading, then re-read it to decide its cadence."""
    if reading.reading_time is None:
        logger.warning(f"No timestamp for gauge {reading.site_no}")
        return None

    store.upsert_reading(GaugeReading(
        gauge_station_id=station.id,
        timestamp=reading.reading_time,
        gauge_height_ft=reading.gage_height_ft,
        discharge_cfs=reading.streamflow_cfs,
        fetched_at=fetched_at,
    ))
    return evaluate_station(store, station.id, polling)


def run_ingestion_pass(
    store: Store,
    fetcher: ReadingFetcher,
    cadence: str = CADENCE_NORMAL,
    polling: PollingConfig = PollingConfig(),
    max_workers: int = 8,
) -> IngestionReport:
    """
    Ingest the latest readings for the stations on `cadence`.

    Writes fan out over a bounded thread pool; each station's reading is
    written before its frequency flag is evaluated. UpstreamFetchFailure is
    not caught here: the scheduler retries on its next cadence.
    """
    stations = stations_for_cadence(store.list_gauge_stations(active_only=True), cadence)
    report = IngestionReport(cadence=cadence, stations=len(stations))
    if not stations:
        logger.info(f"No active gauge stations on the {cadence} cadence")
        return report

    by_site = {s.usgs_site_id: s for s in stations}
    readings = fetcher.fetch_latest(list(by_site))
    report.fetched = len(readings)
    fetched_at = datetime.now(timezone.utc)

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = {}
        for reading in readings:
            station = by_site.get(reading.site_no)
            if station is None:
                continue
            future = executor.submit(
                _ingest_station, store, station, reading, polling, fetched_at
            )
            futures[future] = reading.site_no

        for future in as_completed(futures):
            site_no = futures[future]
            try:
                decision = future.result()
            except Exception as e:
                logger.error(f"Error updating gauge {site_no}: {e}")
                report.errors += 1
                continue
            if decision is None:
                report.skipped += 1
            else:
                report.updated += 1
                report.decisions.append(decision)

    return report


def main(argv=None):
    import argparse

    from floatplan.data.postgres import PostgresStore

    parser = argparse.ArgumentParser(description="Ingest USGS gauge readings")
    parser.add_argument("--cadence", choices=CADENCES, default=CADENCE_NORMAL)
    args = parser.parse_args(argv)

    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)

    store = PostgresStore(settings.database_url)
    client = UsgsClient(settings.usgs_iv_url, settings.ingestion_config())

    try:
        report = run_ingestion_pass(
            store,
            client,
            cadence=args.cadence,
            polling=settings.polling_config(),
            max_workers=settings.ingest_write_workers,
        )
    except UpstreamFetchFailure as e:
        logger.error(f"Gauge update failed, will retry next cycle: {e}")
        return 1

    print("=" * 60)
    print(f"✅ Gauge update complete ({report.cadence} cadence)")
    print(f"   Stations: {report.stations} | Fetched: {report.fetched}")
    print(f"   Updated: {report.updated} | Skipped: {report.skipped} | Errors: {report.errors}")
    print(f"   High frequency: {len(report.high_frequency_station_ids)}")
    print("=" * 60)
    return 0 if report.errors == 0 else 2


if __name__ == "__main__":
    sys.exit(main())
