#!/usr/bin/env python3
"""
USGS gauge station metadata sync.

Looks up site names and coordinates from the USGS Site Service and upserts
them as gauge stations. Never touches the high-frequency flag.

Usage:
    python -m floatplan.data.usgs_sites 07067000 07068000
"""

import logging
import sys
from typing import Dict, List, Sequence

import requests

from floatplan.core.config import LOG_FORMAT, settings
from floatplan.core.errors import UpstreamFetchFailure
from floatplan.core.models import GaugeStation, LngLat
from floatplan.data.store import Store

logger = logging.getLogger(__name__)

USGS_SITE_API = "https://waterservices.usgs.gov/nwis/site/"


def parse_site_rdb(text: str) -> List[Dict]:
    """Parse RDB format (tab-separated with # comments) into site dicts."""
    sites = []
    headers = None

    for line in text.split("\n"):
        if line.startswith("#") or not line.strip():
            continue
        if headers is None:
            headers = line.split("\t")
            continue
        if line.startswith("5s"):  # Skip format line
            continue

        values = line.split("\t")
        if len(values) < len(headers):
            continue
        row = dict(zip(headers, values))

        try:
            site = {
                "site_no": row.get("site_no", "").strip(),
                "site_name": row.get("station_nm", "").strip(),
                "latitude": float(row.get("dec_lat_va", 0) or 0),
                "longitude": float(row.get("dec_long_va", 0) or 0),
            }
        except ValueError:
            logger.warning(f"Skipping malformed site row: {line!r}")
            continue

        if site["site_no"] and site["latitude"] and site["longitude"]:
            sites.append(site)

    return sites


def fetch_gauge_sites(
    site_nos: Sequence[str], site_url: str = USGS_SITE_API, timeout: float = 60
) -> List[Dict]:
    """Fetch site metadata for specific USGS site numbers."""
    params = {
        "format": "rdb",
        "sites": ",".join(site_nos),
        "siteOutput": "expanded",
    }
    try:
        response = requests.get(site_url, params=params, timeout=timeout)
        response.raise_for_status()
    except requests.exceptions.RequestException as e:
        status = getattr(e.response, "status_code", None)
        raise UpstreamFetchFailure(f"USGS site service error: {e}", status=status) from e

    return parse_site_rdb(response.text)


def sync_gauge_stations(store: Store, site_nos: Sequence[str], **fetch_kwargs) -> List[GaugeStation]:
    """Upsert a gauge station for every site the USGS knows about."""
    sites = fetch_gauge_sites(site_nos, **fetch_kwargs)
    stations = []
    for site in sites:
        station = GaugeStation(
            id=site["site_no"],
            usgs_site_id=site["site_no"],
            name=site["site_name"],
            location=LngLat(site["longitude"], site["latitude"]),
        )
        store.upsert_gauge_station(station)
        stations.append(station)

    missing = sorted(set(site_nos) - {s.usgs_site_id for s in stations})
    if missing:
        logger.warning(f"USGS returned no metadata for: {', '.join(missing)}")
    return stations


def main(argv=None):
    import argparse

    from floatplan.data.postgres import PostgresStore

    parser = argparse.ArgumentParser(description="Sync USGS gauge station metadata")
    parser.add_argument("sites", nargs="+", help="USGS site numbers")
    args = parser.parse_args(argv)

    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)

    store = PostgresStore(settings.database_url)
    try:
        stations = sync_gauge_stations(
            store, args.sites, site_url=settings.usgs_site_url
        )
    except UpstreamFetchFailure as e:
        logger.error(str(e))
        return 1

    print(f"✅ Upserted {len(stations)} gauge stations")
    return 0


if __name__ == "__main__":
    sys.exit(main())
