"""
USGS Instantaneous Values client.

Fetches the latest gauge height (00065) and discharge (00060) for a list of
sites. Batches of up to 100 sites are requested concurrently with aiohttp,
bounded by a semaphore so we stay polite to USGS.

Values outside a physically sane range (USGS uses -999999 for missing data)
are logged and dropped, never clamped.
"""

import asyncio
import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

import aiohttp

from floatplan.core.config import IngestionConfig
from floatplan.core.errors import OutOfRangeSensorValue, UpstreamFetchFailure

logger = logging.getLogger(__name__)

USGS_IV_API = "https://waterservices.usgs.gov/nwis/iv/"

GAGE_HEIGHT = "00065"
DISCHARGE = "00060"

# Parameter codes we care about
PARAM_CODES = {
    GAGE_HEIGHT: "gage_height_ft",
    DISCHARGE: "streamflow_cfs",
}

# Sane physical ranges (exclusive upper bound)
GAGE_HEIGHT_RANGE = (-100.0, 500.0)
DISCHARGE_RANGE = (0.0, 1_000_000.0)


@dataclass(frozen=True)
class UsgsReading:
    site_no: str
    site_name: Optional[str]
    reading_time: Optional[datetime]
    gage_height_ft: Optional[float]
    streamflow_cfs: Optional[float]


def validate_sensor_value(site_no: str, param_code: str, value: float) -> float:
    """Return the value, or raise OutOfRangeSensorValue."""
    if param_code == GAGE_HEIGHT:
        low, high = GAGE_HEIGHT_RANGE
        ok = low < value < high
    else:
        low, high = DISCHARGE_RANGE
        ok = low <= value < high
    if not math.isfinite(value) or not ok:
        raise OutOfRangeSensorValue(site_no, PARAM_CODES[param_code], value)
    return value


def parse_timestamp(raw: Optional[str]) -> Optional[datetime]:
    if not raw:
        return None
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return None


def parse_iv_response(data: Dict[str, Any]) -> List[UsgsReading]:
    """Collapse a WaterML JSON response into one latest reading per site."""
    readings: Dict[str, Dict[str, Any]] = {}

    time_series = (data or {}).get("value", {}).get("timeSeries", []) or []

    for ts in time_series:
        source = ts.get("sourceInfo", {})
        site_no = (source.get("siteCode") or [{}])[0].get("value")
        param_code = (ts.get("variable", {}).get("variableCode") or [{}])[0].get("value")

        if not site_no or param_code not in PARAM_CODES:
            continue

        row = readings.setdefault(site_no, {
            "site_no": site_no,
            "site_name": source.get("siteName"),
            "reading_time": None,
            "gage_height_ft": None,
            "streamflow_cfs": None,
        })

        values = (ts.get("values") or [{}])[0].get("value", [])
        if not values:
            continue

        # Most recent value
        latest = values[-1]
        try:
            value = float(latest["value"])
        except (ValueError, KeyError, TypeError):
            continue

        try:
            validate_sensor_value(site_no, param_code, value)
        except OutOfRangeSensorValue as e:
            logger.warning(f"{e}, treating as unavailable")
            continue

        row[PARAM_CODES[param_code]] = value
        timestamp = parse_timestamp(latest.get("dateTime"))
        # Gauge height timestamp wins; discharge fills in when it is missing
        if param_code == GAGE_HEIGHT or row["reading_time"] is None:
            row["reading_time"] = timestamp or row["reading_time"]

    return [UsgsReading(**row) for row in readings.values()]


class UsgsClient:
    """Client for USGS Water Services instantaneous values."""

    def __init__(self, iv_url: str = USGS_IV_API, config: Optional[IngestionConfig] = None):
        self.iv_url = iv_url
        self.config = config or IngestionConfig()

    def fetch_latest(self, site_ids: Sequence[str]) -> List[UsgsReading]:
        """Blocking wrapper around `fetch_latest_async`."""
        return asyncio.run(self.fetch_latest_async(site_ids))

    async def fetch_latest_async(self, site_ids: Sequence[str]) -> List[UsgsReading]:
        """
        Fetch latest readings for all sites.

        Raises UpstreamFetchFailure if any batch fails; the next poll cycle
        is the retry.
        """
        site_ids = list(dict.fromkeys(site_ids))
        if not site_ids:
            return []

        size = self.config.batch_size
        batches = [site_ids[i:i + size] for i in range(0, len(site_ids), size)]
        semaphore = asyncio.Semaphore(self.config.concurrent_requests)
        timeout = aiohttp.ClientTimeout(total=self.config.timeout_sec)

        logger.info(f"Fetching live readings for {len(site_ids)} sites in {len(batches)} batches")

        async with aiohttp.ClientSession(timeout=timeout) as session:
            tasks = [self._fetch_batch(session, batch, semaphore) for batch in batches]
            results = await asyncio.gather(*tasks)

        readings = [r for batch in results for r in batch]
        logger.info(f"Got readings for {len(readings)} sites")
        return readings

    async def _fetch_batch(
        self,
        session: aiohttp.ClientSession,
        sites: List[str],
        semaphore: asyncio.Semaphore,
    ) -> List[UsgsReading]:
        params = {
            "format": "json",
            "sites": ",".join(sites),
            "parameterCd": ",".join(PARAM_CODES.keys()),
            "siteStatus": "all",
        }

        async with semaphore:
            try:
                async with session.get(self.iv_url, params=params) as resp:
                    if resp.status != 200:
                        raise UpstreamFetchFailure(
                            f"USGS API error: {resp.status} {resp.reason}",
                            status=resp.status,
                        )
                    data = await resp.json(content_type=None)
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                logger.error(f"Error fetching USGS readings: {e}")
                raise UpstreamFetchFailure(f"USGS API unreachable: {e}") from e
            except ValueError as e:
                raise UpstreamFetchFailure(f"USGS API returned invalid JSON: {e}") from e

        return parse_iv_response(data)
