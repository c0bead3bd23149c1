#!/usr/bin/env python3
"""
Correct access point miles against the mile marker reference table.

Usage:
    python -m floatplan.data.mile_corrections
    python -m floatplan.data.mile_corrections --river-id current-river
    python -m floatplan.data.mile_corrections --tolerance 0.3
    python -m floatplan.data.mile_corrections --resnap --river-id current-river
"""

import logging
import sys

from floatplan.core.config import LOG_FORMAT, settings
from floatplan.core.errors import FloatPlanError
from floatplan.data.store import Store
from floatplan.engine.mile_correction import (
    correct_access_point_miles,
    find_duplicate_miles,
    revalidate_river,
)

logger = logging.getLogger(__name__)


def run_corrections(store: Store, tolerance: float, river_id=None, resnap=False):
    if resnap:
        if river_id is None:
            rivers = [r.id for r in store.list_rivers()]
        else:
            rivers = [river_id]
        results = []
        for rid in rivers:
            results.extend(revalidate_river(store, rid, tolerance))
    else:
        results = correct_access_point_miles(store, tolerance, river_id=river_id)

    corrected = [r for r in results if r.corrected]

    print("\n✅ Correction complete:")
    print(f"   Corrected: {len(corrected)}")
    print(f"   Unchanged: {len(results) - len(corrected)}")
    print(f"   Total: {len(results)}\n")

    for r in corrected[:10]:
        print(f"  {r.access_point_name}: {r.old_mile:.2f} → {r.new_mile:.2f}")
    if len(corrected) > 10:
        print(f"  ... and {len(corrected) - 10} more")

    duplicates = find_duplicate_miles(store, river_id=river_id)
    if duplicates:
        print(f"\n⚠️  Found {len(duplicates)} duplicate mile marker(s):\n")
        for dup in duplicates:
            print(f"Mile {dup.mile} on {dup.river_id}:")
            for ap_id, name in zip(dup.access_point_ids, dup.access_point_names):
                print(f"  - {name} ({ap_id})")
    else:
        print("✅ No duplicate mile markers found")

    return results


def main(argv=None):
    import argparse

    from floatplan.data.postgres import PostgresStore

    parser = argparse.ArgumentParser(description="Correct access point miles")
    parser.add_argument("--river-id", help="Limit to one river")
    parser.add_argument(
        "--tolerance", type=float, default=settings.mile_correction_tolerance,
        help="Miles an access point may differ from its nearest reference",
    )
    parser.add_argument(
        "--resnap", action="store_true",
        help="Re-snap access points to the river line before correcting",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)
    print(f"Tolerance: {args.tolerance} miles")

    store = PostgresStore(settings.database_url)
    try:
        run_corrections(store, args.tolerance, river_id=args.river_id, resnap=args.resnap)
    except FloatPlanError as e:
        logger.error(f"Error correcting miles: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
