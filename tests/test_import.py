"""Tests for floatplan.data.import_rivers and store upserts."""

import copy
import logging

import pytest

from floatplan.core.errors import NotFound
from floatplan.core.models import AccessPoint, LngLat
from floatplan.data.import_rivers import import_features, parse_features
from floatplan.data.memory import MemoryStore
from floatplan.engine.mile_correction import snap_access_point


def river_feature(headwaters_first=True, **props):
    properties = {
        "kind": "river", "id": "current", "name": "Current River",
        "slug": "current-river", "headwaters_first": headwaters_first,
    }
    properties.update(props)
    return {
        "type": "Feature",
        "geometry": {"type": "LineString", "coordinates": [[-91.0, 37.0], [-91.0, 36.5]]},
        "properties": properties,
    }


def marker_feature(mile, name=None, river_id="current"):
    return {
        "type": "Feature",
        "geometry": None,
        "properties": {"kind": "mile_marker", "river_id": river_id, "mile": mile, "name": name},
    }


def access_feature(ap_id, name, lng, lat, river_id="current"):
    return {
        "type": "Feature",
        "geometry": {"type": "Point", "coordinates": [lng, lat]},
        "properties": {
            "kind": "access_point", "id": ap_id, "river_id": river_id,
            "name": name, "approved": True,
        },
    }


def collection(*features):
    return {"type": "FeatureCollection", "features": list(features)}


OZARK = collection(
    river_feature(),
    marker_feature(0.0, "Headwaters"),
    marker_feature(10.0, "Cedargrove"),
    marker_feature(14.0, "Akers Ferry"),
    access_feature("ap-north", "Baptist Camp", -91.0, 37.0),
    access_feature("ap-mid", "Akers", -91.0, 36.8),
    access_feature("ap-south", "Pulltite", -91.0, 36.75),
)


@pytest.fixture
def imported():
    store = MemoryStore()
    report = import_features(store, copy.deepcopy(OZARK), tolerance_miles=0.5)
    return store, report


class TestParseFeatures:

    def test_splits_by_kind(self):
        rivers, markers, points = parse_features(OZARK)

        assert [r.id for r in rivers] == ["current"]
        assert rivers[0].headwaters_first is True
        assert [m.mile for m in markers["current"]] == [0.0, 10.0, 14.0]
        assert [p.id for p in points] == ["ap-north", "ap-mid", "ap-south"]
        assert points[1].orig == LngLat(-91.0, 36.8)

    def test_direction_is_required(self):
        feature = river_feature()
        del feature["properties"]["headwaters_first"]

        with pytest.raises(ValueError, match="headwaters_first"):
            parse_features(collection(feature))

    def test_duplicate_marker_rejected(self):
        with pytest.raises(ValueError, match="Duplicate mile marker"):
            parse_features(collection(marker_feature(10.0), marker_feature(10.0)))


class TestImportFeatures:

    def test_points_snapped_and_corrected(self, imported):
        store, report = imported

        assert report.rivers == 1
        assert report.mile_markers == 3
        assert report.access_points == 3
        assert report.corrected_ids == {"ap-south"}
        assert store.get_access_point("ap-mid").mile_from_headwaters == pytest.approx(13.819, abs=0.01)
        assert store.get_access_point("ap-mid").snap.lat == pytest.approx(36.8)
        assert store.get_access_point("ap-south").mile_from_headwaters == 14.0

    def test_moved_access_point_is_resnapped(self, imported):
        store, _ = imported

        import_features(
            store,
            collection(access_feature("ap-mid", "Akers", -91.0, 36.86)),
            tolerance_miles=0.5,
        )

        point = store.get_access_point("ap-mid")
        assert point.orig == LngLat(-91.0, 36.86)
        assert point.snap.lat == pytest.approx(36.86)
        assert point.mile_from_headwaters == pytest.approx(9.673, abs=0.01)

    def test_reimported_river_revalidates_existing_points(self, imported):
        store, _ = imported
        store.update_access_point_mile("ap-mid", 30.0)

        report = import_features(store, collection(river_feature()), tolerance_miles=0.5)

        assert report.mile_markers == 0
        # Markers kept, stale mile re-derived from geometry
        assert [m.mile for m in store.list_mile_markers("current")] == [0.0, 10.0, 14.0]
        assert store.get_access_point("ap-mid").mile_from_headwaters == pytest.approx(13.819, abs=0.01)
        assert store.get_access_point("ap-south").mile_from_headwaters == 14.0

    def test_markers_for_a_stored_river(self, imported):
        store, _ = imported

        report = import_features(store, collection(marker_feature(17.0, "Two Rivers")), 0.5)

        assert report.rivers == 1
        assert [m.mile for m in store.list_mile_markers("current")] == [17.0]
        assert store.get_access_point("ap-south").mile_from_headwaters == pytest.approx(17.274, abs=0.01)
        assert store.get_access_point("ap-mid").mile_from_headwaters == 17.0

    def test_declared_direction_disagreeing_with_geometry_warns(self, caplog):
        store = MemoryStore()

        with caplog.at_level(logging.WARNING, logger="floatplan.data.import_rivers"):
            report = import_features(store, collection(river_feature(headwaters_first=False)), 0.5)

        assert len(report.direction_warnings) == 1
        assert "geometry suggests headwaters_first" in caplog.text
        assert store.get_river("current").headwaters_first is False

    def test_access_point_on_unknown_river(self):
        store = MemoryStore()
        with pytest.raises(NotFound):
            import_features(
                store, collection(access_feature("ap-x", "Nowhere", -91.0, 37.0, river_id="gasconade")), 0.5
            )


class TestMemoryUpsertAccessPoint:

    def test_unchanged_coordinate_keeps_snap(self, store):
        before = store.get_access_point("ap-mid")

        store.upsert_access_point(AccessPoint("ap-mid", "current", "Akers Ferry", LngLat(-91.0, 36.8), approved=True))

        after = store.get_access_point("ap-mid")
        assert after.name == "Akers Ferry"
        assert after.snap == before.snap
        assert after.mile_from_headwaters == before.mile_from_headwaters

    def test_moved_coordinate_clears_snap(self, store):
        store.upsert_access_point(AccessPoint("ap-mid", "current", "Akers", LngLat(-91.0, 36.7), approved=True))

        moved = store.get_access_point("ap-mid")
        assert moved.snap is None
        assert moved.mile_from_headwaters is None

        snap_access_point(store, "ap-mid")
        assert store.get_access_point("ap-mid").mile_from_headwaters == pytest.approx(20.728, abs=0.01)

    def test_caller_supplied_derived_fields_ignored(self, store):
        store.upsert_access_point(AccessPoint(
            "ap-new", "current", "New Ramp", LngLat(-91.0, 36.6),
            snap=LngLat(0.0, 0.0), mile_from_headwaters=99.0,
        ))

        point = store.get_access_point("ap-new")
        assert point.snap is None
        assert point.mile_from_headwaters is None
