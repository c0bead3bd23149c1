"""Tests for floatplan.engine.geometry: linear referencing on river polylines."""

import pytest

from floatplan.core.errors import DegenerateGeometry
from floatplan.core.models import LngLat, River
from floatplan.engine.geometry import (
    extract_segment,
    haversine_miles,
    point_at_mile,
    project_onto_river,
    river_length_miles,
    suggest_direction,
)


def reversed_river(river):
    return River(
        id=river.id,
        name=river.name,
        vertices=list(reversed(river.vertices)),
        headwaters_first=not river.headwaters_first,
    )


class TestHaversine:

    def test_half_degree_of_latitude(self):
        d = haversine_miles(LngLat(-91.0, 37.0), LngLat(-91.0, 36.5))
        assert d == pytest.approx(34.547, abs=0.01)

    def test_zero_distance(self):
        assert haversine_miles(LngLat(-91.0, 37.0), LngLat(-91.0, 37.0)) == 0.0


class TestProjectOntoRiver:

    def test_point_on_line_projects_to_expected_mile(self, current_river):
        result = project_onto_river(current_river, LngLat(-91.0, 36.8))

        assert result.mile_from_headwaters == pytest.approx(13.819, abs=0.01)
        assert result.distance_off_line_miles == pytest.approx(0.0, abs=1e-6)
        assert result.snapped_point.lng == pytest.approx(-91.0)
        assert result.snapped_point.lat == pytest.approx(36.8)
        assert result.river_length_miles == pytest.approx(34.547, abs=0.01)

    def test_mile_is_fraction_of_length(self, current_river):
        result = project_onto_river(current_river, LngLat(-91.0, 36.8))
        assert result.mile_from_headwaters / result.river_length_miles == pytest.approx(0.4)

    def test_off_line_point_reports_distance(self, current_river):
        result = project_onto_river(current_river, LngLat(-90.99, 36.8))

        assert result.snapped_point.lng == pytest.approx(-91.0)
        assert result.snapped_point.lat == pytest.approx(36.8)
        assert 0.5 < result.distance_off_line_miles < 0.6
        assert result.mile_from_headwaters == pytest.approx(13.819, abs=0.01)

    def test_point_beyond_end_clamps_to_endpoint(self, current_river):
        result = project_onto_river(current_river, LngLat(-91.0, 36.3))

        assert result.snapped_point.lat == pytest.approx(36.5)
        assert result.mile_from_headwaters == pytest.approx(result.river_length_miles)
        assert result.mile_from_mouth == pytest.approx(0.0)

    def test_mouth_first_geometry_measures_from_far_end(self, current_river):
        river = River("current", "Current", [(-91.0, 36.5), (-91.0, 37.0)], headwaters_first=False)
        result = project_onto_river(river, LngLat(-91.0, 36.8))
        assert result.mile_from_headwaters == pytest.approx(13.819, abs=0.01)

    def test_repeated_calls_are_identical(self, zigzag_river):
        point = LngLat(-91.83, 37.02)
        first = project_onto_river(zigzag_river, point)
        for _ in range(5):
            assert project_onto_river(zigzag_river, point) == first

    def test_miles_increase_downstream(self, zigzag_river):
        length = river_length_miles(zigzag_river)
        miles = [length * i / 20 for i in range(21)]

        projected = [
            project_onto_river(zigzag_river, point_at_mile(zigzag_river, m)).mile_from_headwaters
            for m in miles
        ]

        assert projected == sorted(projected)
        for expected, actual in zip(miles, projected):
            assert actual == pytest.approx(expected, abs=1e-6)

    @pytest.mark.parametrize("point", [
        LngLat(-91.95, 37.01),
        LngLat(-91.83, 37.06),
        LngLat(-91.7, 37.0),
        LngLat(-91.61, 36.95),
    ])
    def test_reversing_geometry_keeps_miles(self, zigzag_river, point):
        forward = project_onto_river(zigzag_river, point)
        backward = project_onto_river(reversed_river(zigzag_river), point)

        assert backward.mile_from_headwaters == pytest.approx(forward.mile_from_headwaters, abs=1e-6)
        assert backward.distance_off_line_miles == pytest.approx(forward.distance_off_line_miles, abs=1e-9)

    def test_equidistant_segments_resolve_upstream(self):
        # Symmetric peak: (0, 0) is equally far from both legs
        river = River("peak", "Peak", [(-0.1, 0.0), (0.0, 0.1), (0.1, 0.0)], headwaters_first=True)
        length = river_length_miles(river)

        forward = project_onto_river(river, LngLat(0.0, 0.0))
        backward = project_onto_river(reversed_river(river), LngLat(0.0, 0.0))

        assert forward.mile_from_headwaters < length / 2
        assert backward.mile_from_headwaters == pytest.approx(forward.mile_from_headwaters, abs=1e-6)

    def test_single_vertex_is_degenerate(self):
        river = River("stub", "Stub", [(-91.0, 37.0)], headwaters_first=True)
        with pytest.raises(DegenerateGeometry):
            project_onto_river(river, LngLat(-91.0, 37.0))

    def test_empty_geometry_is_degenerate(self):
        river = River("empty", "Empty", [], headwaters_first=True)
        with pytest.raises(DegenerateGeometry):
            project_onto_river(river, LngLat(-91.0, 37.0))

    def test_zero_length_geometry_is_degenerate(self):
        river = River("dot", "Dot", [(-91.0, 37.0), (-91.0, 37.0)], headwaters_first=True)
        with pytest.raises(DegenerateGeometry, match="zero length"):
            river_length_miles(river)

    def test_repeated_vertex_is_degenerate(self):
        river = River(
            "stutter", "Stutter",
            [(-91.0, 37.0), (-91.0, 36.8), (-91.0, 36.8), (-91.0, 36.5)],
            headwaters_first=True,
        )
        with pytest.raises(DegenerateGeometry, match="vertex 2 repeats"):
            project_onto_river(river, LngLat(-91.0, 36.9))


class TestPointAtMile:

    def test_inverse_of_projection(self, current_river):
        point = point_at_mile(current_river, 13.819)
        assert point.lng == pytest.approx(-91.0)
        assert point.lat == pytest.approx(36.8, abs=1e-4)

    def test_mouth_first(self):
        river = River("r", "R", [(-91.0, 36.5), (-91.0, 37.0)], headwaters_first=False)
        assert point_at_mile(river, 0.0).lat == pytest.approx(37.0)

    def test_outside_river_raises(self, current_river):
        with pytest.raises(ValueError):
            point_at_mile(current_river, 50.0)


class TestExtractSegment:

    def test_distance_between_miles(self, zigzag_river):
        segment = extract_segment(zigzag_river, 5.0, 12.0)

        assert segment.distance_miles == pytest.approx(7.0)
        assert segment.start_mile == 5.0
        assert segment.end_mile == 12.0
        start = point_at_mile(zigzag_river, 5.0)
        end = point_at_mile(zigzag_river, 12.0)
        assert segment.vertices[0].lng == pytest.approx(start.lng)
        assert segment.vertices[0].lat == pytest.approx(start.lat)
        assert segment.vertices[-1].lng == pytest.approx(end.lng)
        assert segment.vertices[-1].lat == pytest.approx(end.lat)
        # First bend (~6.5 mi) falls inside, the second (~13 mi) does not
        assert LngLat(-91.9, 37.05) in segment.vertices
        assert LngLat(-91.8, 37.0) not in segment.vertices
        assert len(segment.vertices) == 3

    def test_mile_order_does_not_matter(self, zigzag_river):
        assert extract_segment(zigzag_river, 12.0, 5.0) == extract_segment(zigzag_river, 5.0, 12.0)

    def test_runs_downstream_for_mouth_first_geometry(self, current_river):
        river = reversed_river(current_river)
        segment = extract_segment(river, 0.0, 10.0)
        assert segment.vertices[0].lat > segment.vertices[-1].lat

    def test_out_of_range(self, current_river):
        with pytest.raises(ValueError):
            extract_segment(current_river, 0.0, 40.0)


class TestSuggestDirection:

    def test_west_start_is_headwaters(self):
        result = suggest_direction([LngLat(-92.0, 37.0), LngLat(-91.0, 37.1)])
        assert result.recommendation == "headwaters_first"
        assert "WEST" in result.reason

    def test_east_start_is_mouth(self):
        result = suggest_direction([LngLat(-91.0, 37.0), LngLat(-92.0, 37.0)])
        assert result.recommendation == "mouth_first"

    def test_north_start_is_headwaters(self):
        result = suggest_direction([LngLat(-91.0, 37.0), LngLat(-91.0, 36.5)])
        assert result.recommendation == "headwaters_first"
        assert "NORTH" in result.reason

    def test_small_offset_is_uncertain(self):
        result = suggest_direction([LngLat(-91.0, 37.0), LngLat(-91.05, 37.05)])
        assert result.recommendation == "uncertain"
