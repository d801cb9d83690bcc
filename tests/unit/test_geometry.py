"""
Viewport calculation tests: bbox, center and zoom breakpoints.
"""

import pytest

from geoagent.core.logic.geometry import (
    DEFAULT_CENTER,
    calculate_bbox,
    calculate_center,
    calculate_zoom,
    extract_coordinates,
)
from tests.factories.model_factories import make_point_feature, make_polygon_feature


class TestExtractCoordinates:

    def test_point(self):
        assert extract_coordinates({"type": "Point", "coordinates": [1, 2]}) == [[1, 2]]

    def test_multipolygon_is_flattened(self):
        geometry = {
            "type": "MultiPolygon",
            "coordinates": [
                [[[0, 0], [1, 0], [1, 1], [0, 0]]],
                [[[5, 5], [6, 5], [6, 6], [5, 5]]],
            ],
        }
        assert len(extract_coordinates(geometry)) == 8

    def test_geometry_collection(self):
        geometry = {
            "type": "GeometryCollection",
            "geometries": [
                {"type": "Point", "coordinates": [1, 1]},
                {"type": "LineString", "coordinates": [[2, 2], [3, 3]]},
            ],
        }
        assert extract_coordinates(geometry) == [[1, 1], [2, 2], [3, 3]]

    @pytest.mark.parametrize("geometry", [None, {}, {"type": "Point"}])
    def test_missing_geometry_is_empty(self, geometry):
        assert extract_coordinates(geometry) == []


class TestCalculateBbox:

    def test_min_max_over_all_features(self):
        features = [
            make_point_feature([2.30, 48.85]),
            make_point_feature([2.35, 48.87]),
            make_polygon_feature([2.31, 48.84, 2.33, 48.86]),
        ]
        assert calculate_bbox(features) == [2.30, 48.84, 2.35, 48.87]

    def test_features_without_geometry_ignored(self):
        features = [{"type": "Feature", "geometry": None}, make_point_feature([1.0, 2.0])]
        assert calculate_bbox(features) == [1.0, 2.0, 1.0, 2.0]

    def test_no_coordinates_is_none(self):
        assert calculate_bbox([]) is None
        assert calculate_bbox([{"type": "Feature", "geometry": None}]) is None


class TestCalculateCenter:

    def test_center_is_lat_lon(self):
        assert calculate_center([2.2, 48.8, 2.4, 48.9]) == pytest.approx([48.85, 2.3])

    def test_default_center_without_bbox(self):
        assert calculate_center(None) == DEFAULT_CENTER


class TestCalculateZoom:

    @pytest.mark.parametrize("span,expected", [
        (10.0, 6),
        (5.01, 6),
        (5.0, 9),
        (2.0, 9),
        (1.0, 11),
        (0.7, 11),
        (0.5, 13),
        (0.2, 13),
        (0.1, 15),
        (0.01, 15),
        (0.0, 15),
    ])
    def test_breakpoints(self, span, expected):
        assert calculate_zoom([0.0, 0.0, span, 0.0]) == expected

    def test_uses_larger_span(self):
        assert calculate_zoom([0.0, 0.0, 0.05, 2.0]) == 9

    def test_paris_example_follows_breakpoint_table(self):
        # span 0.2 is above the 0.1 breakpoint
        assert calculate_zoom([2.2, 48.8, 2.4, 48.9]) == 13

    def test_no_bbox(self):
        assert calculate_zoom(None) == 6
