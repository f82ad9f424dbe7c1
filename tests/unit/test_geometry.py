"""Tests for the geometry primitives (intersects, area, length, buffer)."""

import pytest
from shapely.geometry import LineString, MultiPolygon, Point, Polygon

from conftest import offset, point, square
from core.errors import GeometryError
from core.models import Feature
from geometry_input import area, buffer, intersects, length, select_intersecting


class TestIntersects:
    def test_point_inside_polygon(self):
        assert intersects(Point(*offset(0.5, 0.5)), square(1.0)) is True

    def test_point_outside_polygon(self):
        assert intersects(Point(*offset(1.3, 0.5)), square(1.0)) is False

    def test_polygon_polygon_overlap(self):
        assert intersects(square(1.0), square(1.0, east_km=0.5, north_km=0.5))

    def test_touching_edges_intersect(self):
        assert intersects(square(1.0), square(1.0, east_km=1.0))

    def test_multipolygon_against_point(self):
        multi = MultiPolygon([square(1.0), square(1.0, east_km=5.0)])
        assert intersects(multi, Point(*offset(5.5, 0.5)))
        assert not intersects(multi, Point(*offset(3.0, 0.5)))

    def test_accepts_features(self):
        assert intersects(point(0.5, 0.5), Feature(geometry=square(1.0)))

    def test_symmetric(self):
        a, b = square(1.0), Point(*offset(0.2, 0.2))
        assert intersects(a, b) == intersects(b, a)

    def test_missing_geometry_raises(self):
        with pytest.raises(GeometryError, match="intersects"):
            intersects(None, square(1.0))

    def test_empty_geometry_raises(self):
        with pytest.raises(GeometryError):
            intersects(Polygon(), square(1.0))


class TestArea:
    def test_one_km_square(self):
        assert area(square(1.0)) == pytest.approx(1.0, rel=0.01)

    def test_orientation_does_not_matter(self):
        poly = square(2.0)
        reversed_poly = Polygon(list(poly.exterior.coords)[::-1])
        assert area(reversed_poly) == pytest.approx(area(poly))

    def test_multipolygon_sums_parts(self):
        multi = MultiPolygon([square(1.0), square(1.0, east_km=3.0)])
        assert area(multi) == pytest.approx(2.0, rel=0.01)

    def test_empty_polygon_raises(self):
        with pytest.raises(GeometryError, match="area failed"):
            area(Polygon())

    def test_point_raises(self):
        with pytest.raises(GeometryError):
            area(Point(0, 0))

    def test_deterministic(self):
        poly = square(1.7, east_km=0.3)
        assert area(poly) == area(poly)


class TestLength:
    def test_one_km_square_perimeter(self):
        assert length(square(1.0)) == pytest.approx(4.0, rel=0.01)

    def test_line_raises(self):
        with pytest.raises(GeometryError, match="length failed"):
            length(LineString([(0, 0), (1, 1)]))


class TestBuffer:
    def test_buffer_grows_area(self):
        poly = square(1.0)
        buffered = buffer(poly, 0.5)

        assert buffered.geom_type == 'Polygon'
        assert area(buffered) > area(poly)
        # 1 + 4 * 0.5 + pi * 0.25 km²
        assert area(buffered) == pytest.approx(3.785, rel=0.02)

    def test_buffer_reaches_nearby_point(self):
        poly = square(1.0)
        nearby = Point(*offset(1.3, 0.5))

        assert not intersects(poly, nearby)
        assert intersects(buffer(poly, 0.5), nearby)

    def test_buffer_does_not_reach_far_point(self):
        assert not intersects(buffer(square(1.0), 0.5), Point(*offset(1.8, 0.5)))

    def test_input_not_mutated(self):
        poly = square(1.0)
        coords = list(poly.exterior.coords)
        buffer(poly, 0.5)
        assert list(poly.exterior.coords) == coords

    def test_point_raises(self):
        with pytest.raises(GeometryError, match="buffer failed"):
            buffer(Point(0, 0), 0.5)

    @pytest.mark.parametrize("radius", [0, -1, None])
    def test_non_positive_radius_raises(self, radius):
        with pytest.raises(GeometryError):
            buffer(square(1.0), radius)

    def test_southern_hemisphere(self):
        poly = Polygon([(-99.0, -19.0), (-98.99, -19.0), (-98.99, -18.99), (-99.0, -18.99)])
        assert area(buffer(poly, 1.0)) > area(poly)


class TestSelectIntersecting:
    def test_preserves_order(self):
        features = [point(0.9, 0.9, n=1), point(3.0, 3.0, n=2), point(0.1, 0.1, n=3), point(0.5, 0.5, n=4)]
        matches = select_intersecting(features, square(1.0))
        assert [f.properties['n'] for f in matches] == [1, 3, 4]

    def test_returns_same_objects(self):
        feature = point(0.5, 0.5)
        assert select_intersecting([feature], square(1.0))[0] is feature

    def test_features_without_geometry_skipped(self):
        inside = point(0.5, 0.5, n=1)
        features = [Feature(geometry=Polygon(), properties={'n': 2}), inside, Feature(geometry=None)]
        assert select_intersecting(features, square(1.0), 'ramsar') == [inside]
