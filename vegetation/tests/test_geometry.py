from __future__ import annotations

# ruff: noqa: S101
import pytest

from vegetation.exceptions import GeometryError
from vegetation.geometry import (
    BoundingBox,
    Point,
    area_hectares,
    aspect_sized_dimensions,
    bounding_box,
    centroid,
    ensure_closed_ring,
    overlay_corners,
    point_in_polygon,
    points_from_boundaries,
    to_geojson_polygon,
    validate_polygon,
)

UNIT_SQUARE = [
    Point(lng=0.0, lat=0.0),
    Point(lng=1.0, lat=0.0),
    Point(lng=1.0, lat=1.0),
    Point(lng=0.0, lat=1.0),
]


def test_bounding_box_extent() -> None:
    points = [
        Point(lng=-47.9, lat=-15.8),
        Point(lng=-47.7, lat=-15.9),
        Point(lng=-47.8, lat=-15.6),
    ]
    bbox = bounding_box(points)
    assert bbox.min_lng == -47.9
    assert bbox.max_lng == -47.7
    assert bbox.min_lat == -15.9
    assert bbox.max_lat == -15.6
    assert bbox.as_list() == [-47.9, -15.9, -47.7, -15.6]


def test_bounding_box_requires_points() -> None:
    with pytest.raises(GeometryError):
        bounding_box([])


def test_bounding_box_rejects_inverted_extent() -> None:
    with pytest.raises(GeometryError):
        BoundingBox(min_lng=1.0, max_lng=0.0, min_lat=0.0, max_lat=1.0)


@pytest.mark.parametrize(
    ("lng_range", "lat_range", "expected"),
    [
        (2.0, 1.0, (512, 256)),
        (1.0, 2.0, (256, 512)),
        (1.0, 1.0, (512, 512)),
        (3.0, 1.0, (512, 171)),
    ],
)
def test_aspect_sized_dimensions(
    lng_range: float, lat_range: float, expected: tuple[int, int]
) -> None:
    bbox = BoundingBox(
        min_lng=0.0, max_lng=lng_range, min_lat=0.0, max_lat=lat_range
    )
    assert aspect_sized_dimensions(bbox, 512) == expected


def test_aspect_sized_dimensions_zero_lat_range() -> None:
    bbox = BoundingBox(min_lng=0.0, max_lng=1.0, min_lat=5.0, max_lat=5.0)
    assert aspect_sized_dimensions(bbox, 512) == (512, 0)


def test_aspect_sized_dimensions_rejects_non_positive_max() -> None:
    bbox = BoundingBox(min_lng=0.0, max_lng=1.0, min_lat=0.0, max_lat=1.0)
    with pytest.raises(GeometryError):
        aspect_sized_dimensions(bbox, 0)


def test_ensure_closed_ring_appends_first_point_once() -> None:
    ring = ensure_closed_ring(UNIT_SQUARE)
    assert len(ring) == 5
    assert ring[-1] == ring[0]
    assert ensure_closed_ring(ring) == ring


def test_validate_polygon_requires_three_distinct_vertices() -> None:
    degenerate = [
        Point(lng=0.0, lat=0.0),
        Point(lng=1.0, lat=1.0),
        Point(lng=0.0, lat=0.0),
    ]
    with pytest.raises(GeometryError, match="distinct"):
        validate_polygon(degenerate)


def test_centroid_is_vertex_average_ignoring_closing_point() -> None:
    closed = ensure_closed_ring(UNIT_SQUARE)
    assert centroid(closed) == Point(lng=0.5, lat=0.5)
    assert centroid(UNIT_SQUARE) == Point(lng=0.5, lat=0.5)


def test_area_hectares_small_square_near_equator() -> None:
    side = 0.001
    square = [
        Point(lng=0.0, lat=0.0),
        Point(lng=side, lat=0.0),
        Point(lng=side, lat=side),
        Point(lng=0.0, lat=side),
    ]
    expected_m2 = (side * 111320.0) ** 2
    assert area_hectares(square) == pytest.approx(
        expected_m2 / 10000, rel=1e-4
    )


def test_area_hectares_independent_of_winding_and_closure() -> None:
    field = [
        Point(lng=-47.901, lat=-15.801),
        Point(lng=-47.887, lat=-15.803),
        Point(lng=-47.884, lat=-15.790),
        Point(lng=-47.899, lat=-15.788),
        Point(lng=-47.905, lat=-15.795),
    ]
    forward = area_hectares(field)
    assert forward > 0
    assert area_hectares(list(reversed(field))) == forward
    assert area_hectares(ensure_closed_ring(field)) == forward


def test_point_in_polygon() -> None:
    assert point_in_polygon(Point(lng=0.5, lat=0.5), UNIT_SQUARE)
    assert not point_in_polygon(Point(lng=1.5, lat=0.5), UNIT_SQUARE)
    assert not point_in_polygon(Point(lng=0.5, lat=-0.1), UNIT_SQUARE)


def test_point_in_polygon_concave() -> None:
    l_shape = [
        Point(lng=0.0, lat=0.0),
        Point(lng=2.0, lat=0.0),
        Point(lng=2.0, lat=1.0),
        Point(lng=1.0, lat=1.0),
        Point(lng=1.0, lat=2.0),
        Point(lng=0.0, lat=2.0),
    ]
    assert point_in_polygon(Point(lng=0.5, lat=1.5), l_shape)
    assert not point_in_polygon(Point(lng=1.5, lat=1.5), l_shape)


def test_overlay_corners_order() -> None:
    bbox = BoundingBox(min_lng=1.0, max_lng=2.0, min_lat=3.0, max_lat=4.0)
    assert overlay_corners(bbox) == [
        [1.0, 4.0],
        [2.0, 4.0],
        [2.0, 3.0],
        [1.0, 3.0],
    ]


def test_to_geojson_polygon_is_closed() -> None:
    geometry = to_geojson_polygon(UNIT_SQUARE)
    ring = geometry["coordinates"][0]
    assert geometry["type"] == "Polygon"
    assert ring[0] == ring[-1] == [0.0, 0.0]
    assert len(ring) == 5


def test_points_from_boundaries_accepts_lat_lng_dicts_json() -> None:
    raw = (
        '[{"lat": -15.8, "lng": -47.9}, {"lat": -15.8, "lng": -47.8},'
        ' {"lat": -15.7, "lng": -47.8}]'
    )
    points = points_from_boundaries(raw)
    assert points[0] == Point(lng=-47.9, lat=-15.8)
    assert len(points) == 3


def test_points_from_boundaries_accepts_pairs_and_geojson() -> None:
    pairs = [[-47.9, -15.8], [-47.8, -15.8], [-47.8, -15.7]]
    geojson = {"type": "Polygon", "coordinates": [pairs]}
    assert points_from_boundaries(pairs) == points_from_boundaries(geojson)


@pytest.mark.parametrize(
    "raw",
    [
        "not json",
        [],
        {"type": "Point", "coordinates": [0, 0]},
        [{"lat": 0.0}],
        [[200.0, 0.0], [0.0, 0.0], [1.0, 1.0]],
        [["x", 0.0]],
        [True],
    ],
)
def test_points_from_boundaries_rejects_bad_input(raw: object) -> None:
    with pytest.raises(GeometryError):
        points_from_boundaries(raw)
