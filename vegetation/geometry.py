"""Planar geometry helpers for field polygons (WGS84 degrees).

All functions are pure and operate on ordered point sequences. Polygons are
accepted open or closed; the ring is closed internally before area and
containment tests. Distances use a local equirectangular approximation,
which is adequate for farm parcels (extents below ~10 km).
"""

from __future__ import annotations

import json
import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final

from .exceptions import GeometryError
from .numutils import round_half_up

METERS_PER_DEGREE_LAT: Final[float] = 111320.0
SQUARE_METERS_PER_HECTARE: Final[float] = 10000.0
MIN_POLYGON_VERTICES: Final[int] = 3


@dataclass(frozen=True)
class Point:
    """Longitude/latitude pair in decimal degrees."""

    lng: float
    lat: float

    def as_lnglat(self) -> list[float]:
        return [self.lng, self.lat]


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned extent of a point set."""

    min_lng: float
    max_lng: float
    min_lat: float
    max_lat: float

    def __post_init__(self) -> None:
        if self.min_lng > self.max_lng or self.min_lat > self.max_lat:
            raise GeometryError(
                "Bounding box requires min_lng <= max_lng and "
                "min_lat <= max_lat."
            )

    @property
    def lng_range(self) -> float:
        return self.max_lng - self.min_lng

    @property
    def lat_range(self) -> float:
        return self.max_lat - self.min_lat

    def as_list(self) -> list[float]:
        """Return ``[west, south, east, north]``."""

        return [self.min_lng, self.min_lat, self.max_lng, self.max_lat]


def bounding_box(points: Sequence[Point]) -> BoundingBox:
    if len(points) < 1:
        raise GeometryError("Bounding box requires at least one point.")
    lngs = [p.lng for p in points]
    lats = [p.lat for p in points]
    return BoundingBox(
        min_lng=min(lngs),
        max_lng=max(lngs),
        min_lat=min(lats),
        max_lat=max(lats),
    )


def aspect_sized_dimensions(
    bbox: BoundingBox, max_dimension: int
) -> tuple[int, int]:
    """Return ``(width, height)`` preserving the bbox aspect ratio.

    The longer side gets ``max_dimension``. A zero latitude range yields an
    infinite aspect and therefore a height of 0; callers should reject
    zero-extent polygons first.
    """

    if max_dimension <= 0:
        raise GeometryError("max_dimension must be positive.")
    lat_range = bbox.lat_range
    aspect = math.inf if lat_range == 0 else bbox.lng_range / lat_range
    if aspect > 1:
        return max_dimension, round_half_up(max_dimension / aspect)
    return round_half_up(max_dimension * aspect), max_dimension


def ensure_closed_ring(points: Sequence[Point]) -> list[Point]:
    ring = list(points)
    if not ring:
        return ring
    first, last = ring[0], ring[-1]
    if first.lng != last.lng or first.lat != last.lat:
        ring.append(Point(lng=first.lng, lat=first.lat))
    return ring


def _ring_vertices(points: Sequence[Point]) -> list[Point]:
    """Return the polygon vertices without the closing duplicate."""

    vertices = list(points)
    if len(vertices) > 1:
        first, last = vertices[0], vertices[-1]
        if first.lng == last.lng and first.lat == last.lat:
            vertices = vertices[:-1]
    distinct = {(p.lng, p.lat) for p in vertices}
    if len(distinct) < MIN_POLYGON_VERTICES:
        raise GeometryError(
            f"Polygon requires at least {MIN_POLYGON_VERTICES} distinct "
            "vertices."
        )
    return vertices


def validate_polygon(points: Sequence[Point]) -> list[Point]:
    """Validate a polygon and return it as a closed ring."""

    return ensure_closed_ring(_ring_vertices(points))


def centroid(points: Sequence[Point]) -> Point:
    """Arithmetic mean of the vertices (not the area-weighted centroid)."""

    vertices = _ring_vertices(points)
    count = len(vertices)
    return Point(
        lng=math.fsum(p.lng for p in vertices) / count,
        lat=math.fsum(p.lat for p in vertices) / count,
    )


def area_hectares(points: Sequence[Point]) -> float:
    """Planar polygon area in hectares using the Shoelace formula.

    Exact summation keeps the result identical for either winding order.
    """

    vertices = _ring_vertices(points)
    mean_lat = math.fsum(p.lat for p in vertices) / len(vertices)
    meters_per_degree_lng = METERS_PER_DEGREE_LAT * math.cos(
        math.radians(mean_lat)
    )
    ref_lng = min(p.lng for p in vertices)
    ref_lat = min(p.lat for p in vertices)
    projected = [
        (
            (p.lng - ref_lng) * meters_per_degree_lng,
            (p.lat - ref_lat) * METERS_PER_DEGREE_LAT,
        )
        for p in vertices
    ]
    count = len(projected)
    terms: list[float] = []
    for i in range(count):
        x1, y1 = projected[i]
        x2, y2 = projected[(i + 1) % count]
        terms.append(x1 * y2 - x2 * y1)
    return abs(math.fsum(terms)) / 2 / SQUARE_METERS_PER_HECTARE


def point_in_ring(
    x: float, y: float, ring: Sequence[tuple[float, float]]
) -> bool:
    """Ray-casting parity test over ``(x, y)`` ring coordinates.

    Points exactly on an edge follow whatever the parity rule yields.
    """

    inside = False
    j = len(ring) - 1
    for i in range(len(ring)):
        xi, yi = ring[i]
        xj, yj = ring[j]
        if (yi > y) != (yj > y) and x < (xj - xi) * (y - yi) / (yj - yi) + xi:
            inside = not inside
        j = i
    return inside


def point_in_polygon(point: Point, points: Sequence[Point]) -> bool:
    ring = [(p.lng, p.lat) for p in validate_polygon(points)]
    return point_in_ring(point.lng, point.lat, ring)


def overlay_corners(bbox: BoundingBox) -> list[list[float]]:
    """Return image overlay corners: top-left, top-right, bottom-right,
    bottom-left, each as ``[lng, lat]``."""

    return [
        [bbox.min_lng, bbox.max_lat],
        [bbox.max_lng, bbox.max_lat],
        [bbox.max_lng, bbox.min_lat],
        [bbox.min_lng, bbox.min_lat],
    ]


def to_geojson_polygon(points: Sequence[Point]) -> dict[str, Any]:
    ring = validate_polygon(points)
    return {
        "type": "Polygon",
        "coordinates": [[p.as_lnglat() for p in ring]],
    }


def _coerce_coordinate(value: Any, *, name: str) -> float:
    if isinstance(value, bool):
        raise GeometryError(f"Invalid {name} coordinate: {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise GeometryError(f"Invalid {name} coordinate: {value!r}") from exc
    if not math.isfinite(number):
        raise GeometryError(f"Invalid {name} coordinate: {value!r}")
    return number


def _make_point(lng: Any, lat: Any) -> Point:
    point = Point(
        lng=_coerce_coordinate(lng, name="longitude"),
        lat=_coerce_coordinate(lat, name="latitude"),
    )
    if not -180.0 <= point.lng <= 180.0 or not -90.0 <= point.lat <= 90.0:
        raise GeometryError(
            f"Coordinate out of WGS84 range: {point.lng}, {point.lat}"
        )
    return point


def points_from_boundaries(raw: Any) -> list[Point]:
    """Parse stored field boundaries into points.

    Accepts a JSON string or an already-decoded value in one of three
    shapes: ``[{"lat": .., "lng": ..}, ...]``, ``[[lng, lat], ...]`` or a
    GeoJSON ``Polygon`` mapping (outer ring only).
    """

    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise GeometryError("Boundaries are not valid JSON.") from exc

    if isinstance(raw, Mapping):
        if raw.get("type") != "Polygon":
            raise GeometryError(
                "Only GeoJSON Polygon boundaries are supported."
            )
        rings = raw.get("coordinates")
        if not isinstance(rings, list) or not rings:
            raise GeometryError("GeoJSON Polygon has no coordinates.")
        raw = rings[0]

    if not isinstance(raw, list) or not raw:
        raise GeometryError("Boundaries must be a non-empty list of points.")

    points: list[Point] = []
    for item in raw:
        if isinstance(item, Mapping):
            if "lat" not in item or "lng" not in item:
                raise GeometryError("Boundary points require lat and lng.")
            points.append(_make_point(item["lng"], item["lat"]))
        elif isinstance(item, list | tuple) and len(item) >= 2:
            points.append(_make_point(item[0], item[1]))
        else:
            raise GeometryError(f"Unsupported boundary point: {item!r}")
    return points
