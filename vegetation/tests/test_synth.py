from __future__ import annotations

# ruff: noqa: S101
import io
import math

import pytest
from PIL import Image

from vegetation.exceptions import GeometryError
from vegetation.geometry import (
    BoundingBox,
    Point,
    bounding_box,
    point_in_ring,
)
from vegetation.palette import SYNTHETIC_PALETTE, TILE_PALETTES
from vegetation.raster.base import RasterBuffer
from vegetation.raster.png import encode_png
from vegetation.raster.synth import (
    SYNTH_VALUE_CEILING,
    SYNTH_VALUE_FLOOR,
    block_value,
    noise_hash,
    noise_seed,
    pixel_block_size,
    project_ring,
    synthesize,
)

TRIANGLE = [
    Point(lng=0.0, lat=0.0),
    Point(lng=1.0, lat=0.0),
    Point(lng=0.0, lat=1.0),
]
TRIANGLE_BOUNDS = BoundingBox(
    min_lng=0.0, max_lng=1.0, min_lat=0.0, max_lat=1.0
)


def test_noise_hash_pinned_values() -> None:
    assert noise_hash(0.0, 0.0, 0.0) == 0.0
    n = math.sin(1 * 12.9898 + 2 * 78.233 + 3) * 43758.5453
    assert noise_hash(1.0, 2.0, 3.0) == n - math.floor(n)


def test_noise_hash_range() -> None:
    for i in range(200):
        value = noise_hash(i / 7, i / 3, 42.0)
        assert 0.0 <= value < 1.0


@pytest.mark.parametrize(
    ("width", "expected"),
    [(40, 4), (199, 4), (200, 5), (400, 10), (512, 12), (4000, 12)],
)
def test_pixel_block_size(width: int, expected: int) -> None:
    assert pixel_block_size(width) == expected


def test_noise_seed_depends_only_on_bounds() -> None:
    bounds = BoundingBox(
        min_lng=-47.5, max_lng=-47.0, min_lat=-15.25, max_lat=-15.0
    )
    assert noise_seed(bounds) == pytest.approx(2750.0)


def test_block_value_is_clamped() -> None:
    assert block_value(5.0, 0, 0, 1.0) == SYNTH_VALUE_CEILING
    assert block_value(-5.0, 0, 0, 1.0) == SYNTH_VALUE_FLOOR
    for x in range(0, 200, 8):
        value = block_value(0.6, x, x * 2, 123.0)
        assert SYNTH_VALUE_FLOOR <= value <= SYNTH_VALUE_CEILING


def test_project_ring_inverts_latitude() -> None:
    ring = project_ring(TRIANGLE, TRIANGLE_BOUNDS, 100, 50)
    assert ring == [(0.0, 50.0), (100.0, 50.0), (0.0, 0.0)]


def test_synthesize_is_deterministic() -> None:
    first = synthesize(0.6, TRIANGLE, TRIANGLE_BOUNDS, 100, 100)
    second = synthesize(0.6, TRIANGLE, TRIANGLE_BOUNDS, 100, 100)
    assert first.data == second.data
    assert first.opaque_pixel_count() > 0


def test_synthesize_paints_only_inside_polygon() -> None:
    raster = synthesize(0.6, TRIANGLE, TRIANGLE_BOUNDS, 100, 100)
    ring = project_ring(TRIANGLE, TRIANGLE_BOUNDS, 100, 100)

    for y in range(raster.height):
        for x in range(raster.width):
            alpha = raster.get_pixel(x, y)[3]
            if alpha:
                assert alpha == 255
                assert point_in_ring(x, y, ring)

    assert raster.get_pixel(99, 0) == (0, 0, 0, 0)
    assert raster.get_pixel(10, 90)[3] == 255


def test_synthesize_uses_palette_colours() -> None:
    raster = synthesize(0.6, TRIANGLE, TRIANGLE_BOUNDS, 100, 100)
    # pixel (10, 90) lies in the block whose origin is (8, 88)
    expected = SYNTHETIC_PALETTE.color_for(
        block_value(0.6, 8, 88, noise_seed(TRIANGLE_BOUNDS))
    )
    assert expected is not None
    assert raster.get_pixel(10, 90) == (*expected, 255)


def test_synthesize_with_tile_palette_differs() -> None:
    synthetic = synthesize(0.6, TRIANGLE, TRIANGLE_BOUNDS, 100, 100)
    viridis = synthesize(
        0.6,
        TRIANGLE,
        TRIANGLE_BOUNDS,
        100,
        100,
        TILE_PALETTES["viridis"],
    )
    assert synthetic.opaque_pixel_count() == viridis.opaque_pixel_count()
    assert synthetic.data != viridis.data


def test_synthesize_changes_with_base_value() -> None:
    low = synthesize(0.2, TRIANGLE, TRIANGLE_BOUNDS, 100, 100)
    high = synthesize(0.8, TRIANGLE, TRIANGLE_BOUNDS, 100, 100)
    assert low.data != high.data


@pytest.mark.parametrize(("width", "height"), [(0, 10), (10, 0), (-1, 5)])
def test_synthesize_rejects_bad_dimensions(width: int, height: int) -> None:
    with pytest.raises(GeometryError):
        synthesize(0.5, TRIANGLE, TRIANGLE_BOUNDS, width, height)


def test_synthesize_rejects_zero_extent_bounds() -> None:
    flat = BoundingBox(min_lng=0.0, max_lng=1.0, min_lat=2.0, max_lat=2.0)
    with pytest.raises(GeometryError):
        synthesize(0.5, TRIANGLE, flat, 10, 10)


def test_raster_buffer_validates_size_and_bounds() -> None:
    raster = RasterBuffer(2, 2)
    assert len(raster.data) == 16
    raster.set_pixel(1, 1, (1, 2, 3, 4))
    assert raster.get_pixel(1, 1) == (1, 2, 3, 4)
    with pytest.raises(IndexError):
        raster.get_pixel(2, 0)
    with pytest.raises(ValueError):
        RasterBuffer(2, 2, bytearray(3))


def test_encode_png_round_trips_through_pillow() -> None:
    field = [
        Point(lng=-47.90, lat=-15.80),
        Point(lng=-47.88, lat=-15.80),
        Point(lng=-47.88, lat=-15.79),
        Point(lng=-47.90, lat=-15.79),
    ]
    bounds = bounding_box(field)
    raster = synthesize(0.55, field, bounds, 64, 32)

    png = encode_png(raster)

    assert png.startswith(b"\x89PNG\r\n\x1a\n")
    image = Image.open(io.BytesIO(png))
    assert image.size == (64, 32)
    assert image.mode == "RGBA"
    assert image.tobytes() == bytes(raster.data)
