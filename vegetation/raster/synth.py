"""Deterministic procedural NDVI texture clipped to a field polygon.

Used for previews when no satellite tile is available. The output depends
only on the inputs: identical arguments give byte-identical rasters.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from typing import Final

from vegetation.exceptions import GeometryError
from vegetation.geometry import BoundingBox, Point, point_in_ring
from vegetation.numutils import clamp
from vegetation.palette import SYNTHETIC_PALETTE, Palette, normalize_ndvi

from .base import RasterBuffer

MIN_BLOCK_SIZE: Final[int] = 4
MAX_BLOCK_SIZE: Final[int] = 12
BLOCK_SIZE_DIVISOR: Final[int] = 40

# Narrower than the NDVI domain so previews read as vegetated ground.
SYNTH_VALUE_FLOOR: Final[float] = 0.30
SYNTH_VALUE_CEILING: Final[float] = 0.85


def noise_hash(x: float, y: float, seed: float) -> float:
    """Sine hash in ``[0, 1)``; constants are fixed for reproducibility."""

    n = math.sin(x * 12.9898 + y * 78.233 + seed) * 43758.5453
    return n - math.floor(n)


def pixel_block_size(width: int) -> int:
    size = clamp(width // BLOCK_SIZE_DIVISOR, MIN_BLOCK_SIZE, MAX_BLOCK_SIZE)
    return int(size)


def noise_seed(bounds: BoundingBox) -> float:
    raw = bounds.min_lng * 1000 + bounds.min_lat * 1000
    return math.fmod(abs(raw), 10000)


def block_value(base_value: float, x: int, y: int, seed: float) -> float:
    """Value of the block whose top-left pixel is ``(x, y)``."""

    value = (
        base_value
        + noise_hash(x / 50, y / 50, seed) * 0.15
        + noise_hash(x / 25, y / 25, seed + 100) * 0.08
        + noise_hash(x / 100, y / 100, seed + 200) * 0.05
        + math.sin(y / 12 + x / 60) * 0.03
    )
    stress = noise_hash(x / 30, y / 30, seed + 500)
    if stress > 0.88:
        value -= 0.18
    elif stress > 0.75:
        value -= 0.08
    elif stress < 0.08:
        value += 0.05
    return clamp(value, SYNTH_VALUE_FLOOR, SYNTH_VALUE_CEILING)


def project_ring(
    points: Sequence[Point], bounds: BoundingBox, width: int, height: int
) -> list[tuple[float, float]]:
    """Project lng/lat points to pixel space; north maps to row 0."""

    lng_range = bounds.lng_range
    lat_range = bounds.lat_range
    return [
        (
            (p.lng - bounds.min_lng) / lng_range * width,
            (bounds.max_lat - p.lat) / lat_range * height,
        )
        for p in points
    ]


def synthesize(
    base_value: float,
    points: Sequence[Point],
    bounds: BoundingBox,
    width: int,
    height: int,
    palette: Palette = SYNTHETIC_PALETTE,
) -> RasterBuffer:
    """Paint a seeded NDVI texture inside the polygon.

    Blocks whose centre falls outside the polygon are skipped; inside a kept
    block only pixels that are themselves inside the polygon are painted.
    Everything else stays fully transparent.
    """

    if width <= 0 or height <= 0:
        raise GeometryError("Raster dimensions must be positive.")
    if bounds.lng_range == 0 or bounds.lat_range == 0:
        raise GeometryError("Bounds must have a non-zero extent.")
    if len(points) < 3:
        raise GeometryError("Polygon requires at least 3 vertices.")

    raster = RasterBuffer(width, height)
    ring = project_ring(points, bounds, width, height)
    block = pixel_block_size(width)
    seed = noise_seed(bounds)

    for y in range(0, height, block):
        for x in range(0, width, block):
            if not point_in_ring(x + block / 2, y + block / 2, ring):
                continue
            value = block_value(base_value, x, y, seed)
            if palette is not SYNTHETIC_PALETTE:
                # tile palettes span the normalized display domain
                value = normalize_ndvi(value)
            color = palette.color_for(value)
            if color is None:
                continue
            rgba = (color[0], color[1], color[2], 255)
            for py in range(y, min(y + block, height)):
                for px in range(x, min(x + block, width)):
                    if point_in_ring(px, py, ring):
                        raster.set_pixel(px, py, rgba)
    return raster
