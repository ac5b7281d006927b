"""Colour gradients for NDVI rendering.

A palette is an ordered list of ``(value, rgb)`` stops over ``[0, 1]``.
The same stops drive server-side rendering (evalscripts, synthesized
previews) and are published to clients for per-pixel colouring.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any, Final, TypeAlias

from .exceptions import PaletteError
from .numutils import clamp, round_half_up

RGB: TypeAlias = tuple[int, int, int]

NDVI_DISPLAY_FLOOR: Final[float] = -0.2
NDVI_DISPLAY_CEILING: Final[float] = 1.0
CLOUD_SCL_CLASSES: Final[tuple[int, ...]] = (8, 9, 10)


@dataclass(frozen=True)
class PaletteStop:
    value: float
    color: RGB


class Palette:
    """Validated, immutable colour ramp."""

    def __init__(
        self,
        stops: Iterable[PaletteStop | tuple[float, Sequence[int]]],
        *,
        name: str = "custom",
        label: str | None = None,
        description: str = "",
    ) -> None:
        normalized = tuple(self._coerce_stop(stop) for stop in stops)
        if len(normalized) < 2:
            raise PaletteError("Palette requires at least two stops.")
        for previous, current in zip(normalized, normalized[1:]):
            if current.value <= previous.value:
                raise PaletteError(
                    "Palette stop values must be strictly ascending: "
                    f"{previous.value} then {current.value}."
                )
        self.stops: tuple[PaletteStop, ...] = normalized
        self.name = name
        self.label = label or name
        self.description = description

    @staticmethod
    def _coerce_stop(
        stop: PaletteStop | tuple[float, Sequence[int]],
    ) -> PaletteStop:
        if isinstance(stop, PaletteStop):
            value, color = stop.value, stop.color
        else:
            try:
                value, color = stop
            except (TypeError, ValueError) as exc:
                raise PaletteError(f"Invalid palette stop: {stop!r}") from exc
        if not isinstance(value, int | float) or not math.isfinite(value):
            raise PaletteError(f"Invalid palette stop value: {value!r}")
        if not 0.0 <= value <= 1.0:
            raise PaletteError(
                f"Palette stop value must lie in [0, 1]: {value}"
            )
        channels = tuple(color)
        if len(channels) != 3 or not all(
            isinstance(c, int) and not isinstance(c, bool) and 0 <= c <= 255
            for c in channels
        ):
            raise PaletteError(f"Invalid palette colour: {color!r}")
        return PaletteStop(
            value=float(value),
            color=(channels[0], channels[1], channels[2]),
        )

    @property
    def min_value(self) -> float:
        return self.stops[0].value

    @property
    def max_value(self) -> float:
        return self.stops[-1].value

    def color_for(self, value: float) -> RGB | None:
        """Interpolate the colour for ``value``.

        Returns ``None`` for NaN or infinite input; callers treat that as a
        transparent pixel.
        """

        if not math.isfinite(value):
            return None
        value = clamp(value, self.min_value, self.max_value)
        stops = self.stops
        for lower, upper in zip(stops, stops[1:]):
            if lower.value <= value <= upper.value:
                t = (value - lower.value) / (upper.value - lower.value)
                return (
                    _channel(lower.color[0], upper.color[0], t),
                    _channel(lower.color[1], upper.color[1], t),
                    _channel(lower.color[2], upper.color[2], t),
                )
        return stops[-1].color  # pragma: no cover - clamped above

    def as_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "label": self.label,
            "description": self.description,
            "stops": [
                {"value": stop.value, "color": list(stop.color)}
                for stop in self.stops
            ],
        }

    def __repr__(self) -> str:  # pragma: no cover - convenience only
        return f"Palette(name={self.name!r}, stops={len(self.stops)})"


def _channel(start: int, end: int, t: float) -> int:
    return int(clamp(round_half_up(start + t * (end - start)), 0, 255))


def normalize_ndvi(value: float) -> float:
    """Map a raw NDVI value onto the ``[0, 1]`` palette domain."""

    span = NDVI_DISPLAY_CEILING - NDVI_DISPLAY_FLOOR
    return clamp((value - NDVI_DISPLAY_FLOOR) / span, 0.0, 1.0)


TILE_PALETTES: Final[dict[str, Palette]] = {
    "classic": Palette(
        [
            (0.0, (139, 69, 19)),
            (0.2, (255, 255, 0)),
            (0.4, (144, 238, 144)),
            (0.6, (34, 139, 34)),
            (0.8, (0, 100, 0)),
            (1.0, (0, 77, 0)),
        ],
        name="classic",
        label="Classic",
        description="Traditional green ramp for vegetation",
    ),
    "contrast": Palette(
        [
            (0.0, (255, 0, 0)),
            (0.2, (255, 165, 0)),
            (0.4, (255, 255, 0)),
            (0.6, (144, 238, 144)),
            (0.8, (50, 205, 50)),
            (1.0, (0, 100, 0)),
        ],
        name="contrast",
        label="Contrast",
        description="High-contrast red to green",
    ),
    "viridis": Palette(
        [
            (0.0, (68, 1, 84)),
            (0.25, (59, 82, 139)),
            (0.5, (33, 145, 140)),
            (0.75, (94, 201, 98)),
            (1.0, (253, 231, 37)),
        ],
        name="viridis",
        label="Viridis",
        description="Perceptually uniform scientific ramp",
    ),
    "rdylgn": Palette(
        [
            (0.0, (165, 0, 38)),
            (0.25, (244, 109, 67)),
            (0.5, (255, 255, 191)),
            (0.75, (166, 217, 106)),
            (1.0, (0, 104, 55)),
        ],
        name="rdylgn",
        label="Red-Yellow-Green",
        description="Smooth diverging ramp for general analysis",
    ),
    "pasture": Palette(
        [
            (0.0, (139, 90, 43)),
            (0.3, (210, 180, 140)),
            (0.5, (154, 205, 50)),
            (0.7, (107, 142, 35)),
            (0.9, (34, 139, 34)),
        ],
        name="pasture",
        label="Pasture",
        description="Tuned for grazing land monitoring",
    ),
}

# Nine fixed bands over raw NDVI, used only for synthesized previews.
SYNTHETIC_PALETTE: Final[Palette] = Palette(
    [
        (0.1, (211, 47, 47)),
        (0.2, (229, 57, 53)),
        (0.3, (255, 87, 34)),
        (0.4, (255, 152, 0)),
        (0.5, (255, 193, 7)),
        (0.6, (205, 220, 57)),
        (0.7, (139, 195, 74)),
        (0.8, (76, 175, 80)),
        (0.9, (46, 125, 50)),
    ],
    name="synthetic",
    label="Preview",
    description="Fixed nine-band ramp for synthesized previews",
)

DEFAULT_TILE_PALETTE: Final[str] = "contrast"


def get_palette(name: str | None) -> Palette:
    key = (name or DEFAULT_TILE_PALETTE).lower()
    if key == SYNTHETIC_PALETTE.name:
        return SYNTHETIC_PALETTE
    try:
        return TILE_PALETTES[key]
    except KeyError as exc:
        raise PaletteError(f"Unknown palette: {name}") from exc


def palette_catalog() -> list[dict[str, Any]]:
    catalog = [palette.as_dict() for palette in TILE_PALETTES.values()]
    catalog.append(SYNTHETIC_PALETTE.as_dict())
    return catalog


def render_evalscript(palette: Palette) -> str:
    """Build a Sentinel Hub evalscript colouring NDVI with ``palette``."""

    stops = ",\n    ".join(
        f"[{stop.value}, [{', '.join(str(c) for c in stop.color)}]]"
        for stop in palette.stops
    )
    cloud_test = " || ".join(f"sample.SCL === {c}" for c in CLOUD_SCL_CLASSES)
    span = NDVI_DISPLAY_CEILING - NDVI_DISPLAY_FLOOR
    return f"""//VERSION=3
function setup() {{
  return {{
    input: ["B04", "B08", "SCL", "dataMask"],
    output: {{ bands: 4 }}
  }};
}}

function evaluatePixel(sample) {{
  let ndvi = (sample.B08 - sample.B04) / (sample.B08 + sample.B04);
  if (isNaN(ndvi) || !isFinite(ndvi)) {{
    return [0, 0, 0, 0];
  }}
  ndvi = Math.max(0, Math.min(1, (ndvi - ({NDVI_DISPLAY_FLOOR})) / {span}));

  const stops = [
    {stops}
  ];
  let color = ndvi <= stops[0][0] ? stops[0][1] : stops[stops.length - 1][1];
  for (let i = 0; i < stops.length - 1; i++) {{
    if (ndvi >= stops[i][0] && ndvi <= stops[i + 1][0]) {{
      const t = (ndvi - stops[i][0]) / (stops[i + 1][0] - stops[i][0]);
      color = [0, 1, 2].map(
        (c) => stops[i][1][c] + t * (stops[i + 1][1][c] - stops[i][1][c])
      );
      break;
    }}
  }}

  let alpha = sample.dataMask;
  if ({cloud_test}) {{
    alpha = 0;
  }}
  return [color[0] / 255, color[1] / 255, color[2] / 255, alpha];
}}
"""
