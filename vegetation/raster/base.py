from __future__ import annotations

from dataclasses import dataclass, field
from typing import TypeAlias

RGBA: TypeAlias = tuple[int, int, int, int]
TRANSPARENT: RGBA = (0, 0, 0, 0)


@dataclass
class RasterBuffer:
    """Row-major RGBA pixels, four bytes per pixel, initially transparent."""

    width: int
    height: int
    data: bytearray = field(default_factory=bytearray)

    def __post_init__(self) -> None:
        expected = self.width * self.height * 4
        if not self.data:
            self.data = bytearray(expected)
        elif len(self.data) != expected:
            raise ValueError(
                f"RGBA buffer has {len(self.data)} bytes, expected {expected}."
            )

    def _offset(self, x: int, y: int) -> int:
        if not (0 <= x < self.width and 0 <= y < self.height):
            raise IndexError(
                f"Pixel ({x}, {y}) outside {self.width}x{self.height}."
            )
        return (y * self.width + x) * 4

    def get_pixel(self, x: int, y: int) -> RGBA:
        i = self._offset(x, y)
        r, g, b, a = self.data[i : i + 4]
        return r, g, b, a

    def set_pixel(self, x: int, y: int, color: RGBA) -> None:
        i = self._offset(x, y)
        self.data[i : i + 4] = bytes(color)

    def opaque_pixel_count(self) -> int:
        return sum(1 for alpha in self.data[3::4] if alpha)
