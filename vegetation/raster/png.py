from __future__ import annotations

import io

from PIL import Image

from .base import RasterBuffer


def encode_png(raster: RasterBuffer) -> bytes:
    """Encode an RGBA raster as PNG bytes."""

    image = Image.frombytes(
        "RGBA", (raster.width, raster.height), bytes(raster.data)
    )
    buffer = io.BytesIO()
    image.save(buffer, format="PNG", optimize=True)
    return buffer.getvalue()
