"""Cache of resolved tile URL templates per field."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Final
from urllib.parse import urlsplit, urlunsplit

from django.conf import settings
from django.core.cache import caches

from vegetation.metrics import (
    vegetation_cache_hit_total,
    vegetation_cache_miss_total,
)
from vegetation.numutils import Clock, system_clock_ms

logger = logging.getLogger(__name__)

DEFAULT_TTL_MS: Final[int] = (
    int(getattr(settings, "VEGETATION_TILE_CACHE_TTL_SECONDS", 300)) * 1000
)
DEFAULT_PALETTE_ID: Final[int] = int(
    getattr(settings, "VEGETATION_TILE_PALETTE_ID", 3)
)


@dataclass(frozen=True)
class CachedTileEntry:
    url: str
    stored_at_ms: int


class TileUrlCache:
    """TTL cache mapping a field id to its current tile URL template.

    Entries live in a Django cache and are replaced wholesale. Expiry is
    judged with the injected clock; the backend timeout evicts stale
    entries.
    """

    def __init__(
        self,
        ttl_ms: int = DEFAULT_TTL_MS,
        clock: Clock | None = None,
        *,
        cache_alias: str = "default",
    ) -> None:
        self.ttl_ms = ttl_ms
        self._clock = clock or system_clock_ms
        self.cache = caches[cache_alias]

    @staticmethod
    def _key(field_id: str | int) -> str:
        return f"vegetation:tile_url:{field_id}"

    def get(self, field_id: str | int) -> str | None:
        entry = self.cache.get(self._key(field_id))
        if (
            isinstance(entry, CachedTileEntry)
            and self._clock() - entry.stored_at_ms < self.ttl_ms
        ):
            vegetation_cache_hit_total.labels(layer="tile_url").inc()
            return entry.url
        vegetation_cache_miss_total.labels(layer="tile_url").inc()
        return None

    def set(self, field_id: str | int, url: str) -> None:
        entry = CachedTileEntry(url=url, stored_at_ms=self._clock())
        self.cache.set(
            self._key(field_id),
            entry,
            timeout=max(math.ceil(self.ttl_ms / 1000), 1),
        )
        logger.debug("vegetation.tile_url.stored field_id=%s", field_id)


def build_tile_url(
    base_url: str,
    z: int,
    x: int,
    y: int,
    palette_id: int = DEFAULT_PALETTE_ID,
) -> str:
    """Fill a ``{z}/{x}/{y}`` template and pin it to https with a palette."""

    url = (
        base_url.replace("{z}", str(z))
        .replace("{x}", str(x))
        .replace("{y}", str(y))
    )
    parts = urlsplit(url)
    if parts.scheme == "http":
        parts = parts._replace(scheme="https")
    query = parts.query
    params = [pair.split("=", 1)[0] for pair in query.split("&") if pair]
    if "paletteid" not in params:
        suffix = f"paletteid={palette_id}"
        query = f"{query}&{suffix}" if query else suffix
    return urlunsplit(parts._replace(query=query))
