"""Agromonitoring client for NDVI tile discovery and retrieval."""

from __future__ import annotations

import logging
import os
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Final

import httpx
from django.conf import settings

from vegetation.exceptions import (
    TileFetchError,
    UpstreamError,
    truncate_snippet,
)
from vegetation.geometry import Point, to_geojson_polygon
from vegetation.metrics import (
    vegetation_upstream_latency_seconds,
    vegetation_upstream_requests_total,
)

from ..engines.tokens import DEFAULT_TIMEOUT

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL: Final[str] = str(
    getattr(
        settings,
        "AGROMONITORING_BASE_URL",
        "https://api.agromonitoring.com/agro/1.0",
    )
)
IMAGE_SEARCH_DAYS: Final[int] = int(
    getattr(settings, "VEGETATION_IMAGE_SEARCH_DAYS", 60)
)
MAX_IMAGE_CLOUD: Final[float] = float(
    getattr(settings, "VEGETATION_MAX_CLOUD", 50)
)
CLOUD_TIE_WINDOW: Final[float] = 15.0


@dataclass(frozen=True)
class SatelliteImage:
    """One acquisition returned by the image search endpoint."""

    acquired_at: int
    cloud: float
    tile_ndvi: str | None

    @classmethod
    def from_payload(cls, raw: Mapping[str, Any]) -> SatelliteImage:
        tiles = raw.get("tile")
        ndvi = tiles.get("ndvi") if isinstance(tiles, Mapping) else None
        try:
            return cls(
                acquired_at=int(raw.get("dt", 0)),
                cloud=float(raw.get("cl", 100)),
                tile_ndvi=str(ndvi) if ndvi else None,
            )
        except (TypeError, ValueError) as exc:
            raise UpstreamError(
                None,
                f"Malformed image search entry: {raw!r}",
                provider=AgromonitoringClient.provider,
            ) from exc


@dataclass(frozen=True)
class TileImage:
    content: bytes
    content_type: str


def select_image(images: Sequence[SatelliteImage]) -> SatelliteImage | None:
    """Pick the image to serve tiles from.

    Images under the cloud ceiling are preferred. Among those, clearer images
    win unless two are within 15 cloud points, in which case the newer one
    wins. Without any candidate under the ceiling the least cloudy image is
    used.
    """

    if not images:
        return None
    candidates = [img for img in images if img.cloud < MAX_IMAGE_CLOUD]
    if not candidates:
        return min(images, key=lambda img: img.cloud)

    best = candidates[0]
    for image in candidates[1:]:
        if _preferred(image, best):
            best = image
    return best


def _preferred(image: SatelliteImage, current: SatelliteImage) -> bool:
    cloud_diff = image.cloud - current.cloud
    if abs(cloud_diff) > CLOUD_TIE_WINDOW:
        return cloud_diff < 0
    return image.acquired_at > current.acquired_at


class AgromonitoringClient:
    """Thin synchronous wrapper over the Agromonitoring REST API."""

    provider: Final[str] = "agromonitoring"

    def __init__(
        self,
        api_key: str | None = None,
        *,
        base_url: str | None = None,
        timeout_seconds: float | None = None,
        http: httpx.Client | None = None,
    ) -> None:
        self.api_key = (
            api_key
            or getattr(settings, "AGROMONITORING_API_KEY", None)
            or os.getenv("AGROMONITORING_API_KEY", "")
        )
        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self.timeout_seconds = timeout_seconds or DEFAULT_TIMEOUT
        self._http = http or httpx.Client(timeout=self.timeout_seconds)

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def search_images(
        self, polygon_id: str, start: datetime, end: datetime
    ) -> list[SatelliteImage]:
        params = {
            "start": int(start.timestamp()),
            "end": int(end.timestamp()),
            "polyid": polygon_id,
        }
        response = self._request(
            "GET", "/image/search", endpoint="image_search", params=params
        )
        payload = self._decode(response)
        if not isinstance(payload, list):
            raise UpstreamError(
                response.status_code,
                "Image search response is not a list",
                provider=self.provider,
            )
        return [
            SatelliteImage.from_payload(item)
            for item in payload
            if isinstance(item, Mapping)
        ]

    def resolve_tile_base_url(
        self, polygon_id: str, *, now: datetime | None = None
    ) -> str | None:
        """Return the NDVI tile template of the best recent image, if any."""

        end = now or datetime.now(timezone.utc)
        start = end - timedelta(days=IMAGE_SEARCH_DAYS)
        images = self.search_images(polygon_id, start, end)
        image = select_image(images)
        logger.info(
            "vegetation.tiles.images polygon_id=%s found=%s selected_dt=%s",
            polygon_id,
            len(images),
            image.acquired_at if image else None,
        )
        if image is None or not image.tile_ndvi:
            return None
        return image.tile_ndvi

    def fetch_tile(self, url: str) -> TileImage:
        try:
            response = self._send("GET", url, endpoint="tile")
        except UpstreamError as exc:
            raise TileFetchError(
                exc.status_code, exc.snippet, provider=self.provider
            ) from exc
        return TileImage(
            content=response.content,
            content_type=response.headers.get("content-type", "image/png"),
        )

    def create_polygon(
        self, name: str, points: Sequence[Point]
    ) -> dict[str, Any]:
        body = {
            "name": name,
            "geo_json": {
                "type": "Feature",
                "properties": {},
                "geometry": to_geojson_polygon(points),
            },
        }
        response = self._request(
            "POST", "/polygons", endpoint="polygons", json=body
        )
        payload = self._decode(response)
        if not isinstance(payload, dict) or "id" not in payload:
            raise UpstreamError(
                response.status_code,
                "Polygon response is missing an id",
                provider=self.provider,
            )
        logger.info(
            "vegetation.tiles.polygon_created polygon_id=%s", payload["id"]
        )
        return payload

    def _request(
        self,
        method: str,
        path: str,
        *,
        endpoint: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> httpx.Response:
        if not self.api_key:
            raise UpstreamError(
                None,
                "AGROMONITORING_API_KEY is not configured",
                provider=self.provider,
            )
        query = {**(params or {}), "appid": self.api_key}
        return self._send(
            method,
            f"{self.base_url}{path}",
            endpoint=endpoint,
            params=query,
            json=json,
        )

    def _send(
        self,
        method: str,
        url: str,
        *,
        endpoint: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> httpx.Response:
        started = time.monotonic()
        try:
            response = self._http.request(
                method,
                url,
                params=params,
                json=json,
                timeout=self.timeout_seconds,
            )
        except httpx.RequestError as exc:
            vegetation_upstream_requests_total.labels(
                provider=self.provider, endpoint=endpoint, outcome="network"
            ).inc()
            raise UpstreamError(
                None, str(exc), provider=self.provider
            ) from exc
        vegetation_upstream_latency_seconds.labels(
            provider=self.provider, endpoint=endpoint
        ).observe(time.monotonic() - started)

        if not response.is_success:
            vegetation_upstream_requests_total.labels(
                provider=self.provider, endpoint=endpoint, outcome="error"
            ).inc()
            snippet = truncate_snippet(response.text)
            logger.warning(
                "vegetation.tiles.upstream_error "
                "endpoint=%s status=%s body=%s",
                endpoint,
                response.status_code,
                snippet or "<empty>",
            )
            raise UpstreamError(
                response.status_code, snippet, provider=self.provider
            )
        vegetation_upstream_requests_total.labels(
            provider=self.provider, endpoint=endpoint, outcome="success"
        ).inc()
        return response

    def _decode(self, response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamError(
                response.status_code,
                "Response is not valid JSON",
                provider=self.provider,
            ) from exc
