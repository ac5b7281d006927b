from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, timedelta
from functools import lru_cache
from typing import Any

from django.conf import settings
from rest_framework.exceptions import ValidationError

from .engines.base import NdviStatPoint, StatisticsEngine
from .engines.copernicus import (
    DEFAULT_MAX_CLOUD,
    CopernicusStatisticsEngine,
    summarize,
)
from .exceptions import AuthError, GeometryError, UpstreamError
from .geometry import (
    BoundingBox,
    Point,
    area_hectares,
    aspect_sized_dimensions,
    bounding_box,
    centroid,
    overlay_corners,
    validate_polygon,
)
from .metrics import vegetation_previews_total
from .palette import SYNTHETIC_PALETTE, get_palette
from .raster.png import encode_png
from .raster.synth import synthesize
from .tiles.agromonitoring import AgromonitoringClient
from .tiles.cache import DEFAULT_PALETTE_ID, TileUrlCache, build_tile_url

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_DAYS = int(
    getattr(settings, "VEGETATION_DEFAULT_INTERVAL_DAYS", 5)
)
DEFAULT_HISTORY_DAYS = int(
    getattr(settings, "VEGETATION_DEFAULT_HISTORY_DAYS", 365)
)
MAX_DATERANGE_DAYS = int(
    getattr(settings, "VEGETATION_MAX_DATERANGE_DAYS", 730)
)
MAX_INTERVAL_DAYS = 90
PREVIEW_MAX_DIMENSION = int(
    getattr(settings, "VEGETATION_PREVIEW_MAX_DIMENSION", 512)
)
PREVIEW_DEFAULT_NDVI = float(
    getattr(settings, "VEGETATION_PREVIEW_DEFAULT_NDVI", 0.6)
)
PREVIEW_LOOKBACK_DAYS = 30


@dataclass(frozen=True)
class HistoryParams:
    start: date
    end: date
    interval_days: int
    max_cloud: int


@dataclass(frozen=True)
class HistoryResult:
    points: list[NdviStatPoint]
    summary: dict[str, Any]
    params: HistoryParams


@dataclass(frozen=True)
class PreviewResult:
    png: bytes
    width: int
    height: int
    bounds: BoundingBox
    corners: list[list[float]]
    center: Point
    area_hectares: float
    base_value: float
    source: str
    palette: str = SYNTHETIC_PALETTE.name

    def headers(self) -> dict[str, str]:
        """Preview metadata carried alongside the PNG body."""

        return {
            "X-Ndvi-Source": self.source,
            "X-Ndvi-Value": f"{self.base_value:.3f}",
            "X-Ndvi-Bounds": ",".join(str(v) for v in self.bounds.as_list()),
            "X-Ndvi-Center": f"{self.center.lng},{self.center.lat}",
            "X-Field-Area-Ha": f"{self.area_hectares:.2f}",
        }


@dataclass(frozen=True)
class TileResult:
    content: bytes
    content_type: str
    cached_template: bool


def normalize_history_params(
    start: date | None,
    end: date | None,
    interval_days: int | None,
    max_cloud: int | None = None,
    *,
    today: date | None = None,
) -> HistoryParams:
    end = end or today or date.today()
    start = start or end - timedelta(days=DEFAULT_HISTORY_DAYS)
    if start > end:
        raise ValidationError("start must be on or before end.")
    if (end - start).days > MAX_DATERANGE_DAYS:
        raise ValidationError(
            "Requested date range exceeds VEGETATION_MAX_DATERANGE_DAYS."
        )

    interval = interval_days or DEFAULT_INTERVAL_DAYS
    interval = max(1, min(interval, MAX_INTERVAL_DAYS))

    cloud = max_cloud if max_cloud is not None else DEFAULT_MAX_CLOUD
    cloud = max(0, min(cloud, 100))

    return HistoryParams(
        start=start, end=end, interval_days=interval, max_cloud=cloud
    )


class VegetationService:
    """Coordinates statistics, tiles and synthesized previews for fields."""

    def __init__(
        self,
        stats_engine: StatisticsEngine,
        tile_client: AgromonitoringClient,
        tile_cache: TileUrlCache | None = None,
    ) -> None:
        self.stats_engine = stats_engine
        self.tile_client = tile_client
        self.tile_cache = tile_cache or TileUrlCache()

    def field_history(
        self, points: Sequence[Point], params: HistoryParams
    ) -> HistoryResult:
        validate_polygon(points)
        stats = self.stats_engine.get_timeseries(
            points,
            params.start,
            params.end,
            params.interval_days,
            max_cloud=params.max_cloud,
        )
        return HistoryResult(
            points=stats, summary=summarize(stats), params=params
        )

    def field_preview(
        self,
        points: Sequence[Point],
        *,
        ndvi: float | None = None,
        palette_name: str | None = None,
        max_dimension: int = PREVIEW_MAX_DIMENSION,
    ) -> PreviewResult:
        validate_polygon(points)
        bounds = bounding_box(points)
        if bounds.lng_range == 0 or bounds.lat_range == 0:
            raise GeometryError("Field polygon has a zero-width extent.")
        width, height = aspect_sized_dimensions(bounds, max_dimension)
        if width <= 0 or height <= 0:
            raise GeometryError("Field polygon is too thin to render.")
        palette = get_palette(palette_name or SYNTHETIC_PALETTE.name)

        base_value, source = self._preview_base_value(points, ndvi)
        raster = synthesize(base_value, points, bounds, width, height, palette)
        vegetation_previews_total.labels(source=source).inc()
        logger.info(
            "vegetation.preview.rendered source=%s value=%.3f size=%sx%s",
            source,
            base_value,
            width,
            height,
        )
        return PreviewResult(
            png=encode_png(raster),
            width=width,
            height=height,
            bounds=bounds,
            corners=overlay_corners(bounds),
            center=centroid(points),
            area_hectares=area_hectares(points),
            base_value=base_value,
            source=source,
            palette=palette.name,
        )

    def _preview_base_value(
        self, points: Sequence[Point], ndvi: float | None
    ) -> tuple[float, str]:
        if ndvi is not None:
            return float(ndvi), "request"
        try:
            latest = self.stats_engine.get_latest(
                points, lookback_days=PREVIEW_LOOKBACK_DAYS
            )
        except (AuthError, UpstreamError) as exc:
            logger.warning("vegetation.preview.stats_unavailable err=%s", exc)
            latest = None
        if latest is None:
            return PREVIEW_DEFAULT_NDVI, "default"
        return latest.mean, "statistics"

    def field_tile(
        self,
        field_id: str | int,
        polygon_id: str,
        z: int,
        x: int,
        y: int,
        palette_id: int = DEFAULT_PALETTE_ID,
    ) -> TileResult | None:
        template = self.tile_cache.get(field_id)
        cached = template is not None
        if template is None:
            template = self.tile_client.resolve_tile_base_url(polygon_id)
            if template is None:
                logger.info(
                    "vegetation.tiles.unavailable field_id=%s polygon_id=%s",
                    field_id,
                    polygon_id,
                )
                return None
            self.tile_cache.set(field_id, template)

        tile = self.tile_client.fetch_tile(
            build_tile_url(template, z, x, y, palette_id)
        )
        return TileResult(
            content=tile.content,
            content_type=tile.content_type,
            cached_template=cached,
        )


@lru_cache(maxsize=1)
def get_service() -> VegetationService:
    """Return the process-wide service with its shared caches."""

    return VegetationService(
        stats_engine=CopernicusStatisticsEngine(),
        tile_client=AgromonitoringClient(),
        tile_cache=TileUrlCache(),
    )
