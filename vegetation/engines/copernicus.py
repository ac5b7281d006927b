"""Copernicus Data Space NDVI engine using the Statistical API."""

from __future__ import annotations

import json
import logging
import math
import os
import re
import time
from collections.abc import Mapping, Sequence
from datetime import date, datetime, timedelta
from typing import Any, Final

import httpx
from django.conf import settings

from vegetation.exceptions import UpstreamError, truncate_snippet
from vegetation.geometry import Point, to_geojson_polygon
from vegetation.metrics import (
    vegetation_upstream_latency_seconds,
    vegetation_upstream_requests_total,
)

from .base import NdviStatPoint, StatisticsEngine
from .tokens import DEFAULT_TIMEOUT, TokenCache

logger = logging.getLogger(__name__)

DEFAULT_STATISTICS_URL: Final[str] = str(
    getattr(
        settings,
        "COPERNICUS_STATISTICS_URL",
        "https://sh.dataspace.copernicus.eu/api/v1/statistics",
    )
)
DEFAULT_INTERVAL_DAYS: Final[int] = int(
    getattr(settings, "VEGETATION_DEFAULT_INTERVAL_DAYS", 5)
)
DEFAULT_MAX_CLOUD: Final[int] = int(
    getattr(settings, "VEGETATION_MAX_CLOUD", 50)
)
DEFAULT_LOOKBACK_DAYS: Final[int] = int(
    getattr(settings, "VEGETATION_LATEST_LOOKBACK_DAYS", 30)
)
DEFAULT_RESOLUTION_METERS: Final[int] = 10
MAX_NO_DATA_RATIO: Final[float] = 0.8
STAT_DECIMALS: Final[int] = 3
PERCENTILES: Final[tuple[int, ...]] = (25, 50, 75)
STATS_OUTPUT: Final[str] = "ndvi"
CRS84: Final[str] = "http://www.opengis.net/def/crs/OGC/1.3/CRS84"

_DURATION_RE: Final[re.Pattern[str]] = re.compile(
    r"^P(?=\d)(\d+Y)?(\d+M)?(\d+W)?(\d+D)?$"
)

STATS_EVALSCRIPT: Final[str] = """
//VERSION=3
function setup() {
  return {
    input: [{bands: ["B04", "B08", "SCL", "dataMask"], units: "DN"}],
    output: [
      { id: "ndvi", bands: 1, sampleType: "FLOAT32" },
      { id: "dataMask", bands: 1 }
    ]
  };
}

// cloud shadow, water, medium/high cloud probability, cirrus
const MASKED_SCL = [3, 6, 8, 9, 10];

function evaluatePixel(samples) {
  const ndvi = (samples.B08 - samples.B04) / (samples.B08 + samples.B04);
  if (!isFinite(ndvi)) {
    return { ndvi: [0], dataMask: [0] };
  }
  if (MASKED_SCL.indexOf(samples.SCL) !== -1 || samples.dataMask === 0) {
    return { ndvi: [0], dataMask: [0] };
  }
  return { ndvi: [ndvi], dataMask: [1] };
}
"""


def aggregation_interval(interval: str | int) -> str:
    """Normalize an interval to an ISO 8601 duration such as ``P5D``."""

    if isinstance(interval, bool):
        raise ValueError(f"Invalid aggregation interval: {interval!r}")
    if isinstance(interval, int):
        if interval < 1:
            raise ValueError("Aggregation interval must be at least 1 day.")
        return f"P{interval}D"
    normalized = interval.strip().upper()
    if not _DURATION_RE.match(normalized):
        raise ValueError(f"Invalid aggregation interval: {interval!r}")
    return normalized


class CopernicusStatisticsEngine(StatisticsEngine):
    """Fetch NDVI statistics for field polygons from Copernicus."""

    engine_name: Final[str] = "copernicus"

    def __init__(
        self,
        client_id: str | None = None,
        client_secret: str | None = None,
        *,
        token_cache: TokenCache | None = None,
        statistics_url: str | None = None,
        timeout_seconds: float | None = None,
        http: httpx.Client | None = None,
    ) -> None:
        self.client_id = (
            client_id
            or getattr(settings, "COPERNICUS_CLIENT_ID", None)
            or os.getenv("COPERNICUS_CLIENT_ID", "")
        )
        self.client_secret = (
            client_secret
            or getattr(settings, "COPERNICUS_CLIENT_SECRET", None)
            or os.getenv("COPERNICUS_CLIENT_SECRET", "")
        )
        self.statistics_url = statistics_url or DEFAULT_STATISTICS_URL
        self.timeout_seconds = timeout_seconds or DEFAULT_TIMEOUT
        self.token_cache = token_cache or TokenCache(
            timeout_seconds=self.timeout_seconds
        )
        self._http = http or httpx.Client(timeout=self.timeout_seconds)

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def get_timeseries(
        self,
        points: Sequence[Point],
        start: date,
        end: date,
        interval: str | int = DEFAULT_INTERVAL_DAYS,
        *,
        max_cloud: int | None = None,
    ) -> list[NdviStatPoint]:
        payload = self.build_request(
            points, start, end, interval, max_cloud=max_cloud
        )
        token = self.token_cache.acquire(self.client_id, self.client_secret)
        response = self._post(payload, token)
        stats = self.parse_response(self._decode(response))
        logger.info(
            "vegetation.stats.fetched start=%s end=%s intervals=%s",
            start,
            end,
            len(stats),
        )
        return stats

    def get_latest(
        self,
        points: Sequence[Point],
        *,
        lookback_days: int = DEFAULT_LOOKBACK_DAYS,
        today: date | None = None,
    ) -> NdviStatPoint | None:
        end = today or date.today()
        start = end - timedelta(days=lookback_days)
        stats = self.get_timeseries(points, start, end)
        if not stats:
            return None
        return max(stats, key=lambda p: p.interval_start)

    def build_request(
        self,
        points: Sequence[Point],
        start: date,
        end: date,
        interval: str | int = DEFAULT_INTERVAL_DAYS,
        *,
        max_cloud: int | None = None,
        resolution: int = DEFAULT_RESOLUTION_METERS,
    ) -> dict[str, Any]:
        if start > end:
            raise ValueError("start must be on or before end.")
        geometry = to_geojson_polygon(points)
        cloud = DEFAULT_MAX_CLOUD if max_cloud is None else max_cloud
        payload: dict[str, Any] = {
            "input": {
                "bounds": {
                    "geometry": geometry,
                    "properties": {"crs": CRS84},
                },
                "data": [
                    {
                        "type": "sentinel-2-l2a",
                        "dataFilter": {
                            "maxCloudCoverage": max(0, min(int(cloud), 100)),
                            "mosaickingOrder": "leastCC",
                        },
                    }
                ],
            },
            "aggregation": {
                "timeRange": {
                    "from": datetime.combine(
                        start, datetime.min.time()
                    ).isoformat()
                    + "Z",
                    "to": datetime.combine(
                        end, datetime.max.time()
                    ).isoformat()
                    + "Z",
                },
                "aggregationInterval": {"of": aggregation_interval(interval)},
                "evalscript": STATS_EVALSCRIPT,
                "resx": resolution,
                "resy": resolution,
            },
            "calculations": {
                STATS_OUTPUT: {
                    "statistics": {
                        "default": {
                            "percentiles": {"k": list(PERCENTILES)}
                        }
                    }
                }
            },
        }
        logger.debug(
            "vegetation.stats.request payload=%s", json.dumps(payload)
        )
        return payload

    def parse_response(
        self, payload: Any, *, channel: str = STATS_OUTPUT
    ) -> list[NdviStatPoint]:
        """Convert a Statistical API response into filtered stat points.

        Intervals without a stats block for ``channel`` are skipped, as are
        intervals with no samples or more than 80% no-data samples.
        Upstream ordering is preserved.
        """

        if not isinstance(payload, Mapping):
            raise self._malformed("response is not a JSON object")
        items = payload.get("data") or []
        if not isinstance(items, list):
            raise self._malformed("`data` is not a list")

        points: list[NdviStatPoint] = []
        for item in items:
            if not isinstance(item, Mapping):
                raise self._malformed("interval entry is not an object")
            stats = self._stats_block(item, channel)
            if stats is None:
                continue
            interval_start, interval_end = self._interval_dates(item)

            sample_count = self._as_count(stats, "sampleCount")
            no_data_count = self._as_count(stats, "noDataCount", default=0)
            if (
                sample_count == 0
                or no_data_count > MAX_NO_DATA_RATIO * sample_count
            ):
                logger.debug(
                    "vegetation.stats.excluded from=%s samples=%s no_data=%s",
                    interval_start,
                    sample_count,
                    no_data_count,
                )
                continue

            p25, p50, p75 = self._percentiles(stats)
            points.append(
                NdviStatPoint(
                    interval_start=interval_start,
                    interval_end=interval_end,
                    mean=self._as_stat(stats, "mean"),
                    min=self._as_stat(stats, "min"),
                    max=self._as_stat(stats, "max"),
                    std_dev=self._as_stat(stats, "stDev"),
                    sample_count=sample_count,
                    no_data_count=no_data_count,
                    p25=p25,
                    p50=p50,
                    p75=p75,
                )
            )
        return points

    def _stats_block(
        self, item: Mapping[str, Any], channel: str
    ) -> Mapping[str, Any] | None:
        node: Any = item.get("outputs")
        for key in (channel, "bands", "B0", "stats"):
            if not isinstance(node, Mapping):
                return None
            node = node.get(key)
        return node if isinstance(node, Mapping) else None

    def _interval_dates(
        self, item: Mapping[str, Any]
    ) -> tuple[date, date | None]:
        interval = item.get("interval")
        if not isinstance(interval, Mapping) or not interval.get("from"):
            raise self._malformed("interval is missing `from`")
        start = self._parse_date(interval["from"])
        if start is None:
            raise self._malformed(
                f"invalid interval date {interval['from']!r}"
            )
        raw_to = interval.get("to")
        return start, self._parse_date(raw_to) if raw_to else None

    @staticmethod
    def _parse_date(raw: Any) -> date | None:
        try:
            return date.fromisoformat(str(raw)[:10])
        except ValueError:
            return None

    def _as_count(
        self, stats: Mapping[str, Any], key: str, *, default: int | None = None
    ) -> int:
        raw = stats.get(key, default)
        if isinstance(raw, bool) or raw is None:
            raise self._malformed(f"stats missing `{key}`")
        try:
            value = int(raw)
        except (TypeError, ValueError) as exc:
            raise self._malformed(f"non-numeric `{key}`") from exc
        if value < 0:
            raise self._malformed(f"negative `{key}`")
        return value

    def _as_stat(self, stats: Mapping[str, Any], key: str) -> float:
        return self._to_stat(stats.get(key), key)

    def _to_stat(self, raw: Any, key: str) -> float:
        if isinstance(raw, bool) or raw is None:
            raise self._malformed(f"stats missing `{key}`")
        try:
            value = float(raw)
        except (TypeError, ValueError) as exc:
            raise self._malformed(f"non-numeric `{key}`") from exc
        if not math.isfinite(value):
            raise self._malformed(f"non-finite `{key}`")
        return round(value, STAT_DECIMALS)

    def _percentiles(
        self, stats: Mapping[str, Any]
    ) -> tuple[float | None, ...]:
        """Return ``(p25, p50, p75)``; ``None`` where not reported.

        Keys may be ``p25`` or the provider's ``25.0`` form.
        """

        block = stats.get("percentiles")
        if not isinstance(block, Mapping):
            block = {}
        values: list[float | None] = []
        for k in PERCENTILES:
            raw = block.get(f"p{k}", block.get(f"{k}.0"))
            values.append(
                None
                if raw is None
                else self._to_stat(raw, f"percentiles.p{k}")
            )
        return tuple(values)

    def _malformed(self, detail: str) -> UpstreamError:
        return UpstreamError(
            None,
            f"Malformed statistics response: {detail}",
            provider=self.engine_name,
        )

    def _post(self, payload: dict[str, Any], token: str) -> httpx.Response:
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        started = time.monotonic()
        try:
            response = self._http.post(
                self.statistics_url,
                json=payload,
                headers=headers,
                timeout=self.timeout_seconds,
            )
        except httpx.RequestError as exc:
            vegetation_upstream_requests_total.labels(
                provider=self.engine_name,
                endpoint="statistics",
                outcome="network",
            ).inc()
            raise UpstreamError(
                None, str(exc), provider=self.engine_name
            ) from exc
        vegetation_upstream_latency_seconds.labels(
            provider=self.engine_name, endpoint="statistics"
        ).observe(time.monotonic() - started)

        if not response.is_success:
            vegetation_upstream_requests_total.labels(
                provider=self.engine_name,
                endpoint="statistics",
                outcome="error",
            ).inc()
            snippet = truncate_snippet(response.text)
            logger.warning(
                "vegetation.stats.upstream_error status=%s body=%s",
                response.status_code,
                snippet or "<empty>",
            )
            raise UpstreamError(
                response.status_code, snippet, provider=self.engine_name
            )
        vegetation_upstream_requests_total.labels(
            provider=self.engine_name, endpoint="statistics", outcome="success"
        ).inc()
        return response

    def _decode(self, response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamError(
                response.status_code,
                "Statistics response is not valid JSON",
                provider=self.engine_name,
            ) from exc

    def __repr__(self) -> str:  # pragma: no cover - convenience only
        return (
            "CopernicusStatisticsEngine("
            f"client_id={self.client_id}, url={self.statistics_url}, "
            f"timeout={self.timeout_seconds}"
            ")"
        )


def summarize(points: Sequence[NdviStatPoint]) -> dict[str, Any]:
    """Summarize a filtered series: latest value, mean of means and range."""

    if not points:
        return {
            "count": 0,
            "latest": None,
            "latest_date": None,
            "mean": None,
            "min": None,
            "max": None,
        }
    latest = max(points, key=lambda p: p.interval_start)
    means = [p.mean for p in points]
    return {
        "count": len(points),
        "latest": latest.mean,
        "latest_date": latest.interval_start.isoformat(),
        "mean": round(math.fsum(means) / len(means), STAT_DECIMALS),
        "min": min(p.min for p in points),
        "max": max(p.max for p in points),
    }
