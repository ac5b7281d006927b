from __future__ import annotations

# ruff: noqa: S101
from datetime import date, timedelta

import pytest
from rest_framework.exceptions import ValidationError

from vegetation.exceptions import (
    AuthError,
    GeometryError,
    TileFetchError,
    UpstreamError,
)
from vegetation.geometry import Point
from vegetation.services import (
    DEFAULT_HISTORY_DAYS,
    DEFAULT_INTERVAL_DAYS,
    MAX_DATERANGE_DAYS,
    MAX_INTERVAL_DAYS,
    PREVIEW_DEFAULT_NDVI,
    VegetationService,
    get_service,
    normalize_history_params,
)
from vegetation.tiles.cache import TileUrlCache

from .fakes import (
    SQUARE,
    FakeClock,
    FakeStatsEngine,
    FakeTileClient,
    stat_point,
)

WIDE_FIELD = [
    Point(lng=0.0, lat=0.0),
    Point(lng=0.02, lat=0.0),
    Point(lng=0.02, lat=0.01),
    Point(lng=0.0, lat=0.01),
]


def _service(
    stats: FakeStatsEngine | None = None,
    tiles: FakeTileClient | None = None,
    clock: FakeClock | None = None,
) -> VegetationService:
    return VegetationService(
        stats_engine=stats or FakeStatsEngine(),
        tile_client=tiles or FakeTileClient(),  # type: ignore[arg-type]
        tile_cache=TileUrlCache(clock=clock or FakeClock()),
    )


def test_normalize_history_params_defaults() -> None:
    today = date(2024, 6, 30)
    params = normalize_history_params(None, None, None, today=today)
    assert params.end == today
    assert params.start == today - timedelta(days=DEFAULT_HISTORY_DAYS)
    assert params.interval_days == DEFAULT_INTERVAL_DAYS
    assert params.max_cloud == 50


def test_normalize_history_params_clamps() -> None:
    params = normalize_history_params(
        date(2024, 1, 1), date(2024, 2, 1), 500, 150
    )
    assert params.interval_days == MAX_INTERVAL_DAYS
    assert params.max_cloud == 100


def test_normalize_history_params_rejects_inverted_range() -> None:
    with pytest.raises(ValidationError):
        normalize_history_params(date(2024, 2, 1), date(2024, 1, 1), 5)


def test_normalize_history_params_rejects_long_range() -> None:
    end = date(2024, 1, 1)
    start = end - timedelta(days=MAX_DATERANGE_DAYS + 1)
    with pytest.raises(ValidationError):
        normalize_history_params(start, end, 5)


def test_field_history_returns_points_and_summary() -> None:
    stats = FakeStatsEngine(
        [
            stat_point(date(2024, 1, 1), 0.4),
            stat_point(date(2024, 1, 6), 0.6),
        ]
    )
    params = normalize_history_params(
        date(2024, 1, 1), date(2024, 1, 31), 5, 30
    )

    result = _service(stats).field_history(SQUARE, params)

    assert [p.mean for p in result.points] == [0.4, 0.6]
    assert result.summary["latest"] == 0.6
    assert result.summary["count"] == 2
    assert stats.calls == [
        {
            "start": date(2024, 1, 1),
            "end": date(2024, 1, 31),
            "interval": 5,
            "max_cloud": 30,
        }
    ]


def test_field_history_rejects_degenerate_polygon_before_fetch() -> None:
    stats = FakeStatsEngine()
    params = normalize_history_params(date(2024, 1, 1), date(2024, 1, 2), 5)
    with pytest.raises(GeometryError):
        _service(stats).field_history(SQUARE[:2], params)
    assert stats.calls == []


def test_field_history_propagates_upstream_errors() -> None:
    stats = FakeStatsEngine(error=UpstreamError(500, "boom"))
    params = normalize_history_params(date(2024, 1, 1), date(2024, 1, 2), 5)
    with pytest.raises(UpstreamError):
        _service(stats).field_history(SQUARE, params)


def test_field_preview_with_explicit_value() -> None:
    stats = FakeStatsEngine()
    result = _service(stats).field_preview(WIDE_FIELD, ndvi=0.7)

    assert result.source == "request"
    assert result.base_value == 0.7
    assert result.png.startswith(b"\x89PNG")
    assert stats.calls == []


def test_field_preview_sizes_to_bbox_aspect() -> None:
    result = _service().field_preview(
        WIDE_FIELD, ndvi=0.5, max_dimension=256
    )
    assert result.width == 256
    assert result.height == 128
    assert result.corners[0] == [0.0, 0.01]
    assert result.center == Point(lng=0.01, lat=0.005)
    assert result.area_hectares > 0


def test_field_preview_uses_latest_statistics() -> None:
    stats = FakeStatsEngine(
        [
            stat_point(date(2024, 1, 1), 0.41),
            stat_point(date(2024, 1, 6), 0.73),
        ]
    )
    result = _service(stats).field_preview(WIDE_FIELD)
    assert result.source == "statistics"
    assert result.base_value == 0.73


def test_field_preview_defaults_without_statistics() -> None:
    result = _service(FakeStatsEngine()).field_preview(WIDE_FIELD)
    assert result.source == "default"
    assert result.base_value == PREVIEW_DEFAULT_NDVI


@pytest.mark.parametrize(
    "error", [AuthError("no credentials"), UpstreamError(502, "bad")]
)
def test_field_preview_falls_back_when_statistics_fail(
    error: Exception,
) -> None:
    result = _service(FakeStatsEngine(error=error)).field_preview(WIDE_FIELD)
    assert result.source == "default"
    assert result.png


def test_field_preview_rejects_zero_extent() -> None:
    collinear = [
        Point(lng=0.0, lat=1.0),
        Point(lng=1.0, lat=1.0),
        Point(lng=2.0, lat=1.0),
    ]
    with pytest.raises(GeometryError):
        _service().field_preview(collinear, ndvi=0.5)


def test_field_preview_headers() -> None:
    result = _service().field_preview(WIDE_FIELD, ndvi=0.5)
    headers = result.headers()
    assert headers["X-Ndvi-Source"] == "request"
    assert headers["X-Ndvi-Value"] == "0.500"
    assert headers["X-Ndvi-Bounds"] == "0.0,0.0,0.02,0.01"


def test_field_tile_caches_template_per_field() -> None:
    tiles = FakeTileClient()
    service = _service(tiles=tiles)

    first = service.field_tile(1, "poly-1", 10, 20, 30)
    second = service.field_tile(1, "poly-1", 10, 21, 30)

    assert first is not None and second is not None
    assert first.cached_template is False
    assert second.cached_template is True
    assert tiles.resolved == ["poly-1"]
    assert tiles.fetched == [
        "https://tiles.example.com/10/20/30?appid=k&paletteid=3",
        "https://tiles.example.com/10/21/30?appid=k&paletteid=3",
    ]


def test_field_tile_re_resolves_after_ttl() -> None:
    clock = FakeClock()
    tiles = FakeTileClient()
    service = _service(tiles=tiles, clock=clock)

    service.field_tile(1, "poly-1", 1, 1, 1)
    clock.advance(300_000)
    service.field_tile(1, "poly-1", 1, 1, 1)

    assert tiles.resolved == ["poly-1", "poly-1"]


def test_field_tile_none_when_no_image() -> None:
    tiles = FakeTileClient(template=None)
    service = _service(tiles=tiles)
    assert service.field_tile(1, "poly-1", 1, 1, 1) is None
    assert service.tile_cache.get(1) is None


def test_field_tile_fetch_failure_propagates() -> None:
    tiles = FakeTileClient(fetch_error=TileFetchError(404, "missing"))
    with pytest.raises(TileFetchError):
        _service(tiles=tiles).field_tile(1, "poly-1", 1, 1, 1)


def test_get_service_is_process_singleton() -> None:
    get_service.cache_clear()
    try:
        assert get_service() is get_service()
    finally:
        get_service.cache_clear()
