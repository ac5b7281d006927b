"""Engine abstractions for vegetation statistics providers."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from typing import Protocol

from vegetation.geometry import Point


@dataclass(frozen=True)
class NdviStatPoint:
    """NDVI statistics for one aggregation interval."""

    interval_start: date
    mean: float
    min: float
    max: float
    std_dev: float
    sample_count: int
    no_data_count: int = 0
    interval_end: date | None = None
    p25: float | None = None
    p50: float | None = None
    p75: float | None = None

    @property
    def valid_ratio(self) -> float:
        if self.sample_count <= 0:
            return 0.0
        return (self.sample_count - self.no_data_count) / self.sample_count

    @property
    def valid_pixels(self) -> int:
        return max(self.sample_count - self.no_data_count, 0)

    @property
    def cloud_coverage(self) -> int:
        """Percentage of masked samples, a proxy for cloud cover."""

        return round((1.0 - self.valid_ratio) * 100)


class StatisticsEngine(Protocol):
    """Interface for engines producing NDVI time series for a polygon."""

    def get_timeseries(
        self,
        points: Sequence[Point],
        start: date,
        end: date,
        interval: str | int = ...,
        *,
        max_cloud: int | None = ...,
    ) -> list[NdviStatPoint]:
        """Return quality-filtered NDVI statistics per interval."""

    def get_latest(
        self,
        points: Sequence[Point],
        *,
        lookback_days: int = ...,
    ) -> NdviStatPoint | None:
        """Return the most recent interval within the lookback window."""
