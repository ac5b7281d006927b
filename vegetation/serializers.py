from __future__ import annotations

from datetime import date
from typing import Any, cast

from rest_framework import serializers

from .exceptions import GeometryError
from .geometry import Point, points_from_boundaries
from .palette import SYNTHETIC_PALETTE, TILE_PALETTES
from .services import PREVIEW_MAX_DIMENSION, normalize_history_params

PALETTE_CHOICES = [SYNTHETIC_PALETTE.name, *TILE_PALETTES]


class BoundariesField(serializers.JSONField):
    """Field polygon as ``{lat, lng}`` points, ``[lng, lat]`` pairs or
    a GeoJSON Polygon; deserializes to a list of ``Point``."""

    def to_internal_value(self, data: Any) -> list[Point]:
        raw = super().to_internal_value(data)
        try:
            return points_from_boundaries(raw)
        except GeometryError as exc:
            raise serializers.ValidationError(str(exc)) from exc


class HistoryRequestSerializer(serializers.Serializer):
    boundaries = BoundariesField()
    start = serializers.DateField(required=False)
    end = serializers.DateField(required=False)
    interval_days = serializers.IntegerField(required=False, min_value=1)
    max_cloud = serializers.IntegerField(
        required=False, min_value=0, max_value=100
    )

    def validate(self, attrs: dict[str, Any]) -> dict[str, Any]:
        params = normalize_history_params(
            start=cast(date | None, attrs.get("start")),
            end=cast(date | None, attrs.get("end")),
            interval_days=cast(int | None, attrs.get("interval_days")),
            max_cloud=cast(int | None, attrs.get("max_cloud")),
        )
        return {"boundaries": attrs["boundaries"], "params": params}


class PreviewRequestSerializer(serializers.Serializer):
    boundaries = BoundariesField()
    ndvi = serializers.FloatField(
        required=False, allow_null=True, min_value=-1.0, max_value=1.0
    )
    palette = serializers.ChoiceField(
        choices=PALETTE_CHOICES,
        required=False,
        default=SYNTHETIC_PALETTE.name,
    )
    max_dimension = serializers.IntegerField(
        required=False,
        min_value=16,
        max_value=2048,
        default=PREVIEW_MAX_DIMENSION,
    )


class TileRequestSerializer(serializers.Serializer):
    polygon_id = serializers.CharField(max_length=64)
    palette_id = serializers.IntegerField(
        required=False, min_value=0, max_value=10
    )


class NdviStatPointSerializer(serializers.Serializer):
    interval_start = serializers.DateField()
    interval_end = serializers.DateField(allow_null=True)
    mean = serializers.FloatField()
    min = serializers.FloatField()
    max = serializers.FloatField()
    std_dev = serializers.FloatField()
    sample_count = serializers.IntegerField()
    no_data_count = serializers.IntegerField()
    valid_pixels = serializers.IntegerField()
    cloud_coverage = serializers.IntegerField()
    p25 = serializers.FloatField(allow_null=True)
    p50 = serializers.FloatField(allow_null=True)
    p75 = serializers.FloatField(allow_null=True)


class PaletteStopSerializer(serializers.Serializer):
    value = serializers.FloatField()
    color = serializers.ListField(child=serializers.IntegerField())


class PaletteSerializer(serializers.Serializer):
    name = serializers.CharField()
    label = serializers.CharField()
    description = serializers.CharField()
    stops = PaletteStopSerializer(many=True)
