"""Field vegetation API endpoints.

Authentication: global DRF defaults (IsAuthenticated).
JSON responses use `config.api.responses.success_response` with the standard
envelope:

    {"status": 0, "message": "<str>", "data": <object|null>, "errors": null}

PNG endpoints return raw image bytes; their failures still use the error
envelope via `config.api.exceptions.custom_exception_handler`.
"""

from __future__ import annotations

import logging
from typing import Any

from django.http import HttpResponse
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import (
    OpenApiParameter,
    extend_schema,
    inline_serializer,
)
from rest_framework import serializers, status
from rest_framework.permissions import IsAuthenticated
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from config.api.openapi import (
    error_envelope_serializer,
    png_response,
    response_headers,
    success_envelope_serializer,
)
from config.api.responses import (
    error_response,
    image_response,
    no_content_response,
    success_response,
)

from .exceptions import TileFetchError
from .palette import DEFAULT_TILE_PALETTE, palette_catalog
from .serializers import (
    HistoryRequestSerializer,
    NdviStatPointSerializer,
    PaletteSerializer,
    PreviewRequestSerializer,
    TileRequestSerializer,
)
from .services import get_service

logger = logging.getLogger(__name__)

vegetation_error_response = error_envelope_serializer(
    "VegetationErrorResponse"
)

history_data_schema = inline_serializer(
    name="NdviHistoryData",
    fields={
        "field_id": serializers.CharField(),
        "start": serializers.DateField(),
        "end": serializers.DateField(),
        "interval_days": serializers.IntegerField(),
        "max_cloud": serializers.IntegerField(),
        "points": NdviStatPointSerializer(many=True),
        "summary": inline_serializer(
            name="NdviHistorySummary",
            fields={
                "count": serializers.IntegerField(),
                "latest": serializers.FloatField(allow_null=True),
                "latest_date": serializers.DateField(allow_null=True),
                "mean": serializers.FloatField(allow_null=True),
                "min": serializers.FloatField(allow_null=True),
                "max": serializers.FloatField(allow_null=True),
            },
        ),
    },
)
history_success_response = success_envelope_serializer(
    "NdviHistorySuccess", data=history_data_schema
)
palettes_success_response = success_envelope_serializer(
    "NdviPalettesSuccess",
    data=inline_serializer(
        name="NdviPalettesData",
        fields={
            "palettes": PaletteSerializer(many=True),
            "default": serializers.CharField(),
        },
    ),
)
preview_headers = response_headers(
    {
        "X-Ndvi-Source": "request, statistics or default",
        "X-Ndvi-Value": "Base NDVI value used for the preview",
        "X-Ndvi-Bounds": "west,south,east,north",
        "X-Ndvi-Center": "lng,lat of the vertex centroid",
        "X-Field-Area-Ha": "Planar field area in hectares",
    }
)


class NdviHistoryView(APIView):
    """Quality-filtered NDVI time series for a field polygon."""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        request=HistoryRequestSerializer,
        responses={
            200: history_success_response,
            400: vegetation_error_response,
            502: vegetation_error_response,
        },
    )
    def post(self, request: Request, field_id: str) -> Response:
        """Return NDVI statistics per interval.

        Body: boundaries, optional start/end dates, interval_days, max_cloud.
        Intervals with no samples or over 80% masked samples are omitted.
        """

        serializer = HistoryRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        params = serializer.validated_data["params"]

        result = get_service().field_history(
            serializer.validated_data["boundaries"], params
        )
        payload: dict[str, Any] = {
            "field_id": field_id,
            "start": params.start.isoformat(),
            "end": params.end.isoformat(),
            "interval_days": params.interval_days,
            "max_cloud": params.max_cloud,
            "points": NdviStatPointSerializer(result.points, many=True).data,
            "summary": result.summary,
        }
        logger.info(
            "vegetation.history.served field_id=%s points=%s",
            field_id,
            len(result.points),
        )
        return success_response(payload, message="NDVI history")


class NdviPreviewView(APIView):
    """Synthesized NDVI preview clipped to the field polygon."""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        request=PreviewRequestSerializer,
        parameters=preview_headers,
        responses={
            200: png_response("Synthesized NDVI preview"),
            400: vegetation_error_response,
        },
    )
    def post(self, request: Request, field_id: str) -> HttpResponse:
        serializer = PreviewRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = get_service().field_preview(
            data["boundaries"],
            ndvi=data.get("ndvi"),
            palette_name=data["palette"],
            max_dimension=data["max_dimension"],
        )
        return image_response(
            result.png,
            headers=result.headers(),
            cache_control="private, max-age=300",
        )


class NdviTileView(APIView):
    """Proxy one NDVI map tile for a field.

    404 when no image is available for the polygon; 204 when the upstream
    tile download fails.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        parameters=[
            OpenApiParameter(
                name="polygon_id",
                type=OpenApiTypes.STR,
                location=OpenApiParameter.QUERY,
                required=True,
            ),
            OpenApiParameter(
                name="palette_id",
                type=OpenApiTypes.INT,
                location=OpenApiParameter.QUERY,
                required=False,
            ),
        ],
        responses={
            200: png_response("NDVI map tile"),
            204: None,
            404: vegetation_error_response,
            502: vegetation_error_response,
        },
    )
    def get(
        self, request: Request, field_id: str, z: int, x: int, y: int
    ) -> HttpResponse | Response:
        serializer = TileRequestSerializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        kwargs: dict[str, Any] = {}
        if data.get("palette_id") is not None:
            kwargs["palette_id"] = data["palette_id"]
        try:
            tile = get_service().field_tile(
                field_id, data["polygon_id"], z, x, y, **kwargs
            )
        except TileFetchError as exc:
            logger.warning(
                "vegetation.tiles.fetch_failed field_id=%s status=%s",
                field_id,
                exc.status_code,
            )
            return no_content_response()

        if tile is None:
            return error_response(
                "No NDVI tile available",
                status_code=status.HTTP_404_NOT_FOUND,
            )
        return image_response(
            tile.content,
            content_type=tile.content_type,
            cache_control="public, max-age=3600",
        )


class PaletteListView(APIView):
    """Published colour ramps for client-side NDVI rendering."""

    permission_classes = [IsAuthenticated]

    @extend_schema(responses={200: palettes_success_response})
    def get(self, request: Request) -> Response:
        return success_response(
            {"palettes": palette_catalog(), "default": DEFAULT_TILE_PALETTE},
            message="NDVI palettes",
        )
