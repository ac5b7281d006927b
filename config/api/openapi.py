"""drf-spectacular helpers for the vegetation API documentation.

Envelope serializers mirror `config.api.responses`; the image helpers
describe PNG bodies and the metadata headers sent alongside them.
"""

from __future__ import annotations

from collections.abc import Mapping

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import (
    OpenApiParameter,
    OpenApiResponse,
    inline_serializer,
)
from rest_framework import serializers
from rest_framework.serializers import Serializer


def success_envelope_serializer(
    name: str,
    *,
    data: serializers.Field,
) -> Serializer:
    """Build an OpenAPI schema matching `success_response`."""

    return inline_serializer(
        name=name,
        fields={
            "status": serializers.IntegerField(),
            "message": serializers.CharField(),
            "data": data,
            "errors": serializers.JSONField(allow_null=True),
        },
    )


def error_envelope_serializer(name: str) -> Serializer:
    """Build an OpenAPI schema matching `error_response`."""

    return inline_serializer(
        name=name,
        fields={
            "status": serializers.IntegerField(),
            "message": serializers.CharField(),
            "data": serializers.JSONField(allow_null=True),
            "errors": serializers.JSONField(allow_null=True),
        },
    )


def png_response(description: str = "PNG image") -> OpenApiResponse:
    return OpenApiResponse(
        response=OpenApiTypes.BINARY, description=description
    )


def response_headers(headers: Mapping[str, str]) -> list[OpenApiParameter]:
    """Document headers returned with a 200 response."""

    return [
        OpenApiParameter(
            name=name,
            type=OpenApiTypes.STR,
            location=OpenApiParameter.HEADER,
            description=description,
            response=[200],
        )
        for name, description in headers.items()
    ]
