"""Response builders shared by the vegetation endpoints.

JSON bodies use the project envelope::

    {"status": 0|1, "message": str, "data": ..., "errors": ...}

Image endpoints return raw bytes with caller-supplied metadata headers.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TypeAlias

from django.http import HttpResponse
from rest_framework import status
from rest_framework.response import Response

JSONScalar: TypeAlias = str | int | float | bool | None
JSONValue: TypeAlias = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

PNG_CONTENT_TYPE = "image/png"


def success_response(
    data: JSONValue | None,
    message: str = "OK",
    *,
    status_code: int = status.HTTP_200_OK,
) -> Response:
    payload: dict[str, JSONValue] = {
        "status": 0,
        "message": message,
        "data": data,
        "errors": None,
    }
    return Response(payload, status=status_code)


def error_response(
    message: str,
    *,
    errors: JSONValue | None = None,
    status_code: int = status.HTTP_400_BAD_REQUEST,
) -> Response:
    payload: dict[str, JSONValue] = {
        "status": 1,
        "message": message,
        "data": None,
        "errors": errors,
    }
    return Response(payload, status=status_code)


def image_response(
    content: bytes,
    *,
    content_type: str = PNG_CONTENT_TYPE,
    headers: Mapping[str, str] | None = None,
    cache_control: str | None = None,
) -> HttpResponse:
    """Raw image body; bypasses DRF rendering."""

    response = HttpResponse(content, content_type=content_type)
    for key, value in (headers or {}).items():
        response[key] = value
    if cache_control:
        response["Cache-Control"] = cache_control
    return response


def no_content_response() -> HttpResponse:
    return HttpResponse(status=status.HTTP_204_NO_CONTENT)
