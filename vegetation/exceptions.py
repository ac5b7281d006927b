"""Error taxonomy for vegetation processing."""

from __future__ import annotations

from typing import Final

MAX_ERROR_SNIPPET_CHARS: Final[int] = 1600


class VegetationError(Exception):
    """Base class for errors raised by the vegetation app."""


class GeometryError(VegetationError, ValueError):
    """Malformed or degenerate input rejected before any network call."""


class PaletteError(GeometryError):
    """Invalid palette configuration (unsorted, duplicate or unknown)."""


class AuthError(VegetationError):
    """The upstream credential exchange failed."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class UpstreamError(VegetationError):
    """Signals a non-success or malformed response from an upstream API."""

    def __init__(
        self,
        status_code: int | None,
        snippet: str | None,
        *,
        provider: str = "upstream",
    ) -> None:
        self.status_code = status_code
        self.snippet = snippet
        self.provider = provider
        message = f"{provider} error status={status_code}"
        if snippet:
            message = f"{message} body={snippet}"
        super().__init__(message)


def truncate_snippet(text: str | None) -> str | None:
    """Collapse a response body onto one line and cap its length."""

    if not text:
        return None
    normalized = " ".join(text.strip().splitlines())
    if not normalized:
        return None
    if len(normalized) > MAX_ERROR_SNIPPET_CHARS:
        normalized = f"{normalized[:MAX_ERROR_SNIPPET_CHARS]}..."
    return normalized


class TileFetchError(UpstreamError):
    """A resolved tile URL could not be downloaded."""
