"""OAuth client-credentials token cache for the Copernicus Data Space."""

from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Any, Final

import httpx
from django.conf import settings
from django.core.cache import caches

from vegetation.exceptions import AuthError, truncate_snippet
from vegetation.metrics import (
    vegetation_cache_hit_total,
    vegetation_cache_miss_total,
    vegetation_upstream_latency_seconds,
    vegetation_upstream_requests_total,
)
from vegetation.numutils import Clock, system_clock_ms

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_URL: Final[str] = str(
    getattr(
        settings,
        "COPERNICUS_TOKEN_URL",
        "https://identity.dataspace.copernicus.eu/auth/realms/CDSE/"
        "protocol/openid-connect/token",
    )
)
DEFAULT_TIMEOUT: Final[float] = float(
    getattr(settings, "VEGETATION_REQUEST_TIMEOUT_SECONDS", 20)
)
TOKEN_SAFETY_MARGIN_MS: Final[int] = 60_000
DEFAULT_EXPIRES_IN_SECONDS: Final[int] = 3600


@dataclass(frozen=True)
class CachedToken:
    token: str
    expires_at_ms: int


class TokenCache:
    """Access tokens keyed by client id, held in a Django cache.

    A token is reused while it stays valid for at least one more minute.
    Refreshes are single-flight per client id: concurrent callers that see
    an expiring token wait on one exchange instead of issuing their own.
    A failed exchange leaves the previous entry untouched. Freshness is
    judged with the injected clock; the backend timeout only bounds how
    long an entry may linger.
    """

    provider: Final[str] = "copernicus"

    def __init__(
        self,
        token_url: str | None = None,
        *,
        http: httpx.Client | None = None,
        clock: Clock | None = None,
        timeout_seconds: float | None = None,
        safety_margin_ms: int = TOKEN_SAFETY_MARGIN_MS,
        cache_alias: str = "default",
    ) -> None:
        self.token_url = token_url or DEFAULT_TOKEN_URL
        self.timeout_seconds = timeout_seconds or DEFAULT_TIMEOUT
        self.safety_margin_ms = safety_margin_ms
        self._http = http or httpx.Client(timeout=self.timeout_seconds)
        self._clock = clock or system_clock_ms
        self.cache = caches[cache_alias]
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def acquire(self, client_id: str, client_secret: str) -> str:
        if not client_id or not client_secret:
            raise AuthError("Copernicus client credentials are required")

        cached = self._fresh_entry(client_id)
        if cached is not None:
            vegetation_cache_hit_total.labels(layer="token").inc()
            return cached.token

        with self._lock_for(client_id):
            cached = self._fresh_entry(client_id)
            if cached is not None:
                vegetation_cache_hit_total.labels(layer="token").inc()
                return cached.token
            vegetation_cache_miss_total.labels(layer="token").inc()
            entry = self._exchange(client_id, client_secret)
            self.cache.set(
                self._key(client_id),
                entry,
                timeout=self._backend_timeout(entry),
            )
            logger.info(
                "vegetation.token.refreshed client_id=%s expires_at_ms=%s",
                client_id,
                entry.expires_at_ms,
            )
            return entry.token

    def peek(self, client_id: str) -> CachedToken | None:
        entry = self.cache.get(self._key(client_id))
        return entry if isinstance(entry, CachedToken) else None

    def clear(self) -> None:
        with self._locks_guard:
            client_ids = list(self._locks)
        self.cache.delete_many([self._key(c) for c in client_ids])

    @staticmethod
    def _key(client_id: str) -> str:
        return f"vegetation:token:{client_id}"

    def _backend_timeout(self, entry: CachedToken) -> int:
        remaining_ms = entry.expires_at_ms - self._clock()
        return max(math.ceil(remaining_ms / 1000), 1)

    def _fresh_entry(self, client_id: str) -> CachedToken | None:
        entry = self.peek(client_id)
        if entry is None:
            return None
        if entry.expires_at_ms > self._clock() + self.safety_margin_ms:
            return entry
        return None

    def _lock_for(self, client_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(client_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[client_id] = lock
            return lock

    def _exchange(self, client_id: str, client_secret: str) -> CachedToken:
        data = {
            "grant_type": "client_credentials",
            "client_id": client_id,
            "client_secret": client_secret,
        }
        headers = {"Content-Type": "application/x-www-form-urlencoded"}
        started = time.monotonic()
        try:
            response = self._http.post(
                self.token_url,
                data=data,
                headers=headers,
                timeout=self.timeout_seconds,
            )
        except httpx.RequestError as exc:
            vegetation_upstream_requests_total.labels(
                provider=self.provider, endpoint="token", outcome="network"
            ).inc()
            logger.warning("vegetation.token.network_error err=%s", exc)
            raise AuthError(f"Token exchange failed: {exc}") from exc
        vegetation_upstream_latency_seconds.labels(
            provider=self.provider, endpoint="token"
        ).observe(time.monotonic() - started)

        if not response.is_success:
            vegetation_upstream_requests_total.labels(
                provider=self.provider, endpoint="token", outcome="error"
            ).inc()
            logger.warning(
                "vegetation.token.error status=%s body=%s",
                response.status_code,
                truncate_snippet(response.text) or "<empty>",
            )
            raise AuthError(
                f"Token exchange failed status={response.status_code}",
                status_code=response.status_code,
            )
        vegetation_upstream_requests_total.labels(
            provider=self.provider, endpoint="token", outcome="success"
        ).inc()

        payload = self._decode(response)
        token = payload.get("access_token")
        if not token:
            raise AuthError("Token response missing access_token")
        try:
            expires_in = int(
                payload.get("expires_in", DEFAULT_EXPIRES_IN_SECONDS)
            )
        except (TypeError, ValueError) as exc:
            raise AuthError("Token response has invalid expires_in") from exc
        return CachedToken(
            token=str(token),
            expires_at_ms=self._clock() + expires_in * 1000,
        )

    @staticmethod
    def _decode(response: httpx.Response) -> dict[str, Any]:
        try:
            payload = response.json()
        except ValueError as exc:
            raise AuthError("Token response is not valid JSON") from exc
        if not isinstance(payload, dict):
            raise AuthError("Unexpected token response shape")
        return payload

