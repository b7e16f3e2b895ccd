"""Issuer key-set fetcher and cache — public keys for trusted-tier verification.

The securetoken key set rotates every few hours and the endpoint says how
long a response stays valid through ``Cache-Control: max-age``. That value
is honored, capped at ``cache_ttl``. Unknown ``kid`` values force a refetch,
rate-limited to one attempt per ``min_refetch_interval``. Refreshes are
serialized with an asyncio.Lock.
"""

import asyncio
import logging
import re
import time
from collections.abc import Callable
from dataclasses import dataclass, field

import httpx
from jwt import PyJWK

logger = logging.getLogger("idcascade.jwks")

_MAX_AGE = re.compile(r"max-age=(\d+)")


@dataclass
class KeySet:
    """Keys from one successful fetch and how long they stay fresh."""

    keys: dict[str, PyJWK] = field(default_factory=dict)
    fetched_at: float | None = None
    ttl: float = 0.0

    def is_stale(self, now: float) -> bool:
        if self.fetched_at is None:
            return True
        return (now - self.fetched_at) > self.ttl


def cache_lifetime(cache_control: str | None, default: float) -> float:
    """Seconds a response may be cached: its max-age, capped at ``default``."""
    match = _MAX_AGE.search(cache_control or "")
    if match is None:
        return default
    return min(float(match.group(1)), default)


class JWKSFetcher:
    """Fetches and caches the issuer's signing keys.

    Args:
        jwks_url: URL of the JWK Set endpoint.
        cache_ttl: Upper bound on key freshness in seconds (default 3600 = 1 hour).
        min_refetch_interval: Minimum seconds between fetch attempts (default 30).
        http_timeout: HTTP request timeout in seconds (default 10).
    """

    def __init__(
        self,
        jwks_url: str,
        *,
        cache_ttl: float = 3600.0,
        min_refetch_interval: float = 30.0,
        http_timeout: float = 10.0,
        time_func: Callable[[], float] | None = None,
        _transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._jwks_url = jwks_url
        self._cache_ttl = cache_ttl
        self._min_refetch_interval = min_refetch_interval
        self._http_timeout = http_timeout
        self._transport = _transport
        self._time_func = time_func or time.monotonic
        self._key_set = KeySet()
        self._lock = asyncio.Lock()
        self._last_attempt: float | None = None
        self.last_error: str | None = None

    def has_keys(self) -> bool:
        """True once at least one key has been loaded."""
        return bool(self._key_set.keys)

    async def get_key(self, kid: str) -> PyJWK | None:
        """Key for ``kid``, refreshing first if the key set is stale."""
        if self._key_set.is_stale(self._time_func()):
            await self._refresh()
        return self._key_set.keys.get(kid)

    async def get_key_or_refresh(self, kid: str) -> PyJWK | None:
        """Like get_key, but an unknown kid also forces a refresh (key rotation)."""
        key_set = self._key_set
        if kid in key_set.keys and not key_set.is_stale(self._time_func()):
            return key_set.keys[kid]
        await self._refresh()
        return self._key_set.keys.get(kid)

    def _throttled(self, now: float) -> bool:
        if self._last_attempt is None:
            return False
        return (now - self._last_attempt) < self._min_refetch_interval

    async def _refresh(self) -> None:
        if self._throttled(self._time_func()):
            return
        async with self._lock:
            now = self._time_func()
            if self._throttled(now):
                return
            self._last_attempt = now
            try:
                self._key_set = await self._fetch()
            except (httpx.HTTPError, ValueError) as e:
                self.last_error = f"{type(e).__name__}: {e}"
                logger.exception("Failed to fetch JWKS from %s", self._jwks_url)
            else:
                self.last_error = None

    async def _fetch(self) -> KeySet:
        kwargs: dict = {"timeout": self._http_timeout}
        if self._transport is not None:
            kwargs["transport"] = self._transport
        async with httpx.AsyncClient(**kwargs) as client:
            response = await client.get(self._jwks_url)
            response.raise_for_status()
            body = response.json()
        if not isinstance(body, dict):
            raise ValueError("JWKS response is not a JSON object")
        entries = body.get("keys", [])
        if not isinstance(entries, list):
            raise ValueError("JWKS keys is not a list")

        keys: dict[str, PyJWK] = {}
        for jwk in entries:
            kid = jwk.get("kid") if isinstance(jwk, dict) else None
            if not kid:
                continue
            try:
                keys[kid] = PyJWK(jwk)
            except Exception:
                logger.warning("Skipping unusable JWK kid=%s", kid)

        ttl = cache_lifetime(response.headers.get("Cache-Control"), self._cache_ttl)
        logger.debug("JWKS refreshed: %d keys, fresh for %.0fs", len(keys), ttl)
        return KeySet(keys=keys, fetched_at=self._time_func(), ttl=ttl)
