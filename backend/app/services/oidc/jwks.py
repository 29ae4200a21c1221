"""
JWKS cache for the identity provider's signing keys.

The whole key set is held in one immutable snapshot that is swapped on
refresh, so readers never observe a mix of keys from two fetches. Lookups
that hit a fresh snapshot take no lock and do no I/O.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional

import httpx
from jose import jwk
from jose.backends.base import Key

from app.core.constants import JWKS_FETCH_TIMEOUT_SECONDS, JWKS_SUPPORTED_KEY_TYPE
from app.core.exceptions import JWKSFetchError, KeyNotFoundError
from app.core.http_utils import InstrumentedAsyncClient
from app.core.metrics import jwks_keys_cached, jwks_refreshes_total

logger = logging.getLogger(__name__)

# Algorithm used to check that a published entry is a usable RSA key
_PARSE_ALGORITHM = "RS256"


@dataclass(frozen=True)
class CachedKey:
    """One public signing key from the provider's key set."""

    kid: str
    jwk: Mapping[str, Any]
    fetched_at: float

    def key_for(self, algorithm: str) -> Key:
        """Build the verification key for a specific RSA algorithm."""
        return jwk.construct(dict(self.jwk), algorithm)


@dataclass(frozen=True)
class _KeySet:
    keys: Mapping[str, CachedKey] = field(default_factory=lambda: MappingProxyType({}))
    fetched_at: float = 0.0

    def is_fresh(self, ttl: float, now: float) -> bool:
        return bool(self.keys) and (now - self.fetched_at) < ttl


def parse_jwks(entries: List[Any], fetched_at: float) -> Dict[str, CachedKey]:
    """Parse JWKS entries into cached keys.

    Entries that are not RSA keys, have no kid, or fail to parse are skipped.
    """
    keys: Dict[str, CachedKey] = {}
    for entry in entries:
        if not isinstance(entry, dict) or entry.get("kty") != JWKS_SUPPORTED_KEY_TYPE:
            continue

        kid = entry.get("kid")
        if not isinstance(kid, str) or not kid:
            continue

        public_jwk = {name: entry[name] for name in ("kty", "kid", "n", "e") if name in entry}
        try:
            jwk.construct(dict(public_jwk), _PARSE_ALGORITHM)
        except Exception as e:
            logger.warning(f"Skipping unparsable JWKS key {kid}: {e}")
            continue

        keys[kid] = CachedKey(kid=kid, jwk=MappingProxyType(public_jwk), fetched_at=fetched_at)
    return keys


class JWKSCache:
    """
    Caches the identity provider's public keys by key id.

    A refresh happens when the snapshot is empty, older than the TTL, or does
    not contain the requested key id. Concurrent callers that miss together
    wait on one lock and re-check after acquiring it, so only the first one
    fetches.
    """

    def __init__(
        self,
        url: str,
        ttl_seconds: float,
        timeout: float = JWKS_FETCH_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.url = url
        self.ttl = ttl_seconds
        self.timeout = timeout
        self._clock = clock
        self._snapshot = _KeySet()
        self._lock = asyncio.Lock()
        self.fetch_count = 0

    def _lookup(self, kid: str) -> Optional[CachedKey]:
        snapshot = self._snapshot
        if not snapshot.is_fresh(self.ttl, self._clock()):
            return None
        return snapshot.keys.get(kid)

    async def get_key(self, kid: str) -> CachedKey:
        """
        Return the cached key for `kid`, refreshing the key set if needed.

        Raises:
            KeyNotFoundError: The key id is not in a freshly fetched key set.
            JWKSFetchError: The key set could not be fetched.
        """
        key = self._lookup(kid)
        if key is not None:
            return key

        async with self._lock:
            # Double-check after acquiring lock
            key = self._lookup(kid)
            if key is not None:
                return key

            await self.refresh()
            key = self._snapshot.keys.get(kid)

        if key is None:
            raise KeyNotFoundError(kid)
        return key

    async def refresh(self) -> None:
        """Fetch the key set and swap in a new snapshot.

        On failure the previous snapshot is kept.
        """
        self.fetch_count += 1
        try:
            entries = await self._fetch()
        except JWKSFetchError:
            jwks_refreshes_total.labels(result="error").inc()
            raise

        fetched_at = self._clock()
        keys = parse_jwks(entries, fetched_at)
        self._snapshot = _KeySet(keys=MappingProxyType(keys), fetched_at=fetched_at)

        jwks_refreshes_total.labels(result="success").inc()
        jwks_keys_cached.set(len(keys))
        logger.info(f"Refreshed JWKS from {self.url}: {len(keys)} usable key(s)")

    async def _fetch(self) -> List[Any]:
        try:
            async with InstrumentedAsyncClient("GitHub JWKS", timeout=self.timeout) as client:
                response = await client.get(self.url)
        except httpx.TimeoutException as e:
            raise JWKSFetchError(f"Timed out after {self.timeout}s fetching JWKS from {self.url}") from e
        except httpx.HTTPError as e:
            raise JWKSFetchError(f"Failed to fetch JWKS from {self.url}: {type(e).__name__}: {e}") from e

        if response.status_code != 200:
            raise JWKSFetchError(
                f"Unexpected status code {response.status_code} fetching JWKS from {self.url}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise JWKSFetchError(f"Failed to decode JWKS from {self.url}: {e}") from e

        entries = payload.get("keys") if isinstance(payload, dict) else None
        if not isinstance(entries, list):
            raise JWKSFetchError(f"JWKS from {self.url} has no 'keys' list")
        return entries

    def key_ids(self) -> List[str]:
        """Key ids in the current snapshot, fresh or not."""
        return sorted(self._snapshot.keys)

    def clear(self) -> None:
        """Drop the current snapshot so the next lookup refetches."""
        self._snapshot = _KeySet()
        jwks_keys_cached.set(0)
