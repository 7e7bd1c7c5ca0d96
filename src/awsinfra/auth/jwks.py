"""Signing-key set cache.

The issuer publishes its RS256 public keys as a JWKS document. One
``SigningKeyCache`` per process holds the parsed keys; it is started in the
application lifespan and handed to the token validator explicitly.

Readers only ever see a complete ``kid -> key`` mapping: a refresh builds a
new dict under ``_refresh_lock`` and publishes it with a single assignment.
"""

import asyncio
import base64
import time
from typing import Any, Dict, Mapping, Optional

import httpx
from cryptography.hazmat.primitives.asymmetric import rsa
from loguru import logger

from ..core.exceptions import AuthenticationUnavailable


def _b64url_to_int(val: str) -> int:
    padded = val + "=" * (-len(val) % 4)
    raw = base64.urlsafe_b64decode(padded.encode("ascii"))
    return int.from_bytes(raw, byteorder="big")


def _b64url_uint(val: int) -> str:
    raw = val.to_bytes((val.bit_length() + 7) // 8, byteorder="big")
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def rsa_public_key_from_jwk(jwk: Mapping[str, Any]) -> rsa.RSAPublicKey:
    if jwk.get("kty") != "RSA":
        raise ValueError("Unsupported JWK kty")
    n = _b64url_to_int(jwk["n"])
    e = _b64url_to_int(jwk["e"])
    return rsa.RSAPublicNumbers(e, n).public_key()


def rsa_public_key_to_jwk(kid: str, public_key: rsa.RSAPublicKey) -> Dict[str, Any]:
    numbers = public_key.public_numbers()
    return {
        "kty": "RSA",
        "use": "sig",
        "alg": "RS256",
        "kid": kid,
        "n": _b64url_uint(numbers.n),
        "e": _b64url_uint(numbers.e),
    }


def parse_jwks(document: Mapping[str, Any]) -> Dict[str, rsa.RSAPublicKey]:
    """Build ``kid -> public key`` from a JWKS document.

    Keys that are not RSA signing keys, or that fail to parse, are skipped.
    """
    keys: Dict[str, rsa.RSAPublicKey] = {}
    for jwk in document.get("keys", []):
        kid = jwk.get("kid")
        if not kid or jwk.get("use", "sig") != "sig":
            continue
        try:
            keys[kid] = rsa_public_key_from_jwk(jwk)
        except (KeyError, ValueError) as e:
            logger.warning(f"Skipping unusable JWK {kid}: {e}")
    return keys


class SigningKeyCache:
    """Process-wide cache of the issuer's public keys."""

    def __init__(
        self,
        jwks_url: str,
        *,
        timeout: float = 5.0,
        refresh_interval: float = 300.0,
        min_refresh_interval: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.jwks_url = jwks_url
        self.timeout = timeout
        self.refresh_interval = refresh_interval
        self.min_refresh_interval = min_refresh_interval
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._keys: Dict[str, rsa.RSAPublicKey] = {}
        # Completion time and failure of the most recent fetch
        self._last_attempt_at: Optional[float] = None
        self._last_error: Optional[AuthenticationUnavailable] = None
        self._refresh_lock = asyncio.Lock()
        self._refresh_task: Optional[asyncio.Task] = None

    @property
    def keys(self) -> Mapping[str, rsa.RSAPublicKey]:
        return self._keys

    @property
    def started(self) -> bool:
        return self._client is not None

    async def start(self) -> None:
        """Open the HTTP client, load the first key set, schedule refreshes."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        try:
            await self.refresh()
        except AuthenticationUnavailable as e:
            logger.warning(f"Initial JWKS fetch failed, will retry on demand: {e}")
        if self.refresh_interval > 0 and self._refresh_task is None:
            self._refresh_task = asyncio.create_task(self._refresh_loop())
        logger.info(f"Signing key cache started ({len(self._keys)} keys from {self.jwks_url})")

    async def close(self) -> None:
        if self._refresh_task is not None:
            self._refresh_task.cancel()
            try:
                await self._refresh_task
            except asyncio.CancelledError:
                pass
            self._refresh_task = None
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _refresh_loop(self) -> None:
        while True:
            await asyncio.sleep(self.refresh_interval)
            try:
                await self.refresh()
            except AuthenticationUnavailable as e:
                # Previously published keys stay in service
                logger.warning(f"Periodic JWKS refresh failed: {e}")

    async def _fetch(self) -> Dict[str, Any]:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        try:
            resp = await self._client.get(self.jwks_url)
            resp.raise_for_status()
            document = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise AuthenticationUnavailable(f"Cannot fetch signing keys from {self.jwks_url}: {e}")
        if not isinstance(document, dict):
            raise AuthenticationUnavailable("Signing key document is not a JSON object")
        return document

    async def refresh(self, *, since: Optional[float] = None) -> None:
        """Fetch and publish a fresh key set.

        ``since``: callers that queued behind another refresh pass the time
        they started waiting; an attempt that finished after that is reused,
        including its failure.
        """
        async with self._refresh_lock:
            if since is not None and self._last_attempt_at is not None and self._last_attempt_at > since:
                if self._last_error is not None:
                    raise AuthenticationUnavailable(self._last_error.message)
                return
            try:
                document = await self._fetch()
                keys = parse_jwks(document)
            except AuthenticationUnavailable as e:
                self._last_error = e
                self._last_attempt_at = time.monotonic()
                raise
            self._keys = keys
            self._last_error = None
            self._last_attempt_at = time.monotonic()
            logger.debug(f"Published {len(keys)} signing keys")

    async def get_key(self, kid: str) -> Optional[rsa.RSAPublicKey]:
        """Return the key for ``kid``, refreshing once if it is unknown.

        Within ``min_refresh_interval`` of the last attempt no fetch is made:
        the kid is reported unknown (None), or AuthenticationUnavailable is
        raised again if that attempt failed.
        """
        key = self._keys.get(kid)
        if key is not None:
            return key

        requested_at = time.monotonic()
        if (
            self._last_attempt_at is not None
            and requested_at - self._last_attempt_at < self.min_refresh_interval
        ):
            if self._last_error is not None:
                raise AuthenticationUnavailable(self._last_error.message)
            return None

        await self.refresh(since=requested_at)
        return self._keys.get(kid)
