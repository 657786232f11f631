"""Async JWKS client: fetches, validates, converts and caches signing keys.

Keys are fetched from the issuer's JWKS endpoint, checked for type and
strength, re-encoded from JWK parameters into a PEM SubjectPublicKeyInfo
and cached per ``kid``. Only successfully converted keys are cached.
"""

from __future__ import annotations

import asyncio
import base64
from typing import Any, Awaitable, Callable

import httpx
import structlog

from .cache import LRUCache
from .crypto import PEM_FOOTER, PEM_HEADER, base64url_decode
from .errors import (
    ConfigError,
    KeyNotFoundError,
    KeySetFetchError,
    MalformedKeyError,
    UnsupportedKeyTypeError,
    WeakKeyError,
)

logger = structlog.get_logger(__name__)

# Constants
DEFAULT_CACHE_MAX_SIZE = 20
JWKS_MAX_ATTEMPTS = 3
JWKS_RETRY_DELAY_SECONDS = 0.1
JWKS_REQUEST_TIMEOUT_SECONDS = 10.0
MIN_RSA_KEY_BITS = 2048
PEM_LINE_LENGTH = 64

# AlgorithmIdentifier SEQUENCE: OID 1.2.840.113549.1.1.1 (rsaEncryption), NULL
_RSA_ALGORITHM_IDENTIFIER = bytes([
    0x30, 0x0D,
    0x06, 0x09, 0x2A, 0x86, 0x48, 0x86, 0xF7, 0x0D, 0x01, 0x01, 0x01,
    0x05, 0x00,
])

_TAG_INTEGER = 0x02
_TAG_BIT_STRING = 0x03
_TAG_SEQUENCE = 0x30


# ----------------------------------------------------------------------
# DER / PEM encoding
# ----------------------------------------------------------------------

def encode_length(length: int) -> bytes:
    """Encode a DER length field.

    Lengths below 128 use the short form (one byte). Longer lengths use
    the long form: ``0x80 | n`` followed by n big-endian length bytes,
    e.g. 200 -> ``81 C8`` and 1000 -> ``82 03 E8``.
    """
    if length < 0:
        raise ValueError(f"DER length must be non-negative, got {length}")
    if length < 0x80:
        return bytes([length])
    body = length.to_bytes((length.bit_length() + 7) // 8, "big")
    return bytes([0x80 | len(body)]) + body


def _encode_tlv(tag: int, value: bytes) -> bytes:
    return bytes([tag]) + encode_length(len(value)) + value


def encode_integer(value: bytes) -> bytes:
    """Encode big-endian unsigned integer bytes as a DER INTEGER.

    A zero byte is prepended when the most significant bit is set so the
    two's-complement reading stays non-negative.
    """
    if value and value[0] >= 0x80:
        value = b"\x00" + value
    return _encode_tlv(_TAG_INTEGER, value)


def rsa_public_key_der(n: bytes, e: bytes) -> bytes:
    """Build a DER SubjectPublicKeyInfo for an RSA public key.

    Structure::

        SubjectPublicKeyInfo ::= SEQUENCE {
            algorithm         AlgorithmIdentifier,  -- rsaEncryption, NULL
            subjectPublicKey  BIT STRING {
                RSAPublicKey ::= SEQUENCE { modulus INTEGER, publicExponent INTEGER }
            }
        }

    Args:
        n: Modulus as big-endian unsigned bytes.
        e: Public exponent as big-endian unsigned bytes.
    """
    rsa_public_key = _encode_tlv(_TAG_SEQUENCE, encode_integer(n) + encode_integer(e))
    # Leading 0x00: no unused bits in the final octet
    bit_string = _encode_tlv(_TAG_BIT_STRING, b"\x00" + rsa_public_key)
    return _encode_tlv(_TAG_SEQUENCE, _RSA_ALGORITHM_IDENTIFIER + bit_string)


def der_to_pem(der: bytes) -> str:
    """Wrap DER bytes as a PEM public key with 64-character lines."""
    body = base64.b64encode(der).decode("ascii")
    lines = [body[i:i + PEM_LINE_LENGTH] for i in range(0, len(body), PEM_LINE_LENGTH)]
    return "\n".join([PEM_HEADER, *lines, PEM_FOOTER])


def _decode_key_param(jwk: dict, name: str) -> bytes:
    try:
        return base64url_decode(jwk[name])
    except (ValueError, TypeError) as exc:
        raise MalformedKeyError(
            f"Invalid JWK: parameter '{name}' is not valid base64url"
        ) from exc


def jwk_to_pem(jwk: dict, min_key_bits: int = MIN_RSA_KEY_BITS) -> str:
    """Convert an RSA JWK into a PEM public key.

    Args:
        jwk: JSON Web Key dict with ``kty``, ``n`` and ``e``.
        min_key_bits: Minimum modulus size in bits.

    Returns:
        PEM-encoded SubjectPublicKeyInfo.

    Raises:
        UnsupportedKeyTypeError: If ``kty`` is not ``RSA``.
        MalformedKeyError: If ``n`` or ``e`` is missing or undecodable.
        WeakKeyError: If the modulus is shorter than ``min_key_bits``.
    """
    if jwk.get("kty") != "RSA":
        raise UnsupportedKeyTypeError("Only RSA keys are supported")
    if not jwk.get("n") or not jwk.get("e"):
        raise MalformedKeyError("Invalid JWK: missing n or e parameters")

    n = _decode_key_param(jwk, "n")
    e = _decode_key_param(jwk, "e")
    if not n or not e:
        raise MalformedKeyError("Invalid JWK: missing n or e parameters")

    key_bits = len(n) * 8
    if key_bits < min_key_bits:
        raise WeakKeyError(key_bits, min_key_bits)

    return der_to_pem(rsa_public_key_der(n, e))


# ----------------------------------------------------------------------
# Client
# ----------------------------------------------------------------------

class JWKSClient:
    """Client for a JWKS endpoint with an LRU cache of converted keys.

    Intended to be long-lived and shared: the cache only pays off when the
    same client serves many validations.
    """

    def __init__(
        self,
        jwks_uri: str,
        *,
        cache_max_size: int = DEFAULT_CACHE_MAX_SIZE,
        cache_ttl: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = JWKS_REQUEST_TIMEOUT_SECONDS,
        max_attempts: int = JWKS_MAX_ATTEMPTS,
        retry_delay: float = JWKS_RETRY_DELAY_SECONDS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        cache: LRUCache | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            jwks_uri: URL of the JWKS endpoint.
            cache_max_size: Maximum number of cached keys (default 20).
            cache_ttl: Optional key time-to-live in seconds. ``None`` caches
                keys until they are evicted for space.
            transport: Optional httpx transport, mainly for testing.
            timeout: Per-request timeout in seconds.
            max_attempts: Number of fetch attempts before giving up.
            retry_delay: Seconds to wait between attempts.
            sleep: Coroutine used to wait between attempts.
            cache: Pre-built cache to use instead of creating one.

        Raises:
            ConfigError: If jwks_uri is blank or the cache settings are invalid.
        """
        if not isinstance(jwks_uri, str) or not jwks_uri.strip():
            raise ConfigError("A valid JWKS URI is required.")
        if not isinstance(max_attempts, int) or max_attempts < 1:
            raise ConfigError("max_attempts must be a positive integer")

        self._jwks_uri = jwks_uri
        self._transport = transport
        self._timeout = timeout
        self._max_attempts = max_attempts
        self._retry_delay = retry_delay
        self._sleep = sleep
        self._cache = cache if cache is not None else LRUCache(cache_max_size, cache_ttl)
        self._pending: dict[str, asyncio.Future[str]] = {}
        # Incremented by clear(); loads from an older generation skip the cache
        self._generation = 0

    @property
    def jwks_uri(self) -> str:
        return self._jwks_uri

    async def get_signing_key(self, kid: str) -> str:
        """Return the PEM public key for a key ID.

        Served from the cache when possible. On a miss the JWKS is fetched
        (with retry), the key located, validated, converted and cached.
        Concurrent misses for the same kid share a single load.

        Args:
            kid: Key ID from the token header.

        Returns:
            PEM-encoded RSA public key.

        Raises:
            KeySetFetchError: If the JWKS could not be fetched.
            KeyNotFoundError: If no key matches ``kid``.
            UnsupportedKeyTypeError: If the key is not RSA.
            MalformedKeyError: If ``n``/``e`` are missing or invalid.
            WeakKeyError: If the key is under 2048 bits.
        """
        cached = self._cache.get(kid)
        if cached is not None:
            return cached

        pending = self._pending.get(kid)
        if pending is None:
            pending = asyncio.ensure_future(self._load_signing_key(kid))
            self._pending[kid] = pending
            pending.add_done_callback(lambda fut: self._forget_pending(kid, fut))
        return await asyncio.shield(pending)

    def clear(self) -> None:
        """Clear all cached keys.

        Loads already in flight still complete for their waiters, but their
        keys are not cached and later calls start a fresh fetch.
        """
        self._cache.clear()
        self._pending.clear()
        self._generation += 1

    def get_cache_stats(self) -> dict[str, int]:
        """Return cache statistics (``size`` and ``max_size``)."""
        return self._cache.stats()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _forget_pending(self, kid: str, fut: asyncio.Future[str]) -> None:
        if self._pending.get(kid) is fut:
            del self._pending[kid]
        # Mark the exception retrieved when every waiter was cancelled
        if not fut.cancelled():
            fut.exception()

    async def _load_signing_key(self, kid: str) -> str:
        generation = self._generation
        jwks = await self._fetch_jwks_with_retry()
        jwk = next(
            (k for k in jwks["keys"] if isinstance(k, dict) and k.get("kid") == kid),
            None,
        )
        if jwk is None:
            raise KeyNotFoundError(kid)

        public_key = jwk_to_pem(jwk)
        if generation == self._generation:
            self._cache.set(kid, public_key)
            logger.debug("wristband_jwt.jwks.key_cached", kid=kid)
        return public_key

    async def _fetch_jwks(self) -> dict:
        async with httpx.AsyncClient(
            timeout=self._timeout, transport=self._transport
        ) as client:
            resp = await client.get(self._jwks_uri)
            if not resp.is_success:
                raise httpx.HTTPStatusError(
                    f"HTTP {resp.status_code}: {resp.reason_phrase}",
                    request=resp.request,
                    response=resp,
                )
            data = resp.json()

        if not isinstance(data, dict) or not isinstance(data.get("keys"), list):
            raise ValueError("JWKS response does not contain a 'keys' array")
        return data

    async def _fetch_jwks_with_retry(self) -> dict:
        for attempt in range(1, self._max_attempts + 1):
            try:
                jwks = await self._fetch_jwks()
            except (httpx.HTTPError, ValueError) as exc:
                logger.warning(
                    "wristband_jwt.jwks.fetch_failed",
                    uri=self._jwks_uri,
                    attempt=attempt,
                    max_attempts=self._max_attempts,
                    error=str(exc),
                )
                if attempt == self._max_attempts:
                    raise KeySetFetchError(
                        f"Failed to fetch JWKS after {self._max_attempts} attempts: "
                        f"{str(exc) or 'Unknown error'}"
                    ) from exc
                await self._sleep(self._retry_delay)
            else:
                logger.info(
                    "wristband_jwt.jwks.fetched",
                    uri=self._jwks_uri,
                    key_count=len(jwks["keys"]),
                )
                return jwks

        # Unreachable: the loop either returns or raises on the last attempt
        raise KeySetFetchError("Unexpected error in JWKS fetch retry logic")


def create_jwks_client(jwks_uri: str, **kwargs: Any) -> JWKSClient:
    """Create a configured JWKSClient.

    Args:
        jwks_uri: URL of the JWKS endpoint.
        **kwargs: Keyword arguments passed to JWKSClient.

    Returns:
        A new JWKSClient.
    """
    return JWKSClient(jwks_uri, **kwargs)
