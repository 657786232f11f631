"""Shared fixtures: RSA keys, JWKS documents and signed tokens."""

from __future__ import annotations

import json
import time
from typing import Any, Callable

import httpx
import pytest
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from wristband_jwt.crypto import base64url_encode

ISSUER = "https://myapp.wristband.dev"
JWKS_URI = f"{ISSUER}/api/v1/oauth2/jwks"
KID = "test-key-1"


def _int_to_bytes(value: int) -> bytes:
    return value.to_bytes((value.bit_length() + 7) // 8, "big")


def rsa_jwk(private_key: rsa.RSAPrivateKey, kid: str = KID) -> dict:
    """Build the public JWK for an RSA private key."""
    numbers = private_key.public_key().public_numbers()
    return {
        "kty": "RSA",
        "kid": kid,
        "use": "sig",
        "alg": "RS256",
        "n": base64url_encode(_int_to_bytes(numbers.n)),
        "e": base64url_encode(_int_to_bytes(numbers.e)),
    }


def sign_token(
    private_key: rsa.RSAPrivateKey,
    payload: dict[str, Any],
    header: dict[str, Any] | None = None,
) -> str:
    """Produce a compact RS256 JWT."""
    if header is None:
        header = {"alg": "RS256", "typ": "JWT", "kid": KID}
    header_b64 = base64url_encode(json.dumps(header).encode("utf-8"))
    payload_b64 = base64url_encode(json.dumps(payload).encode("utf-8"))
    signing_input = f"{header_b64}.{payload_b64}".encode("ascii")
    signature = private_key.sign(signing_input, padding.PKCS1v15(), hashes.SHA256())
    return f"{header_b64}.{payload_b64}.{base64url_encode(signature)}"


class JWKSEndpoint:
    """Mock JWKS endpoint that records requests and replays queued responses."""

    def __init__(self, keys: list[dict]) -> None:
        self.keys = keys
        self.requests: list[httpx.Request] = []
        self.responses: list[httpx.Response | Exception] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.responses:
            response = self.responses.pop(0)
            if isinstance(response, Exception):
                raise response
            return response
        return httpx.Response(200, json={"keys": self.keys})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    @property
    def call_count(self) -> int:
        return len(self.requests)


@pytest.fixture(scope="session")
def private_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def other_private_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture()
def jwk(private_key: rsa.RSAPrivateKey) -> dict:
    return rsa_jwk(private_key)


@pytest.fixture()
def jwks_endpoint(jwk: dict) -> JWKSEndpoint:
    return JWKSEndpoint([jwk])


@pytest.fixture()
def no_sleep() -> Callable[[float], Any]:
    """Retry sleep that records delays instead of waiting."""
    delays: list[float] = []

    async def _sleep(delay: float) -> None:
        delays.append(delay)

    _sleep.delays = delays  # type: ignore[attr-defined]
    return _sleep


@pytest.fixture()
def make_token(private_key: rsa.RSAPrivateKey) -> Callable[..., str]:
    """Return a factory for signed tokens with sensible default claims."""

    def _make(
        header: dict[str, Any] | None = None,
        key: rsa.RSAPrivateKey | None = None,
        **claims: Any,
    ) -> str:
        now = int(time.time())
        payload: dict[str, Any] = {
            "iss": ISSUER,
            "sub": "user-123",
            "iat": now,
            "exp": now + 3600,
        }
        payload.update(claims)
        payload = {k: v for k, v in payload.items() if v is not None}
        return sign_token(key or private_key, payload, header)

    return _make
