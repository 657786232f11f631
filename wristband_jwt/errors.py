"""Exception types raised by the Wristband JWT SDK."""

from __future__ import annotations


class WristbandJwtError(Exception):
    """Base class for all SDK errors."""


class ConfigError(WristbandJwtError, ValueError):
    """Raised when a cache, client or validator is constructed with bad arguments."""


class KeyResolutionError(WristbandJwtError):
    """Raised when a signing key cannot be resolved from the JWKS endpoint."""


class KeySetFetchError(KeyResolutionError):
    """Raised when the JWKS could not be fetched after all retry attempts."""


class KeyNotFoundError(KeyResolutionError):
    """Raised when the JWKS holds no key with the requested key ID."""

    def __init__(self, kid: str) -> None:
        super().__init__(f"Unable to find a signing key that matches '{kid}'")
        self.kid = kid


class UnsupportedKeyTypeError(KeyResolutionError):
    """Raised for JWKs whose ``kty`` is not RSA."""


class MalformedKeyError(KeyResolutionError):
    """Raised for RSA JWKs with a missing or undecodable modulus/exponent."""


class WeakKeyError(KeyResolutionError):
    """Raised for RSA keys below the minimum modulus size."""

    def __init__(self, bits: int, minimum: int) -> None:
        super().__init__(
            f"RSA key too weak: {bits} bits. {minimum} bits minimum required."
        )
        self.bits = bits
        self.minimum = minimum


class BearerTokenError(WristbandJwtError, ValueError):
    """Raised when an Authorization header does not carry a usable Bearer token."""
