"""Wristband JWT Python SDK.

Validate RS256 access tokens issued by a Wristband application using the
signing keys published at its JWKS endpoint.
"""

from .validator import (
    JWTValidator,
    ValidationResult,
    create_jwt_validator,
    extract_bearer_token,
)
from .jwks import JWKSClient, create_jwks_client, jwk_to_pem
from .cache import LRUCache
from .crypto import (
    base64url_encode,
    base64url_decode,
    validate_algorithm,
    verify_rs256,
)
from .errors import (
    WristbandJwtError,
    ConfigError,
    KeyResolutionError,
    KeySetFetchError,
    KeyNotFoundError,
    UnsupportedKeyTypeError,
    MalformedKeyError,
    WeakKeyError,
    BearerTokenError,
)

__all__ = [
    "JWTValidator",
    "ValidationResult",
    "create_jwt_validator",
    "extract_bearer_token",
    "JWKSClient",
    "create_jwks_client",
    "jwk_to_pem",
    "LRUCache",
    "base64url_encode",
    "base64url_decode",
    "validate_algorithm",
    "verify_rs256",
    "WristbandJwtError",
    "ConfigError",
    "KeyResolutionError",
    "KeySetFetchError",
    "KeyNotFoundError",
    "UnsupportedKeyTypeError",
    "MalformedKeyError",
    "WeakKeyError",
    "BearerTokenError",
]
__version__ = "0.1.0"
