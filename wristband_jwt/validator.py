"""JWT validation for Wristband-issued access tokens.

Validation runs as a fixed sequence of checks over a single token. Each
check either passes or yields the reason the token is rejected, and the
first rejection ends the sequence:

1. token present
2. three dot-separated segments
3. header and payload decode to JSON objects
4. ``alg`` allowed (``none`` never is)
5. ``iss`` matches the configured issuer
6. ``exp`` (if present) numeric and in the future
7. ``nbf`` (if present) numeric and not in the future
8. header carries a ``kid``
9. signing key resolved through the JWKS client
10. RS256 signature valid
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import Any, Callable, Sequence

import httpx
import structlog

from .crypto import RS256, base64url_decode_text, validate_algorithm, verify_rs256
from .errors import BearerTokenError, ConfigError
from .jwks import DEFAULT_CACHE_MAX_SIZE, JWKSClient, create_jwks_client

logger = structlog.get_logger(__name__)

JWKS_PATH = "/api/v1/oauth2/jwks"
BEARER_PREFIX = "Bearer "

# Type alias for decoded JWT claims
Claims = dict[str, Any]


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of a validate() call.

    ``payload`` is set only for valid tokens and ``error_message`` only for
    invalid ones.
    """

    is_valid: bool
    payload: Claims | None = None
    error_message: str | None = None

    @classmethod
    def valid(cls, payload: Claims) -> "ValidationResult":
        return cls(is_valid=True, payload=payload)

    @classmethod
    def invalid(cls, message: str) -> "ValidationResult":
        return cls(is_valid=False, error_message=message)


def extract_bearer_token(authorization_header: str | Sequence[str] | None) -> str:
    """Extract the raw token from an Authorization header value.

    Accepts a single header string or a list/tuple holding exactly one.
    The ``Bearer `` scheme prefix is case-sensitive.

    Args:
        authorization_header: Header value(s), or None.

    Returns:
        The token that follows ``Bearer ``.

    Raises:
        BearerTokenError: If the header is missing or empty, repeated,
            uses another scheme, or carries no token.
    """
    if not authorization_header:
        raise BearerTokenError("No authorization header provided")

    if isinstance(authorization_header, (list, tuple)):
        if len(authorization_header) > 1:
            raise BearerTokenError("Multiple authorization headers not allowed")
        header_value = authorization_header[0]
    else:
        header_value = authorization_header

    if not isinstance(header_value, str) or not header_value.strip():
        raise BearerTokenError("No authorization header provided")

    if not header_value.startswith(BEARER_PREFIX):
        raise BearerTokenError('Authorization header must provide "Bearer" token')

    token = header_value[len(BEARER_PREFIX):]
    if not token:
        raise BearerTokenError("No token provided")
    return token


class JWTValidator:
    """Validates RS256 JWTs from a single issuer against its JWKS.

    Holds no per-call state; create one instance and reuse it so the JWKS
    client's key cache is shared across requests.
    """

    def __init__(
        self,
        jwks_client: JWKSClient,
        issuer: str,
        algorithms: Sequence[str] = (RS256,),
        *,
        verifier: Callable[[str, str, str], bool] = verify_rs256,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the validator.

        Args:
            jwks_client: Client used to resolve signing keys.
            issuer: Expected ``iss`` claim.
            algorithms: Allowed algorithms; must be exactly ``["RS256"]``.
            verifier: Signature check taking (signed data, base64url
                signature, PEM key) and returning a bool.
            clock: Returns the current Unix time in seconds.

        Raises:
            ConfigError: On a missing client, blank issuer or any algorithm
                list other than a single RS256.
        """
        if jwks_client is None:
            raise ConfigError("JWKSClient must be provided to the validator.")
        if not isinstance(issuer, str) or not issuer.strip():
            raise ConfigError("A valid issuer must be provided to the validator.")
        if (
            isinstance(algorithms, str)
            or not algorithms
            or len(algorithms) != 1
            or not isinstance(algorithms[0], str)
            or algorithms[0].upper() != RS256
        ):
            raise ConfigError("Only the RS256 algorithm is supported.")

        self._jwks_client = jwks_client
        self._issuer = issuer
        self._algorithms = list(algorithms)
        self._verifier = verifier
        self._clock = clock

    @property
    def issuer(self) -> str:
        return self._issuer

    @property
    def algorithms(self) -> list[str]:
        return list(self._algorithms)

    def extract_bearer_token(
        self, authorization_header: str | Sequence[str] | None
    ) -> str:
        """Extract the raw token from an Authorization header value."""
        return extract_bearer_token(authorization_header)

    async def validate(self, token: str | None) -> ValidationResult:
        """Validate a JWT.

        Never raises: every failure, expected or not, is reported through
        the returned ValidationResult.

        Args:
            token: Raw JWT string.

        Returns:
            ValidationResult with the payload on success, or the reason
            for rejection.
        """
        try:
            result = await self._validate(token)
        except Exception as exc:
            result = ValidationResult.invalid(str(exc) or "Token validation failed")

        if not result.is_valid:
            logger.debug("wristband_jwt.validator.rejected", reason=result.error_message)
        return result

    async def _validate(self, token: str | None) -> ValidationResult:
        if not token:
            return ValidationResult.invalid("No token provided")

        parts = token.split(".")
        if len(parts) != 3:
            return ValidationResult.invalid("Invalid JWT format")
        header_b64, payload_b64, signature_b64 = parts

        decoded = _decode_segments(header_b64, payload_b64)
        if decoded is None:
            return ValidationResult.invalid("Invalid JWT encoding")
        header, payload = decoded

        error = self._check_claims(header, payload)
        if error is not None:
            return ValidationResult.invalid(error)

        kid = header.get("kid")
        if not kid:
            return ValidationResult.invalid("Token header missing kid (key ID)")

        try:
            public_key = await self._jwks_client.get_signing_key(kid)
        except Exception as exc:
            return ValidationResult.invalid(
                f"Failed to get signing key: {str(exc) or 'Unknown error'}"
            )

        if not self._verifier(f"{header_b64}.{payload_b64}", signature_b64, public_key):
            return ValidationResult.invalid("Invalid signature")

        return ValidationResult.valid(payload)

    def _check_claims(self, header: Claims, payload: Claims) -> str | None:
        """Return the first failed header/claim check, or None."""
        alg = header.get("alg")
        if not validate_algorithm(alg, self._algorithms):
            return (
                f"Algorithm {alg} not allowed. "
                f"Expected one of: {', '.join(self._algorithms)}"
            )

        iss = payload.get("iss")
        if iss != self._issuer:
            return f"Invalid issuer. Expected {self._issuer}, got {iss}"

        exp = payload.get("exp")
        if exp is not None and not _is_numeric_date(exp):
            return "Invalid exp claim"
        nbf = payload.get("nbf")
        if nbf is not None and not _is_numeric_date(nbf):
            return "Invalid nbf claim"

        now = self._clock()
        if exp is not None and now >= exp:
            return "Token has expired"
        if nbf is not None and now < nbf:
            return "Token not yet valid"

        return None


def _is_numeric_date(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _reject_constant(name: str) -> Any:
    raise ValueError(f"Non-standard JSON constant: {name}")


def _load_segment(segment: str) -> Any:
    # NaN and Infinity are not JSON
    return json.loads(base64url_decode_text(segment), parse_constant=_reject_constant)


def _decode_segments(header_b64: str, payload_b64: str) -> tuple[Claims, Claims] | None:
    """Decode the header and payload segments, or None if either is invalid."""
    try:
        header = _load_segment(header_b64)
        payload = _load_segment(payload_b64)
    except (ValueError, RecursionError):
        return None
    if not isinstance(header, dict) or not isinstance(payload, dict):
        return None
    return header, payload


def create_jwt_validator(
    issuer_domain: str,
    *,
    cache_max_size: int = DEFAULT_CACHE_MAX_SIZE,
    cache_ttl: int | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> JWTValidator:
    """Create a validator for tokens issued by a Wristband application.

    The issuer is ``https://{issuer_domain}`` and keys are fetched from
    ``https://{issuer_domain}/api/v1/oauth2/jwks``.

    Args:
        issuer_domain: The application's vanity domain, e.g.
            ``"myapp.wristband.dev"``.
        cache_max_size: Maximum number of cached signing keys (default 20).
        cache_ttl: Optional key time-to-live in seconds; ``None`` caches
            keys until evicted for space.
        transport: Optional httpx transport, mainly for testing.

    Returns:
        A JWTValidator that should be reused across requests.

    Example:
        >>> validator = create_jwt_validator("myapp.wristband.dev")
        >>> token = validator.extract_bearer_token(request.headers.get("authorization"))
        >>> result = await validator.validate(token)
        >>> if result.is_valid:
        ...     user_id = result.payload["sub"]
    """
    if not isinstance(issuer_domain, str) or not issuer_domain.strip():
        raise ConfigError("A valid issuer domain is required.")

    issuer = f"https://{issuer_domain}"
    jwks_client = create_jwks_client(
        f"{issuer}{JWKS_PATH}",
        cache_max_size=cache_max_size,
        cache_ttl=cache_ttl,
        transport=transport,
    )
    return JWTValidator(jwks_client, issuer, [RS256])
