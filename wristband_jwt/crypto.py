"""RS256 cryptography and encoding utilities."""

from __future__ import annotations

import base64

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPublicKey

PEM_HEADER = "-----BEGIN PUBLIC KEY-----"
PEM_FOOTER = "-----END PUBLIC KEY-----"

RS256 = "RS256"


def base64url_encode(data: bytes) -> str:
    """Encode bytes to base64url with no padding."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def base64url_decode(s: str) -> bytes:
    """Decode a base64url string (with or without padding) to bytes.

    Raises:
        ValueError: If the input holds characters outside the base64url alphabet.
    """
    # Add back padding
    padding_len = 4 - len(s) % 4
    if padding_len != 4:
        s += "=" * padding_len
    return base64.b64decode(s, altchars=b"-_", validate=True)


def base64url_decode_text(s: str) -> str:
    """Decode a base64url string to UTF-8 text."""
    return base64url_decode(s).decode("utf-8")


def import_rsa_public_key(pem: str) -> RSAPublicKey:
    """Load an RSA public key from PEM (SubjectPublicKeyInfo) text.

    Args:
        pem: PEM text with BEGIN/END PUBLIC KEY markers.

    Returns:
        The loaded RSA public key.

    Raises:
        ValueError: If the markers are missing or the key cannot be loaded.
    """
    if PEM_HEADER not in pem or PEM_FOOTER not in pem:
        raise ValueError("Invalid PEM format - missing headers")
    try:
        key = serialization.load_pem_public_key(pem.encode("ascii"))
    except (ValueError, UnsupportedAlgorithm) as exc:
        raise ValueError(f"Failed to import RSA public key: {exc}") from exc
    if not isinstance(key, RSAPublicKey):
        raise ValueError("Failed to import RSA public key: not an RSA key")
    return key


def verify_rs256(data: str, signature: str, public_key_pem: str) -> bool:
    """Verify an RS256 (RSASSA-PKCS1-v1_5 + SHA-256) signature.

    Args:
        data: The signed text, e.g. ``"<header>.<payload>"`` of a JWT.
        signature: Base64url-encoded signature.
        public_key_pem: RSA public key in PEM format.

    Returns:
        True if valid, False otherwise.
    """
    if not data or not signature or not public_key_pem:
        return False
    try:
        key = import_rsa_public_key(public_key_pem)
        key.verify(
            base64url_decode(signature),
            data.encode("utf-8"),
            padding.PKCS1v15(),
            hashes.SHA256(),
        )
        return True
    except (InvalidSignature, ValueError):
        return False


def validate_algorithm(algorithm: object, allowed_algorithms: object) -> bool:
    """Check a JWT ``alg`` header against an allowlist.

    The comparison is case-insensitive. ``"none"`` is rejected even when
    the allowlist contains it.

    Args:
        algorithm: The ``alg`` value from the token header.
        allowed_algorithms: Sequence of permitted algorithm names.

    Returns:
        True if the algorithm is allowed, False otherwise.
    """
    if not isinstance(algorithm, str) or not algorithm.strip():
        return False
    if not isinstance(allowed_algorithms, (list, tuple)):
        return False

    normalized = algorithm.lower()
    if normalized == "none":
        return False

    allowed = {
        alg.lower()
        for alg in allowed_algorithms
        if isinstance(alg, str) and alg.strip()
    }
    return normalized in allowed
