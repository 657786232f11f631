"""Tests for the crypto module."""

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa

from wristband_jwt.crypto import (
    base64url_encode,
    base64url_decode,
    base64url_decode_text,
    import_rsa_public_key,
    validate_algorithm,
    verify_rs256,
)

from conftest import sign_token


def _pem(private_key) -> str:
    return private_key.public_key().public_bytes(
        serialization.Encoding.PEM,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("ascii")


# ---------------------------------------------------------------------------
# base64url
# ---------------------------------------------------------------------------

def test_base64url_roundtrip() -> None:
    data = b"\x00\xff\x80\x01"
    encoded = base64url_encode(data)
    assert "+" not in encoded
    assert "/" not in encoded
    assert "=" not in encoded
    assert base64url_decode(encoded) == data


def test_base64url_empty() -> None:
    assert base64url_encode(b"") == ""
    assert base64url_decode("") == b""


def test_base64url_decode_accepts_padding() -> None:
    assert base64url_decode("YQ==") == b"a"
    assert base64url_decode("YQ") == b"a"


def test_base64url_decode_text() -> None:
    assert base64url_decode_text("eyJhbGciOiJSUzI1NiJ9") == '{"alg":"RS256"}'


@pytest.mark.parametrize("bad", ["!!!!", "a", "ab$d"])
def test_base64url_decode_rejects_invalid_input(bad: str) -> None:
    with pytest.raises(ValueError):
        base64url_decode(bad)


# ---------------------------------------------------------------------------
# RS256
# ---------------------------------------------------------------------------

def test_verify_rs256_valid_signature(private_key) -> None:
    token = sign_token(private_key, {"sub": "abc"})
    header, payload, signature = token.split(".")
    assert verify_rs256(f"{header}.{payload}", signature, _pem(private_key)) is True


def test_verify_rs256_wrong_data(private_key) -> None:
    token = sign_token(private_key, {"sub": "abc"})
    header, _, signature = token.split(".")
    tampered = base64url_encode(b'{"sub":"admin"}')
    assert verify_rs256(f"{header}.{tampered}", signature, _pem(private_key)) is False


def test_verify_rs256_wrong_key(private_key, other_private_key) -> None:
    token = sign_token(private_key, {"sub": "abc"})
    header, payload, signature = token.split(".")
    assert verify_rs256(f"{header}.{payload}", signature, _pem(other_private_key)) is False


@pytest.mark.parametrize(
    "data,signature,pem",
    [
        ("", "c2ln", "pem"),
        ("a.b", "", "pem"),
        ("a.b", "c2ln", ""),
        ("a.b", "c2ln", "not a pem"),
        ("a.b", "!!!", "-----BEGIN PUBLIC KEY-----\nAAAA\n-----END PUBLIC KEY-----"),
    ],
)
def test_verify_rs256_bad_inputs_return_false(data: str, signature: str, pem: str) -> None:
    assert verify_rs256(data, signature, pem) is False


def test_import_rsa_public_key(private_key) -> None:
    key = import_rsa_public_key(_pem(private_key))
    assert key.public_numbers() == private_key.public_key().public_numbers()


def test_import_rsa_public_key_missing_markers() -> None:
    with pytest.raises(ValueError, match="missing headers"):
        import_rsa_public_key("MIIBIjANBgkqhkiG9w0BAQEFAAOCAQ8AMIIBCgKCAQEA")


def test_import_rsa_public_key_rejects_non_rsa() -> None:
    ec_key = ec.generate_private_key(ec.SECP256R1())
    with pytest.raises(ValueError, match="not an RSA key"):
        import_rsa_public_key(_pem(ec_key))


def test_import_rsa_public_key_rejects_garbage() -> None:
    pem = "-----BEGIN PUBLIC KEY-----\nAAAA\n-----END PUBLIC KEY-----"
    with pytest.raises(ValueError, match="Failed to import RSA public key"):
        import_rsa_public_key(pem)


# ---------------------------------------------------------------------------
# Algorithm allowlist
# ---------------------------------------------------------------------------

class TestValidateAlgorithm:
    def test_allowed(self) -> None:
        assert validate_algorithm("RS256", ["RS256"]) is True

    def test_case_insensitive(self) -> None:
        assert validate_algorithm("rs256", ["RS256"]) is True
        assert validate_algorithm("RS256", ["rs256"]) is True

    def test_algorithm_confusion_rejected(self) -> None:
        assert validate_algorithm("HS256", ["RS256"]) is False

    @pytest.mark.parametrize("alg", ["none", "None", "NONE"])
    def test_none_always_rejected(self, alg: str) -> None:
        assert validate_algorithm(alg, ["RS256"]) is False
        assert validate_algorithm(alg, ["none"]) is False
        assert validate_algorithm(alg, ["RS256", "none"]) is False

    @pytest.mark.parametrize("alg", ["", "   ", None, 256])
    def test_blank_or_non_string_algorithm(self, alg: object) -> None:
        assert validate_algorithm(alg, ["RS256"]) is False

    def test_allowlist_must_be_sequence(self) -> None:
        assert validate_algorithm("RS256", "RS256") is False
        assert validate_algorithm("RS256", None) is False

    def test_blank_allowlist_entries_ignored(self) -> None:
        assert validate_algorithm("RS256", ["", "  ", None, "RS256"]) is True
        assert validate_algorithm("RS256", ["", "  "]) is False
