"""Unit tests for JWT decoding and authentication utilities."""

import time
from collections.abc import Generator
from typing import Any
from unittest.mock import patch

import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import ec
from jwt.algorithms import ECAlgorithm

from src.api.middleware.auth import AuthError, AuthErrorCode, decode_jwt, get_signing_key

SIGNING_KEY = ec.generate_private_key(ec.SECP256R1())
OTHER_KEY = ec.generate_private_key(ec.SECP256R1())
SIGNING_JWK = ECAlgorithm.to_jwk(SIGNING_KEY.public_key())


def create_test_token(
    sub: str = "550e8400-e29b-41d4-a716-446655440000",
    email: str | None = "test@example.com",
    role: str | None = "authenticated",
    exp_offset: int = 3600,
    key: Any = SIGNING_KEY,
    omit: tuple[str, ...] = (),
) -> str:
    """Create an ES256 test token.

    Args:
        sub: Subject (user ID).
        email: User email.
        role: User role.
        exp_offset: Seconds from now for expiration (negative for expired).
        key: EC private key used to sign.
        omit: Claims to leave out.

    Returns:
        str: Encoded JWT token.
    """
    now = int(time.time())
    payload = {
        "sub": sub,
        "email": email,
        "role": role,
        "exp": now + exp_offset,
        "iat": now,
        "aud": "authenticated",
    }
    for claim in omit:
        payload.pop(claim)
    return jwt.encode(payload, key, algorithm="ES256")


@pytest.fixture(autouse=True)
def signing_jwk() -> Generator[Any, None, None]:
    """Point the signing key setting at the test key."""
    get_signing_key.cache_clear()
    with patch("src.api.middleware.auth.get_settings") as mock_settings:
        mock_settings.return_value.supabase_signing_key_jwk = SIGNING_JWK
        yield mock_settings
    get_signing_key.cache_clear()


class TestDecodeJWT:
    """Tests for decode_jwt function."""

    def test_decodes_valid_token(self) -> None:
        """Test decode_jwt successfully decodes a valid token."""
        payload = decode_jwt(create_test_token())

        assert payload.sub == "550e8400-e29b-41d4-a716-446655440000"
        assert payload.email == "test@example.com"
        assert payload.role == "authenticated"

    def test_user_context_from_payload(self) -> None:
        """Test that the payload converts to the user context."""
        user = decode_jwt(create_test_token(sub="user-1")).to_user_context()

        assert user.user_id == "user-1"

    def test_expired_token(self) -> None:
        """Test decode_jwt raises AuthError for expired token."""
        with pytest.raises(AuthError) as exc_info:
            decode_jwt(create_test_token(exp_offset=-3600))

        assert exc_info.value.code == AuthErrorCode.TOKEN_EXPIRED

    def test_invalid_signature(self) -> None:
        """Test that tokens signed by another key are rejected."""
        with pytest.raises(AuthError) as exc_info:
            decode_jwt(create_test_token(key=OTHER_KEY))

        assert exc_info.value.code == AuthErrorCode.INVALID_SIGNATURE

    def test_missing_subject(self) -> None:
        """Test that a token without sub is rejected."""
        with pytest.raises(AuthError) as exc_info:
            decode_jwt(create_test_token(omit=("sub",)))

        assert exc_info.value.code == AuthErrorCode.INVALID_TOKEN

    def test_malformed_token(self) -> None:
        """Test that garbage is rejected as invalid."""
        with pytest.raises(AuthError) as exc_info:
            decode_jwt("not.a.token")

        assert exc_info.value.code == AuthErrorCode.INVALID_TOKEN


class TestSigningKey:
    """Tests for get_signing_key."""

    def test_missing_jwk(self, signing_jwk: Any) -> None:
        """Test that an unset key is reported as an auth error."""
        signing_jwk.return_value.supabase_signing_key_jwk = ""

        with pytest.raises(AuthError, match="not configured"):
            get_signing_key()

    def test_malformed_jwk(self, signing_jwk: Any) -> None:
        """Test that a JWK that is not JSON is reported."""
        signing_jwk.return_value.supabase_signing_key_jwk = "test-signing-key-jwk"

        with pytest.raises(AuthError, match="Invalid signing key JWK format"):
            get_signing_key()
