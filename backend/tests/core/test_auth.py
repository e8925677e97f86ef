"""Tests for bearer JWT authentication."""

import time
from dataclasses import dataclass
from unittest.mock import MagicMock, patch

import jwt as pyjwt
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials

from app.core.auth import AuthUser, decode_access_token, is_admin_user, require_admin, require_auth
from app.core.config import Settings

pytestmark = pytest.mark.unit

# ---------------------------------------------------------------------------
# RSA keypair generated once for entire test module
# ---------------------------------------------------------------------------
_private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
_public_key = _private_key.public_key()

_private_pem = _private_key.private_bytes(
    encoding=serialization.Encoding.PEM,
    format=serialization.PrivateFormat.PKCS8,
    encryption_algorithm=serialization.NoEncryption(),
)

_ISSUER = "https://auth.roastery.test/auth/v1"
_AUDIENCE = "authenticated"


def _sign_jwt(payload: dict, kid: str = "test-kid") -> str:
    return pyjwt.encode(payload, _private_pem, algorithm="RS256", headers={"kid": kid})


def _claims(**overrides) -> dict:
    now = int(time.time())
    claims = {"sub": "user_1", "iat": now, "exp": now + 600, "aud": _AUDIENCE, "iss": _ISSUER}
    claims.update(overrides)
    return {k: v for k, v in claims.items() if v is not None}


@dataclass
class _FakeSigningKey:
    key: object


@pytest.fixture(autouse=True)
def jwks():
    client = MagicMock()
    client.get_signing_key_from_jwt.return_value = _FakeSigningKey(key=_public_key)
    settings = Settings(_env_file=None, auth_jwks_url="https://jwks.test", auth_issuer=_ISSUER, auth_audience=_AUDIENCE)
    with patch("app.core.auth.get_jwks_client", return_value=client), patch(
        "app.core.auth.get_settings", return_value=settings
    ):
        yield client


class TestDecodeAccessToken:
    def test_valid_token(self):
        user = decode_access_token(_sign_jwt(_claims(email="asha@example.com")))

        assert user.user_id == "user_1"
        assert user.email == "asha@example.com"

    def test_expired_token(self):
        now = int(time.time())
        token = _sign_jwt(_claims(iat=now - 7200, exp=now - 3600))

        with pytest.raises(HTTPException) as exc_info:
            decode_access_token(token)
        assert exc_info.value.status_code == 401
        assert exc_info.value.detail == "Token expired"

    def test_wrong_audience(self):
        with pytest.raises(HTTPException) as exc_info:
            decode_access_token(_sign_jwt(_claims(aud="someone-else")))
        assert "aud mismatch" in exc_info.value.detail

    def test_wrong_issuer(self):
        with pytest.raises(HTTPException) as exc_info:
            decode_access_token(_sign_jwt(_claims(iss="https://evil.test")))
        assert "iss mismatch" in exc_info.value.detail

    def test_missing_sub(self):
        with pytest.raises(HTTPException) as exc_info:
            decode_access_token(_sign_jwt(_claims(sub=None)))
        assert exc_info.value.status_code == 401

    def test_foreign_key_signature(self):
        other = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        token = pyjwt.encode(_claims(), other, algorithm="RS256", headers={"kid": "test-kid"})

        with pytest.raises(HTTPException) as exc_info:
            decode_access_token(token)
        assert exc_info.value.status_code == 401

    def test_misconfigured_jwks_answers_500(self):
        with patch("app.core.auth.get_jwks_client", side_effect=RuntimeError("AUTH_JWKS_URL is not configured")):
            with pytest.raises(HTTPException) as exc_info:
                decode_access_token(_sign_jwt(_claims()))
        assert exc_info.value.status_code == 500


class TestAdmin:
    @pytest.mark.parametrize(
        ("claims", "expected"),
        [
            ({"app_metadata": {"role": "admin"}}, True),
            ({"user_metadata": {"is_admin": True}}, True),
            ({"user_metadata": {"is_admin": "true"}}, False),
            ({"app_metadata": {"role": "customer"}}, False),
            ({}, False),
        ],
    )
    def test_is_admin_user(self, claims, expected):
        assert is_admin_user(AuthUser(user_id="u", claims=claims)) is expected

    async def test_require_admin_rejects_customers(self):
        with pytest.raises(HTTPException) as exc_info:
            await require_admin(AuthUser(user_id="u", claims={}))
        assert exc_info.value.status_code == 403


class TestRequireAuth:
    async def test_missing_header(self):
        with pytest.raises(HTTPException) as exc_info:
            await require_auth(MagicMock(), None)
        assert exc_info.value.detail == "Missing authorization header"

    async def test_sets_request_user_id(self):
        request = MagicMock()
        credentials = HTTPAuthorizationCredentials(scheme="Bearer", credentials=_sign_jwt(_claims()))

        user = await require_auth(request, credentials)

        assert user.user_id == "user_1"
        assert request.state.user_id == "user_1"
