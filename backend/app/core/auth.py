"""Bearer JWT authentication for FastAPI.

Tokens are RS256 JWTs issued by the hosted auth service and verified against
its JWKS endpoint. ``sub`` is the storefront user id.
"""

from dataclasses import dataclass
from functools import lru_cache

import jwt as pyjwt
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt import PyJWKClient

from app.core.config import get_settings

_bearer_scheme = HTTPBearer(auto_error=False)


@lru_cache
def get_jwks_client() -> PyJWKClient:
    """Create a cached JWKS client pointing at the auth service's JWKS endpoint."""
    settings = get_settings()
    if not settings.auth_jwks_url:
        raise RuntimeError("AUTH_JWKS_URL is not configured")
    return PyJWKClient(settings.auth_jwks_url, cache_keys=True, lifespan=300)


@dataclass(frozen=True)
class AuthUser:
    """Authenticated user extracted from a bearer JWT."""

    user_id: str
    claims: dict

    @property
    def email(self) -> str | None:
        return self.claims.get("email")


def decode_access_token(token: str) -> AuthUser:
    """Verify and decode an access token.

    Raises ``HTTPException(401)`` on any validation failure.
    """
    settings = get_settings()
    try:
        client = get_jwks_client()
    except RuntimeError as exc:
        raise HTTPException(status_code=500, detail="Authentication is misconfigured") from exc

    options = {
        "verify_exp": True,
        "verify_iat": True,
        "verify_aud": bool(settings.auth_audience),
        "require": ["sub", "exp", "iat"],
    }
    try:
        signing_key = client.get_signing_key_from_jwt(token)
        payload = pyjwt.decode(
            token,
            signing_key.key,
            algorithms=["RS256"],
            audience=settings.auth_audience or None,
            issuer=settings.auth_issuer or None,
            options=options,
        )
    except pyjwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except pyjwt.InvalidAudienceError:
        raise HTTPException(status_code=401, detail="Unauthorized audience (aud mismatch)")
    except pyjwt.InvalidIssuerError:
        raise HTTPException(status_code=401, detail="Invalid issuer (iss mismatch)")
    except pyjwt.MissingRequiredClaimError as exc:
        raise HTTPException(status_code=401, detail=f"Missing required claim: {exc}")
    except pyjwt.PyJWKClientError as exc:
        raise HTTPException(status_code=401, detail=f"Invalid token: {exc}")
    except pyjwt.InvalidTokenError as exc:
        raise HTTPException(status_code=401, detail=f"Invalid token: {exc}")

    sub = payload.get("sub")
    if not sub:
        raise HTTPException(status_code=401, detail="Token missing sub claim")

    return AuthUser(user_id=sub, claims=payload)


def is_admin_user(user: AuthUser) -> bool:
    """Check if user has admin role via token metadata."""
    app_metadata = user.claims.get("app_metadata") or {}
    if app_metadata.get("role") == "admin":
        return True
    user_metadata = user.claims.get("user_metadata") or {}
    return user_metadata.get("is_admin") is True


async def require_auth(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
) -> AuthUser:
    """FastAPI dependency that extracts and validates the bearer JWT.

    Usage::

        @router.get("/protected")
        async def protected(user: AuthUser = Depends(require_auth)):
            ...
    """
    if credentials is None:
        raise HTTPException(status_code=401, detail="Missing authorization header")

    user = decode_access_token(credentials.credentials)

    # Set user_id on request state for downstream use (error handlers, audit logging)
    request.state.user_id = user.user_id

    return user


async def require_admin(user: AuthUser = Depends(require_auth)) -> AuthUser:
    """FastAPI dependency that requires admin privileges."""
    if is_admin_user(user):
        return user
    raise HTTPException(status_code=403, detail="Admin privileges required")
