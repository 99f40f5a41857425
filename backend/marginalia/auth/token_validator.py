"""Entra ID access token validation with PyJWT."""

from typing import Any

import jwt
from jwt import PyJWKClient, PyJWKClientError

from .config import get_auth_settings


class TokenValidationError(Exception):
    """Raised when token validation fails."""

    def __init__(self, message: str, status_code: int = 401):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


# Signing keys are cached by PyJWKClient itself
_jwk_client: PyJWKClient | None = None


def get_jwk_client() -> PyJWKClient:
    global _jwk_client
    if _jwk_client is None:
        _jwk_client = PyJWKClient(get_auth_settings().jwks_uri, cache_jwk_set=True, lifespan=3600)
    return _jwk_client


def get_signing_key(token: str) -> Any:
    """Look up the public key matching the token's `kid` header."""
    try:
        return get_jwk_client().get_signing_key_from_jwt(token).key
    except PyJWKClientError as e:
        raise TokenValidationError(f"Failed to get signing key: {e}")
    except jwt.DecodeError as e:
        raise TokenValidationError(f"Invalid token format: {e}")


def validate_token(token: str) -> dict[str, Any]:
    """Validate signature, expiry, audience and issuer; return the claims.

    Raises:
        TokenValidationError: 401 for a bad token, 500 when auth is not configured.
    """
    settings = get_auth_settings()
    if not settings.is_configured():
        raise TokenValidationError(
            "Authentication not configured. Set AZURE_TENANT_ID and AZURE_API_SCOPE.",
            status_code=500,
        )

    signing_key = get_signing_key(token)
    try:
        claims = jwt.decode(
            token,
            signing_key,
            algorithms=["RS256"],
            audience=settings.valid_audiences,
            options={"require": ["exp", "iat", "iss", "aud", "sub"], "verify_iss": False},
        )
    except jwt.ExpiredSignatureError:
        raise TokenValidationError("Token has expired")
    except jwt.InvalidAudienceError:
        raise TokenValidationError("Invalid token audience")
    except jwt.InvalidTokenError as e:
        raise TokenValidationError(f"Invalid token: {e}")

    # v1.0 and v2.0 issuers are both accepted, so the issuer is checked here
    if claims.get("iss") not in settings.valid_issuers:
        raise TokenValidationError("Invalid token issuer")
    return claims


def clear_jwks_cache() -> None:
    """Drop the cached key client (tests, key rotation)."""
    global _jwk_client
    _jwk_client = None
