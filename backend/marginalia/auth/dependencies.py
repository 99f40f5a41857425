"""FastAPI dependencies for authentication."""

from typing import Annotated
from fastapi import Depends, HTTPException, Header, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel

from .config import get_auth_settings
from .token_validator import validate_token, TokenValidationError


bearer_scheme = HTTPBearer(
    scheme_name="Bearer",
    description="Entra ID access token",
    auto_error=False,
)


class CurrentUser(BaseModel):
    """The caller, as identified by the token (or the dev header)."""

    user_id: str
    email: str | None = None
    scopes: list[str] = []
    roles: list[str] = []

    @classmethod
    def from_token_claims(cls, claims: dict) -> "CurrentUser":
        scopes_str = claims.get("scp", "")
        return cls(
            user_id=claims.get("sub", claims.get("oid", "")),
            email=claims.get("email") or claims.get("preferred_username"),
            scopes=scopes_str.split() if scopes_str else [],
            roles=list(claims.get("roles", [])),
        )

    def has_permission(self, name: str) -> bool:
        """Delegated scope or application role."""
        return name in self.scopes or name in self.roles


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    x_user_id: str | None = Header(None, description="User ID header (dev fallback)"),
) -> CurrentUser:
    """Validate the Bearer token and return the caller.

    With AUTH_ENABLED=false the X-User-Id header identifies the caller and
    carries every permission, including the admin scope.

    Raises:
        HTTPException: 401 if the token is missing or invalid.
    """
    settings = get_auth_settings()

    if not settings.enabled:
        if x_user_id:
            return CurrentUser(user_id=x_user_id, scopes=[settings.admin_scope])
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"kind": "unauthorized", "message": "X-User-Id header required"},
            headers={"WWW-Authenticate": "Bearer"},
        )

    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"kind": "unauthorized", "message": "Missing authentication token"},
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        claims = validate_token(credentials.credentials)
    except TokenValidationError as e:
        raise HTTPException(
            status_code=e.status_code,
            detail={"kind": "unauthorized", "message": e.message},
            headers={"WWW-Authenticate": "Bearer"},
        )
    return CurrentUser.from_token_claims(claims)


async def require_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    """Allow only callers holding the admin scope or role.

    Raises:
        HTTPException: 403 without the admin permission.
    """
    settings = get_auth_settings()
    if not user.has_permission(settings.admin_scope):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "kind": "forbidden",
                "message": f"Insufficient permissions. Required scope: {settings.admin_scope}",
            },
        )
    return user
