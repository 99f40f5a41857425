"""Authentication module for Entra ID token validation."""

from .config import get_auth_settings, AuthSettings
from .dependencies import get_current_user, require_admin, CurrentUser

__all__ = [
    "get_auth_settings",
    "AuthSettings",
    "get_current_user",
    "require_admin",
    "CurrentUser",
]
