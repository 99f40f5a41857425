"""Authentication configuration for Entra ID."""

import os
from functools import lru_cache
from pydantic import BaseModel


class AuthSettings(BaseModel):
    """Authentication settings loaded from environment variables."""

    tenant_id: str = ""
    api_audience: str = ""  # Application ID URI, e.g. api://<app-id>
    api_app_id: str = ""
    admin_scope: str = "Digest.Admin"
    enabled: bool = True  # False: trust the X-User-Id header (local dev and tests)

    @property
    def issuer(self) -> str:
        """Expected token issuer (v2.0 tokens)."""
        return f"https://login.microsoftonline.com/{self.tenant_id}/v2.0"

    @property
    def valid_issuers(self) -> list[str]:
        """Accepted issuers; the token version depends on the API app registration."""
        return [self.issuer, f"https://sts.windows.net/{self.tenant_id}/"]

    @property
    def jwks_uri(self) -> str:
        return f"https://login.microsoftonline.com/{self.tenant_id}/discovery/v2.0/keys"

    @property
    def valid_audiences(self) -> list[str]:
        audiences = [self.api_audience]
        if self.api_app_id:
            audiences.append(self.api_app_id)
        return audiences

    def is_configured(self) -> bool:
        """Check if auth is properly configured."""
        return bool(self.tenant_id and self.api_audience)


@lru_cache()
def get_auth_settings() -> AuthSettings:
    """Get cached authentication settings from environment variables."""
    enabled_str = os.getenv("AUTH_ENABLED", "true").lower()

    return AuthSettings(
        tenant_id=os.getenv("AZURE_TENANT_ID", ""),
        api_audience=os.getenv("AZURE_API_SCOPE", ""),
        api_app_id=os.getenv("AZURE_API_APP_ID", ""),
        admin_scope=os.getenv("AUTH_ADMIN_SCOPE", "Digest.Admin"),
        enabled=enabled_str not in ("false", "0", "no", "off"),
    )
