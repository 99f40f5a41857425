"""Digest preference and user profile models."""

from typing import Literal

from pydantic import BaseModel, Field


DigestFrequency = Literal["daily", "weekdays", "weekly"]


class DigestPreferences(BaseModel):
    """Digest preferences as returned by GET /digest/preferences."""

    digestEnabled: bool = True
    digestFrequency: DigestFrequency = "daily"
    digestHour: int = Field(8, ge=0, le=23, description="Preferred local hour of day")
    digestTimezone: str = Field("UTC", description="IANA timezone name")


class DigestPreferencesUpdate(BaseModel):
    """PATCH body; only provided fields are changed."""

    digestEnabled: bool | None = None
    digestFrequency: DigestFrequency | None = None
    digestHour: int | None = Field(None, ge=0, le=23)
    digestTimezone: str | None = Field(None, min_length=1, max_length=64)


class UserProfile(DigestPreferences):
    """User document (users container, partitioned by id)."""

    id: str
    email: str
    lastDigestSentAt: str | None = None

    @property
    def preferences(self) -> DigestPreferences:
        return DigestPreferences(
            digestEnabled=self.digestEnabled,
            digestFrequency=self.digestFrequency,
            digestHour=self.digestHour,
            digestTimezone=self.digestTimezone,
        )


class DigestRunReport(BaseModel):
    """Outcome of one digest tick or manual trigger."""

    processed: int = 0
    sent: int = 0
    skipped: int = 0
    failed: int = 0
