"""Deck models for API requests and responses."""

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field, model_validator
from uuid import uuid4


def generate_uuid() -> str:
    """Generate a new UUID string."""
    return str(uuid4())


def now_iso() -> str:
    """Get current UTC timestamp in ISO format."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


# manual: explicit card membership; smart: membership computed from highlight tags
DeckType = Literal["manual", "smart"]
TagLogic = Literal["AND", "OR"]


class DeckSettings(BaseModel):
    """Per-deck study settings."""

    includeRawHighlights: bool = Field(
        False, description="Smart decks only: study highlights that have no flashcard yet"
    )


class DeckBase(BaseModel):
    """Base deck model with common fields."""

    name: str = Field(..., min_length=1, max_length=200, description="Name of the deck")
    description: str | None = Field(None, max_length=1000, description="Optional description")


class DeckCreate(DeckBase):
    """Model for creating a new deck."""

    type: DeckType = Field("manual", description="Deck type (immutable after creation)")
    tagIds: list[str] = Field(default_factory=list, description="Smart deck tag filter")
    tagLogic: TagLogic = Field("OR", description="How smart deck tags are combined")
    settings: DeckSettings = Field(default_factory=DeckSettings)

    @model_validator(mode="after")
    def _manual_decks_have_no_tags(self) -> "DeckCreate":
        if self.type == "manual" and self.tagIds:
            raise ValueError("tagIds are only allowed on smart decks")
        return self


class Deck(DeckBase):
    """Full deck model as stored in the database."""

    id: str = Field(default_factory=generate_uuid, description="Unique identifier")
    userId: str = Field(..., description="Owner user ID (partition key)")
    type: DeckType = "manual"
    tagIds: list[str] = Field(default_factory=list)
    tagLogic: TagLogic = "OR"
    settings: DeckSettings = Field(default_factory=DeckSettings)
    createdAt: str = Field(default_factory=now_iso, description="Creation timestamp")
    updatedAt: str = Field(default_factory=now_iso, description="Last update timestamp")

    @property
    def is_smart(self) -> bool:
        return self.type == "smart"


class DeckResponse(DeckBase):
    """Deck response model returned by API."""

    id: str
    userId: str
    type: DeckType
    tagIds: list[str]
    tagLogic: TagLogic
    settings: DeckSettings
    createdAt: str
    updatedAt: str
    dueCardCount: int | None = None


class DeckListResponse(BaseModel):
    """Response containing a list of decks."""

    decks: list[DeckResponse]
    count: int
