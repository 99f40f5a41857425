"""Flashcard models for API requests and responses."""

from datetime import datetime, timezone
from typing import Literal
from pydantic import BaseModel, ConfigDict, Field, field_validator
from uuid import uuid4

from marginalia.models.scheduling import SchedulingDocument
from marginalia.srs.fsrs import Rating, State, new_scheduling_state, parse_rating
from marginalia.srs.time import utc_now


CardType = Literal["basic", "cloze"]


def generate_uuid() -> str:
    """Generate a new UUID string."""
    return str(uuid4())


def now_iso() -> str:
    """Get current UTC timestamp in ISO format."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def fresh_scheduling() -> SchedulingDocument:
    """Scheduling fields of a card that has never been reviewed (due now)."""
    return SchedulingDocument.from_state(new_scheduling_state(utc_now()))


class CardBase(BaseModel):
    """Base card model with common fields."""

    front: str = Field(..., min_length=1, max_length=10000, description="Front side of the card")
    back: str = Field(..., min_length=1, max_length=10000, description="Back side of the card")
    cardType: CardType = Field("basic", description="Card rendering type")


class CardCreate(CardBase):
    """Model for creating a new card in a manual deck."""

    highlightId: str | None = Field(None, description="Source highlight, if any")


class Card(CardBase):
    """Full flashcard model as stored in the database."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=generate_uuid, description="Unique identifier")
    deckId: str = Field(..., description="Parent deck ID")
    userId: str = Field(..., description="Owner user ID (partition key)")
    highlightId: str | None = Field(None, description="Source highlight ID")
    scheduling: SchedulingDocument = Field(default_factory=fresh_scheduling)
    createdAt: str = Field(default_factory=now_iso, description="Creation timestamp")
    updatedAt: str = Field(default_factory=now_iso, description="Last update timestamp")

    # Cosmos DB optimistic concurrency token, never written back
    etag: str | None = Field(None, alias="_etag", exclude=True)


class CardResponse(CardBase):
    """Card response model returned by API."""

    id: str
    deckId: str
    userId: str
    highlightId: str | None
    scheduling: SchedulingDocument
    createdAt: str
    updatedAt: str


class ReviewRequest(BaseModel):
    """Body of POST /cards/{id}/review and POST /highlights/{id}/review."""

    rating: Rating = Field(..., description="1=Again, 2=Hard, 3=Good, 4=Easy")

    @field_validator("rating", mode="before")
    @classmethod
    def _integer_rating(cls, value):
        # Wire values are exactly the integers 1..4; no strings, floats or booleans
        if not isinstance(value, int):
            raise ValueError("rating must be an integer 1..4")
        return parse_rating(value)


class ReviewResponse(BaseModel):
    nextDue: str
    schedulingState: SchedulingDocument


class VirtualReviewRequest(ReviewRequest):
    """Body of POST /virtual-cards/{highlightId}/review."""

    deckId: str = Field(..., min_length=1, description="Deck the new flashcard belongs to")
    front: str | None = Field(None, min_length=1, max_length=10000)
    back: str | None = Field(None, min_length=1, max_length=10000)


class VirtualReviewResponse(BaseModel):
    card: CardResponse
    nextDue: str


class RatingPreview(BaseModel):
    """Outcome of one rating, computed without committing it."""

    rating: Rating
    dueAt: str
    interval: str
    state: State


class CardPreviewResponse(BaseModel):
    cardId: str
    previews: list[RatingPreview]
