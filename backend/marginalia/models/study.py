"""Study session models."""

from pydantic import BaseModel, Field

from marginalia.models.card import CardType


class StudyHighlightRef(BaseModel):
    """The highlight a study item was made from."""

    id: str
    bookId: str | None = None
    bookTitle: str | None = None


class StudyItem(BaseModel):
    """A reviewable item in a study session: a real flashcard or a virtual card."""

    id: str = Field(..., description="Card id, or 'virtual:<highlightId>' for virtual cards")
    front: str
    back: str
    cardType: CardType = "basic"
    isVirtual: bool
    highlightId: str | None = None
    deckId: str | None = Field(None, description="None for virtual cards")
    dueAt: str | None = None
    highlight: StudyHighlightRef | None = Field(
        None, description="Source highlight, when the item is bound to a live one"
    )


class StudySessionResponse(BaseModel):
    """Response for GET /decks/{id}/study."""

    cards: list[StudyItem]
    totalDue: int = Field(..., description="All due items before the limit was applied")
