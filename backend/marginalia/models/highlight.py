"""Highlight models.

Highlights are imported by the (external) importers; this service reads them,
keeps their review state and honours soft deletion via `deletedAt`.
"""

from pydantic import BaseModel, ConfigDict, Field

from marginalia.models.scheduling import SchedulingDocument
from marginalia.srs.fsrs import State


class Highlight(BaseModel):
    """Highlight document as stored in the database."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    userId: str
    content: str
    note: str | None = None
    bookId: str | None = None
    bookTitle: str | None = None
    bookAuthor: str | None = None
    tagIds: list[str] = Field(default_factory=list)
    scheduling: SchedulingDocument | None = Field(
        None, description="Review state; absent for never-reviewed highlights"
    )
    createdAt: str | None = None
    deletedAt: str | None = None

    # Cosmos DB optimistic concurrency token, never written back
    etag: str | None = Field(None, alias="_etag", exclude=True)

    @property
    def is_deleted(self) -> bool:
        return self.deletedAt is not None


class HighlightReviewResponse(BaseModel):
    """Response for POST /highlights/{id}/review."""

    success: bool = True
    nextReview: str
    interval: str
    state: State


class ReviewQueueItem(BaseModel):
    id: str
    content: str
    note: str | None
    bookId: str | None
    bookTitle: str
    bookAuthor: str | None
    scheduling: SchedulingDocument | None


class ReviewQueueResponse(BaseModel):
    """Response for GET /review: due highlights first, then a few new ones."""

    items: list[ReviewQueueItem]
    total: int
    dueCount: int
    newCount: int
