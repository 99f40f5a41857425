"""Models module for Pydantic schemas."""

from .scheduling import SchedulingDocument
from .deck import (
    Deck,
    DeckBase,
    DeckCreate,
    DeckResponse,
    DeckListResponse,
    DeckSettings,
    DeckType,
    TagLogic,
)
from .card import (
    Card,
    CardBase,
    CardCreate,
    CardResponse,
    CardType,
    CardPreviewResponse,
    RatingPreview,
    ReviewRequest,
    ReviewResponse,
    VirtualReviewRequest,
    VirtualReviewResponse,
)
from .highlight import (
    Highlight,
    HighlightReviewResponse,
    ReviewQueueItem,
    ReviewQueueResponse,
)
from .study import StudyHighlightRef, StudyItem, StudySessionResponse
from .digest import (
    DigestFrequency,
    DigestPreferences,
    DigestPreferencesUpdate,
    DigestRunReport,
    UserProfile,
)

__all__ = [
    "SchedulingDocument",
    "Deck",
    "DeckBase",
    "DeckCreate",
    "DeckResponse",
    "DeckListResponse",
    "DeckSettings",
    "DeckType",
    "TagLogic",
    "Card",
    "CardBase",
    "CardCreate",
    "CardResponse",
    "CardType",
    "CardPreviewResponse",
    "RatingPreview",
    "ReviewRequest",
    "ReviewResponse",
    "VirtualReviewRequest",
    "VirtualReviewResponse",
    "Highlight",
    "HighlightReviewResponse",
    "ReviewQueueItem",
    "ReviewQueueResponse",
    "StudyHighlightRef",
    "StudyItem",
    "StudySessionResponse",
    "DigestFrequency",
    "DigestPreferences",
    "DigestPreferencesUpdate",
    "DigestRunReport",
    "UserProfile",
]
