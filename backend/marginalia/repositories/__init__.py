"""Repositories module for data access layer."""

from .deck_repository import (
    DeckRepository,
    DeckNotFoundError,
    get_deck_repository,
)
from .card_repository import (
    CardRepository,
    CardNotFoundError,
    CardExistsError,
    ConcurrencyConflictError,
    get_card_repository,
)
from .highlight_repository import (
    HighlightRepository,
    HighlightNotFoundError,
    get_highlight_repository,
    matches_tags,
)
from .user_repository import (
    UserRepository,
    UserNotFoundError,
    get_user_repository,
)
from .job_repository import JobRepository, get_job_repository

__all__ = [
    "DeckRepository",
    "DeckNotFoundError",
    "get_deck_repository",
    "CardRepository",
    "CardNotFoundError",
    "CardExistsError",
    "ConcurrencyConflictError",
    "get_card_repository",
    "HighlightRepository",
    "HighlightNotFoundError",
    "get_highlight_repository",
    "matches_tags",
    "UserRepository",
    "UserNotFoundError",
    "get_user_repository",
    "JobRepository",
    "get_job_repository",
]
