"""Decks API router."""

import logging
from typing import Annotated
from fastapi import APIRouter, Depends, Query, status

from marginalia.auth import CurrentUser, get_current_user
from marginalia.models import (
    CardCreate,
    CardResponse,
    DeckCreate,
    DeckListResponse,
    DeckResponse,
    StudySessionResponse,
)
from marginalia.repositories import (
    DeckNotFoundError,
    HighlightNotFoundError,
    get_card_repository,
    get_deck_repository,
)
from marginalia.services import SmartDeckCardError, get_study_service
from marginalia.srs.time import utc_now

from .errors import bad_request, not_found

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/decks", tags=["decks"])

DEFAULT_STUDY_LIMIT = 20
MAX_STUDY_LIMIT = 50


@router.get("", response_model=DeckListResponse)
def list_decks(user: Annotated[CurrentUser, Depends(get_current_user)]) -> DeckListResponse:
    """List all decks for the current user with their due counts."""
    service = get_study_service()
    decks = get_deck_repository().list_by_user(user.user_id)
    now = utc_now()

    deck_responses = [
        DeckResponse(**deck.model_dump(), dueCardCount=service.count_due(deck, now))
        for deck in decks
    ]
    return DeckListResponse(decks=deck_responses, count=len(deck_responses))


@router.get("/{deck_id}", response_model=DeckResponse)
def get_deck(
    deck_id: str, user: Annotated[CurrentUser, Depends(get_current_user)]
) -> DeckResponse:
    """Get a specific deck by ID."""
    try:
        deck = get_deck_repository().get_by_id(deck_id, user.user_id)
    except DeckNotFoundError:
        raise not_found(f"Deck with ID {deck_id} not found")
    return DeckResponse(**deck.model_dump(), dueCardCount=get_study_service().count_due(deck, utc_now()))


@router.post("", response_model=DeckResponse, status_code=status.HTTP_201_CREATED)
def create_deck(
    deck_create: DeckCreate, user: Annotated[CurrentUser, Depends(get_current_user)]
) -> DeckResponse:
    """Create a manual deck, or a smart deck with a tag filter."""
    deck = get_deck_repository().create(deck_create, user.user_id)
    return DeckResponse(**deck.model_dump())


@router.delete("/{deck_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_deck(deck_id: str, user: Annotated[CurrentUser, Depends(get_current_user)]) -> None:
    """Delete a deck and all its flashcards."""
    deck_repo = get_deck_repository()
    if not deck_repo.exists(deck_id, user.user_id):
        raise not_found(f"Deck with ID {deck_id} not found")

    deleted = get_card_repository().delete_by_deck(deck_id, user.user_id)
    deck_repo.delete(deck_id, user.user_id)
    logger.info("Deleted deck %s with %d card(s)", deck_id, deleted)


@router.post("/{deck_id}/cards", response_model=CardResponse, status_code=status.HTTP_201_CREATED)
def add_card(
    deck_id: str,
    card_create: CardCreate,
    user: Annotated[CurrentUser, Depends(get_current_user)],
) -> CardResponse:
    """Add a flashcard to a manual deck; it is due immediately."""
    service = get_study_service()
    try:
        card = service.add_card(user.user_id, deck_id, card_create, utc_now())
    except DeckNotFoundError:
        raise not_found(f"Deck with ID {deck_id} not found")
    except HighlightNotFoundError:
        raise not_found(f"Highlight with ID {card_create.highlightId} not found")
    except SmartDeckCardError as e:
        raise bad_request(str(e))
    return CardResponse(**card.model_dump())


@router.get("/{deck_id}/study", response_model=StudySessionResponse)
def get_study_session(
    deck_id: str,
    user: Annotated[CurrentUser, Depends(get_current_user)],
    limit: int = Query(DEFAULT_STUDY_LIMIT, description="Page size, clamped to 1..50"),
) -> StudySessionResponse:
    """Due cards of the deck, oldest due first, and the total due count."""
    limit = max(1, min(MAX_STUDY_LIMIT, limit))
    try:
        return get_study_service().get_study_session(user.user_id, deck_id, utc_now(), limit)
    except DeckNotFoundError:
        raise not_found(f"Deck with ID {deck_id} not found")
