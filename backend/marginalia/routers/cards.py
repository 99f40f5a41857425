"""Flashcard review API router."""

from typing import Annotated
from fastapi import APIRouter, Depends

from marginalia.auth import CurrentUser, get_current_user
from marginalia.models import CardPreviewResponse, ReviewRequest, ReviewResponse
from marginalia.repositories import CardNotFoundError
from marginalia.services import ReviewConflictError, get_study_service
from marginalia.srs.time import utc_now

from .errors import conflict, not_found

router = APIRouter(prefix="/cards", tags=["cards"])


@router.post("/{card_id}/review", response_model=ReviewResponse)
def review_card(
    card_id: str,
    review: ReviewRequest,
    user: Annotated[CurrentUser, Depends(get_current_user)],
) -> ReviewResponse:
    """Apply a rating (1=Again .. 4=Easy) and return the next due date."""
    service = get_study_service()
    try:
        card = service.review_card(user.user_id, card_id, review.rating, utc_now())
    except CardNotFoundError:
        raise not_found(f"Card with ID {card_id} not found")
    except ReviewConflictError as e:
        raise conflict(str(e))
    return ReviewResponse(nextDue=card.scheduling.dueAt, schedulingState=card.scheduling)


@router.get("/{card_id}/preview", response_model=CardPreviewResponse)
def preview_card(
    card_id: str, user: Annotated[CurrentUser, Depends(get_current_user)]
) -> CardPreviewResponse:
    """Due date and interval each rating would produce, without saving anything."""
    service = get_study_service()
    try:
        previews = service.preview_card(user.user_id, card_id, utc_now())
    except CardNotFoundError:
        raise not_found(f"Card with ID {card_id} not found")
    return CardPreviewResponse(cardId=card_id, previews=previews)
