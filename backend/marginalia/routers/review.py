"""Highlight review queue API router."""

from typing import Annotated
from fastapi import APIRouter, Depends

from marginalia.auth import CurrentUser, get_current_user
from marginalia.models import HighlightReviewResponse, ReviewQueueResponse, ReviewRequest
from marginalia.repositories import HighlightNotFoundError
from marginalia.services import ReviewConflictError, get_study_service
from marginalia.srs.time import utc_now

from .errors import conflict, not_found

router = APIRouter(tags=["review"])


@router.get("/review", response_model=ReviewQueueResponse)
def get_review_queue(
    user: Annotated[CurrentUser, Depends(get_current_user)],
) -> ReviewQueueResponse:
    """Up to 20 due highlights followed by up to 3 never-reviewed ones."""
    return get_study_service().get_review_queue(user.user_id, utc_now())


@router.post("/highlights/{highlight_id}/review", response_model=HighlightReviewResponse)
def review_highlight(
    highlight_id: str,
    review: ReviewRequest,
    user: Annotated[CurrentUser, Depends(get_current_user)],
) -> HighlightReviewResponse:
    try:
        return get_study_service().review_highlight(
            user.user_id, highlight_id, review.rating, utc_now()
        )
    except HighlightNotFoundError:
        raise not_found(f"Highlight with ID {highlight_id} not found")
    except ReviewConflictError as e:
        raise conflict(str(e))
