"""Virtual card review API router.

Rating a virtual card (a highlight shown in a smart deck without a flashcard)
creates its flashcard with the first rating already applied.
"""

from typing import Annotated
from fastapi import APIRouter, Depends, status

from marginalia.auth import CurrentUser, get_current_user
from marginalia.models import CardResponse, VirtualReviewRequest, VirtualReviewResponse
from marginalia.repositories import DeckNotFoundError, HighlightNotFoundError
from marginalia.services import ReviewConflictError, get_study_service
from marginalia.srs.time import utc_now

from .errors import conflict, not_found

router = APIRouter(prefix="/virtual-cards", tags=["cards"])


@router.post(
    "/{highlight_id}/review",
    response_model=VirtualReviewResponse,
    status_code=status.HTTP_201_CREATED,
)
def review_virtual_card(
    highlight_id: str,
    review: VirtualReviewRequest,
    user: Annotated[CurrentUser, Depends(get_current_user)],
) -> VirtualReviewResponse:
    service = get_study_service()
    try:
        card = service.review_virtual_card(
            user.user_id,
            highlight_id,
            review.deckId,
            review.rating,
            utc_now(),
            front=review.front,
            back=review.back,
        )
    except HighlightNotFoundError:
        raise not_found(f"Highlight with ID {highlight_id} not found")
    except DeckNotFoundError:
        raise not_found(f"Deck with ID {review.deckId} not found")
    except ReviewConflictError as e:
        raise conflict(str(e))
    return VirtualReviewResponse(
        card=CardResponse(**card.model_dump()),
        nextDue=card.scheduling.dueAt,
    )
