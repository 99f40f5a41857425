"""Study sessions and review submission.

Study items come from two sources: real flashcards, and highlights that do not
have a flashcard yet ("virtual cards", smart decks only). Both project into the
same StudyItem shape through `to_study_item`.

Every rating goes through the pure scheduler in `marginalia.srs.fsrs`; this
module only reads state, persists the result with an ETag guard and retries
once when a concurrent review landed first.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Union
from uuid import NAMESPACE_URL, uuid5

from marginalia.models import (
    Card,
    CardCreate,
    Deck,
    Highlight,
    HighlightReviewResponse,
    RatingPreview,
    ReviewQueueItem,
    ReviewQueueResponse,
    SchedulingDocument,
    StudyHighlightRef,
    StudyItem,
    StudySessionResponse,
)
from marginalia.repositories import (
    CardRepository,
    CardExistsError,
    ConcurrencyConflictError,
    DeckRepository,
    HighlightRepository,
    get_card_repository,
    get_deck_repository,
    get_highlight_repository,
)
from marginalia.srs.fsrs import (
    DEFAULT_PARAMETERS,
    Rating,
    SchedulerParameters,
    format_interval,
    new_scheduling_state,
    parse_rating,
    preview,
    schedule,
)
from marginalia.srs.time import ensure_utc, utc_datetime_to_iso_z

logger = logging.getLogger(__name__)

VIRTUAL_FRONT_LENGTH = 100
REVIEW_QUEUE_DUE_LIMIT = 20
REVIEW_QUEUE_NEW_LIMIT = 3


class ReviewConflictError(Exception):
    """Raised when a review keeps losing the race against a concurrent write."""

    pass


class SmartDeckCardError(Exception):
    """Raised when cards are added by hand to a smart deck."""

    pass


@dataclass(frozen=True)
class RealCard:
    card: Card
    highlight: Highlight | None = None


@dataclass(frozen=True)
class VirtualCard:
    highlight: Highlight


StudySource = Union[RealCard, VirtualCard]


def virtual_card_faces(content: str) -> tuple[str, str]:
    """Front and back of a flashcard generated from highlight text."""
    front = content[:VIRTUAL_FRONT_LENGTH]
    if len(content) > VIRTUAL_FRONT_LENGTH:
        front += "..."
    return front, content


def virtual_card_id(deck_id: str, highlight_id: str) -> str:
    """Stable card ID for the flashcard a virtual card turns into."""
    return str(uuid5(NAMESPACE_URL, f"marginalia:card:{deck_id}:{highlight_id}"))


def _highlight_ref(highlight: Highlight) -> StudyHighlightRef:
    return StudyHighlightRef(id=highlight.id, bookId=highlight.bookId, bookTitle=highlight.bookTitle)


def to_study_item(source: StudySource) -> StudyItem:
    if isinstance(source, RealCard):
        card = source.card
        highlight = source.highlight
        return StudyItem(
            id=card.id,
            front=card.front,
            back=card.back,
            cardType=card.cardType,
            isVirtual=False,
            highlightId=card.highlightId,
            deckId=card.deckId,
            dueAt=card.scheduling.dueAt,
            highlight=_highlight_ref(highlight) if highlight is not None else None,
        )
    if isinstance(source, VirtualCard):
        highlight = source.highlight
        front, back = virtual_card_faces(highlight.content)
        return StudyItem(
            id=f"virtual:{highlight.id}",
            front=front,
            back=back,
            cardType="basic",
            isVirtual=True,
            highlightId=highlight.id,
            deckId=None,
            dueAt=None,
            highlight=_highlight_ref(highlight),
        )
    raise TypeError(f"Unknown study source: {source!r}")


class StudyService:
    """Builds study sessions and applies ratings to cards and highlights."""

    def __init__(
        self,
        cards: CardRepository,
        decks: DeckRepository,
        highlights: HighlightRepository,
        params: SchedulerParameters = DEFAULT_PARAMETERS,
    ):
        self.cards = cards
        self.decks = decks
        self.highlights = highlights
        self.params = params

    # ------------------------------------------------------------------
    # Study sessions
    # ------------------------------------------------------------------

    def get_study_session(
        self, user_id: str, deck_id: str, now: datetime, limit: int
    ) -> StudySessionResponse:
        """Due items of a deck, oldest due first, plus the uncapped due count.

        Raises:
            DeckNotFoundError: the deck does not exist for this user.
        """
        deck = self.decks.get_by_id(deck_id, user_id)
        sources, total_due = self.get_sources(deck, now, limit)
        return StudySessionResponse(
            cards=[to_study_item(source) for source in sources],
            totalDue=total_due,
        )

    def count_due(self, deck: Deck, now: datetime) -> int:
        """Number of items a study session for this deck would report as due."""
        _, total_due = self.get_sources(deck, now, limit=0)
        return total_due

    def get_sources(self, deck: Deck, now: datetime, limit: int) -> tuple[list[StudySource], int]:
        if deck.is_smart:
            return self._smart_deck_sources(deck, now, limit)
        return self._manual_deck_sources(deck, now, limit)

    def _manual_deck_sources(
        self, deck: Deck, now: datetime, limit: int
    ) -> tuple[list[StudySource], int]:
        now_iso = utc_datetime_to_iso_z(now)
        deleted_ids = self.highlights.list_deleted_ids(deck.userId)
        total_due = self.cards.count_due_in_deck(deck.userId, deck.id, now_iso, deleted_ids)
        if limit <= 0:
            return [], total_due
        cards = self.cards.query_due_in_deck(deck.userId, deck.id, now_iso, limit, deleted_ids)
        bound_ids = sorted({card.highlightId for card in cards if card.highlightId})
        bound = {h.id: h for h in self.highlights.get_many(deck.userId, bound_ids)}
        return [RealCard(card, bound.get(card.highlightId)) for card in cards], total_due

    def _smart_deck_sources(
        self, deck: Deck, now: datetime, limit: int
    ) -> tuple[list[StudySource], int]:
        if not deck.tagIds:
            return [], 0
        matching = self.highlights.query_matching_tags(deck.userId, deck.tagIds, deck.tagLogic)
        if not matching:
            return [], 0

        now_iso = utc_datetime_to_iso_z(now)
        highlight_ids = [highlight.id for highlight in matching]
        total_due = self.cards.count_due_for_highlights(deck.userId, highlight_ids, now_iso)
        sources: list[StudySource] = []
        if limit > 0:
            cards = self.cards.query_due_for_highlights(deck.userId, highlight_ids, now_iso, limit)
            by_id = {highlight.id: highlight for highlight in matching}
            sources.extend(RealCard(card, by_id.get(card.highlightId)) for card in cards)

        if deck.settings.includeRawHighlights:
            covered = self.cards.highlight_ids_with_cards(deck.userId, highlight_ids)
            uncovered = [highlight for highlight in matching if highlight.id not in covered]
            # Highlights without a flashcard are due immediately
            total_due += len(uncovered)
            room = max(limit - len(sources), 0)
            sources.extend(VirtualCard(highlight) for highlight in uncovered[:room])

        return sources, total_due

    # ------------------------------------------------------------------
    # Flashcard reviews
    # ------------------------------------------------------------------

    def review_card(self, user_id: str, card_id: str, rating: int | Rating, now: datetime) -> Card:
        """Apply a rating to a flashcard.

        The write is conditional on the ETag read; a lost race is retried once
        with a fresh read so a newer state is never overwritten.

        Raises:
            ValueError: rating outside 1..4.
            CardNotFoundError: no such card for this user.
            ReviewConflictError: the retry lost the race as well.
        """
        rating = parse_rating(rating)
        now = ensure_utc(now)
        for attempt in (1, 2):
            card = self.cards.get_by_id(card_id, user_id)
            next_state = schedule(card.scheduling.to_state(), rating, now, self.params)
            card.scheduling = SchedulingDocument.from_state(next_state)
            try:
                return self.cards.replace_if_unchanged(card)
            except ConcurrencyConflictError:
                logger.warning(
                    "Concurrent review of card %s (attempt %d), re-reading", card_id, attempt
                )
        raise ReviewConflictError(f"Card {card_id} was reviewed concurrently, try again")

    def preview_card(self, user_id: str, card_id: str, now: datetime) -> list[RatingPreview]:
        """Outcome of each rating for the card's current state, nothing is written."""
        now = ensure_utc(now)
        card = self.cards.get_by_id(card_id, user_id)
        outcomes = preview(card.scheduling.to_state(), now, self.params)
        return [
            RatingPreview(
                rating=rating,
                dueAt=utc_datetime_to_iso_z(outcome.due),
                interval=format_interval(now, outcome.due),
                state=outcome.state,
            )
            for rating, outcome in sorted(outcomes.items())
        ]

    def add_card(self, user_id: str, deck_id: str, card_create: CardCreate, now: datetime) -> Card:
        """Create a flashcard in a manual deck, due immediately.

        Raises:
            DeckNotFoundError, HighlightNotFoundError, SmartDeckCardError
        """
        deck = self.decks.get_by_id(deck_id, user_id)
        if deck.is_smart:
            raise SmartDeckCardError("Cards cannot be added to a smart deck")
        if card_create.highlightId:
            self.highlights.get_by_id(card_create.highlightId, user_id)
        card = Card(
            deckId=deck.id,
            userId=user_id,
            highlightId=card_create.highlightId,
            front=card_create.front,
            back=card_create.back,
            cardType=card_create.cardType,
            scheduling=SchedulingDocument.from_state(new_scheduling_state(now, self.params)),
        )
        return self.cards.create(card)

    def review_virtual_card(
        self,
        user_id: str,
        highlight_id: str,
        deck_id: str,
        rating: int | Rating,
        now: datetime,
        front: str | None = None,
        back: str | None = None,
    ) -> Card:
        """Turn a virtual card into a flashcard and apply its first rating.

        The card is written once, with the scheduled state already applied, so
        there is never a stored card without a due date. A second submission
        for the same highlight and deck rates the existing card instead.
        The card ID is derived from the deck and highlight, so two concurrent
        submissions write the same document and the loser rates it.

        Raises:
            ValueError: rating outside 1..4.
            HighlightNotFoundError: missing or soft-deleted highlight.
            DeckNotFoundError: the deck does not exist for this user.
        """
        rating = parse_rating(rating)
        now = ensure_utc(now)
        highlight = self.highlights.get_by_id(highlight_id, user_id)
        deck = self.decks.get_by_id(deck_id, user_id)

        existing = self.cards.find_by_highlight(user_id, deck.id, highlight.id)
        if existing is not None:
            logger.info(
                "Highlight %s already has card %s in deck %s, rating it instead",
                highlight.id,
                existing.id,
                deck.id,
            )
            return self.review_card(user_id, existing.id, rating, now)

        default_front, default_back = virtual_card_faces(highlight.content)
        scheduled = schedule(new_scheduling_state(now, self.params), rating, now, self.params)
        card = Card(
            id=virtual_card_id(deck.id, highlight.id),
            deckId=deck.id,
            userId=user_id,
            highlightId=highlight.id,
            front=front or default_front,
            back=back or default_back,
            cardType="basic",
            scheduling=SchedulingDocument.from_state(scheduled),
        )
        try:
            return self.cards.create(card)
        except CardExistsError:
            # A concurrent submission created the same card first
            logger.info("Card %s already exists, rating it instead", card.id)
            return self.review_card(user_id, card.id, rating, now)

    # ------------------------------------------------------------------
    # Highlight review queue
    # ------------------------------------------------------------------

    def get_review_queue(self, user_id: str, now: datetime) -> ReviewQueueResponse:
        """Due highlights (oldest due first) followed by a few never-reviewed ones."""
        now_iso = utc_datetime_to_iso_z(now)
        due = self.highlights.query_due(user_id, now_iso, REVIEW_QUEUE_DUE_LIMIT)
        new = self.highlights.query_newest_without_state(user_id, REVIEW_QUEUE_NEW_LIMIT)
        items = [_queue_item(highlight) for highlight in [*due, *new]]
        return ReviewQueueResponse(
            items=items,
            total=len(items),
            dueCount=self.highlights.count_due(user_id, now_iso),
            newCount=len(new),
        )

    def review_highlight(
        self, user_id: str, highlight_id: str, rating: int | Rating, now: datetime
    ) -> HighlightReviewResponse:
        """Apply a rating to a highlight's own review state (created on first review).

        Raises:
            ValueError: rating outside 1..4.
            HighlightNotFoundError: missing or soft-deleted highlight.
            ReviewConflictError: the retry lost the race as well.
        """
        rating = parse_rating(rating)
        now = ensure_utc(now)
        for attempt in (1, 2):
            highlight = self.highlights.get_by_id(highlight_id, user_id)
            if highlight.scheduling is None:
                prior = new_scheduling_state(now, self.params)
            else:
                prior = highlight.scheduling.to_state()
            next_state = schedule(prior, rating, now, self.params)
            try:
                self.highlights.set_scheduling_if_unchanged(
                    highlight, SchedulingDocument.from_state(next_state)
                )
            except ConcurrencyConflictError:
                logger.warning(
                    "Concurrent review of highlight %s (attempt %d), re-reading",
                    highlight_id,
                    attempt,
                )
                continue
            return HighlightReviewResponse(
                nextReview=utc_datetime_to_iso_z(next_state.due),
                interval=format_interval(now, next_state.due),
                state=next_state.state,
            )
        raise ReviewConflictError(f"Highlight {highlight_id} was reviewed concurrently, try again")


def _queue_item(highlight: Highlight) -> ReviewQueueItem:
    return ReviewQueueItem(
        id=highlight.id,
        content=highlight.content,
        note=highlight.note,
        bookId=highlight.bookId,
        bookTitle=highlight.bookTitle or "Unknown",
        bookAuthor=highlight.bookAuthor,
        scheduling=highlight.scheduling,
    )


# Singleton instance
_study_service: StudyService | None = None


def get_study_service() -> StudyService:
    """Get the study service singleton."""
    global _study_service
    if _study_service is None:
        _study_service = StudyService(
            get_card_repository(),
            get_deck_repository(),
            get_highlight_repository(),
        )
    return _study_service
