"""Repository for flashcard persistence."""

from datetime import datetime, timezone
from azure.core import MatchConditions
from azure.cosmos import ContainerProxy
from azure.cosmos.exceptions import (
    CosmosAccessConditionFailedError,
    CosmosResourceExistsError,
    CosmosResourceNotFoundError,
)

from marginalia.db import get_cards_container
from marginalia.models import Card


class CardNotFoundError(Exception):
    """Raised when a card is not found."""

    pass


class ConcurrencyConflictError(Exception):
    """Raised when a conditional write finds a newer document than the one read."""

    pass


class CardExistsError(Exception):
    """Raised when a card with the same ID was already written."""

    pass


# Cards bound to a soft-deleted highlight are excluded from due queries
_NOT_EXCLUDED = (
    "(NOT IS_DEFINED(c.highlightId) OR IS_NULL(c.highlightId) "
    "OR NOT ARRAY_CONTAINS(@excludedHighlightIds, c.highlightId))"
)


class CardRepository:
    """Repository for flashcard database operations."""

    def __init__(self, container: ContainerProxy | None = None):
        """Initialize the repository with an optional container."""
        self._container = container

    @property
    def container(self) -> ContainerProxy:
        """Get the container, lazily initializing if needed."""
        if self._container is None:
            self._container = get_cards_container()
        return self._container

    def _query(self, query: str, parameters: list[dict], user_id: str) -> list:
        return list(
            self.container.query_items(
                query=query,
                parameters=parameters,
                partition_key=user_id,
            )
        )

    def get_by_id(self, card_id: str, user_id: str) -> Card:
        """Get a card by ID and user ID."""
        try:
            item = self.container.read_item(item=card_id, partition_key=user_id)
            return Card(**item)
        except CosmosResourceNotFoundError:
            raise CardNotFoundError(f"Card with ID {card_id} not found")

    def create(self, card: Card) -> Card:
        """Insert a fully built card document.

        Raises:
            CardExistsError: a card with this ID already exists.
        """
        try:
            created_item = self.container.create_item(body=card.model_dump(mode="json"))
        except CosmosResourceExistsError:
            raise CardExistsError(f"Card with ID {card.id} already exists")
        return Card(**created_item)

    def replace_if_unchanged(self, card: Card) -> Card:
        """Replace a card only if it still matches the ETag it was read with.

        Raises:
            ConcurrencyConflictError: another write landed since the card was read.
        """
        card.updatedAt = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
        kwargs = {}
        if card.etag:
            kwargs = {"etag": card.etag, "match_condition": MatchConditions.IfNotModified}
        try:
            updated_item = self.container.replace_item(
                item=card.id,
                body=card.model_dump(mode="json"),
                **kwargs,
            )
        except CosmosAccessConditionFailedError:
            raise ConcurrencyConflictError(f"Card {card.id} was modified concurrently")
        return Card(**updated_item)

    def find_by_highlight(self, user_id: str, deck_id: str, highlight_id: str) -> Card | None:
        """Return the card already materialized from a highlight in a deck, if any."""
        items = self._query(
            "SELECT TOP 1 * FROM c "
            "WHERE c.userId = @userId AND c.deckId = @deckId AND c.highlightId = @highlightId",
            [
                {"name": "@userId", "value": user_id},
                {"name": "@deckId", "value": deck_id},
                {"name": "@highlightId", "value": highlight_id},
            ],
            user_id,
        )
        return Card(**items[0]) if items else None

    def highlight_ids_with_cards(self, user_id: str, highlight_ids: list[str]) -> set[str]:
        """Subset of highlight_ids that already have at least one flashcard."""
        if not highlight_ids:
            return set()
        items = self._query(
            "SELECT DISTINCT VALUE c.highlightId FROM c "
            "WHERE c.userId = @userId AND ARRAY_CONTAINS(@highlightIds, c.highlightId)",
            [
                {"name": "@userId", "value": user_id},
                {"name": "@highlightIds", "value": highlight_ids},
            ],
            user_id,
        )
        return {item for item in items if item}

    def query_due_in_deck(
        self,
        user_id: str,
        deck_id: str,
        now_iso: str,
        limit: int,
        excluded_highlight_ids: list[str] | None = None,
    ) -> list[Card]:
        """Due cards of a deck, oldest due first."""
        items = self._query(
            "SELECT * FROM c "
            "WHERE c.userId = @userId AND c.deckId = @deckId "
            f"AND c.scheduling.dueAt <= @nowIso AND {_NOT_EXCLUDED} "
            "ORDER BY c.scheduling.dueAt ASC OFFSET 0 LIMIT @limit",
            [
                {"name": "@userId", "value": user_id},
                {"name": "@deckId", "value": deck_id},
                {"name": "@nowIso", "value": now_iso},
                {"name": "@excludedHighlightIds", "value": excluded_highlight_ids or []},
                {"name": "@limit", "value": limit},
            ],
            user_id,
        )
        return [Card(**item) for item in items]

    def count_due_in_deck(
        self,
        user_id: str,
        deck_id: str,
        now_iso: str,
        excluded_highlight_ids: list[str] | None = None,
    ) -> int:
        """Count the cards of a deck that are due at now_iso."""
        return self._query(
            "SELECT VALUE COUNT(1) FROM c "
            "WHERE c.userId = @userId AND c.deckId = @deckId "
            f"AND c.scheduling.dueAt <= @nowIso AND {_NOT_EXCLUDED}",
            [
                {"name": "@userId", "value": user_id},
                {"name": "@deckId", "value": deck_id},
                {"name": "@nowIso", "value": now_iso},
                {"name": "@excludedHighlightIds", "value": excluded_highlight_ids or []},
            ],
            user_id,
        )[0]

    def query_due_for_highlights(
        self, user_id: str, highlight_ids: list[str], now_iso: str, limit: int
    ) -> list[Card]:
        """Due cards (in any deck) bound to one of highlight_ids, oldest due first."""
        if not highlight_ids:
            return []
        items = self._query(
            "SELECT * FROM c "
            "WHERE c.userId = @userId AND ARRAY_CONTAINS(@highlightIds, c.highlightId) "
            "AND c.scheduling.dueAt <= @nowIso "
            "ORDER BY c.scheduling.dueAt ASC OFFSET 0 LIMIT @limit",
            [
                {"name": "@userId", "value": user_id},
                {"name": "@highlightIds", "value": highlight_ids},
                {"name": "@nowIso", "value": now_iso},
                {"name": "@limit", "value": limit},
            ],
            user_id,
        )
        return [Card(**item) for item in items]

    def count_due_for_highlights(self, user_id: str, highlight_ids: list[str], now_iso: str) -> int:
        if not highlight_ids:
            return 0
        return self._query(
            "SELECT VALUE COUNT(1) FROM c "
            "WHERE c.userId = @userId AND ARRAY_CONTAINS(@highlightIds, c.highlightId) "
            "AND c.scheduling.dueAt <= @nowIso",
            [
                {"name": "@userId", "value": user_id},
                {"name": "@highlightIds", "value": highlight_ids},
                {"name": "@nowIso", "value": now_iso},
            ],
            user_id,
        )[0]

    def delete(self, card_id: str, user_id: str) -> None:
        """Delete a card by ID."""
        try:
            self.container.delete_item(item=card_id, partition_key=user_id)
        except CosmosResourceNotFoundError:
            raise CardNotFoundError(f"Card with ID {card_id} not found")

    def delete_by_deck(self, deck_id: str, user_id: str) -> int:
        """Delete all cards in a deck. Returns count of deleted cards."""
        card_ids = self._query(
            "SELECT VALUE c.id FROM c WHERE c.deckId = @deckId AND c.userId = @userId",
            [
                {"name": "@deckId", "value": deck_id},
                {"name": "@userId", "value": user_id},
            ],
            user_id,
        )
        for card_id in card_ids:
            self.container.delete_item(item=card_id, partition_key=user_id)
        return len(card_ids)


# Singleton instance
_card_repository: CardRepository | None = None


def get_card_repository() -> CardRepository:
    """Get the card repository singleton."""
    global _card_repository
    if _card_repository is None:
        _card_repository = CardRepository()
    return _card_repository
