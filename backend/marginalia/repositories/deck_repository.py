"""Repository for Deck persistence."""

from azure.cosmos import ContainerProxy
from azure.cosmos.exceptions import CosmosResourceNotFoundError

from marginalia.db import get_decks_container
from marginalia.models import Deck, DeckCreate


class DeckNotFoundError(Exception):
    """Raised when a deck is not found."""

    pass


class DeckRepository:
    """Repository for Deck database operations."""

    def __init__(self, container: ContainerProxy | None = None):
        """Initialize the repository with an optional container."""
        self._container = container

    @property
    def container(self) -> ContainerProxy:
        """Get the container, lazily initializing if needed."""
        if self._container is None:
            self._container = get_decks_container()
        return self._container

    def list_by_user(self, user_id: str) -> list[Deck]:
        """List all decks for a user, newest first."""
        items = list(
            self.container.query_items(
                query="SELECT * FROM c WHERE c.userId = @userId ORDER BY c.createdAt DESC",
                parameters=[{"name": "@userId", "value": user_id}],
                partition_key=user_id,
            )
        )
        return [Deck(**item) for item in items]

    def get_by_id(self, deck_id: str, user_id: str) -> Deck:
        """Get a deck by ID and user ID."""
        try:
            item = self.container.read_item(item=deck_id, partition_key=user_id)
            return Deck(**item)
        except CosmosResourceNotFoundError:
            raise DeckNotFoundError(f"Deck with ID {deck_id} not found")

    def create(self, deck_create: DeckCreate, user_id: str) -> Deck:
        """Create a new deck; tag filters are kept only for smart decks."""
        deck = Deck(
            userId=user_id,
            name=deck_create.name,
            description=deck_create.description,
            type=deck_create.type,
            tagIds=list(dict.fromkeys(deck_create.tagIds)) if deck_create.type == "smart" else [],
            tagLogic=deck_create.tagLogic,
            settings=deck_create.settings,
        )
        created_item = self.container.create_item(body=deck.model_dump(mode="json"))
        return Deck(**created_item)

    def delete(self, deck_id: str, user_id: str) -> None:
        """Delete a deck by ID."""
        try:
            self.container.delete_item(item=deck_id, partition_key=user_id)
        except CosmosResourceNotFoundError:
            raise DeckNotFoundError(f"Deck with ID {deck_id} not found")

    def exists(self, deck_id: str, user_id: str) -> bool:
        """Check if a deck exists."""
        try:
            self.get_by_id(deck_id, user_id)
            return True
        except DeckNotFoundError:
            return False


# Singleton instance
_deck_repository: DeckRepository | None = None


def get_deck_repository() -> DeckRepository:
    """Get the deck repository singleton."""
    global _deck_repository
    if _deck_repository is None:
        _deck_repository = DeckRepository()
    return _deck_repository
