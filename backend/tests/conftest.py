"""Pytest configuration and fixtures.

The in-memory repositories below implement the same methods as the Cosmos DB
repositories the services call, including ETag checks, so services can be
exercised without a database.
"""

import os
import random
import pytest

# Ensure auth is disabled during tests by default
os.environ.setdefault("AUTH_ENABLED", "false")

from marginalia.auth import get_auth_settings
from marginalia.db import get_settings
from marginalia.models import Card, Deck, Highlight, UserProfile
from marginalia.repositories import (
    CardExistsError,
    CardNotFoundError,
    ConcurrencyConflictError,
    DeckNotFoundError,
    HighlightNotFoundError,
    UserNotFoundError,
    matches_tags,
)
from marginalia.services import get_digest_settings


@pytest.fixture(autouse=True)
def clear_settings_caches():
    """Settings are cached per process; every test starts from the environment."""
    get_auth_settings.cache_clear()
    get_settings.cache_clear()
    get_digest_settings.cache_clear()
    yield
    get_auth_settings.cache_clear()
    get_settings.cache_clear()
    get_digest_settings.cache_clear()


@pytest.fixture
def auth_disabled_env(monkeypatch):
    """Fixture that ensures AUTH_ENABLED is false."""
    monkeypatch.setenv("AUTH_ENABLED", "false")


@pytest.fixture
def auth_enabled_env(monkeypatch):
    """Fixture that enables auth with test configuration."""
    monkeypatch.setenv("AUTH_ENABLED", "true")
    monkeypatch.setenv("AZURE_TENANT_ID", "test-tenant-id")
    monkeypatch.setenv("AZURE_API_SCOPE", "api://test-backend-app")
    monkeypatch.setenv("AZURE_API_APP_ID", "test-backend-app")


class InMemoryCardRepo:
    def __init__(self):
        self.cards: dict[str, Card] = {}
        self.etags: dict[str, int] = {}
        self.conflicts_to_inject = 0
        self.created: list[Card] = []

    def _versioned(self, card: Card) -> Card:
        return card.model_copy(deep=True, update={"etag": str(self.etags[card.id])})

    def add(self, card: Card) -> Card:
        self.cards[card.id] = card.model_copy(deep=True)
        self.etags[card.id] = 1
        return self._versioned(card)

    def get_by_id(self, card_id: str, user_id: str) -> Card:
        card = self.cards.get(card_id)
        if card is None or card.userId != user_id:
            raise CardNotFoundError(f"Card with ID {card_id} not found")
        return self._versioned(card)

    def create(self, card: Card) -> Card:
        if card.id in self.cards:
            raise CardExistsError(f"Card with ID {card.id} already exists")
        self.created.append(card)
        return self.add(card)

    def replace_if_unchanged(self, card: Card) -> Card:
        if self.conflicts_to_inject > 0:
            # Someone else wrote the card between our read and our write
            self.conflicts_to_inject -= 1
            self.etags[card.id] += 1
        if card.etag != str(self.etags[card.id]):
            raise ConcurrencyConflictError(f"Card {card.id} was modified concurrently")
        self.cards[card.id] = card.model_copy(deep=True, update={"etag": None})
        self.etags[card.id] += 1
        return self._versioned(card)

    def _for_user(self, user_id: str) -> list[Card]:
        return [card for card in self.cards.values() if card.userId == user_id]

    def find_by_highlight(self, user_id, deck_id, highlight_id):
        for card in self._for_user(user_id):
            if card.deckId == deck_id and card.highlightId == highlight_id:
                return self._versioned(card)
        return None

    def highlight_ids_with_cards(self, user_id, highlight_ids):
        return {
            card.highlightId for card in self._for_user(user_id) if card.highlightId in highlight_ids
        }

    def _due_in_deck(self, user_id, deck_id, now_iso, excluded):
        excluded = set(excluded or [])
        due = [
            card
            for card in self._for_user(user_id)
            if card.deckId == deck_id
            and card.scheduling.dueAt <= now_iso
            and card.highlightId not in excluded
        ]
        return sorted(due, key=lambda card: card.scheduling.dueAt)

    def query_due_in_deck(self, user_id, deck_id, now_iso, limit, excluded_highlight_ids=None):
        return self._due_in_deck(user_id, deck_id, now_iso, excluded_highlight_ids)[:limit]

    def count_due_in_deck(self, user_id, deck_id, now_iso, excluded_highlight_ids=None):
        return len(self._due_in_deck(user_id, deck_id, now_iso, excluded_highlight_ids))

    def _due_for_highlights(self, user_id, highlight_ids, now_iso):
        due = [
            card
            for card in self._for_user(user_id)
            if card.highlightId in highlight_ids and card.scheduling.dueAt <= now_iso
        ]
        return sorted(due, key=lambda card: card.scheduling.dueAt)

    def query_due_for_highlights(self, user_id, highlight_ids, now_iso, limit):
        return self._due_for_highlights(user_id, highlight_ids, now_iso)[:limit]

    def count_due_for_highlights(self, user_id, highlight_ids, now_iso):
        return len(self._due_for_highlights(user_id, highlight_ids, now_iso))

    def delete_by_deck(self, deck_id, user_id):
        doomed = [card.id for card in self._for_user(user_id) if card.deckId == deck_id]
        for card_id in doomed:
            del self.cards[card_id]
        return len(doomed)


class InMemoryDeckRepo:
    def __init__(self):
        self.decks: dict[str, Deck] = {}

    def add(self, deck: Deck) -> Deck:
        self.decks[deck.id] = deck
        return deck

    def get_by_id(self, deck_id: str, user_id: str) -> Deck:
        deck = self.decks.get(deck_id)
        if deck is None or deck.userId != user_id:
            raise DeckNotFoundError(f"Deck with ID {deck_id} not found")
        return deck

    def list_by_user(self, user_id: str) -> list[Deck]:
        return [deck for deck in self.decks.values() if deck.userId == user_id]

    def create(self, deck_create, user_id):
        return self.add(Deck(userId=user_id, **deck_create.model_dump()))

    def exists(self, deck_id, user_id):
        return deck_id in self.decks and self.decks[deck_id].userId == user_id

    def delete(self, deck_id, user_id):
        self.get_by_id(deck_id, user_id)
        del self.decks[deck_id]


class InMemoryHighlightRepo:
    def __init__(self):
        self.highlights: dict[str, Highlight] = {}
        self.etags: dict[str, int] = {}
        self.conflicts_to_inject = 0

    def add(self, highlight: Highlight) -> Highlight:
        self.highlights[highlight.id] = highlight
        self.etags[highlight.id] = 1
        return highlight

    def _live(self, user_id):
        return [
            h for h in self.highlights.values() if h.userId == user_id and not h.is_deleted
        ]

    def get_by_id(self, highlight_id, user_id):
        highlight = self.highlights.get(highlight_id)
        if highlight is None or highlight.userId != user_id or highlight.is_deleted:
            raise HighlightNotFoundError(f"Highlight with ID {highlight_id} not found")
        return highlight.model_copy(deep=True, update={"etag": str(self.etags[highlight_id])})

    def set_scheduling_if_unchanged(self, highlight, scheduling):
        if self.conflicts_to_inject > 0:
            self.conflicts_to_inject -= 1
            self.etags[highlight.id] += 1
        if highlight.etag != str(self.etags[highlight.id]):
            raise ConcurrencyConflictError(f"Highlight {highlight.id} was modified concurrently")
        stored = self.highlights[highlight.id].model_copy(update={"scheduling": scheduling})
        self.highlights[highlight.id] = stored
        self.etags[highlight.id] += 1
        return stored

    def get_many(self, user_id, highlight_ids):
        wanted = set(highlight_ids)
        return [h for h in self._live(user_id) if h.id in wanted]

    def query_matching_tags(self, user_id, tag_ids, logic):
        return [h for h in self._live(user_id) if matches_tags(h.tagIds, tag_ids, logic)]

    def list_deleted_ids(self, user_id):
        return [h.id for h in self.highlights.values() if h.userId == user_id and h.is_deleted]

    def _due(self, user_id, now_iso):
        due = [h for h in self._live(user_id) if h.scheduling and h.scheduling.dueAt <= now_iso]
        return sorted(due, key=lambda h: h.scheduling.dueAt)

    def query_due(self, user_id, now_iso, limit):
        return self._due(user_id, now_iso)[:limit]

    def count_due(self, user_id, now_iso):
        return len(self._due(user_id, now_iso))

    def count_active(self, user_id):
        return len(self._live(user_id))

    def query_newest_without_state(self, user_id, limit):
        fresh = [h for h in self._live(user_id) if h.scheduling is None]
        return sorted(fresh, key=lambda h: h.createdAt or "", reverse=True)[:limit]

    def _sample(self, candidates, exclude_ids, limit, rng: random.Random):
        ids = sorted(h.id for h in candidates if h.id not in set(exclude_ids))
        return [self.highlights[i] for i in rng.sample(ids, min(limit, len(ids)))]

    def query_without_state(self, user_id, exclude_ids, limit, rng):
        fresh = [h for h in self._live(user_id) if h.scheduling is None]
        return self._sample(fresh, exclude_ids, limit, rng)

    def query_random(self, user_id, exclude_ids, limit, rng):
        return self._sample(self._live(user_id), exclude_ids, limit, rng)


class InMemoryUserRepo:
    def __init__(self):
        self.users: dict[str, UserProfile] = {}
        self.sent: list[tuple[str, str]] = []
        self.list_error: Exception | None = None

    def add(self, user: UserProfile) -> UserProfile:
        self.users[user.id] = user
        return user

    def get_by_id(self, user_id):
        if user_id not in self.users:
            raise UserNotFoundError(f"User with ID {user_id} not found")
        return self.users[user_id]

    def list_digest_enabled(self):
        if self.list_error is not None:
            raise self.list_error
        return [user for user in self.users.values() if user.digestEnabled]

    def update_preferences(self, user_id, update):
        user = self.get_by_id(user_id)
        changes = update.model_dump(exclude_unset=True, exclude_none=True)
        self.users[user_id] = user.model_copy(update=changes)
        return self.users[user_id]

    def mark_digest_sent(self, user_id, sent_at_iso):
        self.sent.append((user_id, sent_at_iso))
        self.users[user_id] = self.users[user_id].model_copy(update={"lastDigestSentAt": sent_at_iso})


class RecordingEmailQueue:
    def __init__(self):
        self.sent: list[dict] = []
        self.fail_for: set[str] = set()
        self.error: Exception = RuntimeError("queue unavailable")

    def enqueue(self, to, subject, html_body, user_id):
        if user_id in self.fail_for:
            raise self.error
        self.sent.append({"to": to, "subject": subject, "html": html_body, "userId": user_id})
        return f"job-{len(self.sent)}"


@pytest.fixture
def card_repo():
    return InMemoryCardRepo()


@pytest.fixture
def deck_repo():
    return InMemoryDeckRepo()


@pytest.fixture
def highlight_repo():
    return InMemoryHighlightRepo()


@pytest.fixture
def user_repo():
    return InMemoryUserRepo()


@pytest.fixture
def email_queue():
    return RecordingEmailQueue()
