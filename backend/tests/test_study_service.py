"""Tests for study sessions and review submission (in-memory repositories)."""

from datetime import datetime, timedelta, timezone

import pytest

from marginalia.models import Card, CardCreate, Deck, DeckSettings, Highlight, SchedulingDocument
from marginalia.repositories import CardNotFoundError, DeckNotFoundError, HighlightNotFoundError
from marginalia.services import (
    RealCard,
    ReviewConflictError,
    SmartDeckCardError,
    StudyService,
    VirtualCard,
    to_study_item,
    virtual_card_faces,
    virtual_card_id,
)
from marginalia.srs.fsrs import Rating, State, new_scheduling_state, schedule
from marginalia.srs.time import utc_datetime_to_iso_z

USER = "user-1"
T0 = datetime(2025, 3, 3, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def service(card_repo, deck_repo, highlight_repo):
    return StudyService(card_repo, deck_repo, highlight_repo)


def scheduling_due(at: datetime) -> SchedulingDocument:
    state = schedule(new_scheduling_state(at - timedelta(days=3)), Rating.EASY, at - timedelta(days=3))
    return SchedulingDocument.from_state(state).model_copy(update={"dueAt": utc_datetime_to_iso_z(at)})


def make_card(card_id, deck_id, due_at, highlight_id=None, user_id=USER) -> Card:
    return Card(
        id=card_id,
        deckId=deck_id,
        userId=user_id,
        highlightId=highlight_id,
        front=f"front {card_id}",
        back=f"back {card_id}",
        scheduling=scheduling_due(due_at),
    )


def make_highlight(highlight_id, tags=(), deleted=False, content=None, **extra) -> Highlight:
    return Highlight(
        id=highlight_id,
        userId=USER,
        content=content or f"Highlight text {highlight_id}",
        tagIds=list(tags),
        deletedAt="2025-03-01T00:00:00Z" if deleted else None,
        **extra,
    )


def manual_deck(deck_repo, deck_id="deck-1") -> Deck:
    return deck_repo.add(Deck(id=deck_id, userId=USER, name="Manual"))


def smart_deck(deck_repo, tags, logic="OR", raw=False, deck_id="smart-1") -> Deck:
    return deck_repo.add(
        Deck(
            id=deck_id,
            userId=USER,
            name="Smart",
            type="smart",
            tagIds=list(tags),
            tagLogic=logic,
            settings=DeckSettings(includeRawHighlights=raw),
        )
    )


class TestStudyItems:
    def test_virtual_faces_truncate_long_content(self):
        content = "x" * 150
        front, back = virtual_card_faces(content)
        assert front == "x" * 100 + "..."
        assert back == content

    def test_virtual_faces_keep_short_content(self):
        assert virtual_card_faces("short") == ("short", "short")

    def test_projection_of_both_sources(self):
        card = make_card("c1", "deck-1", T0, highlight_id="h1")
        real = to_study_item(RealCard(card))
        assert real.id == "c1"
        assert real.isVirtual is False
        assert real.deckId == "deck-1"

        virtual = to_study_item(VirtualCard(make_highlight("h2")))
        assert virtual.id == "virtual:h2"
        assert virtual.isVirtual is True
        assert virtual.deckId is None
        assert virtual.highlightId == "h2"


class TestManualDeckSession:
    def test_due_cards_oldest_first_with_uncapped_total(self, service, card_repo, deck_repo):
        manual_deck(deck_repo)
        for index in range(5):
            card_repo.add(make_card(f"c{index}", "deck-1", T0 - timedelta(hours=index)))
        card_repo.add(make_card("future", "deck-1", T0 + timedelta(days=1)))
        card_repo.add(make_card("other-deck", "deck-2", T0 - timedelta(days=1)))

        session = service.get_study_session(USER, "deck-1", T0, limit=3)

        assert [item.id for item in session.cards] == ["c4", "c3", "c2"]
        assert session.totalDue == 5

    def test_cards_of_deleted_highlights_are_excluded(
        self, service, card_repo, deck_repo, highlight_repo
    ):
        manual_deck(deck_repo)
        highlight_repo.add(make_highlight("gone", deleted=True))
        card_repo.add(make_card("c1", "deck-1", T0, highlight_id="gone"))
        card_repo.add(make_card("c2", "deck-1", T0))

        session = service.get_study_session(USER, "deck-1", T0, limit=20)

        assert [item.id for item in session.cards] == ["c2"]
        assert session.totalDue == 1

    def test_items_carry_their_source_highlight(self, service, card_repo, deck_repo, highlight_repo):
        manual_deck(deck_repo)
        highlight_repo.add(make_highlight("h1", bookId="b1", bookTitle="Meditations"))
        card_repo.add(make_card("c1", "deck-1", T0 - timedelta(hours=1), highlight_id="h1"))
        card_repo.add(make_card("c2", "deck-1", T0))

        session = service.get_study_session(USER, "deck-1", T0, limit=20)

        bound, plain = session.cards
        assert bound.highlight.model_dump() == {"id": "h1", "bookId": "b1", "bookTitle": "Meditations"}
        assert plain.highlight is None

    def test_unknown_deck(self, service):
        with pytest.raises(DeckNotFoundError):
            service.get_study_session(USER, "missing", T0, limit=20)


class TestSmartDeckSession:
    def test_and_logic_requires_every_tag(self, service, card_repo, deck_repo, highlight_repo):
        smart_deck(deck_repo, ["a", "b"], logic="AND")
        highlight_repo.add(make_highlight("both", tags=["a", "b"]))
        highlight_repo.add(make_highlight("only-a", tags=["a"]))
        card_repo.add(make_card("c-both", "deck-x", T0, highlight_id="both"))
        card_repo.add(make_card("c-a", "deck-x", T0, highlight_id="only-a"))

        session = service.get_study_session(USER, "smart-1", T0, limit=20)

        assert [item.id for item in session.cards] == ["c-both"]

    def test_or_logic_accepts_any_tag(self, service, card_repo, deck_repo, highlight_repo):
        smart_deck(deck_repo, ["a", "b"], logic="OR")
        highlight_repo.add(make_highlight("h-a", tags=["a"]))
        highlight_repo.add(make_highlight("h-b", tags=["b"]))
        highlight_repo.add(make_highlight("h-c", tags=["c"]))
        card_repo.add(make_card("c-a", "deck-x", T0 - timedelta(hours=1), highlight_id="h-a"))
        card_repo.add(make_card("c-b", "deck-x", T0, highlight_id="h-b"))
        card_repo.add(make_card("c-c", "deck-x", T0, highlight_id="h-c"))

        session = service.get_study_session(USER, "smart-1", T0, limit=20)

        assert [item.id for item in session.cards] == ["c-a", "c-b"]
        assert session.totalDue == 2

    def test_deck_without_tags_is_empty(self, service, deck_repo, highlight_repo):
        smart_deck(deck_repo, [], raw=True)
        highlight_repo.add(make_highlight("h1", tags=["a"]))

        session = service.get_study_session(USER, "smart-1", T0, limit=20)

        assert session.cards == []
        assert session.totalDue == 0

    def test_raw_highlights_fill_up_to_limit(self, service, card_repo, deck_repo, highlight_repo):
        smart_deck(deck_repo, ["a"], raw=True)
        for index in range(4):
            highlight_repo.add(make_highlight(f"h{index}", tags=["a"]))
        highlight_repo.add(make_highlight("deleted", tags=["a"], deleted=True))
        card_repo.add(make_card("c0", "deck-x", T0, highlight_id="h0"))

        session = service.get_study_session(USER, "smart-1", T0, limit=3)

        assert session.cards[0].id == "c0"
        assert [item.isVirtual for item in session.cards] == [False, True, True]
        virtual_ids = {item.highlightId for item in session.cards[1:]}
        assert virtual_ids <= {"h1", "h2", "h3"}
        # one due card plus three highlights without a flashcard
        assert session.totalDue == 4

    def test_real_and_virtual_items_carry_book(self, service, card_repo, deck_repo, highlight_repo):
        smart_deck(deck_repo, ["a"], raw=True)
        highlight_repo.add(make_highlight("h1", tags=["a"], bookId="b1", bookTitle="Walden"))
        highlight_repo.add(make_highlight("h2", tags=["a"], bookId="b2", bookTitle="Essays"))
        card_repo.add(make_card("c1", "deck-x", T0, highlight_id="h1"))

        session = service.get_study_session(USER, "smart-1", T0, limit=20)

        real, virtual = session.cards
        assert (real.highlight.id, real.highlight.bookTitle) == ("h1", "Walden")
        assert (virtual.highlight.id, virtual.highlight.bookId, virtual.highlight.bookTitle) == (
            "h2",
            "b2",
            "Essays",
        )

    def test_raw_highlights_ignored_when_disabled(self, service, deck_repo, highlight_repo):
        smart_deck(deck_repo, ["a"], raw=False)
        highlight_repo.add(make_highlight("h1", tags=["a"]))

        session = service.get_study_session(USER, "smart-1", T0, limit=20)

        assert session.cards == []
        assert session.totalDue == 0

    def test_covered_highlight_with_future_card_is_not_virtual(
        self, service, card_repo, deck_repo, highlight_repo
    ):
        smart_deck(deck_repo, ["a"], raw=True)
        highlight_repo.add(make_highlight("h1", tags=["a"]))
        card_repo.add(make_card("c1", "deck-x", T0 + timedelta(days=2), highlight_id="h1"))

        session = service.get_study_session(USER, "smart-1", T0, limit=20)

        assert session.cards == []
        assert session.totalDue == 0


class TestReviewCard:
    def test_review_persists_scheduled_state(self, service, card_repo):
        card_repo.add(make_card("c1", "deck-1", T0))
        prior = card_repo.get_by_id("c1", USER).scheduling.to_state()

        card = service.review_card(USER, "c1", 3, T0)

        expected = schedule(prior, Rating.GOOD, T0)
        assert card.scheduling.to_state() == expected
        assert card_repo.cards["c1"].scheduling.dueAt == utc_datetime_to_iso_z(expected.due)

    def test_conflict_is_retried_once(self, service, card_repo):
        card_repo.add(make_card("c1", "deck-1", T0))
        card_repo.conflicts_to_inject = 1

        card = service.review_card(USER, "c1", Rating.GOOD, T0)

        # one injected foreign write plus our own
        assert card_repo.etags["c1"] == 3
        assert card.scheduling.lastReviewedAt == utc_datetime_to_iso_z(T0)

    def test_second_conflict_is_surfaced(self, service, card_repo):
        card_repo.add(make_card("c1", "deck-1", T0))
        before = card_repo.cards["c1"].scheduling
        card_repo.conflicts_to_inject = 2

        with pytest.raises(ReviewConflictError):
            service.review_card(USER, "c1", Rating.GOOD, T0)
        assert card_repo.cards["c1"].scheduling == before

    def test_invalid_rating_is_rejected_before_any_read(self, service, card_repo):
        with pytest.raises(ValueError):
            service.review_card(USER, "missing", 5, T0)

    def test_unknown_card(self, service):
        with pytest.raises(CardNotFoundError):
            service.review_card(USER, "missing", 3, T0)

    def test_preview_lists_four_ordered_outcomes(self, service, card_repo):
        card_repo.add(make_card("c1", "deck-1", T0))

        previews = service.preview_card(USER, "c1", T0)

        assert [p.rating for p in previews] == [Rating.AGAIN, Rating.HARD, Rating.GOOD, Rating.EASY]
        assert [p.dueAt for p in previews] == sorted(p.dueAt for p in previews)
        assert card_repo.etags["c1"] == 1


class TestVirtualCardReview:
    def test_materializes_one_card_with_scheduled_state(
        self, service, card_repo, deck_repo, highlight_repo
    ):
        smart_deck(deck_repo, ["a"], raw=True)
        highlight_repo.add(make_highlight("h1", tags=["a"], content="y" * 120))

        card = service.review_virtual_card(USER, "h1", "smart-1", Rating.GOOD, T0)

        expected = schedule(new_scheduling_state(T0), Rating.GOOD, T0)
        assert len(card_repo.created) == 1
        assert card.highlightId == "h1"
        assert card.deckId == "smart-1"
        assert card.front == "y" * 100 + "..."
        assert card.back == "y" * 120
        assert card.scheduling.to_state() == expected

    def test_second_submission_rates_existing_card(
        self, service, card_repo, deck_repo, highlight_repo
    ):
        manual_deck(deck_repo)
        highlight_repo.add(make_highlight("h1"))

        first = service.review_virtual_card(USER, "h1", "deck-1", Rating.GOOD, T0)
        second = service.review_virtual_card(USER, "h1", "deck-1", Rating.GOOD, T0 + timedelta(minutes=10))

        assert len(card_repo.created) == 1
        assert second.id == first.id
        assert second.scheduling.repetitions == 2

    def test_concurrent_submissions_share_one_card(
        self, service, card_repo, deck_repo, highlight_repo, monkeypatch
    ):
        manual_deck(deck_repo)
        highlight_repo.add(make_highlight("h1"))
        # Both requests look up the highlight before either card is written
        monkeypatch.setattr(card_repo, "find_by_highlight", lambda *args: None)

        first = service.review_virtual_card(USER, "h1", "deck-1", Rating.GOOD, T0)
        second = service.review_virtual_card(USER, "h1", "deck-1", Rating.GOOD, T0 + timedelta(minutes=10))

        assert len(card_repo.created) == 1
        assert first.id == second.id == virtual_card_id("deck-1", "h1")
        assert second.scheduling.repetitions == 2
        assert len(card_repo.cards) == 1

    def test_card_id_is_stable_per_deck_and_highlight(self):
        assert virtual_card_id("deck-1", "h1") == virtual_card_id("deck-1", "h1")
        assert virtual_card_id("deck-1", "h1") != virtual_card_id("deck-2", "h1")
        assert virtual_card_id("deck-1", "h1") != virtual_card_id("deck-1", "h2")

    def test_custom_faces(self, service, deck_repo, highlight_repo):
        manual_deck(deck_repo)
        highlight_repo.add(make_highlight("h1"))

        card = service.review_virtual_card(
            USER, "h1", "deck-1", Rating.HARD, T0, front="Question?", back="Answer."
        )

        assert (card.front, card.back) == ("Question?", "Answer.")

    def test_deleted_highlight_is_not_found(self, service, card_repo, deck_repo, highlight_repo):
        manual_deck(deck_repo)
        highlight_repo.add(make_highlight("h1", deleted=True))

        with pytest.raises(HighlightNotFoundError):
            service.review_virtual_card(USER, "h1", "deck-1", Rating.GOOD, T0)
        assert card_repo.created == []

    def test_unknown_deck_creates_nothing(self, service, card_repo, highlight_repo):
        highlight_repo.add(make_highlight("h1"))

        with pytest.raises(DeckNotFoundError):
            service.review_virtual_card(USER, "h1", "missing", Rating.GOOD, T0)
        assert card_repo.created == []


class TestAddCard:
    def test_new_card_is_due_now(self, service, card_repo, deck_repo):
        manual_deck(deck_repo)

        card = service.add_card(USER, "deck-1", CardCreate(front="Q", back="A"), T0)

        assert card.scheduling.state is State.NEW
        assert card.scheduling.dueAt == utc_datetime_to_iso_z(T0)

    def test_smart_decks_reject_manual_cards(self, service, deck_repo):
        smart_deck(deck_repo, ["a"])

        with pytest.raises(SmartDeckCardError):
            service.add_card(USER, "smart-1", CardCreate(front="Q", back="A"), T0)


class TestHighlightReviewQueue:
    def test_due_first_then_three_newest(self, service, highlight_repo):
        highlight_repo.add(make_highlight("due-old", scheduling=scheduling_due(T0 - timedelta(days=2))))
        highlight_repo.add(make_highlight("due-new", scheduling=scheduling_due(T0 - timedelta(hours=1))))
        highlight_repo.add(make_highlight("later", scheduling=scheduling_due(T0 + timedelta(days=1))))
        for index in range(5):
            highlight_repo.add(make_highlight(f"n{index}", createdAt=f"2025-02-0{index + 1}T00:00:00Z"))

        queue = service.get_review_queue(USER, T0)

        assert [item.id for item in queue.items] == ["due-old", "due-new", "n4", "n3", "n2"]
        assert queue.dueCount == 2
        assert queue.newCount == 3
        assert queue.total == 5
        assert queue.items[0].bookTitle == "Unknown"

    def test_first_review_creates_state(self, service, highlight_repo):
        highlight_repo.add(make_highlight("h1"))

        response = service.review_highlight(USER, "h1", Rating.GOOD, T0)

        stored = highlight_repo.highlights["h1"].scheduling
        assert stored is not None
        assert stored.state is State.LEARNING
        assert response.state is State.LEARNING
        assert response.interval == "10 minutes"
        assert response.nextReview == stored.dueAt

    def test_conflict_is_retried_once(self, service, highlight_repo):
        highlight_repo.add(make_highlight("h1"))
        highlight_repo.conflicts_to_inject = 1

        response = service.review_highlight(USER, "h1", Rating.EASY, T0)

        assert response.state is State.REVIEW

    def test_second_conflict_is_surfaced(self, service, highlight_repo):
        highlight_repo.add(make_highlight("h1"))
        highlight_repo.conflicts_to_inject = 2

        with pytest.raises(ReviewConflictError):
            service.review_highlight(USER, "h1", Rating.EASY, T0)
        assert highlight_repo.highlights["h1"].scheduling is None
