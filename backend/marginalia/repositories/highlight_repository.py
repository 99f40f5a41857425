"""Repository for highlight reads and review-state writes.

Every query carries the soft-delete predicate; deleted highlights keep their
review state but never show up in due sets, study sessions or digests.
Cosmos DB has no RANDOM(), so random tiers fetch candidate ids and sample them
with the caller's random source.
"""

import logging
import random

from azure.core import MatchConditions
from azure.cosmos import ContainerProxy
from azure.cosmos.exceptions import CosmosAccessConditionFailedError, CosmosResourceNotFoundError

from marginalia.db import get_highlights_container
from marginalia.models import Highlight, SchedulingDocument, TagLogic
from marginalia.repositories.card_repository import ConcurrencyConflictError

logger = logging.getLogger(__name__)

NOT_DELETED = "(NOT IS_DEFINED(c.deletedAt) OR IS_NULL(c.deletedAt))"
HAS_STATE = "(IS_DEFINED(c.scheduling) AND NOT IS_NULL(c.scheduling))"
NO_STATE = "(NOT IS_DEFINED(c.scheduling) OR IS_NULL(c.scheduling))"


class HighlightNotFoundError(Exception):
    """Raised when a highlight is missing, soft-deleted or owned by someone else."""

    pass


def tag_filter_clause(tag_ids: list[str], logic: TagLogic) -> tuple[str, list[dict]]:
    """Build the tag predicate for a smart deck.

    AND requires every tag on the highlight, OR any of them.
    """
    if not tag_ids:
        raise ValueError("tag filter needs at least one tag")
    clauses = []
    parameters = []
    for index, tag_id in enumerate(tag_ids):
        clauses.append(f"ARRAY_CONTAINS(c.tagIds, @tag{index})")
        parameters.append({"name": f"@tag{index}", "value": tag_id})
    joiner = " AND " if logic == "AND" else " OR "
    return "(" + joiner.join(clauses) + ")", parameters


def matches_tags(highlight_tags: list[str], tag_ids: list[str], logic: TagLogic) -> bool:
    """In-memory equivalent of tag_filter_clause."""
    if not tag_ids:
        return False
    present = set(highlight_tags)
    if logic == "AND":
        return all(tag_id in present for tag_id in tag_ids)
    return any(tag_id in present for tag_id in tag_ids)


class HighlightRepository:
    """Repository for highlight database operations."""

    def __init__(self, container: ContainerProxy | None = None):
        """Initialize the repository with an optional container."""
        self._container = container

    @property
    def container(self) -> ContainerProxy:
        """Get the container, lazily initializing if needed."""
        if self._container is None:
            self._container = get_highlights_container()
        return self._container

    def _query(self, query: str, parameters: list[dict], user_id: str) -> list:
        return list(
            self.container.query_items(
                query=query,
                parameters=[{"name": "@userId", "value": user_id}, *parameters],
                partition_key=user_id,
            )
        )

    def get_by_id(self, highlight_id: str, user_id: str) -> Highlight:
        """Get a live (not soft-deleted) highlight."""
        try:
            item = self.container.read_item(item=highlight_id, partition_key=user_id)
        except CosmosResourceNotFoundError:
            raise HighlightNotFoundError(f"Highlight with ID {highlight_id} not found")
        highlight = Highlight(**item)
        if highlight.is_deleted:
            raise HighlightNotFoundError(f"Highlight with ID {highlight_id} not found")
        return highlight

    def set_scheduling_if_unchanged(
        self, highlight: Highlight, scheduling: SchedulingDocument
    ) -> Highlight:
        """Patch only the review state, guarded by the ETag the highlight was read with."""
        kwargs = {}
        if highlight.etag:
            kwargs = {"etag": highlight.etag, "match_condition": MatchConditions.IfNotModified}
        try:
            item = self.container.patch_item(
                item=highlight.id,
                partition_key=highlight.userId,
                patch_operations=[
                    {"op": "set", "path": "/scheduling", "value": scheduling.model_dump(mode="json")}
                ],
                **kwargs,
            )
        except CosmosAccessConditionFailedError:
            raise ConcurrencyConflictError(f"Highlight {highlight.id} was modified concurrently")
        return Highlight(**item)

    def get_many(self, user_id: str, highlight_ids: list[str]) -> list[Highlight]:
        """Live highlights with the given IDs, in no particular order."""
        if not highlight_ids:
            return []
        items = self._query(
            f"SELECT * FROM c WHERE c.userId = @userId AND {NOT_DELETED} AND ARRAY_CONTAINS(@ids, c.id)",
            [{"name": "@ids", "value": list(highlight_ids)}],
            user_id,
        )
        return [Highlight(**item) for item in items]

    def query_matching_tags(self, user_id: str, tag_ids: list[str], logic: TagLogic) -> list[Highlight]:
        """Live highlights matching a smart deck's tag filter."""
        if not tag_ids:
            return []
        clause, parameters = tag_filter_clause(tag_ids, logic)
        items = self._query(
            f"SELECT * FROM c WHERE c.userId = @userId AND {NOT_DELETED} AND {clause}",
            parameters,
            user_id,
        )
        return [Highlight(**item) for item in items]

    def list_deleted_ids(self, user_id: str) -> list[str]:
        return self._query(
            "SELECT VALUE c.id FROM c WHERE c.userId = @userId "
            "AND IS_DEFINED(c.deletedAt) AND NOT IS_NULL(c.deletedAt)",
            [],
            user_id,
        )

    def query_due(self, user_id: str, now_iso: str, limit: int) -> list[Highlight]:
        """Highlights whose review state is due, most overdue first."""
        items = self._query(
            f"SELECT * FROM c WHERE c.userId = @userId AND {NOT_DELETED} AND {HAS_STATE} "
            "AND c.scheduling.dueAt <= @nowIso "
            "ORDER BY c.scheduling.dueAt ASC OFFSET 0 LIMIT @limit",
            [{"name": "@nowIso", "value": now_iso}, {"name": "@limit", "value": limit}],
            user_id,
        )
        return [Highlight(**item) for item in items]

    def count_due(self, user_id: str, now_iso: str) -> int:
        return self._query(
            f"SELECT VALUE COUNT(1) FROM c WHERE c.userId = @userId AND {NOT_DELETED} "
            f"AND {HAS_STATE} AND c.scheduling.dueAt <= @nowIso",
            [{"name": "@nowIso", "value": now_iso}],
            user_id,
        )[0]

    def count_active(self, user_id: str) -> int:
        return self._query(
            f"SELECT VALUE COUNT(1) FROM c WHERE c.userId = @userId AND {NOT_DELETED}",
            [],
            user_id,
        )[0]

    def query_newest_without_state(self, user_id: str, limit: int) -> list[Highlight]:
        """Never-reviewed highlights, newest first."""
        items = self._query(
            f"SELECT * FROM c WHERE c.userId = @userId AND {NOT_DELETED} AND {NO_STATE} "
            "ORDER BY c.createdAt DESC OFFSET 0 LIMIT @limit",
            [{"name": "@limit", "value": limit}],
            user_id,
        )
        return [Highlight(**item) for item in items]

    def query_without_state(
        self, user_id: str, exclude_ids: list[str], limit: int, rng: random.Random
    ) -> list[Highlight]:
        """Random never-reviewed highlights, excluding exclude_ids."""
        return self._sample(user_id, NO_STATE, exclude_ids, limit, rng)

    def query_random(
        self, user_id: str, exclude_ids: list[str], limit: int, rng: random.Random
    ) -> list[Highlight]:
        """Random live highlights of any review state, excluding exclude_ids."""
        return self._sample(user_id, "true", exclude_ids, limit, rng)

    def _sample(
        self, user_id: str, predicate: str, exclude_ids: list[str], limit: int, rng: random.Random
    ) -> list[Highlight]:
        if limit <= 0:
            return []
        candidate_ids = self._query(
            f"SELECT VALUE c.id FROM c WHERE c.userId = @userId AND {NOT_DELETED} "
            f"AND {predicate} AND NOT ARRAY_CONTAINS(@excludeIds, c.id)",
            [{"name": "@excludeIds", "value": list(exclude_ids)}],
            user_id,
        )
        # Sorting first makes the draw depend only on the random source
        candidate_ids = sorted(set(candidate_ids) - set(exclude_ids))
        chosen = rng.sample(candidate_ids, min(limit, len(candidate_ids)))
        if not chosen:
            return []

        by_id = {highlight.id: highlight for highlight in self.get_many(user_id, chosen)}
        missing = [highlight_id for highlight_id in chosen if highlight_id not in by_id]
        if missing:
            logger.warning("Sampled highlights vanished before fetch: %s", missing)
        return [by_id[highlight_id] for highlight_id in chosen if highlight_id in by_id]


# Singleton instance
_highlight_repository: HighlightRepository | None = None


def get_highlight_repository() -> HighlightRepository:
    """Get the highlight repository singleton."""
    global _highlight_repository
    if _highlight_repository is None:
        _highlight_repository = HighlightRepository()
    return _highlight_repository
