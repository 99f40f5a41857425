"""Persisted form of a SchedulingState (embedded in flashcards and highlights)."""

from __future__ import annotations

from pydantic import BaseModel, Field

from marginalia.srs.fsrs import SchedulingState, State
from marginalia.srs.time import parse_iso_z, utc_datetime_to_iso_z


class SchedulingDocument(BaseModel):
    """Camel-cased scheduling fields as stored in Cosmos DB and returned by the API."""

    dueAt: str = Field(..., description="Next due timestamp (UTC ISO Z)")
    stability: float = Field(..., gt=0, description="Days until recall probability decays to 90%")
    difficulty: float = Field(..., ge=1, le=10, description="Intrinsic item difficulty")
    state: State = Field(State.NEW, description="Lifecycle stage")
    repetitions: int = Field(0, ge=0, description="Reviews counted since creation")
    lapses: int = Field(0, ge=0, description="Again ratings after a successful recall")
    lastReviewedAt: str | None = Field(None, description="Last review timestamp (UTC ISO Z)")

    @classmethod
    def from_state(cls, state: SchedulingState) -> "SchedulingDocument":
        return cls(
            dueAt=utc_datetime_to_iso_z(state.due),
            stability=state.stability,
            difficulty=state.difficulty,
            state=state.state,
            repetitions=state.repetition_count,
            lapses=state.lapse_count,
            lastReviewedAt=(
                utc_datetime_to_iso_z(state.last_reviewed_at) if state.last_reviewed_at else None
            ),
        )

    def to_state(self) -> SchedulingState:
        return SchedulingState(
            stability=self.stability,
            difficulty=self.difficulty,
            due=parse_iso_z(self.dueAt),
            state=self.state,
            repetition_count=self.repetitions,
            lapse_count=self.lapses,
            last_reviewed_at=parse_iso_z(self.lastReviewedAt) if self.lastReviewedAt else None,
        )
