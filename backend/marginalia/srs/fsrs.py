"""FSRS memory model and review scheduling.

Everything in this module is pure: a scheduling decision depends only on the
prior SchedulingState, the rating, the review instant and an immutable
SchedulerParameters value. Persistence and concurrency live in the services.

Model summary:
- Retrievability follows a power forgetting curve R = (1 + FACTOR * t / S) ^ DECAY,
  calibrated so that R == 0.9 when t == S (stability is "days until 90%").
- New cards are initialised from rating-specific base weights.
- Lapses use the FSRS forget-stability formula, successes the recall formula.
- Long-term intervals are whole days and strictly ordered Hard < Good < Easy.
"""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass
from datetime import datetime, timedelta

from .time import elapsed_days, ensure_utc

DECAY = -0.5
FACTOR = 0.9 ** (1 / DECAY) - 1

MIN_DIFFICULTY = 1.0
MAX_DIFFICULTY = 10.0
MIN_STABILITY = 0.1

# FSRS-4 default weights
DEFAULT_WEIGHTS: tuple[float, ...] = (
    0.4, 0.6, 2.4, 5.8, 4.93, 0.94, 0.86, 0.01, 1.49,
    0.14, 0.94, 2.18, 0.05, 0.34, 1.26, 0.29, 2.61,
)


class State(str, enum.Enum):
    """Lifecycle stage of a reviewable item."""

    NEW = "new"
    LEARNING = "learning"
    REVIEW = "review"
    RELEARNING = "relearning"


class Rating(enum.IntEnum):
    """Review answer. Wire values are exactly 1..4."""

    AGAIN = 1
    HARD = 2
    GOOD = 3
    EASY = 4


def parse_rating(value: int | Rating) -> Rating:
    """Return value as a Rating or raise ValueError; booleans are not ratings."""
    if isinstance(value, bool):
        raise ValueError(f"rating must be an integer 1..4, got {value!r}")
    try:
        return Rating(value)
    except ValueError:
        raise ValueError(f"rating must be an integer 1..4, got {value!r}") from None


@dataclass(frozen=True)
class SchedulerParameters:
    """Immutable algorithm configuration passed into every scheduling call."""

    weights: tuple[float, ...] = DEFAULT_WEIGHTS
    request_retention: float = 0.9
    maximum_interval_days: int = 36500
    # Short-term steps, in minutes
    new_again_minutes: int = 1
    new_hard_minutes: int = 5
    new_good_minutes: int = 10
    learning_again_minutes: int = 5
    learning_hard_minutes: int = 10
    relearning_minutes: int = 5

    def __post_init__(self) -> None:
        if len(self.weights) != 17:
            raise ValueError(f"expected 17 weights, got {len(self.weights)}")
        if not 0 < self.request_retention < 1:
            raise ValueError("request_retention must be in (0, 1)")
        if self.maximum_interval_days < 3:
            raise ValueError("maximum_interval_days must be >= 3")

    def new_step_minutes(self, rating: Rating) -> int:
        return {
            Rating.AGAIN: self.new_again_minutes,
            Rating.HARD: self.new_hard_minutes,
            Rating.GOOD: self.new_good_minutes,
        }[rating]


DEFAULT_PARAMETERS = SchedulerParameters()


@dataclass(frozen=True)
class SchedulingState:
    """Per-item memory state."""

    stability: float
    difficulty: float
    due: datetime
    state: State = State.NEW
    repetition_count: int = 0
    lapse_count: int = 0
    last_reviewed_at: datetime | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.state, State):
            raise ValueError(f"state must be a State, got {self.state!r}")
        if not math.isfinite(self.stability) or self.stability <= 0:
            raise ValueError(f"stability must be > 0, got {self.stability}")
        if not MIN_DIFFICULTY <= self.difficulty <= MAX_DIFFICULTY:
            raise ValueError(
                f"difficulty must be within [{MIN_DIFFICULTY}, {MAX_DIFFICULTY}], got {self.difficulty}"
            )
        if self.repetition_count < 0 or self.lapse_count < 0:
            raise ValueError("repetition_count and lapse_count must be non-negative")
        if self.due.tzinfo is None:
            raise ValueError("due must be timezone-aware")
        if self.last_reviewed_at is not None and self.last_reviewed_at.tzinfo is None:
            raise ValueError("last_reviewed_at must be timezone-aware")


def _clamp(value: float, minimum: float, maximum: float) -> float:
    return max(minimum, min(maximum, value))


def new_scheduling_state(
    now: datetime, params: SchedulerParameters = DEFAULT_PARAMETERS
) -> SchedulingState:
    """Fresh NEW state, due immediately."""
    w = params.weights
    return SchedulingState(
        stability=max(w[2], MIN_STABILITY),
        difficulty=_clamp(w[4], MIN_DIFFICULTY, MAX_DIFFICULTY),
        due=ensure_utc(now),
    )


def retrievability(stability: float, days: float) -> float:
    return (1 + FACTOR * days / stability) ** DECAY


def current_retrievability(
    state: SchedulingState, now: datetime
) -> float:
    """Probability of recall at now; 1.0 for items that were never reviewed."""
    if state.state is State.NEW or state.last_reviewed_at is None:
        return 1.0
    return retrievability(state.stability, elapsed_days(state.last_reviewed_at, ensure_utc(now)))


def next_interval_days(stability: float, params: SchedulerParameters = DEFAULT_PARAMETERS) -> int:
    """Whole-day interval for the requested retention, clamped to [1, maximum]."""
    raw = stability / FACTOR * (params.request_retention ** (1 / DECAY) - 1)
    return int(_clamp(round(raw), 1, params.maximum_interval_days))


def _init_stability(rating: Rating, params: SchedulerParameters) -> float:
    return max(params.weights[rating - 1], MIN_STABILITY)


def _init_difficulty(rating: Rating, params: SchedulerParameters) -> float:
    w = params.weights
    return _clamp(w[4] - w[5] * (rating - 3), MIN_DIFFICULTY, MAX_DIFFICULTY)


def _next_difficulty(difficulty: float, rating: Rating, params: SchedulerParameters) -> float:
    w = params.weights
    shifted = difficulty - w[6] * (rating - 3)
    reverted = w[7] * w[4] + (1 - w[7]) * shifted
    return _clamp(reverted, MIN_DIFFICULTY, MAX_DIFFICULTY)


def _forget_stability(
    difficulty: float, stability: float, r: float, params: SchedulerParameters
) -> float:
    w = params.weights
    forgotten = (
        w[11]
        * difficulty ** -w[12]
        * ((stability + 1) ** w[13] - 1)
        * math.exp((1 - r) * w[14])
    )
    # A lapse never raises stability, even below the usual floor
    return min(max(forgotten, MIN_STABILITY), stability)


def _recall_stability(
    difficulty: float, stability: float, r: float, rating: Rating, params: SchedulerParameters
) -> float:
    w = params.weights
    hard_penalty = w[15] if rating == Rating.HARD else 1.0
    easy_bonus = w[16] if rating == Rating.EASY else 1.0
    growth = (
        math.exp(w[8])
        * (11 - difficulty)
        * stability ** -w[9]
        * (math.exp((1 - r) * w[10]) - 1)
        * hard_penalty
        * easy_bonus
    )
    return stability * (1 + growth)


def _from_new(rating: Rating, now: datetime, params: SchedulerParameters) -> SchedulingState:
    stability = _init_stability(rating, params)
    if rating == Rating.EASY:
        due = now + timedelta(days=next_interval_days(stability, params))
        state = State.REVIEW
    else:
        due = now + timedelta(minutes=params.new_step_minutes(rating))
        state = State.LEARNING

    return SchedulingState(
        stability=stability,
        difficulty=_init_difficulty(rating, params),
        due=due,
        state=state,
        # The first Again from NEW is not counted as a repetition
        repetition_count=0 if rating == Rating.AGAIN else 1,
        lapse_count=0,
        last_reviewed_at=now,
    )


def _from_reviewed(
    prior: SchedulingState, now: datetime, params: SchedulerParameters
) -> dict[Rating, SchedulingState]:
    r = current_retrievability(prior, now)
    d = prior.difficulty
    s = prior.stability

    stability = {
        Rating.AGAIN: _forget_stability(d, s, r, params),
        Rating.HARD: _recall_stability(d, s, r, Rating.HARD, params),
        Rating.GOOD: _recall_stability(d, s, r, Rating.GOOD, params),
        Rating.EASY: _recall_stability(d, s, r, Rating.EASY, params),
    }

    hard_ivl = next_interval_days(stability[Rating.HARD], params)
    good_ivl = next_interval_days(stability[Rating.GOOD], params)
    easy_ivl = next_interval_days(stability[Rating.EASY], params)
    hard_ivl = min(hard_ivl, good_ivl)
    good_ivl = max(good_ivl, hard_ivl + 1)
    easy_ivl = max(easy_ivl, good_ivl + 1)
    # Cap top-down so the ordering survives the maximum interval
    easy_ivl = min(easy_ivl, params.maximum_interval_days)
    good_ivl = min(good_ivl, easy_ivl - 1)
    hard_ivl = min(hard_ivl, good_ivl - 1)

    lapsed = prior.state is State.REVIEW or (
        prior.state is State.LEARNING and prior.repetition_count > 0
    )
    if prior.state is State.LEARNING:
        again_step = params.learning_again_minutes
    else:
        again_step = params.relearning_minutes

    outcomes: dict[Rating, tuple[State, timedelta, int]] = {
        Rating.AGAIN: (
            State.RELEARNING if lapsed or prior.state is State.RELEARNING else State.LEARNING,
            timedelta(minutes=again_step),
            prior.lapse_count + 1 if lapsed else prior.lapse_count,
        ),
        Rating.HARD: (State.REVIEW, timedelta(days=hard_ivl), prior.lapse_count),
        Rating.GOOD: (State.REVIEW, timedelta(days=good_ivl), prior.lapse_count),
        Rating.EASY: (State.REVIEW, timedelta(days=easy_ivl), prior.lapse_count),
    }
    if prior.state is State.LEARNING:
        outcomes[Rating.HARD] = (
            State.LEARNING,
            timedelta(minutes=params.learning_hard_minutes),
            prior.lapse_count,
        )

    return {
        rating: SchedulingState(
            stability=stability[rating],
            difficulty=_next_difficulty(d, rating, params),
            due=now + delay,
            state=next_state,
            repetition_count=prior.repetition_count + 1,
            lapse_count=lapses,
            last_reviewed_at=now,
        )
        for rating, (next_state, delay, lapses) in outcomes.items()
    }


def preview(
    state: SchedulingState, now: datetime, params: SchedulerParameters = DEFAULT_PARAMETERS
) -> dict[Rating, SchedulingState]:
    """Compute the outcome of every rating from one snapshot without committing."""
    now = ensure_utc(now)
    if state.state is State.NEW:
        return {rating: _from_new(rating, now, params) for rating in Rating}
    return _from_reviewed(state, now, params)


def schedule(
    state: SchedulingState,
    rating: int | Rating,
    now: datetime,
    params: SchedulerParameters = DEFAULT_PARAMETERS,
) -> SchedulingState:
    """Apply one rating and return the next state.

    Raises:
        ValueError: rating outside 1..4 or a naive `now`.
    """
    return preview(state, now, params)[parse_rating(rating)]


def format_interval(now: datetime, due: datetime) -> str:
    """Human readable distance from now to due ("5 minutes", "3 days", "2 months")."""
    seconds = max(0.0, (due - now).total_seconds())
    minutes = round(seconds / 60)
    if minutes < 60:
        return f"{minutes} minute{'s' if minutes != 1 else ''}"
    if seconds < 86400:
        hours = round(seconds / 3600)
        return f"{hours} hour{'s' if hours != 1 else ''}"
    days = round(seconds / 86400)
    if days < 30:
        return f"{days} day{'s' if days != 1 else ''}"
    months = round(days / 30)
    return f"{months} month{'s' if months != 1 else ''}"
