"""SRS helpers (FSRS memory model + UTC time handling)."""

from .fsrs import (
    DEFAULT_PARAMETERS,
    Rating,
    SchedulerParameters,
    SchedulingState,
    State,
    format_interval,
    new_scheduling_state,
    next_interval_days,
    parse_rating,
    preview,
    schedule,
)
from .time import (
    utc_now,
    utc_now_iso,
    utc_datetime_to_iso_z,
    parse_iso_z,
)

__all__ = [
    "DEFAULT_PARAMETERS",
    "Rating",
    "SchedulerParameters",
    "SchedulingState",
    "State",
    "format_interval",
    "new_scheduling_state",
    "next_interval_days",
    "parse_rating",
    "preview",
    "schedule",
    "utc_now",
    "utc_now_iso",
    "utc_datetime_to_iso_z",
    "parse_iso_z",
]
