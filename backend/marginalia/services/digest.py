"""Highlight digest emails.

An hourly tick picks the users whose local time matches their preferred hour,
whose frequency allows today and who were not sent a digest within the dedup
window. Each digest is filled in three tiers: due highlights, then
never-reviewed ones at random, then any remaining highlight at random.
"""

from __future__ import annotations

import logging
import os
import random
from datetime import datetime, timedelta, timezone, tzinfo
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel

from marginalia.db import is_unreachable_error
from marginalia.models import DigestRunReport, Highlight, UserProfile
from marginalia.repositories import (
    HighlightRepository,
    UserRepository,
    get_highlight_repository,
    get_user_repository,
)
from marginalia.services.email import EmailQueue, digest_subject, render_digest
from marginalia.srs.time import ensure_utc, parse_iso_z, utc_datetime_to_iso_z

logger = logging.getLogger(__name__)


class DigestSettings(BaseModel):
    """Digest settings loaded from environment variables."""

    enabled: bool = True
    highlight_count: int = 5
    dedup_hours: float = 20
    cron: str = "0 * * * *"
    app_url: str = "http://localhost:3002"

    @property
    def dedup_window(self) -> timedelta:
        return timedelta(hours=self.dedup_hours)


@lru_cache()
def get_digest_settings() -> DigestSettings:
    """Get cached digest settings from environment variables."""
    enabled_str = os.getenv("DIGEST_ENABLED", "true").lower()

    return DigestSettings(
        enabled=enabled_str not in ("false", "0", "no", "off"),
        highlight_count=int(os.getenv("DIGEST_HIGHLIGHT_COUNT", "5")),
        dedup_hours=float(os.getenv("DIGEST_DEDUP_HOURS", "20")),
        cron=os.getenv("DIGEST_CRON", "0 * * * *"),
        app_url=os.getenv("APP_URL", "http://localhost:3002"),
    )


def is_valid_timezone(name: str) -> bool:
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, OSError):
        return False
    return True


def _user_zone(name: str) -> tzinfo:
    """The user's zone, or UTC when the name is not a known IANA zone."""
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, OSError):
        logger.warning("Unknown timezone %r, falling back to UTC", name)
        return timezone.utc


def is_user_hour(now: datetime, tz_name: str, preferred_hour: int) -> bool:
    return ensure_utc(now).astimezone(_user_zone(tz_name)).hour == preferred_hour


def is_frequency_day(now: datetime, tz_name: str, frequency: str) -> bool:
    """daily: every day, weekdays: Monday to Friday, weekly: Monday only."""
    if frequency == "daily":
        return True
    weekday = ensure_utc(now).astimezone(_user_zone(tz_name)).weekday()
    if frequency == "weekdays":
        return weekday < 5
    if frequency == "weekly":
        return weekday == 0
    return True


def is_outside_dedup_window(last_sent: datetime | None, now: datetime, window: timedelta) -> bool:
    if last_sent is None:
        return True
    return ensure_utc(now) - ensure_utc(last_sent) > window


class DigestService:
    """Selects digest recipients and queues their emails."""

    def __init__(
        self,
        users: UserRepository,
        highlights: HighlightRepository,
        email_queue: EmailQueue,
        settings: DigestSettings | None = None,
        rng: random.Random | None = None,
    ):
        self.users = users
        self.highlights = highlights
        self.email_queue = email_queue
        self.settings = settings or get_digest_settings()
        self.rng = rng or random.Random()

    def is_eligible(self, user: UserProfile, now: datetime) -> bool:
        if not user.digestEnabled:
            return False
        if not is_user_hour(now, user.digestTimezone, user.digestHour):
            return False
        last_sent = parse_iso_z(user.lastDigestSentAt) if user.lastDigestSentAt else None
        if not is_outside_dedup_window(last_sent, now, self.settings.dedup_window):
            return False
        return is_frequency_day(now, user.digestTimezone, user.digestFrequency)

    def select_eligible_users(self, now: datetime) -> list[UserProfile]:
        return [user for user in self.users.list_digest_enabled() if self.is_eligible(user, now)]

    def build_digest(self, user_id: str, now: datetime) -> list[Highlight] | None:
        """Pick up to `highlight_count` distinct highlights; None when the library is empty."""
        target = self.settings.highlight_count
        now_iso = utc_datetime_to_iso_z(now)

        chosen = self.highlights.query_due(user_id, now_iso, target)
        if len(chosen) < target:
            chosen += self.highlights.query_without_state(
                user_id, [h.id for h in chosen], target - len(chosen), self.rng
            )
        if len(chosen) < target:
            chosen += self.highlights.query_random(
                user_id, [h.id for h in chosen], target - len(chosen), self.rng
            )

        return chosen or None

    def send_digest(self, user: UserProfile, now: datetime) -> bool:
        """Render and queue one user's digest, then record the send.

        The timestamp is written only after the email job was queued, so a
        failed enqueue leaves the user eligible for a later tick.
        """
        highlights = self.build_digest(user.id, now)
        if not highlights:
            logger.info("No highlights for user %s, skipping digest", user.id)
            return False

        now_iso = utc_datetime_to_iso_z(now)
        stats = {
            "totalHighlights": self.highlights.count_active(user.id),
            "totalDue": self.highlights.count_due(user.id, now_iso),
        }
        html_body = render_digest(highlights, stats, self.settings.app_url)
        job_id = self.email_queue.enqueue(
            user.email, digest_subject(len(highlights)), html_body, user_id=user.id
        )
        self.users.mark_digest_sent(user.id, now_iso)
        logger.info(
            "Queued digest job %s for user %s with %d highlights", job_id, user.id, len(highlights)
        )
        return True

    def run_tick(self, now: datetime) -> DigestRunReport:
        """Send digests to every user eligible at `now`."""
        if not self.settings.enabled:
            logger.debug("Digest disabled, tick ignored")
            return DigestRunReport()

        users = self.select_eligible_users(now)
        if not users:
            return DigestRunReport()

        logger.info("Generating digests for %d user(s)", len(users))
        return self._send_all(users, now)

    def trigger_now(self, now: datetime) -> DigestRunReport:
        """Send to every enabled user, ignoring hour, frequency and dedup rules."""
        users = [user for user in self.users.list_digest_enabled() if user.digestEnabled]
        logger.info("Manual digest trigger for %d user(s)", len(users))
        return self._send_all(users, now)

    def _send_all(self, users: list[UserProfile], now: datetime) -> DigestRunReport:
        report = DigestRunReport(processed=len(users))
        for user in users:
            try:
                sent = self.send_digest(user, now)
            except Exception as exc:
                # Store outages abort the tick; anything else only skips this user
                if is_unreachable_error(exc):
                    raise
                logger.exception("Digest failed for user %s", user.id)
                report.failed += 1
                continue
            if sent:
                report.sent += 1
            else:
                report.skipped += 1
        return report


# Singleton instance
_digest_service: DigestService | None = None


def get_digest_service() -> DigestService:
    """Get the digest service singleton."""
    global _digest_service
    if _digest_service is None:
        _digest_service = DigestService(
            get_user_repository(),
            get_highlight_repository(),
            EmailQueue(),
        )
    return _digest_service
