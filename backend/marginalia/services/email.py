"""Digest email rendering and hand-off to the email job queue.

Delivery itself (SMTP, retries with backoff) belongs to the external job
worker; this module renders HTML and writes the job document.
"""

import html
import logging

from marginalia.models import Highlight
from marginalia.repositories import JobRepository, get_job_repository

logger = logging.getLogger(__name__)

EMAIL_JOB_TYPE = "email"


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


def digest_subject(highlight_count: int) -> str:
    return f"Your Daily Highlights: {highlight_count} to review"


def render_digest(highlights: list[Highlight], stats: dict, app_url: str) -> str:
    """Render the digest email body.

    `stats` carries `totalHighlights` (library size) and `totalDue`.
    All user content is HTML-escaped.
    """
    app_url = app_url.rstrip("/")
    total_highlights = int(stats.get("totalHighlights", 0))
    total_due = int(stats.get("totalDue", 0))
    books = {highlight.bookTitle or "Unknown" for highlight in highlights}

    stats_line = f"<strong>{len(highlights)}</strong> to review today"
    if total_due > len(highlights):
        stats_line += f" &middot; {total_due} total due"
    if total_highlights > 0:
        stats_line += f" &middot; {total_highlights} in your library"

    sections = []
    for highlight in highlights:
        attribution = html.escape(highlight.bookTitle or "Unknown")
        if highlight.bookAuthor:
            attribution += f" by {html.escape(highlight.bookAuthor)}"
        sections.append(
            '<div class="highlight">'
            f'<p class="quote">&ldquo;{html.escape(highlight.content)}&rdquo;</p>'
            f'<p class="attribution">{attribution}</p>'
            "</div>"
        )

    preheader = (
        f"{_plural(len(highlights), 'highlight')} to review today, "
        f"from {_plural(len(books), 'book')}"
    )
    library_url = html.escape(f"{app_url}/library", quote=True)
    settings_url = html.escape(f"{app_url}/settings/notifications", quote=True)

    return (
        "<!DOCTYPE html>"
        '<html><head><meta charset="utf-8"><title>Today\'s Highlights</title></head><body>'
        f'<span class="preheader" style="display:none">{html.escape(preheader)}</span>'
        "<h1>Today's Highlights</h1>"
        f'<p class="stats">{stats_line}</p>'
        + "<hr>".join(sections)
        + f'<p><a class="cta" href="{library_url}">Start Today\'s Review</a></p>'
        '<p class="footer">You\'re receiving this because you have Daily Digest enabled.<br>'
        f'<a href="{settings_url}">Manage digest preferences</a></p>'
        "</body></html>"
    )


class EmailQueue:
    """Enqueues outgoing email for the background worker."""

    def __init__(self, jobs: JobRepository | None = None):
        self._jobs = jobs

    @property
    def jobs(self) -> JobRepository:
        if self._jobs is None:
            self._jobs = get_job_repository()
        return self._jobs

    def enqueue(self, to: str, subject: str, html_body: str, user_id: str) -> str:
        """Queue an email and return the job id. Raises whatever the store raises."""
        return self.jobs.enqueue(
            EMAIL_JOB_TYPE,
            {"to": to, "subject": subject, "html": html_body},
            user_id=user_id,
        )
