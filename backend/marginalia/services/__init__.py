"""Application services: study sessions, reviews and digests."""

from .study import (
    RealCard,
    ReviewConflictError,
    SmartDeckCardError,
    StudyService,
    VirtualCard,
    get_study_service,
    to_study_item,
    virtual_card_faces,
    virtual_card_id,
)
from .email import EmailQueue, render_digest
from .digest import (
    DigestService,
    DigestSettings,
    get_digest_service,
    get_digest_settings,
    is_frequency_day,
    is_outside_dedup_window,
    is_user_hour,
    is_valid_timezone,
)
from .ticker import PeriodicTask

__all__ = [
    "RealCard",
    "ReviewConflictError",
    "SmartDeckCardError",
    "StudyService",
    "VirtualCard",
    "get_study_service",
    "to_study_item",
    "virtual_card_faces",
    "virtual_card_id",
    "EmailQueue",
    "render_digest",
    "DigestService",
    "DigestSettings",
    "get_digest_service",
    "get_digest_settings",
    "is_frequency_day",
    "is_outside_dedup_window",
    "is_user_hour",
    "is_valid_timezone",
    "PeriodicTask",
]
