"""Digest preferences and manual trigger API routers."""

import logging
from typing import Annotated
from fastapi import APIRouter, Depends

from marginalia.auth import CurrentUser, get_current_user, require_admin
from marginalia.models import DigestPreferences, DigestPreferencesUpdate, DigestRunReport
from marginalia.repositories import UserNotFoundError, get_user_repository
from marginalia.services import get_digest_service, is_valid_timezone
from marginalia.srs.time import utc_now

from .errors import bad_request, not_found

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/digest", tags=["digest"])
admin_router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/preferences", response_model=DigestPreferences)
def get_preferences(
    user: Annotated[CurrentUser, Depends(get_current_user)],
) -> DigestPreferences:
    try:
        profile = get_user_repository().get_by_id(user.user_id)
    except UserNotFoundError:
        raise not_found(f"User with ID {user.user_id} not found")
    return profile.preferences


@router.patch("/preferences", response_model=DigestPreferences)
def update_preferences(
    update: DigestPreferencesUpdate,
    user: Annotated[CurrentUser, Depends(get_current_user)],
) -> DigestPreferences:
    """Change only the provided fields; the timezone must be a known IANA zone."""
    if update.digestTimezone is not None and not is_valid_timezone(update.digestTimezone):
        raise bad_request(f"Unknown timezone: {update.digestTimezone}")
    try:
        profile = get_user_repository().update_preferences(user.user_id, update)
    except UserNotFoundError:
        raise not_found(f"User with ID {user.user_id} not found")
    return profile.preferences


@admin_router.post("/digest/trigger", response_model=DigestRunReport)
def trigger_digest(admin: Annotated[CurrentUser, Depends(require_admin)]) -> DigestRunReport:
    """Send a digest to every enabled user now, ignoring hour, frequency and dedup."""
    logger.info("Manual digest trigger by %s", admin.user_id)
    return get_digest_service().trigger_now(utc_now())
