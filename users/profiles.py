"""
Profile projection lookups.

Helpers used by messaging to resolve the authenticated principal, make
sure it has a profile row, and turn profile rows into display values.  A
missing profile must never abort the caller: display helpers fall back to
placeholder values instead.
"""
from __future__ import annotations

import logging
from typing import Iterable, Optional

from django.db import DatabaseError, IntegrityError

from .models import UserProfile

logger = logging.getLogger(__name__)

PLACEHOLDER_NAME = "User"


def authenticated_id(principal) -> Optional[int]:
    """Return the principal's user id, or None when it is not authenticated."""
    if principal is None or not getattr(principal, "is_authenticated", False):
        return None
    return principal.pk


def profile_exists(user_id) -> bool:
    return UserProfile.objects.filter(pk=user_id).exists()


def ensure_profile(principal) -> bool:
    """
    Make sure the principal has a profile row.

    The row is built from the identity's email and name metadata.  Returns
    False when the principal is anonymous, or when the profile is missing
    and cannot be created because the identity carries no email.
    """
    user_id = authenticated_id(principal)
    if user_id is None:
        return False
    if profile_exists(user_id):
        return True

    email = (getattr(principal, "email", "") or "").strip()
    if not email:
        logger.info("Cannot provision profile for user %s: no email", user_id)
        return False

    try:
        UserProfile.objects.get_or_create(
            user_id=user_id,
            defaults={
                "email": email,
                "first_name": getattr(principal, "first_name", "") or None,
                "last_name": getattr(principal, "last_name", "") or None,
                "username": getattr(principal, "username", "") or None,
            },
        )
    except IntegrityError:
        # Created concurrently by another request.
        return profile_exists(user_id)
    except DatabaseError:
        logger.exception("Failed to provision profile for user %s", user_id)
        return False
    return True


def get_profiles(user_ids: Iterable) -> dict:
    """Batch lookup of profiles by user id; misses are simply absent."""
    ids = {uid for uid in user_ids if uid is not None}
    if not ids:
        return {}
    try:
        return {p.pk: p for p in UserProfile.objects.filter(pk__in=ids)}
    except DatabaseError:
        logger.warning("Profile lookup failed for %d users", len(ids), exc_info=True)
        return {}


def display_user(profile: Optional[UserProfile], user_id=None) -> dict:
    """
    Display projection `{id, name, username, avatar, initial}`.

    The name prefers "first last", then the username, then the "User"
    placeholder; `initial` is the first letter shown when there is no avatar.
    """
    if profile is None:
        return {
            "id": user_id,
            "name": PLACEHOLDER_NAME,
            "username": None,
            "avatar": None,
            "initial": PLACEHOLDER_NAME[0],
        }
    name = profile.full_name or profile.username or PLACEHOLDER_NAME
    return {
        "id": profile.pk,
        "name": name,
        "username": profile.username,
        "avatar": profile.image_url or None,
        "initial": name[0].upper(),
    }
