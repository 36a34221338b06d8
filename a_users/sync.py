# a_users/sync.py
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from django.conf import settings
from django.utils import timezone

from a_core.documents import drop_none, now_iso, parse_iso
from a_core.firebase_admin_client import get_db

from .models import (
    EDITABLE_PROFILE_FIELDS,
    USER_STATUSES,
    USERS_COLLECTION,
    UserProfile,
    normalize_user_payload_to_displayName,
)

logger = logging.getLogger(__name__)


def _user_ref(uid: str):
    return get_db().collection(USERS_COLLECTION).document(uid)


# -------------------------- PROFILES --------------------------

def create_user_profile(uid: str, data: dict) -> None:
    """
    Write a brand-new users/{uid} document.

    status is forced to 'online' and createdAt/lastSeen to now. This is a full
    set(), not a merge: callers check get_user_profile() first.
    """
    payload = normalize_user_payload_to_displayName(drop_none(data))
    now = now_iso()
    payload.update({
        "status": "online",
        "createdAt": now,
        "lastSeen": now,
    })
    try:
        _user_ref(uid).set(payload)
    except Exception as e:
        logger.error("❌ Error creating user profile %s: %s", uid, e)
        raise
    logger.info("✅ User profile created: %s", uid)


def get_user_profile(uid: str) -> Optional[UserProfile]:
    """Return the profile or None when users/{uid} does not exist."""
    try:
        snap = _user_ref(uid).get()
    except Exception as e:
        logger.error("❌ Error getting user profile %s: %s", uid, e)
        raise
    if not snap.exists:
        logger.debug("User not found: %s", uid)
        return None
    return UserProfile.from_snapshot(snap)


def get_all_users(search_term: Optional[str] = None) -> List[UserProfile]:
    """
    Every user, optionally filtered by a case-insensitive substring of
    displayName/username/email.

    The filter runs client-side after reading the whole collection, so this is
    only reasonable for small user bases.
    """
    try:
        snaps = list(get_db().collection(USERS_COLLECTION).stream())
    except Exception as e:
        logger.error("❌ Error getting users: %s", e)
        raise

    users = [UserProfile.from_snapshot(s) for s in snaps]
    if search_term:
        users = [u for u in users if u.matches(search_term)]
    return users


def update_user_status(uid: str, status: str) -> None:
    if status not in USER_STATUSES:
        raise ValueError(f"Unknown status {status!r}")
    try:
        _user_ref(uid).update({
            "status": status,
            "lastSeen": now_iso(),
        })
    except Exception as e:
        logger.error("❌ Error updating user status %s: %s", uid, e)
        raise


def update_user_profile(uid: str, updates: dict) -> None:
    """Partial update; unknown keys and None values are never written."""
    data = normalize_user_payload_to_displayName(drop_none(updates))
    data = {k: v for k, v in data.items() if k in EDITABLE_PROFILE_FIELDS}
    if not data:
        return
    try:
        _user_ref(uid).update(data)
    except Exception as e:
        logger.error("❌ Error updating user profile %s: %s", uid, e)
        raise
    logger.info("✅ User profile updated: %s (%s)", uid, ", ".join(sorted(data)))


def ensure_user_profile(uid: str, data: dict) -> UserProfile:
    """First-sign-in pattern: create the profile if missing, else mark online."""
    profile = get_user_profile(uid)
    if profile is None:
        create_user_profile(uid, data)
    else:
        update_user_status(uid, "online")
    return get_user_profile(uid)


# -------------------------- PRESENCE --------------------------

ONLINE_WINDOW = getattr(settings, "PRESENCE_ONLINE_WINDOW_SECONDS", 120)


def is_user_online(user: UserProfile, now: Optional[datetime] = None) -> bool:
    """
    'online' only counts while lastSeen is fresh; a client that vanished
    without flipping its status to offline ages out after ONLINE_WINDOW.
    """
    if user is None or user.status != "online":
        return False
    last_seen = parse_iso(user.last_seen)
    if not last_seen:
        return False
    now = now or timezone.now()
    return (now - last_seen) <= timedelta(seconds=ONLINE_WINDOW)
