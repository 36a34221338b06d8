# a_users/models.py
from __future__ import annotations

from typing import Literal, Optional

from pydantic import Field, model_validator

from a_core.documents import FirestoreDocument

USERS_COLLECTION = "users"

UserStatus = Literal["online", "offline", "away"]
USER_STATUSES = ("online", "offline", "away")

# Fields a user may change on their own profile
EDITABLE_PROFILE_FIELDS = (
    "displayName",
    "photoURL",
    "bio",
    "username",
    "chatBackground",
    "themeColor",
)


def normalize_user_payload_to_displayName(payload: dict) -> dict:
    """
    Normalize user profile payload to use displayName (camelCase) only.

    Rules:
    - If displayName present and non-empty → keep it (trimmed).
    - Else if displayname present → set displayName = displayname (trim); remove displayname.
    - Ensure we never persist displayname.
    """
    data = dict(payload or {})

    # Pick source value: prefer displayName, fallback to displayname
    dn = (data.get("displayName") or data.get("displayname") or "").strip()

    if dn:
        data["displayName"] = dn

    # Never persist 'displayname' - remove it if present
    data.pop("displayname", None)

    return data


class UserProfile(FirestoreDocument):
    """users/{id}: identity + presence + per-user presentation preferences."""

    id: str
    email: Optional[str] = ""
    username: Optional[str] = None
    display_name: Optional[str] = None
    photo_url: Optional[str] = Field(default=None, alias="photoURL")
    bio: Optional[str] = None
    status: UserStatus = "offline"
    last_seen: Optional[str] = None
    created_at: Optional[str] = None
    chat_background: Optional[str] = None
    theme_color: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _heal_legacy_displayname(cls, data):
        if isinstance(data, dict) and "displayname" in data:
            return normalize_user_payload_to_displayName(data)
        return data

    def matches(self, term: str) -> bool:
        """Case-insensitive substring match on displayName, username or email."""
        term = (term or "").lower()
        return any(
            term in (value or "").lower()
            for value in (self.display_name, self.username, self.email)
        )
