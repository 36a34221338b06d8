# a_rtchat/search.py
#
# Full-scan helpers: everything is read and filtered in process, which is fine
# below a few thousand users/messages and not beyond.
from __future__ import annotations

from typing import List

from a_users.models import UserProfile
from a_users.sync import get_all_users

from .firebase_sync import get_messages
from .models import Message


def search_users(term: str) -> List[UserProfile]:
    return get_all_users(term)


def search_messages_in_chat(chat_id: str, term: str) -> List[Message]:
    """Case-insensitive substring search over a chat's live (not deleted) messages."""
    needle = (term or "").lower()
    return [
        m for m in get_messages(chat_id)
        if not m.is_deleted and needle in (m.text or "").lower()
    ]
