# a_rtchat/models.py
from __future__ import annotations

import hashlib
from typing import Annotated, ClassVar, Dict, FrozenSet, Iterable, List, Literal, Optional, Union

from pydantic import Field, TypeAdapter, field_validator

from a_core.documents import EPOCH, FirestoreDocument, parse_iso

CHATS_COLLECTION = "chats"
GROUPS_COLLECTION = "groups"
MESSAGES_COLLECTION = "messages"

MessageType = Literal["text", "image", "file", "audio", "video"]
MESSAGE_TYPES = ("text", "image", "file", "audio", "video")


# -------------------------- CHATS --------------------------

class BaseChat(FirestoreDocument):
    id: str
    participants: List[str] = Field(default_factory=list)
    participant_details: Optional[Dict[str, dict]] = None
    created_by: str = ""
    created_at: Optional[str] = None
    last_message: Optional[str] = None
    last_message_id: Optional[str] = None
    last_message_sender_id: Optional[str] = None
    last_message_time: Optional[str] = None
    is_archived: bool = False
    pinned_by: List[str] = Field(default_factory=list)

    @property
    def is_group(self) -> bool:
        return self.type == "group"

    def has_participant(self, uid: str) -> bool:
        return uid in self.participants


class DirectChat(BaseChat):
    type: Literal["direct"] = "direct"

    def other_participant(self, uid: str) -> Optional[str]:
        for p in self.participants:
            if p != uid:
                return p
        return None


class GroupChat(BaseChat):
    type: Literal["group"] = "group"
    name: Optional[str] = ""
    admins: List[str] = Field(default_factory=list)

    def is_admin(self, uid: str) -> bool:
        return uid in self.admins


Chat = Annotated[Union[DirectChat, GroupChat], Field(discriminator="type")]
_chat_adapter = TypeAdapter(Chat)


def chat_from_snapshot(snap) -> Chat:
    data = snap.to_dict() or {}
    return _chat_adapter.validate_python({**data, "id": snap.id})


def make_pair_key(uid_a: str, uid_b: str) -> str:
    return "#".join(sorted([uid_a, uid_b]))


def direct_chat_id(uid_a: str, uid_b: str) -> str:
    # doc ids travel in URL paths; the pair key may not
    digest = hashlib.sha1(make_pair_key(uid_a, uid_b).encode("utf-8")).hexdigest()
    return f"direct_{digest}"


def unique_ids(ids: Iterable[str]) -> List[str]:
    """De-duplicate while keeping first-seen order; blanks are dropped."""
    seen = set()
    out = []
    for uid in ids or []:
        if uid and uid not in seen:
            seen.add(uid)
            out.append(uid)
    return out


def sort_by_last_activity(chats: List[Chat]) -> List[Chat]:
    """
    Newest activity first. Chats without lastMessageTime sort last; ties keep
    the order the store returned them in (sorted() is stable).
    """
    return sorted(
        chats,
        key=lambda c: parse_iso(c.last_message_time) or EPOCH,
        reverse=True,
    )


# -------------------------- MESSAGE ROUTING --------------------------

def messages_root(chat: Chat) -> str:
    return GROUPS_COLLECTION if chat.type == "group" else CHATS_COLLECTION


def messages_collection_path(chat: Chat) -> str:
    """
    Where a chat's messages live.

    Group chats keep their history under groups/{id}/messages, every other
    chat under chats/{id}/messages. This is why a chat's type can never change
    after creation.
    """
    return f"{messages_root(chat)}/{chat.id}/{MESSAGES_COLLECTION}"


def messages_collection(db, chat: Chat):
    return db.collection(messages_root(chat)).document(chat.id).collection(MESSAGES_COLLECTION)


# -------------------------- MESSAGES --------------------------

class Message(FirestoreDocument):
    path_fields: ClassVar[FrozenSet[str]] = frozenset({"id", "chat_id"})

    id: str
    chat_id: str
    sender_id: str
    sender_name: Optional[str] = None
    text: str = ""
    type: Optional[MessageType] = None
    file_url: Optional[str] = Field(default=None, alias="fileURL")
    file_name: Optional[str] = None
    sent_at: str
    edited_at: Optional[str] = None
    is_deleted: bool = False
    read_by: List[str] = Field(default_factory=list)
    reactions: Dict[str, List[str]] = Field(default_factory=dict)
    reply_to: Optional[str] = None

    def is_read_by(self, uid: str) -> bool:
        return uid in self.read_by

    @field_validator("reactions")
    @classmethod
    def _drop_empty_reactions(cls, v):
        return {emoji: uids for emoji, uids in v.items() if uids}

    def reacted(self, emoji: str, uid: str) -> bool:
        return uid in self.reactions.get(emoji, [])
