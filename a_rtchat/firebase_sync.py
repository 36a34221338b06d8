# a_rtchat/firebase_sync.py
from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from django.conf import settings
from google.api_core.exceptions import AlreadyExists
from google.cloud import firestore as _fs
from google.cloud.firestore_v1.field_path import FieldPath

from a_core.documents import EPOCH, drop_none, now_iso, parse_iso
from a_core.firebase_admin_client import get_db

from .exceptions import (
    ChatNotFound,
    InvalidChatOperation,
    MessageDeleted,
    MessageNotFound,
    NotGroupAdmin,
)
from .models import (
    CHATS_COLLECTION,
    GROUPS_COLLECTION,
    Chat,
    DirectChat,
    GroupChat,
    MESSAGE_TYPES,
    Message,
    chat_from_snapshot,
    direct_chat_id,
    make_pair_key,
    messages_collection,
    sort_by_last_activity,
    unique_ids,
)

logger = logging.getLogger(__name__)

CHAT_UPDATABLE_FIELDS = ("name", "isArchived", "admins")


# -------------------------- Utilities --------------------------

def preview_text(text: str) -> str:
    return (text or "")[:getattr(settings, "CHAT_PREVIEW_MAX_LENGTH", 100)]


def _batch_limit() -> int:
    return max(2, int(getattr(settings, "FIRESTORE_BATCH_LIMIT", 500)))


def _tombstone() -> str:
    return getattr(settings, "DELETED_MESSAGE_TEXT", "This message was deleted")


def _chats():
    return get_db().collection(CHATS_COLLECTION)


def _chat_ref(chat_id: str):
    return _chats().document(chat_id)


def _require_chat(chat_id: str) -> Chat:
    chat = get_chat(chat_id)
    if chat is None:
        raise ChatNotFound(chat_id)
    return chat


def _require_group(chat_id: str) -> GroupChat:
    chat = _require_chat(chat_id)
    if not isinstance(chat, GroupChat):
        raise InvalidChatOperation(f"Chat {chat_id} is not a group chat")
    return chat


def _reaction_field(emoji: str) -> str:
    # Quoted path: emoji are not simple field names
    return FieldPath("reactions", emoji).to_api_repr()


def user_chats_query(db, uid: str):
    return db.collection(CHATS_COLLECTION).where("participants", "array_contains", uid)


def groups_query(db, uid: Optional[str] = None):
    q = db.collection(CHATS_COLLECTION).where("type", "==", "group")
    if uid:
        q = q.where("participants", "array_contains", uid)
    return q


def messages_query(db, chat: Chat, limit: Optional[int] = None):
    """
    Chronological history, or the newest `limit` messages newest-first.

    "The N most recent in chronological order" can't be a single ascending
    limited query, so capped reads are reversed in materialize_messages().
    """
    col = messages_collection(db, chat)
    if limit:
        return col.order_by("sentAt", direction=_fs.Query.DESCENDING).limit(limit)
    return col.order_by("sentAt", direction=_fs.Query.ASCENDING)


def materialize_messages(snaps: Iterable, chat_id: str, limit: Optional[int] = None) -> List[Message]:
    messages = [Message.from_snapshot(s, chatId=chat_id) for s in snaps]
    if limit:
        messages.reverse()  # newest-first page → oldest → newest
    return messages


def _new_chat_payload(chat_type: str, participants: List[str], created_by: str, name: Optional[str] = None) -> dict:
    now = now_iso()
    payload = {
        "type": chat_type,
        "participants": participants,
        "createdBy": created_by,
        "createdAt": now,
        "lastMessageTime": now,
        "isArchived": False,
        "pinnedBy": [],
    }
    if chat_type == "group":
        # Creator is the only admin, whatever the caller asked for
        payload["name"] = name or ""
        payload["admins"] = [created_by]
    return payload


# -------------------------- CHATS --------------------------

def create_chat(chat_type: str, participants: Iterable[str], created_by: str, name: Optional[str] = None) -> str:
    """
    Create a chat and return its id.

    Direct chats are unique per pair of users: asking for one that already
    exists returns the existing id.
    """
    members = unique_ids(participants)

    if chat_type == "direct":
        if created_by not in members or len(members) != 2:
            raise InvalidChatOperation("A direct chat needs its creator and exactly one other user")
        other = members[1] if members[0] == created_by else members[0]
        return get_or_create_direct_chat(created_by, other)

    if chat_type != "group":
        raise InvalidChatOperation(f"Unknown chat type {chat_type!r}")
    if not created_by:
        raise InvalidChatOperation("A group chat needs a creator")
    if created_by not in members:
        members.insert(0, created_by)

    try:
        doc_ref = _chats().document()
        doc_ref.set(_new_chat_payload("group", members, created_by, name))
    except Exception as e:
        logger.error("❌ Error creating chat: %s", e)
        raise
    logger.info("✅ Chat created with ID: %s", doc_ref.id)
    return doc_ref.id


def find_direct_chat(uid: str, other_uid: str) -> Optional[DirectChat]:
    """Existing two-participant direct chat between the two users, if any."""
    for chat in get_chats(uid):
        if (
            isinstance(chat, DirectChat)
            and len(chat.participants) == 2
            and other_uid in chat.participants
        ):
            return chat
    return None


def get_or_create_direct_chat(uid: str, other_uid: str) -> str:
    """
    Look up the direct chat between uid and other_uid, creating it if needed.

    Lookup covers chats created by older clients under random ids; new ones get
    the canonical id direct_{pairKey}, and create() on that id makes two
    concurrent first messages converge on the same document.
    """
    if not uid or not other_uid or uid == other_uid:
        raise InvalidChatOperation("A direct chat needs two different users")

    existing = find_direct_chat(uid, other_uid)
    if existing:
        return existing.id

    chat_id = direct_chat_id(uid, other_uid)
    payload = _new_chat_payload("direct", [uid, other_uid], uid)
    payload["pairKey"] = make_pair_key(uid, other_uid)
    try:
        _chat_ref(chat_id).create(payload)
    except AlreadyExists:
        logger.info("Direct chat %s already exists; reusing it", chat_id)
        return chat_id
    except Exception as e:
        logger.error("❌ Error creating direct chat %s: %s", chat_id, e)
        raise
    logger.info("✅ Direct chat created with ID: %s", chat_id)
    return chat_id


def get_chat(chat_id: str) -> Optional[Chat]:
    try:
        snap = _chat_ref(chat_id).get()
    except Exception as e:
        logger.error("❌ Error getting chat %s: %s", chat_id, e)
        raise
    if not snap.exists:
        logger.debug("Chat not found: %s", chat_id)
        return None
    return chat_from_snapshot(snap)


def get_chats(uid: str) -> List[Chat]:
    """All chats uid participates in, most recent activity first."""
    try:
        snaps = list(user_chats_query(get_db(), uid).stream())
    except Exception as e:
        logger.error("❌ Error getting chats for %s: %s", uid, e)
        raise
    return sort_by_last_activity([chat_from_snapshot(s) for s in snaps])


def update_chat(chat_id: str, updates: dict) -> None:
    """
    Update name / isArchived / admins.

    type is fixed for life (it decides where the messages are stored) and
    admins must stay a non-empty subset of participants.
    """
    if "type" in updates:
        raise InvalidChatOperation("A chat's type cannot change")
    unknown = set(updates) - set(CHAT_UPDATABLE_FIELDS)
    if unknown:
        raise InvalidChatOperation(f"Cannot update chat field(s): {', '.join(sorted(unknown))}")

    data = drop_none(updates)
    if not data:
        return

    if "admins" in data:
        chat = _require_group(chat_id)
        admins = unique_ids(data["admins"])
        if not admins:
            raise InvalidChatOperation("A group needs at least one admin")
        outsiders = [a for a in admins if a not in chat.participants]
        if outsiders:
            raise InvalidChatOperation(f"Admins must be participants: {', '.join(outsiders)}")
        data["admins"] = admins

    try:
        _chat_ref(chat_id).update(data)
    except Exception as e:
        logger.error("❌ Error updating chat %s: %s", chat_id, e)
        raise
    logger.info("✅ Chat updated: %s", chat_id)


def add_participant_to_chat(chat_id: str, uid: str) -> None:
    chat = _require_chat(chat_id)
    if not isinstance(chat, GroupChat):
        raise InvalidChatOperation("Participants of a direct chat are fixed")
    try:
        _chat_ref(chat_id).update({"participants": _fs.ArrayUnion([uid])})
    except Exception as e:
        logger.error("❌ Error adding participant %s to %s: %s", uid, chat_id, e)
        raise
    logger.info("✅ Participant %s added to chat %s", uid, chat_id)


def remove_participant_from_chat(chat_id: str, uid: str) -> None:
    """
    Remove uid from a group; admin rights go with membership.

    If uid was the last admin, the first remaining participant is promoted.
    A group left with nobody in it is archived.
    """
    chat = _require_group(chat_id)
    if uid not in chat.participants:
        return

    remaining = [p for p in chat.participants if p != uid]
    remaining_admins = [a for a in chat.admins if a != uid and a in remaining]

    updates = {
        "participants": _fs.ArrayRemove([uid]),
        "admins": _fs.ArrayRemove([uid]),
    }
    if not remaining:
        updates["isArchived"] = True
    elif not remaining_admins:
        updates["admins"] = [remaining[0]]
        logger.info("Promoting %s to admin of %s", remaining[0], chat_id)

    try:
        _chat_ref(chat_id).update(updates)
    except Exception as e:
        logger.error("❌ Error removing participant %s from %s: %s", uid, chat_id, e)
        raise
    logger.info("✅ Participant %s removed from chat %s", uid, chat_id)


def toggle_pin_chat(chat_id: str, uid: str, pinned: bool) -> None:
    op = _fs.ArrayUnion([uid]) if pinned else _fs.ArrayRemove([uid])
    try:
        _chat_ref(chat_id).update({"pinnedBy": op})
    except Exception as e:
        logger.error("❌ Error toggling pin on %s: %s", chat_id, e)
        raise


def delete_chat(chat_id: str) -> None:
    """Delete only the chat record. Use delete_chat_and_messages() to clear history too."""
    try:
        _chat_ref(chat_id).delete()
    except Exception as e:
        logger.error("❌ Error deleting chat %s: %s", chat_id, e)
        raise
    logger.info("✅ Chat deleted: %s", chat_id)


def delete_chat_and_messages(chat_id: str) -> int:
    """
    Delete every message of the chat, then the chat itself. Returns the number
    of messages deleted.

    When it all fits in one batch the whole thing commits atomically. Bigger
    histories are deleted chunk by chunk and the chat record goes in the last
    step only, so a failure can leave fewer messages but never a deleted chat
    with messages still behind it.
    """
    chat = _require_chat(chat_id)
    db = get_db()
    limit = _batch_limit()

    try:
        msg_refs = [s.reference for s in messages_collection(db, chat).stream()]

        parent_refs = [_chat_ref(chat_id)]
        if chat.type == "group":
            # legacy groups/{id} record, if this group was migrated from one
            parent_refs.append(db.collection(GROUPS_COLLECTION).document(chat_id))

        if len(msg_refs) + len(parent_refs) <= limit:
            batch = db.batch()
            for ref in msg_refs + parent_refs:
                batch.delete(ref)
            batch.commit()
        else:
            for start in range(0, len(msg_refs), limit):
                batch = db.batch()
                for ref in msg_refs[start:start + limit]:
                    batch.delete(ref)
                batch.commit()
            batch = db.batch()
            for ref in parent_refs:
                batch.delete(ref)
            batch.commit()
    except Exception as e:
        logger.error("❌ Error deleting chat and messages %s: %s", chat_id, e)
        raise

    logger.info("✅ Chat %s and its %d message(s) deleted", chat_id, len(msg_refs))
    return len(msg_refs)


# -------------------------- GROUP ADMINS --------------------------

def is_group_admin(chat_id: str, uid: str) -> bool:
    chat = get_chat(chat_id)
    return isinstance(chat, GroupChat) and chat.is_admin(uid)


def add_group_admin(chat_id: str, uid: str) -> None:
    chat = _require_group(chat_id)
    if uid not in chat.participants:
        raise InvalidChatOperation(f"{uid} is not a participant of {chat_id}")
    try:
        _chat_ref(chat_id).update({"admins": _fs.ArrayUnion([uid])})
    except Exception as e:
        logger.error("❌ Error adding admin %s to %s: %s", uid, chat_id, e)
        raise
    logger.info("✅ User %s added as admin of %s", uid, chat_id)


def remove_group_admin(chat_id: str, uid: str) -> None:
    chat = _require_group(chat_id)
    if uid not in chat.admins:
        return
    if len(chat.admins) == 1:
        raise InvalidChatOperation("Cannot remove the last admin of a group")
    try:
        _chat_ref(chat_id).update({"admins": _fs.ArrayRemove([uid])})
    except Exception as e:
        logger.error("❌ Error removing admin %s from %s: %s", uid, chat_id, e)
        raise
    logger.info("✅ User %s removed from admins of %s", uid, chat_id)


def update_group_name(chat_id: str, new_name: str) -> None:
    _require_group(chat_id)
    update_chat(chat_id, {"name": new_name})


# -------------------------- GROUPS (unified on chats) --------------------------
#
# Groups used to be a second collection with the same shape as a group chat.
# They are group chats now; these keep the group-flavoured API.

def create_group(name: str, participants: Iterable[str], created_by: str) -> str:
    return create_chat("group", participants, created_by, name=name)


def get_group(group_id: str) -> Optional[GroupChat]:
    chat = get_chat(group_id)
    return chat if isinstance(chat, GroupChat) else None


def get_groups_for_user(uid: str) -> List[GroupChat]:
    try:
        snaps = list(groups_query(get_db(), uid).stream())
    except Exception as e:
        logger.error("❌ Error getting groups for %s: %s", uid, e)
        raise
    return [chat_from_snapshot(s) for s in snaps]


def get_all_groups() -> List[GroupChat]:
    try:
        snaps = list(groups_query(get_db()).stream())
    except Exception as e:
        logger.error("❌ Error getting all groups: %s", e)
        raise
    return [chat_from_snapshot(s) for s in snaps]


def update_group(group_id: str, updates: dict) -> None:
    _require_group(group_id)
    update_chat(group_id, {k: v for k, v in updates.items() if k in ("name", "isArchived")})


add_participant_to_group = add_participant_to_chat
remove_participant_from_group = remove_participant_from_chat
add_group_admin_to_group = add_group_admin
remove_group_admin_from_group = remove_group_admin


def delete_group(group_id: str, uid: str) -> int:
    """Admin-only delete of a group and its history."""
    group = _require_group(group_id)
    if not group.is_admin(uid):
        raise NotGroupAdmin(group_id, uid)
    return delete_chat_and_messages(group_id)


# -------------------------- MESSAGES --------------------------

def send_message(
    chat_id: str,
    sender_id: str,
    text: str,
    *,
    sender_name: Optional[str] = None,
    message_type: Optional[str] = None,
    file_url: Optional[str] = None,
    file_name: Optional[str] = None,
    reply_to: Optional[str] = None,
) -> str:
    """
    Append a message and move the chat preview to it. Both writes go in one
    batch, so the preview can never point at a message that wasn't stored.
    """
    if message_type is not None and message_type not in MESSAGE_TYPES:
        raise InvalidChatOperation(f"Unknown message type {message_type!r}")
    chat = _require_chat(chat_id)
    db = get_db()
    now = now_iso()
    text = text or ""

    payload = drop_none({
        "senderId": sender_id,
        "senderName": sender_name,
        "text": text,
        "type": message_type,
        "fileURL": file_url,
        "fileName": file_name,
        "replyTo": reply_to,
    })
    payload.update({
        "sentAt": now,
        "readBy": [sender_id],
        "isDeleted": False,
        "reactions": {},
    })

    try:
        msg_ref = messages_collection(db, chat).document()  # client-generated id
        batch = db.batch()
        batch.set(msg_ref, payload)
        batch.update(_chat_ref(chat_id), {
            "lastMessage": preview_text(text),
            "lastMessageId": msg_ref.id,
            "lastMessageSenderId": sender_id,
            "lastMessageTime": now,
        })
        batch.commit()
    except Exception as e:
        logger.error("❌ Error sending message to %s: %s", chat_id, e)
        raise

    logger.info("✅ Message sent with ID: %s", msg_ref.id)
    return msg_ref.id


def get_messages(chat_id: str, limit: Optional[int] = None) -> List[Message]:
    """Chronological messages; with `limit`, only the newest `limit` of them."""
    chat = get_chat(chat_id)
    if chat is None:
        return []
    try:
        snaps = list(messages_query(get_db(), chat, limit).stream())
    except Exception as e:
        logger.error("❌ Error getting messages for %s: %s", chat_id, e)
        raise
    return materialize_messages(snaps, chat_id, limit)


def _message_ref(chat: Chat, message_id: str):
    return messages_collection(get_db(), chat).document(message_id)


def get_message(chat_id: str, message_id: str) -> Optional[Message]:
    chat = get_chat(chat_id)
    if chat is None:
        return None
    snap = _message_ref(chat, message_id).get()
    if not snap.exists:
        return None
    return Message.from_snapshot(snap, chatId=chat_id)


def _load_message(chat: Chat, message_id: str):
    ref = _message_ref(chat, message_id)
    snap = ref.get()
    if not snap.exists:
        raise MessageNotFound(chat.id, message_id)
    return ref, Message.from_snapshot(snap, chatId=chat.id)


def edit_message(chat_id: str, message_id: str, new_text: str) -> None:
    """
    Replace the text and stamp editedAt. A soft-deleted message stays deleted:
    its original text is gone and cannot come back through an edit.
    """
    chat = _require_chat(chat_id)
    ref, message = _load_message(chat, message_id)
    if message.is_deleted:
        raise MessageDeleted(message_id)

    edited_at = now_iso()
    # Clock skew between clients must not put editedAt before sentAt
    if (parse_iso(edited_at) or EPOCH) < (parse_iso(message.sent_at) or EPOCH):
        edited_at = message.sent_at

    db = get_db()
    try:
        batch = db.batch()
        batch.update(ref, {"text": new_text, "editedAt": edited_at})
        if chat.last_message_id == message_id:
            batch.update(_chat_ref(chat_id), {"lastMessage": preview_text(new_text)})
        batch.commit()
    except Exception as e:
        logger.error("❌ Error editing message %s: %s", message_id, e)
        raise
    logger.info("✅ Message edited: %s", message_id)


def delete_message(chat_id: str, message_id: str) -> None:
    """Soft delete: the text is overwritten with a tombstone, the document stays."""
    chat = _require_chat(chat_id)
    db = get_db()
    tombstone = _tombstone()
    try:
        batch = db.batch()
        batch.update(_message_ref(chat, message_id), {
            "text": tombstone,
            "isDeleted": True,
        })
        if chat.last_message_id == message_id:
            batch.update(_chat_ref(chat_id), {"lastMessage": preview_text(tombstone)})
        batch.commit()
    except Exception as e:
        logger.error("❌ Error deleting message %s: %s", message_id, e)
        raise
    logger.info("✅ Message deleted: %s", message_id)


def mark_message_as_read(chat_id: str, message_id: str, uid: str) -> None:
    chat = _require_chat(chat_id)
    try:
        _message_ref(chat, message_id).update({"readBy": _fs.ArrayUnion([uid])})
    except Exception as e:
        logger.error("❌ Error marking message %s as read: %s", message_id, e)
        raise


def mark_chat_as_read(chat_id: str, uid: str) -> int:
    """Add uid to readBy of every message it hasn't read yet; returns how many."""
    chat = _require_chat(chat_id)
    db = get_db()
    limit = _batch_limit()
    try:
        unread = [
            s.reference
            for s in messages_collection(db, chat).stream()
            if uid not in ((s.to_dict() or {}).get("readBy") or [])
        ]
        for start in range(0, len(unread), limit):
            batch = db.batch()
            for ref in unread[start:start + limit]:
                batch.update(ref, {"readBy": _fs.ArrayUnion([uid])})
            batch.commit()
    except Exception as e:
        logger.error("❌ Error marking chat %s as read: %s", chat_id, e)
        raise
    return len(unread)


def add_reaction_to_message(chat_id: str, message_id: str, emoji: str, uid: str) -> None:
    chat = _require_chat(chat_id)
    try:
        _message_ref(chat, message_id).update({_reaction_field(emoji): _fs.ArrayUnion([uid])})
    except Exception as e:
        logger.error("❌ Error adding reaction to %s: %s", message_id, e)
        raise


def remove_reaction_from_message(chat_id: str, message_id: str, emoji: str, uid: str) -> None:
    chat = _require_chat(chat_id)
    _, message = _load_message(chat, message_id)
    if not message.reacted(emoji, uid):
        return
    try:
        _message_ref(chat, message_id).update({_reaction_field(emoji): _fs.ArrayRemove([uid])})
    except Exception as e:
        logger.error("❌ Error removing reaction from %s: %s", message_id, e)
        raise


def toggle_reaction(chat_id: str, message_id: str, emoji: str, uid: str) -> bool:
    """Flip uid's reaction; returns True when the reaction is now present."""
    chat = _require_chat(chat_id)
    _, message = _load_message(chat, message_id)
    if message.reacted(emoji, uid):
        remove_reaction_from_message(chat_id, message_id, emoji, uid)
        return False
    add_reaction_to_message(chat_id, message_id, emoji, uid)
    return True
