# a_rtchat/subscriptions.py
"""
Live views over Firestore, built on the store's own snapshot listeners.

Every subscription delivers the full, materialised result (never a delta) on
each change notification, starting with the initial load. Deliveries for one
subscription never overlap; different subscriptions are independent and may
be notified in any relative order.
"""
from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, List, Optional

from a_core.firebase_admin_client import get_db
from a_users.models import USERS_COLLECTION, UserProfile

from .exceptions import ChatNotFound
from .firebase_sync import (
    get_chat,
    groups_query,
    materialize_messages,
    messages_query,
    user_chats_query,
)
from .models import Chat, Message, chat_from_snapshot, sort_by_last_activity

logger = logging.getLogger(__name__)

INACTIVE = "inactive"
ACTIVE = "active"
CANCELLED = "cancelled"


class Subscription:
    """
    One push listener: inactive → active → cancelled.

    stop() unsubscribes the underlying Firestore watch. Deliveries hold the
    subscription lock, so once stop() has returned no callback is running and
    none will start, even if the watch thread still has buffered snapshots.
    """

    def __init__(self, name: str, target, materialize: Callable, callback: Callable):
        self.name = name
        self._target = target
        self._materialize = materialize
        self._callback = callback
        self._watch = None
        self._lock = threading.RLock()
        self.state = INACTIVE

    def __repr__(self):
        return f"<Subscription {self.name} {self.state}>"

    @property
    def active(self) -> bool:
        return self.state == ACTIVE

    def start(self) -> "Subscription":
        with self._lock:
            if self.state != INACTIVE:
                raise RuntimeError(f"{self!r} cannot be started twice")
            self.state = ACTIVE

        try:
            watch = self._target.on_snapshot(self._on_snapshot)
        except Exception:
            with self._lock:
                self.state = CANCELLED
            logger.exception("Could not attach listener for %s", self.name)
            raise

        with self._lock:
            if self.state == CANCELLED:
                # stop() raced with start(); the watch was never recorded
                watch.unsubscribe()
                return self
            self._watch = watch
        logger.debug("Subscribed: %s", self.name)
        return self

    def stop(self) -> None:
        with self._lock:
            if self.state == CANCELLED:
                return
            self.state = CANCELLED
            watch, self._watch = self._watch, None
        # outside the lock: unsubscribe may join the watch thread
        if watch is not None:
            watch.unsubscribe()
        logger.debug("Unsubscribed: %s", self.name)

    def _on_snapshot(self, docs, changes, read_time):
        with self._lock:
            if self.state != ACTIVE:
                return
            try:
                result = self._materialize(docs)
            except Exception:
                logger.exception("Could not materialise snapshot for %s", self.name)
                return
            try:
                self._callback(result)
            except Exception:
                logger.exception("Subscriber callback failed for %s", self.name)


class SubscriptionSet:
    """
    Named holder for a caller's concurrent subscriptions (e.g. one per open
    chat plus the chat list). Each entry is still torn down on its own.
    """

    def __init__(self):
        self._subs: Dict[str, Subscription] = {}
        self._lock = threading.Lock()

    def __contains__(self, key):
        return key in self._subs

    def __len__(self):
        return len(self._subs)

    def keys(self):
        return list(self._subs)

    def replace(self, key: str, subscription: Subscription) -> Subscription:
        with self._lock:
            old = self._subs.get(key)
            self._subs[key] = subscription
        if old is not None and old is not subscription:
            old.stop()
        return subscription

    def stop(self, key: str) -> bool:
        with self._lock:
            sub = self._subs.pop(key, None)
        if sub is None:
            return False
        sub.stop()
        return True

    def stop_all(self) -> None:
        with self._lock:
            subs, self._subs = list(self._subs.values()), {}
        for sub in subs:
            sub.stop()


# -------------------------- SUBSCRIBE --------------------------

def subscribe_to_messages(
    chat_id: str,
    callback: Callable[[List[Message]], None],
    limit: Optional[int] = None,
    chat: Optional[Chat] = None,
) -> Subscription:
    """
    Live message list for a chat, chronological. With `limit`, exactly the
    newest `limit` messages (still oldest → newest).

    Pass `chat` when the caller already has it; otherwise it is read once to
    find out where the messages are stored.
    """
    if chat is None:
        chat = get_chat(chat_id)
        if chat is None:
            raise ChatNotFound(chat_id)

    query = messages_query(get_db(), chat, limit)
    return Subscription(
        f"messages:{chat_id}",
        query,
        lambda docs: materialize_messages(docs, chat_id, limit),
        callback,
    ).start()


def _materialize_chats(docs) -> List[Chat]:
    return sort_by_last_activity([chat_from_snapshot(d) for d in docs])


def subscribe_to_chats(uid: str, callback: Callable[[List[Chat]], None]) -> Subscription:
    """Live chat list for uid, most recent activity first."""
    return Subscription(
        f"chats:{uid}",
        user_chats_query(get_db(), uid),
        _materialize_chats,
        callback,
    ).start()


def subscribe_to_user_status(uid: str, callback: Callable[[Optional[UserProfile]], None]) -> Subscription:
    """Live presence/profile record; None once the user document is gone."""

    def materialize(docs):
        for snap in docs or []:
            if snap.exists:
                return UserProfile.from_snapshot(snap)
        return None

    return Subscription(
        f"user:{uid}",
        get_db().collection(USERS_COLLECTION).document(uid),
        materialize,
        callback,
    ).start()


def subscribe_to_groups(uid: str, callback: Callable[[List[Chat]], None]) -> Subscription:
    return Subscription(
        f"groups:{uid}",
        groups_query(get_db(), uid),
        lambda docs: [chat_from_snapshot(d) for d in docs],
        callback,
    ).start()


def subscribe_to_all_groups(callback: Callable[[List[Chat]], None]) -> Subscription:
    return Subscription(
        "groups:*",
        groups_query(get_db()),
        lambda docs: [chat_from_snapshot(d) for d in docs],
        callback,
    ).start()
