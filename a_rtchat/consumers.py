# a_rtchat/consumers.py
import asyncio
import logging

from asgiref.sync import sync_to_async
from channels.generic.websocket import AsyncJsonWebsocketConsumer

from a_users.session import auth_cookie_name, uid_from_token
from a_users.sync import is_user_online

from .firebase_sync import get_chat
from .subscriptions import (
    SubscriptionSet,
    subscribe_to_chats,
    subscribe_to_messages,
    subscribe_to_user_status,
)

logger = logging.getLogger(__name__)

UNAUTHENTICATED_CLOSE_CODE = 4401


class ChatStreamConsumer(AsyncJsonWebsocketConsumer):
    """
    Push channel for the dashboard: the chat list is streamed from connect,
    message lists and presence records on request.

    Client actions: open_chat {chatId, limit?}, close_chat {chatId},
    watch_presence {userId}, unwatch_presence {userId}.
    Server events: chats, messages, presence, error.
    """

    async def connect(self):
        self.subs = SubscriptionSet()
        token = self.scope.get("cookies", {}).get(auth_cookie_name())
        self.uid = await sync_to_async(uid_from_token)(token)
        if not self.uid:
            await self.close(code=UNAUTHENTICATED_CLOSE_CODE)
            return

        # snapshot callbacks arrive on Firestore watch threads
        self.loop = asyncio.get_running_loop()
        await self.accept()
        await sync_to_async(self._watch_chats)()
        logger.info("✅ Chat stream opened for %s", self.uid)

    async def disconnect(self, close_code):
        await sync_to_async(self.subs.stop_all)()
        logger.info("Chat stream closed for %s (%s)", getattr(self, "uid", None), close_code)

    async def receive_json(self, content, **kwargs):
        action = content.get("action")
        handler = {
            "open_chat": self._open_chat,
            "close_chat": self._close_chat,
            "watch_presence": self._watch_presence,
            "unwatch_presence": self._unwatch_presence,
        }.get(action)
        if handler is None:
            await self.send_json({"type": "error", "error": f"unknown action {action!r}"})
            return
        try:
            await sync_to_async(handler)(content)
        except ValueError as e:
            await self.send_json({"type": "error", "action": action, "error": str(e)})

    # ---------- delivery ----------

    def _push(self, payload):
        asyncio.run_coroutine_threadsafe(self.send_json(payload), self.loop)

    # ---------- actions (run off the event loop) ----------

    def _watch_chats(self):
        def deliver(chats):
            self._push({"type": "chats", "chats": [c.to_api() for c in chats]})

        self.subs.replace("chats", subscribe_to_chats(self.uid, deliver))

    def _open_chat(self, content):
        chat_id = content.get("chatId") or ""
        chat = get_chat(chat_id) if chat_id else None
        if chat is None or not chat.has_participant(self.uid):
            self._push({"type": "error", "action": "open_chat", "chatId": chat_id, "error": "chat not found"})
            return

        limit = content.get("limit")
        if limit is not None:
            limit = int(limit)
            if limit <= 0:
                raise ValueError("limit must be positive")

        def deliver(messages):
            self._push({
                "type": "messages",
                "chatId": chat_id,
                "messages": [m.to_api() for m in messages],
            })

        self.subs.replace(f"messages:{chat_id}", subscribe_to_messages(chat_id, deliver, limit=limit, chat=chat))

    def _close_chat(self, content):
        self.subs.stop(f"messages:{content.get('chatId')}")

    def _watch_presence(self, content):
        user_id = content.get("userId")
        if not user_id:
            raise ValueError("userId is required")

        def deliver(profile):
            self._push({
                "type": "presence",
                "userId": user_id,
                "user": profile.to_api() if profile else None,
                "isOnline": is_user_online(profile) if profile else False,
            })

        self.subs.replace(f"presence:{user_id}", subscribe_to_user_status(user_id, deliver))

    def _unwatch_presence(self, content):
        self.subs.stop(f"presence:{content.get('userId')}")
