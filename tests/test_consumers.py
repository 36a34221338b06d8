from asgiref.sync import async_to_sync, sync_to_async
from channels.routing import URLRouter
from channels.sessions import CookieMiddleware
from channels.testing import WebsocketCommunicator

from a_rtchat.consumers import UNAUTHENTICATED_CLOSE_CODE
from a_rtchat.firebase_sync import get_or_create_direct_chat, send_message
from a_rtchat.routing import websocket_urlpatterns
from a_users.sync import update_user_status

application = CookieMiddleware(URLRouter(websocket_urlpatterns))


def _communicator(uid=None):
    headers = [(b"cookie", f"authToken=token-{uid}".encode())] if uid else []
    return WebsocketCommunicator(application, "/ws/chat/", headers=headers)


def test_stream_rejects_anonymous(store, auth_tokens):
    async def scenario():
        communicator = _communicator()
        connected, code = await communicator.connect()
        assert not connected
        assert code == UNAUTHENTICATED_CLOSE_CODE

    async_to_sync(scenario)()


def test_stream_pushes_chats_messages_and_presence(store, users, auth_tokens):
    chat_id = get_or_create_direct_chat("alice", "bob")
    send_message(chat_id, "bob", "hi alice")

    async def scenario():
        communicator = _communicator("alice")
        connected, _ = await communicator.connect()
        assert connected

        event = await communicator.receive_json_from(timeout=2)
        assert event["type"] == "chats"
        assert [c["id"] for c in event["chats"]] == [chat_id]

        await communicator.send_json_to({"action": "open_chat", "chatId": chat_id, "limit": 20})
        event = await communicator.receive_json_from(timeout=2)
        assert event["type"] == "messages"
        assert [m["text"] for m in event["messages"]] == ["hi alice"]

        await communicator.send_json_to({"action": "watch_presence", "userId": "bob"})
        event = await communicator.receive_json_from(timeout=2)
        assert event == {"type": "presence", "userId": "bob", "user": event["user"], "isOnline": False}
        assert event["user"]["status"] == "offline"

        await sync_to_async(update_user_status)("bob", "away")
        event = await communicator.receive_json_from(timeout=2)
        assert event["type"] == "presence"
        assert event["user"]["status"] == "away"

        await communicator.send_json_to({"action": "close_chat", "chatId": chat_id})
        await communicator.send_json_to({"action": "unwatch_presence", "userId": "bob"})
        await communicator.send_json_to({"action": "dance"})
        event = await communicator.receive_json_from(timeout=2)
        assert event["type"] == "error"

        await communicator.disconnect()

    async_to_sync(scenario)()
    assert store.listener_count == 0


def test_open_chat_refuses_outsiders(store, users, auth_tokens):
    chat_id = get_or_create_direct_chat("alice", "bob")

    async def scenario():
        communicator = _communicator("carol")
        await communicator.connect()
        await communicator.receive_json_from(timeout=2)

        await communicator.send_json_to({"action": "open_chat", "chatId": chat_id})
        event = await communicator.receive_json_from(timeout=2)
        assert event["type"] == "error"
        assert event["chatId"] == chat_id
        await communicator.disconnect()

    async_to_sync(scenario)()
    assert store.listener_count == 0


def test_open_chat_rejects_non_positive_limits(store, users, auth_tokens):
    chat_id = get_or_create_direct_chat("alice", "bob")

    async def scenario():
        communicator = _communicator("alice")
        await communicator.connect()
        await communicator.receive_json_from(timeout=2)

        for limit in (0, -5):
            await communicator.send_json_to({"action": "open_chat", "chatId": chat_id, "limit": limit})
            event = await communicator.receive_json_from(timeout=2)
            assert event == {"type": "error", "action": "open_chat", "error": "limit must be positive"}
        await communicator.disconnect()

    async_to_sync(scenario)()
    assert store.listener_count == 0
