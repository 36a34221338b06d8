# a_rtchat/views.py
import logging
from functools import wraps

from django.conf import settings
from django.core.exceptions import PermissionDenied
from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods, require_POST

from a_core.http import BadRequest, error_response, read_json
from a_users.session import firebase_login_required

from .exceptions import (
    ChatNotFound,
    InvalidChatOperation,
    MessageDeleted,
    MessageNotFound,
    NotGroupAdmin,
)
from .firebase_sync import (
    add_group_admin,
    add_participant_to_chat,
    create_chat,
    delete_chat_and_messages,
    delete_group,
    delete_message,
    edit_message,
    get_chat,
    get_chats,
    get_message,
    get_messages,
    get_or_create_direct_chat,
    mark_chat_as_read,
    mark_message_as_read,
    remove_group_admin,
    remove_participant_from_chat,
    send_message,
    toggle_pin_chat,
    toggle_reaction,
    update_chat,
)
from .models import GroupChat
from .search import search_messages_in_chat

logger = logging.getLogger(__name__)


def chat_api(view):
    """csrf-exempt, authenticated JSON view with chat errors mapped to HTTP statuses."""

    @csrf_exempt
    @firebase_login_required
    @wraps(view)
    def wrapper(request, *args, **kwargs):
        try:
            return view(request, *args, **kwargs)
        except (ChatNotFound, MessageNotFound) as e:
            return error_response(str(e), 404)
        except (NotGroupAdmin, PermissionDenied) as e:
            return error_response(str(e) or "forbidden", 403)
        except (InvalidChatOperation, MessageDeleted, BadRequest) as e:
            return error_response(str(e), 400)

    return wrapper


def _member_chat(chat_id, uid):
    """The chat, if uid takes part in it. Outsiders get the same 404 as a missing chat."""
    chat = get_chat(chat_id)
    if chat is None or not chat.has_participant(uid):
        raise ChatNotFound(chat_id)
    return chat


def _require_admin(chat, uid):
    if not isinstance(chat, GroupChat):
        raise InvalidChatOperation("Only group chats have admins")
    if not chat.is_admin(uid):
        raise NotGroupAdmin(chat.id, uid)


def _own_message(chat_id, message_id, uid):
    message = get_message(chat_id, message_id)
    if message is None:
        raise MessageNotFound(chat_id, message_id)
    if message.sender_id != uid:
        raise PermissionDenied("Only the sender can change this message")
    return message


# ---------- LAST OPENED CHAT ----------

def _last_chat_cookie(uid):
    return f"{getattr(settings, 'LAST_CHAT_COOKIE_PREFIX', 'lastChat_')}{uid}"


def remember_last_chat(response, uid, chat_id):
    response.set_cookie(
        _last_chat_cookie(uid),
        chat_id,
        max_age=getattr(settings, "LAST_CHAT_COOKIE_MAX_AGE", 60 * 60 * 24 * 365),
        path="/",
        secure=True,
        samesite="Strict",
    )
    return response


@require_http_methods(["GET"])
@chat_api
def last_chat(request):
    """Chat to restore when the dashboard mounts, if the user is still in it."""
    uid = request.firebase_uid
    chat_id = request.COOKIES.get(_last_chat_cookie(uid))
    chat = None
    if chat_id:
        chat = next((c for c in get_chats(uid) if c.id == chat_id), None)
    return JsonResponse({"ok": True, "chat": chat.to_api() if chat else None})


@require_POST
@chat_api
def chat_open(request, chat_id):
    chat = _member_chat(chat_id, request.firebase_uid)
    response = JsonResponse({"ok": True, "chat": chat.to_api()})
    return remember_last_chat(response, request.firebase_uid, chat.id)


# ---------- CHATS ----------

@require_http_methods(["GET", "POST"])
@chat_api
def chat_list(request):
    uid = request.firebase_uid
    if request.method == "GET":
        return JsonResponse({"ok": True, "chats": [c.to_api() for c in get_chats(uid)]})

    body = read_json(request)
    chat_type = body.get("type") or "group"
    participants = list(body.get("participants") or [])
    if chat_type == "direct" and uid not in participants:
        participants.insert(0, uid)
    chat_id = create_chat(chat_type, participants, uid, name=body.get("name"))
    return JsonResponse({"ok": True, "chatId": chat_id}, status=201)


@require_POST
@chat_api
def direct_chat_start(request):
    """Open (or create) the one direct chat between the caller and userId."""
    uid = request.firebase_uid
    other = (read_json(request).get("userId") or "").strip()
    chat_id = get_or_create_direct_chat(uid, other)
    response = JsonResponse({"ok": True, "chatId": chat_id})
    return remember_last_chat(response, uid, chat_id)


@require_http_methods(["GET", "PATCH", "DELETE"])
@chat_api
def chat_detail(request, chat_id):
    uid = request.firebase_uid
    chat = _member_chat(chat_id, uid)

    if request.method == "GET":
        return JsonResponse({"ok": True, "chat": chat.to_api()})

    if request.method == "DELETE":
        if isinstance(chat, GroupChat):
            deleted = delete_group(chat_id, uid)
        else:
            deleted = delete_chat_and_messages(chat_id)
        return JsonResponse({"ok": True, "deletedMessages": deleted})

    body = read_json(request)
    if "name" in body or "admins" in body:
        _require_admin(chat, uid)
    update_chat(chat_id, body)
    return JsonResponse({"ok": True})


@require_POST
@chat_api
def chat_pin(request, chat_id):
    uid = request.firebase_uid
    _member_chat(chat_id, uid)
    pinned = bool(read_json(request).get("pinned", True))
    toggle_pin_chat(chat_id, uid, pinned)
    return JsonResponse({"ok": True, "pinned": pinned})


@require_POST
@chat_api
def chat_read(request, chat_id):
    uid = request.firebase_uid
    _member_chat(chat_id, uid)
    return JsonResponse({"ok": True, "marked": mark_chat_as_read(chat_id, uid)})


# ---------- GROUP MEMBERS & ADMINS ----------

@require_POST
@chat_api
def group_participant_add(request, chat_id):
    uid = request.firebase_uid
    chat = _member_chat(chat_id, uid)
    _require_admin(chat, uid)
    new_uid = (read_json(request).get("userId") or "").strip()
    if not new_uid:
        raise BadRequest("userId is required")
    add_participant_to_chat(chat_id, new_uid)
    return JsonResponse({"ok": True})


@require_http_methods(["DELETE"])
@chat_api
def group_participant_remove(request, chat_id, user_id):
    """Admins remove anyone; everyone else can only remove themselves (leave)."""
    uid = request.firebase_uid
    chat = _member_chat(chat_id, uid)
    if user_id != uid:
        _require_admin(chat, uid)
    remove_participant_from_chat(chat_id, user_id)
    return JsonResponse({"ok": True})


@require_http_methods(["POST", "DELETE"])
@chat_api
def group_admin(request, chat_id, user_id):
    uid = request.firebase_uid
    chat = _member_chat(chat_id, uid)
    _require_admin(chat, uid)
    if request.method == "POST":
        add_group_admin(chat_id, user_id)
    else:
        remove_group_admin(chat_id, user_id)
    return JsonResponse({"ok": True})


# ---------- MESSAGES ----------

def _limit_param(request):
    raw = request.GET.get("limit")
    if not raw:
        return None
    try:
        value = int(raw)
    except ValueError:
        raise BadRequest("limit must be an integer")
    if value <= 0:
        raise BadRequest("limit must be positive")
    return value


@require_http_methods(["GET", "POST"])
@chat_api
def message_list(request, chat_id):
    uid = request.firebase_uid
    _member_chat(chat_id, uid)

    if request.method == "GET":
        query = (request.GET.get("q") or "").strip()
        if query:
            messages = search_messages_in_chat(chat_id, query)
        else:
            messages = get_messages(chat_id, limit=_limit_param(request))
        return JsonResponse({"ok": True, "messages": [m.to_api() for m in messages]})

    body = read_json(request)
    text = (body.get("text") or "").strip()
    if not text and not body.get("fileURL"):
        raise BadRequest("empty message")
    message_id = send_message(
        chat_id,
        uid,
        text,
        sender_name=body.get("senderName"),
        message_type=body.get("type"),
        file_url=body.get("fileURL"),
        file_name=body.get("fileName"),
        reply_to=body.get("replyTo"),
    )
    return JsonResponse({"ok": True, "messageId": message_id}, status=201)


@require_http_methods(["PATCH", "DELETE"])
@chat_api
def message_detail(request, chat_id, message_id):
    uid = request.firebase_uid
    _member_chat(chat_id, uid)
    _own_message(chat_id, message_id, uid)

    if request.method == "DELETE":
        delete_message(chat_id, message_id)
        return JsonResponse({"ok": True})

    text = (read_json(request).get("text") or "").strip()
    if not text:
        raise BadRequest("empty message")
    edit_message(chat_id, message_id, text)
    return JsonResponse({"ok": True})


@require_POST
@chat_api
def message_read(request, chat_id, message_id):
    uid = request.firebase_uid
    _member_chat(chat_id, uid)
    if get_message(chat_id, message_id) is None:
        raise MessageNotFound(chat_id, message_id)
    mark_message_as_read(chat_id, message_id, uid)
    return JsonResponse({"ok": True})


@require_POST
@chat_api
def message_react(request, chat_id, message_id):
    uid = request.firebase_uid
    _member_chat(chat_id, uid)
    emoji = (read_json(request).get("emoji") or "").strip()
    if not emoji:
        raise BadRequest("emoji is required")
    reacted = toggle_reaction(chat_id, message_id, emoji, uid)
    return JsonResponse({"ok": True, "reacted": reacted})
