# a_users/views.py
import logging

from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods, require_POST

from a_core.http import BadRequest, error_response, read_json

from .models import EDITABLE_PROFILE_FIELDS
from .session import (
    auth_cookie_name,
    clear_auth_cookie,
    firebase_login_required,
    set_auth_cookie,
    uid_from_token,
    verify_token,
)
from .sync import (
    ensure_user_profile,
    get_all_users,
    get_user_profile,
    is_user_online,
    update_user_profile,
    update_user_status,
)

logger = logging.getLogger(__name__)


# ---------- FIREBASE LOGIN & SESSION HANDLING ----------

@csrf_exempt
@require_POST
def firebase_session_login(request):
    """Take a Firebase ID token, make sure the profile exists, store the token cookie."""
    try:
        id_token = read_json(request).get("idToken")
    except BadRequest as e:
        return error_response(str(e), 400)

    decoded = verify_token(id_token)
    if not decoded:
        return error_response("Invalid ID token", 400)

    uid = decoded["uid"]
    profile = ensure_user_profile(uid, {
        "email": (decoded.get("email") or "").lower(),
        "displayName": decoded.get("name"),
        "photoURL": decoded.get("picture"),
    })

    response = JsonResponse({"ok": True, "user": profile.to_api() if profile else None})
    return set_auth_cookie(response, id_token)


@csrf_exempt
@require_POST
def firebase_logout(request):
    uid = uid_from_token(request.COOKIES.get(auth_cookie_name()))
    if uid:
        try:
            update_user_status(uid, "offline")
        except Exception:
            # the cookie still has to go
            logger.exception("Could not mark %s offline on logout", uid)
    return clear_auth_cookie(JsonResponse({"ok": True}))


# ---------- PRESENCE ----------

@csrf_exempt
@require_POST
@firebase_login_required
def presence_update(request):
    """Heartbeat / status change from the client; bumps lastSeen."""
    try:
        status = read_json(request).get("status") or "online"
        update_user_status(request.firebase_uid, status)
    except ValueError as e:
        return error_response(str(e), 400)
    return JsonResponse({"ok": True})


# ---------- PROFILES ----------

@csrf_exempt
@require_http_methods(["GET", "PATCH", "POST"])
@firebase_login_required
def profile_me(request):
    uid = request.firebase_uid
    if request.method != "GET":
        try:
            body = read_json(request)
        except BadRequest as e:
            return error_response(str(e), 400)
        update_user_profile(uid, {k: body.get(k) for k in EDITABLE_PROFILE_FIELDS})

    profile = get_user_profile(uid)
    if profile is None:
        return error_response("not found", 404)
    return JsonResponse({"ok": True, "user": profile.to_api()})


@require_http_methods(["GET"])
@firebase_login_required
def user_detail(request, user_id):
    profile = get_user_profile(user_id)
    if profile is None:
        return error_response("not found", 404)
    return JsonResponse({
        "ok": True,
        "user": profile.to_api(),
        "isOnline": is_user_online(profile),
    })


@require_http_methods(["GET"])
@firebase_login_required
def user_search(request):
    query = (request.GET.get("q") or "").strip().lstrip("@")
    users = [u for u in get_all_users(query or None) if u.id != request.firebase_uid]
    logger.debug("[USER SEARCH] q=%r results=%d", query, len(users))
    return JsonResponse({"ok": True, "users": [u.to_api() for u in users]})
