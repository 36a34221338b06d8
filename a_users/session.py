# a_users/session.py
#
# The authentication provider (Firebase Auth) issues ID tokens; we keep the
# token in the authToken cookie and ask the provider who it belongs to.
import logging
from functools import wraps
from typing import Optional

from django.conf import settings
from firebase_admin import auth as admin_auth

from a_core.firebase_admin_client import get_app
from a_core.http import error_response

logger = logging.getLogger(__name__)


def auth_cookie_name() -> str:
    return getattr(settings, "AUTH_TOKEN_COOKIE_NAME", "authToken")


def verify_token(token: Optional[str]) -> Optional[dict]:
    """Decoded claims for a valid ID token, None for a missing/bad/expired one."""
    if not token:
        return None
    try:
        return admin_auth.verify_id_token(token, app=get_app(), check_revoked=True)
    except (ValueError, admin_auth.InvalidIdTokenError, admin_auth.UserDisabledError) as e:
        logger.info("Rejected auth token: %s", e)
        return None


def uid_from_token(token: Optional[str]) -> Optional[str]:
    decoded = verify_token(token)
    return decoded.get("uid") if decoded else None


def set_auth_cookie(response, token: str):
    response.set_cookie(
        auth_cookie_name(),
        token,
        max_age=getattr(settings, "AUTH_TOKEN_COOKIE_MAX_AGE", 3600),
        path="/",
        secure=True,
        httponly=True,
        samesite="Strict",
    )
    return response


def clear_auth_cookie(response):
    response.delete_cookie(auth_cookie_name(), path="/", samesite="Strict")
    return response


def firebase_login_required(view):
    """JSON-API flavour of login_required: 401 unless the cookie holds a valid token."""

    @wraps(view)
    def wrapper(request, *args, **kwargs):
        uid = uid_from_token(request.COOKIES.get(auth_cookie_name()))
        if not uid:
            return error_response("unauthenticated", 401)
        request.firebase_uid = uid
        return view(request, *args, **kwargs)

    return wrapper
