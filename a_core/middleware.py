# a_core/middleware.py
from django.conf import settings
from django.shortcuts import redirect

from a_users.session import auth_cookie_name


class AuthTokenGateMiddleware:
    """
    Page routing gate on the authToken cookie: signed-in browsers skip the
    login page, everyone else is sent to it. The JSON API, websockets and
    static assets are left to their own checks.

    Only the cookie's presence is checked here; the token itself is
    verified by the API views that act on it.
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        path = request.path
        if self._is_exempt(path):
            return self.get_response(request)

        login_url = settings.LOGIN_URL
        has_token = bool(request.COOKIES.get(auth_cookie_name()))

        if path == login_url:
            if has_token:
                return redirect(settings.LOGIN_REDIRECT_URL)
            return self.get_response(request)

        if not has_token:
            return redirect(login_url)
        return self.get_response(request)

    @staticmethod
    def _is_exempt(path):
        # anything that looks like a file (favicon.ico, app.js, ...)
        if "." in path:
            return True
        prefixes = getattr(settings, "AUTH_GATE_EXEMPT_PREFIXES", ())
        return path.startswith(tuple(prefixes))
