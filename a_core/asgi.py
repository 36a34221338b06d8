"""
ASGI config for a_core project.

HTTP goes to Django; websockets get the authToken cookie parsed into the
scope and are routed to the chat stream.
"""
import os

from django.core.asgi import get_asgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "a_core.settings")

django_asgi_app = get_asgi_application()

from channels.routing import ProtocolTypeRouter, URLRouter  # noqa: E402
from channels.security.websocket import AllowedHostsOriginValidator  # noqa: E402
from channels.sessions import CookieMiddleware  # noqa: E402

import a_rtchat.routing  # noqa: E402

application = ProtocolTypeRouter({
    "http": django_asgi_app,
    "websocket": AllowedHostsOriginValidator(
        CookieMiddleware(
            URLRouter(a_rtchat.routing.websocket_urlpatterns)
        )
    ),
})
