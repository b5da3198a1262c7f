"""
ASGI config for gigmarketBackend project.

It exposes the ASGI callable as a module-level variable named ``application``.
"""

import os

import django
from channels.routing import ProtocolTypeRouter, URLRouter
from channels.security.websocket import AllowedHostsOriginValidator
from django.core.asgi import get_asgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "gigmarketBackend.settings")

# Initialize Django ASGI application early to ensure the AppRegistry
# is populated before importing code that may import ORM models.
django.setup()

django_asgi_app = get_asgi_application()

import marketplace.routing  # noqa: E402

application = ProtocolTypeRouter(
    {
        "http": django_asgi_app,
        # Order event sockets authenticate with a JWT in the query string
        "websocket": AllowedHostsOriginValidator(URLRouter(marketplace.routing.websocket_urlpatterns)),
    }
)
