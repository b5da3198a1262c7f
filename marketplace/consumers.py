import json
import logging
from urllib.parse import parse_qs

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncWebsocketConsumer
from django.contrib.auth.models import AnonymousUser
from rest_framework.exceptions import AuthenticationFailed
from rest_framework_simplejwt.authentication import JWTAuthentication
from rest_framework_simplejwt.exceptions import InvalidToken, TokenError

from infrastructure.notifications import user_group_name

logger = logging.getLogger(__name__)


class OrderEventsConsumer(AsyncWebsocketConsumer):
    """
    Pushes order lifecycle events to a connected buyer or seller.

    The client authenticates with ``?token=<access JWT>``; each user listens on
    their own group, which ChannelsBroadcaster publishes to.
    """

    async def connect(self):
        self.user = await self.get_user_from_token()

        if self.user is None or isinstance(self.user, AnonymousUser):
            logger.warning("Unauthenticated order events connection attempt")
            await self.close(code=4001)  # Unauthorized
            return

        self.group_name = user_group_name(self.user.pk)
        await self.channel_layer.group_add(self.group_name, self.channel_name)

        await self.accept()
        logger.info(f"User {self.user.pk} subscribed to order events")

        await self.send(text_data=json.dumps({"type": "connection_success", "user_id": str(self.user.pk)}))

    async def disconnect(self, close_code):
        if hasattr(self, "group_name"):
            await self.channel_layer.group_discard(self.group_name, self.channel_name)
            logger.info(f"User {self.user.pk} unsubscribed from order events")

    async def receive(self, text_data=None, bytes_data=None):
        try:
            data = json.loads(text_data or "{}")
        except json.JSONDecodeError:
            logger.warning("Invalid JSON received on order events socket")
            return

        if isinstance(data, dict) and data.get("type") == "ping":
            await self.send(text_data=json.dumps({"type": "pong"}))

    async def order_event(self, event):
        """Forward a broadcast order event to the socket."""
        await self.send(text_data=json.dumps({"type": event["event"], "data": event["payload"]}))

    @database_sync_to_async
    def get_user_from_token(self):
        """Extract user from JWT token in query parameters"""
        query_string = self.scope.get("query_string", b"").decode()
        token = parse_qs(query_string).get("token", [None])[0]

        if not token:
            return None

        try:
            jwt_auth = JWTAuthentication()
            validated_token = jwt_auth.get_validated_token(token)
            return jwt_auth.get_user(validated_token)
        except (InvalidToken, TokenError, AuthenticationFailed):
            return None
