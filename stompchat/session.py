import logging
from typing import Any, Callable, Optional

from .avatar import avatar_initial, get_avatar_color
from .config import ClientSettings
from .errors import MessageError, StompConnectionError
from .frames import Frame
from .messages import ChatMessage, Greeting, HelloMessage, MessageType
from .stomp import StompClient, Subscription
from .view import ChatView

PUBLIC_TOPIC = "/topic/public"
GREETINGS_TOPIC = "/topic/greetings"
HELLO_DESTINATION = "/app/hello"
ADD_USER_DESTINATION = "/app/chat.addUser"
SEND_MESSAGE_DESTINATION = "/app/chat.sendMessage"

CONNECT_ERROR = "Could not connect to WebSocket server. Please restart the client to try again!"


def _usable(client: Optional[StompClient]) -> bool:
    return client is not None and client.connected


class ChatSession:
    """Glue between user commands, the broker connections and the view.

    Two independent connections are kept, as the web page does: one for the
    greeting demo (``connect``/``disconnect``/``send_name``) and one for the
    chat room (``join``/``leave``/``send_message``).
    """

    def __init__(
        self,
        settings: ClientSettings,
        view: ChatView,
        connector: Optional[Callable[..., Any]] = None,
    ):
        self.settings = settings
        self.view = view
        self._connector = connector
        self.greeting_client: Optional[StompClient] = None
        self.greeting_subscription: Optional[Subscription] = None
        self.chat_client: Optional[StompClient] = None
        self.public_subscription: Optional[Subscription] = None
        self.username: Optional[str] = None
        self._leaving = False

    async def _open_client(self) -> Optional[StompClient]:
        client = StompClient(
            self.settings.url,
            connector=self._connector,
            heartbeat=self.settings.heartbeat,
            on_error=self.on_error_frame,
        )
        client.on_disconnect = lambda reason: self._connection_lost(client, reason)
        try:
            await client.connect()
        except StompConnectionError as e:
            logging.warning("Connecting to %s failed: %s", self.settings.url, e)
            self.on_error()
            return None
        return client

    # greeting demo

    async def connect(self) -> bool:
        if not _usable(self.greeting_client):
            client = await self._open_client()
            if client is None:
                return False
            self.greeting_client = client
            self.greeting_subscription = None
        self.view.set_connected(True)
        if self.greeting_subscription is None or not self.greeting_subscription.active:
            self.greeting_subscription = await self.greeting_client.subscribe(
                GREETINGS_TOPIC, self.on_greeting
            )
        return True

    async def disconnect(self) -> None:
        client = self.greeting_client
        self.greeting_client = None
        self.greeting_subscription = None
        if client is not None:
            await client.disconnect()
        self.view.set_connected(False)

    async def send_name(self, name: str) -> bool:
        if not _usable(self.greeting_client):
            logging.info("Greeting connection is not open; dropping hello for %r", name)
            return False
        await self.greeting_client.send(HELLO_DESTINATION, HelloMessage(name).to_json())
        return True

    def on_greeting(self, frame: Frame) -> None:
        try:
            greeting = Greeting.from_json(frame.body)
        except MessageError as e:
            logging.warning("Skipping greeting: %s", e)
            return
        self.view.show_greeting(greeting.content)

    # chat room

    async def join(self, username: str) -> bool:
        username = (username or "").strip()
        if not username:
            return False
        self.username = username
        self._leaving = False
        self.view.show_chat_page()
        if not _usable(self.chat_client):
            client = await self._open_client()
            if client is None:
                return False
            self.chat_client = client
            self.public_subscription = None
        await self._subscribe_public()
        logging.info("Joined %s as %s", PUBLIC_TOPIC, username)
        return True

    async def _subscribe_public(self) -> None:
        if self.public_subscription is None:
            self.public_subscription = await self.chat_client.subscribe(
                PUBLIC_TOPIC, self.on_message
            )
        await self.chat_client.send(
            ADD_USER_DESTINATION, ChatMessage.join(self.username).to_json()
        )
        self.view.hide_connecting()

    async def on_message(self, frame: Frame) -> None:
        try:
            message = ChatMessage.from_json(frame.body)
        except MessageError as e:
            logging.warning("Skipping chat payload: %s", e)
            return
        if message.type is MessageType.JOIN:
            self.view.show_event(f"{message.sender} joined!")
        elif message.type is MessageType.LEAVE:
            self.view.show_event(f"{message.sender} left!")
            # only our own LEAVE ends our subscription, and not once we joined again
            if (
                self._leaving
                and message.sender == self.username
                and self.public_subscription is not None
            ):
                sub = self.public_subscription
                self.public_subscription = None
                self._leaving = False
                await sub.unsubscribe()
        else:
            self.view.show_chat(
                message.sender,
                avatar_initial(message.sender),
                get_avatar_color(message.sender),
                message.content or "",
            )

    async def leave(self) -> None:
        if _usable(self.chat_client) and self.username:
            self._leaving = True
            await self.chat_client.send(
                SEND_MESSAGE_DESTINATION, ChatMessage.leave(self.username).to_json()
            )
        self.view.show_username_page()

    async def send_message(self, text: str) -> bool:
        if not text or not text.strip():
            return False
        if not _usable(self.chat_client) or not self.username:
            return False
        await self.chat_client.send(
            SEND_MESSAGE_DESTINATION, ChatMessage.chat(self.username, text).to_json()
        )
        return True

    # failures

    def on_error(self) -> None:
        self.view.show_error(CONNECT_ERROR)

    def on_error_frame(self, frame: Frame) -> None:
        logging.error(
            "Broker sent ERROR: %s %s", frame.headers.get("message", ""), frame.body
        )

    def _connection_lost(self, client: StompClient, reason: str) -> None:
        if client is self.chat_client:
            self.chat_client = None
            self.public_subscription = None
            self._leaving = False
        elif client is self.greeting_client:
            self.greeting_client = None
            self.greeting_subscription = None
            self.view.set_connected(False)
        logging.info("Connection lost (%s)", reason)
        self.on_error()

    async def close(self) -> None:
        for client in (self.greeting_client, self.chat_client):
            if client is not None:
                await client.disconnect()
        self.greeting_client = None
        self.greeting_subscription = None
        self.chat_client = None
        self.public_subscription = None
