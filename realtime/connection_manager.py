import inspect
from typing import Any, Awaitable, Callable, Dict, Optional, Set

import socketio
from socketio.exceptions import ConnectionError as SocketConnectionError, SocketIOError

from config.settings import settings
from config.constants import (
    EVENT_CONNECT,
    EVENT_CONNECT_ERROR,
    EVENT_DISCONNECT,
    EVENT_JOIN_CHAT,
    EVENT_JOIN_ROOM,
    EVENT_SEND_MESSAGE,
)
from services.exceptions import ChannelUnavailableError, InvalidInputError
from utils.logger import app_logger

Handler = Callable[[Any], Any]
TokenProvider = Callable[[], Awaitable[Optional[str]]]

_LIFECYCLE_EVENTS = (EVENT_CONNECT, EVENT_CONNECT_ERROR, EVENT_DISCONNECT)


def default_client_factory() -> socketio.AsyncClient:
    return socketio.AsyncClient(reconnection=True, reconnection_delay=1, logger=False)


class ConnectionManager:
    """
    The single realtime connection of the client.

    Built once by the composition root and handed to every consumer. A new
    `connect` replaces the previous socket; handlers are kept in one table
    keyed by event name, so registering an event twice replaces the first
    handler and a reconnect never stacks listeners.

    While the socket is down the channel is "degraded": pushes may be
    missed and consumers fall back to REST fetches.
    """

    def __init__(
            self,
            url: str = settings.SOCKET_URL,
            client_factory: Callable[[], Any] = default_client_factory,
            connect_timeout: float = settings.REQUEST_TIMEOUT_SECONDS,
            token_provider: Optional[TokenProvider] = None,
    ):
        self._url = url
        self._token_provider = token_provider
        self._access_token: Optional[str] = None
        self._client_factory = client_factory
        self._connect_timeout = connect_timeout
        self._client = None
        self._user_id: Optional[int] = None
        self._connected = False
        self._handlers: Dict[str, Handler] = {}
        self._joined_sessions: Set[int] = set()

    # --- State ---

    @property
    def connected(self) -> bool:
        return self._client is not None and self._connected

    @property
    def degraded(self) -> bool:
        return not self.connected

    @property
    def joined_sessions(self) -> Set[int]:
        return set(self._joined_sessions)

    # --- Connection Lifecycle ---

    async def connect(self, user_id: int, access_token: Optional[str]) -> bool:
        """
        Opens the socket for `user_id`, replacing any existing one.

        Returns False instead of raising when the handshake fails; the
        channel then stays degraded and REST keeps working.
        """
        if not access_token:
            raise InvalidInputError("No access token available for the realtime channel.")

        await self._close_socket()
        self._user_id = user_id
        self._access_token = access_token
        client = self._client_factory()
        self._client = client
        client.on(EVENT_CONNECT, handler=self._on_connect)
        client.on(EVENT_CONNECT_ERROR, handler=self._on_connect_error)
        client.on(EVENT_DISCONNECT, handler=self._on_disconnect)
        for event in self._handlers:
            client.on(event, handler=self._make_dispatcher(event))

        try:
            await client.connect(
                self._url,
                auth=self._auth,
                transports=["websocket"],
                wait_timeout=self._connect_timeout,
            )
        except SocketConnectionError as e:
            app_logger.error(f"Realtime connection to {self._url} failed: {e}. Running without live updates.")
            self._connected = False
            return False
        return True

    async def _auth(self) -> Dict[str, Optional[str]]:
        # Resolved by the client on every handshake, automatic reconnects included.
        token = self._access_token
        if self._token_provider is not None:
            token = await self._token_provider() or token
        return {"accessToken": token}

    async def disconnect(self) -> None:
        """Tears the channel down and forgets the joined chat rooms."""
        await self._close_socket()
        self._joined_sessions.clear()
        self._user_id = None
        self._access_token = None

    async def _close_socket(self) -> None:
        client, self._client = self._client, None
        self._connected = False
        if client is not None:
            await client.disconnect()
            app_logger.info("Realtime socket closed.")

    async def _on_connect(self) -> None:
        self._connected = True
        app_logger.info(f"Realtime channel connected for user {self._user_id}")
        await self._client.emit(EVENT_JOIN_ROOM, {"userId": self._user_id})
        # Rooms are per socket; after a reconnect they must be joined again.
        for session_id in sorted(self._joined_sessions):
            await self._client.emit(EVENT_JOIN_CHAT, session_id)

    async def _on_connect_error(self, data: Any = None) -> None:
        self._connected = False
        app_logger.error(f"Realtime connection error: {data}")

    async def _on_disconnect(self, *args) -> None:
        self._connected = False
        app_logger.warning("Realtime channel disconnected, falling back to REST.")

    # --- Chat Rooms ---

    async def join_chat(self, session_id: int) -> bool:
        """
        Registers interest in `session_id`. Remembered across reconnects;
        returns False when the join could only be recorded for later.
        """
        self._joined_sessions.add(session_id)
        if not self.connected:
            return False
        await self._client.emit(EVENT_JOIN_CHAT, session_id)
        return True

    def leave_chat(self, session_id: int) -> None:
        self._joined_sessions.discard(session_id)

    async def send_message(self, session_id: int, receiver_id: int, content: str, message_type: str = "text") -> None:
        if not self.connected:
            raise ChannelUnavailableError("Realtime channel is not connected.")
        try:
            await self._client.emit(
                EVENT_SEND_MESSAGE,
                {"sessionId": session_id, "receiverId": receiver_id, "type": message_type, "content": content},
            )
        except SocketIOError as e:
            self._connected = False
            raise ChannelUnavailableError(f"Could not send message: {e}") from e

    # --- Event Handlers ---

    def on(self, event: str, handler: Handler) -> None:
        """Sets the handler for `event`, replacing any previous one."""
        if event in _LIFECYCLE_EVENTS:
            raise ValueError(f"'{event}' is handled by the connection manager itself.")
        first_registration = event not in self._handlers
        self._handlers[event] = handler
        if first_registration and self._client is not None:
            self._client.on(event, handler=self._make_dispatcher(event))

    def off(self, event: str) -> None:
        self._handlers.pop(event, None)

    def has_handler(self, event: str) -> bool:
        return event in self._handlers

    def _make_dispatcher(self, event: str):
        async def dispatch(*args):
            await self._dispatch(event, args[0] if args else None)
        return dispatch

    async def _dispatch(self, event: str, data: Any) -> None:
        handler = self._handlers.get(event)
        if handler is None:
            return
        try:
            result = handler(data)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            app_logger.exception(f"Handler for realtime event '{event}' failed: {e}")
