from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from pydantic import ValidationError

from config.constants import (
    EVENT_CHAT_MESSAGE,
    EVENT_CHAT_NOTIFICATION,
    EVENT_NEW_MESSAGE,
    EVENT_SESSION_UPDATED,
)
from models.chat import ChatMessage, ChatSession, IncomingMessage, SessionPreview
from realtime.connection_manager import ConnectionManager
from services.chat_service import ChatService
from services.exceptions import ChannelUnavailableError, InvalidInputError
from utils.liveness import ViewScope
from utils.logger import app_logger

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def merge_messages(existing: Iterable[ChatMessage], incoming: Iterable[ChatMessage]) -> List[ChatMessage]:
    """
    Union of two message lists, one entry per message, in createdAt order.

    A server message replaces the matching locally sent placeholder (same
    sender and content) so a sent message never shows twice once echoed.
    """
    merged: Dict[tuple, ChatMessage] = {}
    for message in existing:
        merged[message.identity()] = message
    for message in incoming:
        if not message.is_pending:
            for key, local in list(merged.items()):
                if local.is_pending and local.sender_id == message.sender_id and local.content == message.content:
                    del merged[key]
                    break
        merged[message.identity()] = message
    return sorted(merged.values(), key=lambda m: m.created_at)


class ChatInbox:
    """
    Chat state for one signed-in user: the session list and at most one
    open thread.

    REST fetches and realtime pushes both feed the same merge, so the order
    in which they arrive does not matter. Only the open session renders
    pushed messages live; pushes for any other session just move it up the
    list.
    """

    def __init__(self, chat_service: ChatService, channel: ConnectionManager, user_id: int):
        self._chat = chat_service
        self._channel = channel
        self._user_id = user_id
        self._sessions: Dict[int, ChatSession] = {}
        self._open_session_id: Optional[int] = None
        self._open_receiver_id: Optional[int] = None
        self._thread: List[ChatMessage] = []
        self._scope: Optional[ViewScope] = None

    # --- Wiring ---

    def attach(self) -> None:
        self._channel.on(EVENT_NEW_MESSAGE, self.handle_new_message)
        self._channel.on(EVENT_CHAT_MESSAGE, self.handle_new_message)
        self._channel.on(EVENT_SESSION_UPDATED, self.handle_session_updated)
        self._channel.on(EVENT_CHAT_NOTIFICATION, self.handle_chat_notification)

    def detach(self) -> None:
        for event in (EVENT_NEW_MESSAGE, EVENT_CHAT_MESSAGE, EVENT_SESSION_UPDATED, EVENT_CHAT_NOTIFICATION):
            self._channel.off(event)

    # --- State ---

    @property
    def sessions(self) -> List[ChatSession]:
        """Sessions, most recent activity first."""
        return sorted(self._sessions.values(), key=lambda s: s.last_activity or _EPOCH, reverse=True)

    @property
    def open_session_id(self) -> Optional[int]:
        return self._open_session_id

    @property
    def thread(self) -> List[ChatMessage]:
        return list(self._thread)

    def session(self, session_id: int) -> Optional[ChatSession]:
        return self._sessions.get(session_id)

    # --- REST Sync ---

    async def refresh(self) -> List[ChatSession]:
        """Refetches every session; recovers anything a dropped socket missed."""
        for fetched in await self._chat.list_sessions():
            self._store_session(fetched)
        if self._open_session_id in self._sessions:
            self._thread = merge_messages(self._thread, self._sessions[self._open_session_id].messages)
        return self.sessions

    def _store_session(self, fetched: ChatSession) -> None:
        current = self._sessions.get(fetched.id)
        if current is not None:
            fetched.messages = merge_messages(current.messages, fetched.messages)
        else:
            fetched.messages = sorted(fetched.messages, key=lambda m: m.created_at)
        self._sessions[fetched.id] = fetched

    # --- Open Thread ---

    async def open_thread(self, session_id: int, receiver_id: Optional[int] = None) -> None:
        self.close_thread()
        scope = ViewScope(f"chat-{session_id}")
        self._scope = scope
        self._open_session_id = session_id
        session = self._sessions.get(session_id)
        if receiver_id is None and session is not None:
            receiver_id = session.counterpart_of(self._user_id)
        self._open_receiver_id = receiver_id
        self._thread = list(session.messages) if session is not None else []

        await self._channel.join_chat(session_id)
        await scope.apply(self._chat.messages(session_id), self._apply_history)

    def _apply_history(self, messages: List[ChatMessage]) -> None:
        self._thread = merge_messages(self._thread, messages)
        self._add_to_session(self._open_session_id, messages)

    def _add_to_session(self, session_id: Optional[int], messages: List[ChatMessage]) -> None:
        session = self._sessions.get(session_id)
        if session is not None:
            session.messages = merge_messages(session.messages, messages)

    def close_thread(self) -> None:
        if self._scope is not None:
            self._scope.close()
            self._scope = None
        if self._open_session_id is not None:
            self._channel.leave_chat(self._open_session_id)
        self._open_session_id = None
        self._open_receiver_id = None
        self._thread = []

    async def send(self, content: str) -> ChatMessage:
        """
        Sends `content` to the open session and shows it right away as a
        pending message until the server echo replaces it.
        """
        content = content.strip()
        if not content:
            raise InvalidInputError("Message is empty.")
        if self._open_session_id is None or self._open_receiver_id is None:
            raise InvalidInputError("No chat is open.")

        session_id = self._open_session_id
        pending = ChatMessage(
            session_id=session_id,
            content=content,
            sender_id=self._user_id,
            receiver_id=self._open_receiver_id,
            created_at=datetime.now(timezone.utc),
        )
        # Shown before the emit so an echo that arrives first still replaces it.
        self._thread = merge_messages(self._thread, [pending])
        self._add_to_session(session_id, [pending])
        try:
            await self._channel.send_message(session_id, self._open_receiver_id, content)
        except ChannelUnavailableError:
            app_logger.warning(f"Message to session {session_id} not sent, realtime channel is down")
            self._discard(session_id, pending)
            raise
        return pending

    def _discard(self, session_id: int, pending: ChatMessage) -> None:
        key = pending.identity()
        self._thread = [m for m in self._thread if m.identity() != key]
        session = self._sessions.get(session_id)
        if session is not None:
            session.messages = [m for m in session.messages if m.identity() != key]

    # --- Push Handlers ---

    async def handle_new_message(self, data) -> None:
        try:
            incoming = IncomingMessage.model_validate(data)
        except ValidationError as e:
            app_logger.warning(f"Ignoring malformed chat message push: {e}")
            return
        message = incoming.message
        if message.session_id is None:
            message.session_id = incoming.session_id

        if incoming.session_id == self._open_session_id:
            self._thread = merge_messages(self._thread, [message])
        if incoming.session_id in self._sessions:
            self._add_to_session(incoming.session_id, [message])
        else:
            await self._fetch_session(incoming.session_id, message)

    async def handle_session_updated(self, data) -> None:
        try:
            update = SessionPreview.model_validate(data)
        except ValidationError as e:
            app_logger.warning(f"Ignoring malformed session update push: {e}")
            return
        if update.session_id in self._sessions:
            self._add_to_session(update.session_id, [update.preview])
        else:
            await self._fetch_session(update.session_id, update.preview)

    async def handle_chat_notification(self, data) -> None:
        app_logger.info(f"Chat notification received: {data}")

    async def _fetch_session(self, session_id: int, preview: ChatMessage) -> None:
        """Loads a session first seen through a push."""
        messages = await self._chat.messages(session_id)
        session = ChatSession(
            id=session_id,
            sender_id=preview.sender_id,
            receiver_id=preview.receiver_id,
            messages=merge_messages(messages, [preview]),
            created_at=datetime.now(timezone.utc),
        )
        self._store_session(session)
        app_logger.info(f"New chat session {session_id} loaded from push")
