from typing import List, Optional, Tuple

from config.constants import (
    ALL_CHAT_SESSIONS_PATH,
    CREATE_CHAT_SESSION_PATH,
    ERROR_CHAT_SESSION_EXISTS,
    SESSION_MESSAGES_PATH,
)
from models.chat import ChatMessage, ChatSession
from services.api_client import ApiClient
from services.exceptions import ApiError, ConflictError, RentalClientError
from utils.logger import app_logger


def _existing_session_id(error: RentalClientError) -> Optional[int]:
    """
    Pulls the id of an already existing session out of a failed create call.
    The backend reports it as error 5001 or, on older builds, a bare 400.
    """
    is_duplicate = error.error_code == ERROR_CHAT_SESSION_EXISTS or (
        isinstance(error, ApiError) and error.status == 400
    )
    data = error.data
    if is_duplicate and isinstance(data, dict) and data.get("id") is not None:
        return int(data["id"])
    return None


class ChatService:
    """REST side of chat. The realtime channel only adds latency on top of this."""

    def __init__(self, api: ApiClient):
        self._api = api

    async def create_session(self, receiver_id: int) -> Tuple[int, bool]:
        """
        Opens a chat with `receiver_id`.

        Returns (session_id, created). Asking again for the same pair returns
        the existing session with created=False instead of failing.
        """
        try:
            data = await self._api.post_data(CREATE_CHAT_SESSION_PATH, {"receiverId": receiver_id})
        except (ConflictError, ApiError) as e:
            session_id = _existing_session_id(e)
            if session_id is None:
                raise
            app_logger.info(f"Chat session {session_id} with user {receiver_id} already exists")
            return session_id, False

        if not isinstance(data, dict) or data.get("id") is None:
            raise ApiError("Create chat session response has no session id.", payload={"data": data})
        app_logger.info(f"Chat session {data['id']} created with user {receiver_id}")
        return int(data["id"]), True

    async def list_sessions(self) -> List[ChatSession]:
        data = await self._api.get_data(ALL_CHAT_SESSIONS_PATH)
        items = data.get("sessions", []) if isinstance(data, dict) else (data or [])
        return [ChatSession.model_validate(item) for item in items]

    async def messages(self, session_id: int) -> List[ChatMessage]:
        data = await self._api.get_data(SESSION_MESSAGES_PATH, sessionId=session_id)
        messages = [ChatMessage.model_validate(item) for item in data or []]
        return sorted(messages, key=lambda m: m.created_at)
