import asyncio
import inspect
from typing import Awaitable, Callable, List, Optional, Union

from config.settings import settings
from config.constants import LOGIN_PATH, RENEW_ACCESS_TOKEN_PATH
from database.token_store import TokenStore
from services.api_client import raise_for_envelope, send_request
from services.exceptions import AuthenticationRequired, RentalClientError, TransportError
from utils.logger import app_logger

ReauthCallback = Callable[[str], Union[None, Awaitable[None]]]


class SessionManager:
    """
    Owns the access/refresh token pair.

    All reads, writes and clears of the pair go through this class. Token
    renewal is single-flight: concurrent callers holding the same stale
    token share one refresh call.
    """

    def __init__(
            self,
            token_store: TokenStore,
            base_url: str = settings.API_BASE_URL,
            timeout: float = settings.REQUEST_TIMEOUT_SECONDS,
    ):
        self._store = token_store
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._refresh_lock = asyncio.Lock()
        self._reauth_callbacks: List[ReauthCallback] = []

    # --- Token Access ---

    async def access_token(self) -> Optional[str]:
        return await self._store.get_access_token()

    async def is_authenticated(self) -> bool:
        access_token, refresh_token = await self._store.get_pair()
        return bool(access_token and refresh_token)

    def on_reauthentication_required(self, callback: ReauthCallback) -> None:
        """Registers a callback run whenever the session is torn down by a failure."""
        self._reauth_callbacks.append(callback)

    # --- Lifecycle ---

    async def login(self, email: str, password: str) -> None:
        status, payload = await send_request(
            "POST",
            f"{self._base_url}{LOGIN_PATH}",
            json={"email": email, "password": password},
            timeout=self._timeout,
        )
        raise_for_envelope(status, payload)
        access_token, refresh_token = payload.get("accessToken"), payload.get("refreshToken")
        if not access_token or not refresh_token:
            raise AuthenticationRequired("Login response did not contain a token pair.", payload=payload)
        await self._store.save_pair(access_token, refresh_token)
        app_logger.info("Signed in, token pair stored.")

    async def logout(self) -> None:
        await self._store.clear()
        app_logger.info("Signed out, token pair cleared.")

    async def refresh(self, stale_token: Optional[str]) -> str:
        """
        Returns a fresh access token to replace `stale_token`.

        If another caller already renewed the token while this one waited
        for the lock, the renewed token is returned without a second call.
        A network failure propagates as TransportError and keeps the pair;
        any other failure clears the pair and raises AuthenticationRequired.
        """
        async with self._refresh_lock:
            access_token, refresh_token = await self._store.get_pair()
            if access_token and access_token != stale_token:
                app_logger.debug("Access token already renewed by a concurrent call.")
                return access_token

            if not refresh_token:
                await self.expire("no refresh token available")
                raise AuthenticationRequired("Session expired. Please sign in again.")

            try:
                status, payload = await send_request(
                    "POST",
                    f"{self._base_url}{RENEW_ACCESS_TOKEN_PATH}",
                    json={"refreshToken": refresh_token},
                    timeout=self._timeout,
                )
                raise_for_envelope(status, payload)
            except TransportError:
                raise
            except RentalClientError as e:
                app_logger.error(f"Token refresh failed: {e}")
                await self.expire("token refresh failed")
                raise AuthenticationRequired("Session expired. Please sign in again.") from e

            new_token = payload.get("accessToken")
            if not new_token:
                await self.expire("token refresh returned no access token")
                raise AuthenticationRequired("Session expired. Please sign in again.", payload=payload)

            await self._store.save_access_token(new_token)
            app_logger.info("Access token renewed.")
            return new_token

    async def expire(self, reason: str) -> None:
        """Clears both tokens and tells every listener to send the user to sign-in."""
        app_logger.warning(f"Session ended: {reason}")
        await self._store.clear()
        for callback in self._reauth_callbacks:
            try:
                result = callback(reason)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                app_logger.exception(f"Re-authentication callback failed: {e}")
