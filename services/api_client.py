from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, Optional, Tuple

import aiohttp

from config.settings import settings
from config.constants import (
    CONFLICT_ERROR_CODES,
    ERROR_TOKEN_NOT_PROVIDED,
    ERROR_VEHICLE_NOT_AVAILABLE,
    NOT_FOUND_ERROR_CODES,
    PERMISSION_ERROR_CODES,
    VALIDATION_ERROR_CODES,
)
from services.exceptions import (
    ApiError,
    AuthenticationRequired,
    ConflictError,
    InvalidInputError,
    NotFoundError,
    PermissionDeniedError,
    TransportError,
    VehicleUnavailableError,
)
from utils.logger import app_logger

if TYPE_CHECKING:
    from services.session_manager import SessionManager


def _clean_params(params: Optional[dict]) -> Optional[dict]:
    # yarl only accepts str/int/float query values; bools and None are not allowed.
    if not params:
        return None
    cleaned = {}
    for key, value in params.items():
        if value is None:
            continue
        cleaned[key] = str(value).lower() if isinstance(value, bool) else str(value)
    return cleaned


async def send_request(
        method: str,
        url: str,
        *,
        token: Optional[str] = None,
        params: Optional[dict] = None,
        json: Any = None,
        timeout: float = settings.REQUEST_TIMEOUT_SECONDS,
) -> Tuple[int, dict]:
    """
    Performs one HTTP call and returns (http_status, envelope).

    Timeouts and connection failures are raised as TransportError so the
    caller can offer a retry; they never hang past `timeout` seconds.
    """
    headers = {"Content-Type": "application/json"}
    if token:
        headers["Authorization"] = f"Bearer {token}"
    try:
        async with aiohttp.ClientSession(headers=headers, timeout=aiohttp.ClientTimeout(total=timeout)) as session:
            async with session.request(method, url, params=_clean_params(params), json=json) as response:
                try:
                    payload = await response.json(content_type=None)
                except ValueError:
                    payload = None
                if payload is None:
                    payload = {}
                elif not isinstance(payload, dict):
                    payload = {"data": payload}
                app_logger.debug(f"{method} {url} -> {response.status}")
                return response.status, payload
    except asyncio.TimeoutError as e:
        app_logger.warning(f"{method} {url} timed out after {timeout:g}s")
        raise TransportError(f"Request timed out after {timeout:g}s") from e
    except aiohttp.ClientError as e:
        app_logger.error(f"{method} {url} failed: {e}")
        raise TransportError(f"Network error: {e}") from e


def is_success(http_status: int, payload: dict) -> bool:
    body_status = payload.get("status")
    if http_status >= 400 or payload.get("errorCode") is not None:
        return False
    return not (isinstance(body_status, int) and body_status >= 400)


def raise_for_envelope(http_status: int, payload: dict) -> dict:
    """
    Returns the envelope unchanged on success, otherwise raises the
    exception matching the HTTP status and server error code.
    """
    if is_success(http_status, payload):
        return payload

    body_status = payload.get("status")
    status = http_status if http_status >= 400 else body_status
    error_code = payload.get("errorCode")
    message = payload.get("message") or f"Request failed with status {status}"
    details = {"error_code": error_code, "payload": payload}

    if status == 401 or error_code == ERROR_TOKEN_NOT_PROVIDED:
        raise AuthenticationRequired(message, **details)
    if error_code in VALIDATION_ERROR_CODES:
        raise InvalidInputError(message, **details)
    if error_code == ERROR_VEHICLE_NOT_AVAILABLE:
        raise VehicleUnavailableError(message, **details)
    if error_code in CONFLICT_ERROR_CODES or status == 409:
        raise ConflictError(message, **details)
    if error_code in NOT_FOUND_ERROR_CODES or status == 404:
        raise NotFoundError(message, **details)
    if error_code in PERMISSION_ERROR_CODES or status == 403:
        raise PermissionDeniedError(message, **details)
    raise ApiError(message, status=status, **details)


class ApiClient:
    """
    Authenticated REST client.

    Attaches the current bearer token to every call. A 401 triggers exactly
    one refresh through the SessionManager and exactly one retry of the
    original call; a second 401 ends the session.
    """

    def __init__(
            self,
            session_manager: "SessionManager",
            base_url: str = settings.API_BASE_URL,
            timeout: float = settings.REQUEST_TIMEOUT_SECONDS,
    ):
        self._sessions = session_manager
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    async def request(
            self,
            method: str,
            path: str,
            *,
            params: Optional[dict] = None,
            json: Any = None,
    ) -> dict:
        url = f"{self._base_url}{path}"
        token = await self._sessions.access_token()
        status, payload = await send_request(
            method, url, token=token, params=params, json=json, timeout=self._timeout
        )

        if status == 401:
            app_logger.info(f"{method} {path} was unauthorized, renewing access token")
            new_token = await self._sessions.refresh(token)
            status, payload = await send_request(
                method, url, token=new_token, params=params, json=json, timeout=self._timeout
            )
            if status == 401:
                await self._sessions.expire("access token rejected after renewal")
                raise AuthenticationRequired(
                    payload.get("message") or "Session expired. Please sign in again.",
                    error_code=payload.get("errorCode"),
                    payload=payload,
                )

        return raise_for_envelope(status, payload)

    async def get(self, path: str, **params) -> dict:
        return await self.request("GET", path, params=params)

    async def post(self, path: str, body: Any = None, **params) -> dict:
        return await self.request("POST", path, params=params, json=body)

    async def get_data(self, path: str, **params) -> Any:
        return (await self.get(path, **params)).get("data")

    async def post_data(self, path: str, body: Any = None, **params) -> Any:
        return (await self.post(path, body, **params)).get("data")
