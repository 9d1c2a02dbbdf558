from typing import Optional, Tuple

import redis.asyncio as redis

from config.constants import REDIS_ACCESS_TOKEN_KEY, REDIS_REFRESH_TOKEN_KEY


class TokenStore:
    """
    Durable storage for the access/refresh token pair.

    The pair is written and cleared inside one MULTI/EXEC transaction so a
    reader never sees a refresh token without its access token or the
    other way round.
    """

    def __init__(self, client: redis.Redis):
        self._client = client

    async def get_access_token(self) -> Optional[str]:
        return await self._client.get(REDIS_ACCESS_TOKEN_KEY)

    async def get_pair(self) -> Tuple[Optional[str], Optional[str]]:
        access_token, refresh_token = await self._client.mget(REDIS_ACCESS_TOKEN_KEY, REDIS_REFRESH_TOKEN_KEY)
        return access_token, refresh_token

    async def save_pair(self, access_token: str, refresh_token: str) -> None:
        async with self._client.pipeline(transaction=True) as pipe:
            pipe.set(REDIS_ACCESS_TOKEN_KEY, access_token)
            pipe.set(REDIS_REFRESH_TOKEN_KEY, refresh_token)
            await pipe.execute()

    async def save_access_token(self, access_token: str) -> None:
        await self._client.set(REDIS_ACCESS_TOKEN_KEY, access_token)

    async def clear(self) -> None:
        async with self._client.pipeline(transaction=True) as pipe:
            pipe.delete(REDIS_ACCESS_TOKEN_KEY)
            pipe.delete(REDIS_REFRESH_TOKEN_KEY)
            await pipe.execute()
