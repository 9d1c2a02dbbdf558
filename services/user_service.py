from typing import Dict, Optional

from config.constants import USER_INFO_PATH, USER_PUBLIC_INFO_PATH
from models.user import UserProfile
from services.api_client import ApiClient
from services.exceptions import AuthenticationRequired, RentalClientError
from utils.logger import app_logger


class UserService:
    """
    Reads the signed-in user's profile and other users' public profiles.
    Public profiles are cached per user id for the life of the service.
    """

    def __init__(self, api: ApiClient):
        self._api = api
        self._public_cache: Dict[int, UserProfile] = {}

    async def get_me(self) -> UserProfile:
        data = await self._api.get_data(USER_INFO_PATH)
        return UserProfile.model_validate(data)

    async def get_public_info(self, user_id: int) -> UserProfile:
        """
        Returns the public profile of `user_id`.

        A missing profile only affects a name and an avatar, so any failure
        other than a lost session falls back to a placeholder.
        """
        cached = self._public_cache.get(user_id)
        if cached is not None:
            return cached
        try:
            data = await self._api.get_data(USER_PUBLIC_INFO_PATH, userId=user_id)
            profile = UserProfile.model_validate(data)
        except AuthenticationRequired:
            raise
        except (RentalClientError, ValueError) as e:
            app_logger.warning(f"Could not load public profile of user {user_id}: {e}")
            return UserProfile.placeholder(user_id)
        self._public_cache[user_id] = profile
        return profile

    def cached(self, user_id: int) -> Optional[UserProfile]:
        return self._public_cache.get(user_id)
