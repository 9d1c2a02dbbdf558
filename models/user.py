from __future__ import annotations

from typing import Optional

from models.base import ApiModel


class UserProfile(ApiModel):
    """
    The signed-in user's own profile, or the public subset of another user's.
    """
    id: int
    nickname: Optional[str] = None
    avatar: Optional[str] = None
    level: Optional[int] = None
    phone_number: Optional[str] = None
    email: Optional[str] = None

    @classmethod
    def placeholder(cls, user_id: int) -> "UserProfile":
        """Stand-in used when a public profile cannot be loaded."""
        return cls(id=user_id, nickname=f"User {user_id}")

    @property
    def display_name(self) -> str:
        return self.nickname or f"User {self.id}"

    def __repr__(self) -> str:
        return f"<UserProfile(id={self.id}, nickname='{self.nickname}')>"
