"""
UserRepository - accounts and their role
"""

from datetime import datetime, timezone
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from database_models import User, USER_TYPE_ADMIN, USER_TYPE_USER


class UserRepository:
    """
    Repository class for User database operations.
    Emails are stored lower-cased.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_user_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(
            select(User).where(User.email == email.lower())
        )
        return result.scalar_one_or_none()

    async def get_user_by_id(self, user_id: str) -> Optional[User]:
        result = await self.db.execute(
            select(User).where(User.id == user_id)
        )
        return result.scalar_one_or_none()

    async def list_users(self) -> List[User]:
        result = await self.db.execute(select(User))
        return list(result.scalars().all())

    async def create_user(self, user_data: dict) -> User:
        """
        Add a user to the session and flush it to get its id.

        Args:
            user_data: email and hashed_password are required; display_name,
                user_type (default "user"), avatar_url and is_active are optional

        Returns:
            The flushed, uncommitted User
        """
        user = User(
            email=user_data["email"].lower(),
            hashed_password=user_data["hashed_password"],
            display_name=user_data.get("display_name"),
            user_type=user_data.get("user_type", USER_TYPE_USER),
            avatar_url=user_data.get("avatar_url"),
            is_active=user_data.get("is_active", True),
        )
        self.db.add(user)
        await self.db.flush()
        await self.db.refresh(user)
        return user

    async def promote_to_admin(self, user_id: str) -> bool:
        """
        Set user_type to "admin" within the session's current transaction.

        Returns:
            True if a user row was updated, False if no such user exists
        """
        result = await self.db.execute(
            update(User)
            .where(User.id == user_id)
            .values(user_type=USER_TYPE_ADMIN, updated_at=datetime.now(timezone.utc))
        )
        return result.rowcount == 1
