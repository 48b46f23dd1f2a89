"""Data access helpers for users."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import User


class UsersRepository:
    """Query helpers for user records."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, user_id: int) -> User | None:
        return await self._session.get(User, user_id)

    async def get_by_id_for_update(self, user_id: int) -> User | None:
        """Return ``user_id`` while holding a row lock for the current transaction."""

        stmt = select(User).where(User.id == user_id).with_for_update()
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()


__all__ = ["UsersRepository"]
