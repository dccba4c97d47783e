import uuid
from datetime import datetime

from sqlalchemy import delete, exists, select, update

from accounts.db.base import utcnow
from accounts.db.store import BaseStore
from accounts.users.models import User


class UserStore(BaseStore):
    async def create(self, name: str, email: str, password_hash: str) -> User:
        user = User(name=name, email=email, password_hash=password_hash)
        async with self._use() as session:
            session.add(user)
            await session.flush()
        return user

    async def get_by_id(self, user_id: uuid.UUID, for_update: bool = False) -> User | None:
        stmt = select(User).where(User.id == user_id)
        if for_update:
            stmt = stmt.with_for_update()
        async with self._use() as session:
            result = await session.execute(stmt)
            return result.scalar_one_or_none()

    async def get_by_email(self, email: str) -> User | None:
        async with self._use() as session:
            result = await session.execute(select(User).where(User.email == email))
            return result.scalar_one_or_none()

    async def email_exists(self, email: str) -> bool:
        async with self._use() as session:
            result = await session.execute(select(exists().where(User.email == email)))
            return bool(result.scalar())

    async def _set(self, user_id: uuid.UUID, *criteria, **values) -> int:
        async with self._use() as session:
            result = await session.execute(
                update(User)
                .where(User.id == user_id, *criteria)
                .values(updated_at=utcnow(), **values)
            )
            return result.rowcount

    async def update_password_hash(self, user_id: uuid.UUID, password_hash: str) -> None:
        await self._set(user_id, password_hash=password_hash)

    async def mark_email_verified(self, user_id: uuid.UUID) -> None:
        await self._set(user_id, email_verified_at=utcnow())

    async def schedule_deletion(self, user_id: uuid.UUID, at: datetime) -> int:
        """Set the deletion date unless one is already pending. Returns the row count."""
        return await self._set(user_id, User.deletion_scheduled_at.is_(None), deletion_scheduled_at=at)

    async def cancel_deletion(self, user_id: uuid.UUID) -> None:
        await self._set(user_id, deletion_scheduled_at=None)

    async def purge_overdue(self) -> int:
        """Hard-delete every account whose deletion date has passed.

        This is the only irreversible operation in the system. Token rows go
        with the user through ``ON DELETE CASCADE``.
        """
        async with self._use() as session:
            result = await session.execute(
                delete(User).where(
                    User.deletion_scheduled_at.is_not(None),
                    User.deletion_scheduled_at <= utcnow(),
                )
            )
            return result.rowcount
