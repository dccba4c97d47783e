"""One generic store for all token kinds.

``TokenStore`` owns the operations every kind shares; the two subclasses
only add the lifecycle transitions their marker column allows.
"""
import uuid
from datetime import datetime
from typing import Generic, TypeVar

from sqlalchemy import delete, or_, select, update

from accounts.db.base import utcnow
from accounts.db.store import BaseStore
from accounts.tokens.models import AuthToken, EmailVerification, PasswordReset

T = TypeVar("T", AuthToken, PasswordReset, EmailVerification)


class TokenStore(BaseStore, Generic[T]):
    model: type[T]
    marker: str

    def __init__(self, model: type[T], marker: str, session_factory, session=None) -> None:
        super().__init__(session_factory, session)
        self.model = model
        self.marker = marker

    @property
    def _marker_column(self):
        return getattr(self.model, self.marker)

    async def create(self, user_id: uuid.UUID, token_hash: str, expires_at: datetime) -> T:
        token = self.model(user_id=user_id, token_hash=token_hash, expires_at=expires_at)
        async with self._use() as session:
            session.add(token)
            await session.flush()
        return token

    async def get_by_hash(self, token_hash: str) -> T | None:
        async with self._use() as session:
            result = await session.execute(
                select(self.model).where(self.model.token_hash == token_hash)
            )
            return result.scalar_one_or_none()

    async def _stamp(self, *criteria) -> int:
        async with self._use() as session:
            result = await session.execute(
                update(self.model).where(*criteria).values({self.marker: utcnow()})
            )
            return result.rowcount

    async def _stamp_all_for_user(self, user_id: uuid.UUID) -> int:
        return await self._stamp(
            self.model.user_id == user_id, self._marker_column.is_(None)
        )

    async def purge_expired_or_consumed(self) -> int:
        """Delete every token that can no longer be used. Returns the count."""
        async with self._use() as session:
            result = await session.execute(
                delete(self.model).where(
                    or_(self.model.expires_at < utcnow(), self._marker_column.is_not(None))
                )
            )
            return result.rowcount


class AuthTokenStore(TokenStore[AuthToken]):
    def __init__(self, session_factory, session=None) -> None:
        super().__init__(AuthToken, "revoked_at", session_factory, session)

    async def revoke(self, token_id: uuid.UUID) -> None:
        await self._stamp(AuthToken.id == token_id)

    async def revoke_by_hash(self, token_hash: str) -> None:
        # Already revoked tokens keep their original timestamp.
        await self._stamp(AuthToken.token_hash == token_hash, AuthToken.revoked_at.is_(None))

    async def revoke_all_for_user(self, user_id: uuid.UUID) -> int:
        return await self._stamp_all_for_user(user_id)


class SingleUseTokenStore(TokenStore[T]):
    """Password-reset and email-verification tokens."""

    def __init__(self, model: type[T], session_factory, session=None) -> None:
        super().__init__(model, "used_at", session_factory, session)

    async def mark_used(self, token_id: uuid.UUID) -> int:
        """Consume the token if it is still unused and unexpired.

        Returns 0 when another call got there first; the caller must treat
        that as already used and abandon its transaction.
        """
        return await self._stamp(
            self.model.id == token_id,
            self.model.used_at.is_(None),
            self.model.expires_at > utcnow(),
        )

    async def invalidate_all_for_user(self, user_id: uuid.UUID) -> int:
        """Mark every outstanding token of this kind for the user as used."""
        return await self._stamp_all_for_user(user_id)
