"""The three token kinds share one shape; only the lifecycle marker differs.

Sessions end with ``revoked_at``; reset and verification tokens are single
use and end with ``used_at``. The raw secret is never stored, only
``token_hash``.
"""
import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from accounts.db.base import Base, TimestampMixin, UTCDateTime, UUIDMixin


class TokenMixin:
    token_hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)

    @declared_attr
    def user_id(cls) -> Mapped[uuid.UUID]:
        return mapped_column(
            Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
        )

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


class AuthToken(UUIDMixin, TokenMixin, TimestampMixin, Base):
    __tablename__ = "auth_tokens"

    revoked_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)


class PasswordReset(UUIDMixin, TokenMixin, TimestampMixin, Base):
    __tablename__ = "password_resets"

    used_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)


class EmailVerification(UUIDMixin, TokenMixin, TimestampMixin, Base):
    __tablename__ = "email_verifications"

    used_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
