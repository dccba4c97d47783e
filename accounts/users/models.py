from datetime import datetime

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from accounts.db.base import Base, TimestampMixin, UpdatedAtMixin, UTCDateTime, UUIDMixin


class User(UUIDMixin, TimestampMixin, UpdatedAtMixin, Base):
    __tablename__ = "users"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    # Compared exactly as stored; no case folding.
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    email_verified_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    deletion_scheduled_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime, nullable=True, index=True
    )

    @property
    def email_verified(self) -> bool:
        return self.email_verified_at is not None
