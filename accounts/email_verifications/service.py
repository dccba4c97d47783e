import logging
import uuid
from urllib.parse import quote

from sqlalchemy.ext.asyncio import AsyncSession

from accounts.config import Settings, settings
from accounts.core.context import CallContext
from accounts.core.exceptions import (
    EmailAlreadyVerifiedError,
    InvalidVerificationTokenError,
    TokenAlreadyUsedError,
    TokenExpiredError,
    UserNotFoundError,
)
from accounts.core.logging import trace_logger
from accounts.core.security import generate_token, hash_token
from accounts.db.base import utcnow
from accounts.db.transaction import TransactionManager
from accounts.tokens.models import EmailVerification
from accounts.tokens.store import SingleUseTokenStore
from accounts.users.store import UserStore
from accounts.workflows.dispatcher import TaskDispatcher
from accounts.workflows.envelope import TASK_EMAIL
from accounts.workflows.send_email import EmailPayload

logger = logging.getLogger(__name__)


class EmailVerificationService:
    def __init__(
        self,
        users: UserStore,
        email_verifications: SingleUseTokenStore[EmailVerification],
        tx: TransactionManager,
        dispatcher: TaskDispatcher,
        config: Settings = settings,
    ) -> None:
        self._users = users
        self._email_verifications = email_verifications
        self._tx = tx
        self._dispatcher = dispatcher
        self._config = config

    async def send(self, ctx: CallContext, user_id: uuid.UUID) -> None:
        """Issue a fresh verification link. Safe to call repeatedly: older links stop working."""
        token = generate_token(self._config.token_bytes)
        expires_at = utcnow() + self._config.email_verification_token_ttl

        async def _issue(session: AsyncSession):
            user = await self._users.with_session(session).get_by_id(user_id)
            if user is None:
                raise UserNotFoundError()
            if user.email_verified_at is not None:
                raise EmailAlreadyVerifiedError()
            verifications = self._email_verifications.with_session(session)
            await verifications.invalidate_all_for_user(user_id)
            await verifications.create(user_id, hash_token(token), expires_at)
            return user

        user = await self._tx.run_in_transaction(ctx, _issue)

        verification_link = f"{self._config.app_base_url}/verify-email?token={quote(token)}"
        await self._dispatcher.dispatch(
            ctx.with_user(user.id),
            TASK_EMAIL,
            EmailPayload(
                to=user.email,
                subject="Confirm your email",
                template="email-verification",
                data={"name": user.name, "verification_link": verification_link},
            ),
        )

    async def verify(self, ctx: CallContext, token: str) -> None:
        async with ctx.time_limit():
            verification = await self._email_verifications.get_by_hash(hash_token(token))
        if verification is None:
            raise InvalidVerificationTokenError()
        if verification.used_at is not None:
            raise TokenAlreadyUsedError()
        if verification.is_expired(utcnow()):
            raise TokenExpiredError()

        async def _apply(session: AsyncSession) -> None:
            verifications = self._email_verifications.with_session(session)
            if not await verifications.mark_used(verification.id):
                raise TokenAlreadyUsedError()
            await verifications.invalidate_all_for_user(verification.user_id)
            await self._users.with_session(session).mark_email_verified(verification.user_id)

        await self._tx.run_in_transaction(ctx, _apply)
        trace_logger(logger, ctx.with_user(verification.user_id).log_fields()).info("email verified")

    async def resend(self, ctx: CallContext, email: str) -> None:
        """Like ``send`` but keyed by email; unknown or verified addresses succeed silently."""
        async with ctx.time_limit():
            user = await self._users.get_by_email(email)
        if user is None or user.email_verified_at is not None:
            return
        try:
            await self.send(ctx, user.id)
        except (EmailAlreadyVerifiedError, UserNotFoundError):
            # Verified or deleted between the lookup and the send.
            return
