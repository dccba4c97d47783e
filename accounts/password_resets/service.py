import logging
from urllib.parse import quote

from sqlalchemy.ext.asyncio import AsyncSession

from accounts.config import Settings, settings
from accounts.core.context import CallContext
from accounts.core.exceptions import (
    InvalidResetTokenError,
    TokenAlreadyUsedError,
    TokenExpiredError,
)
from accounts.core.logging import trace_logger
from accounts.core.security import generate_token, hash_password, hash_token
from accounts.db.base import utcnow
from accounts.db.transaction import TransactionManager
from accounts.tokens.models import PasswordReset
from accounts.tokens.store import AuthTokenStore, SingleUseTokenStore
from accounts.users.store import UserStore
from accounts.workflows.dispatcher import TaskDispatcher
from accounts.workflows.envelope import TASK_EMAIL
from accounts.workflows.send_email import EmailPayload

logger = logging.getLogger(__name__)


class PasswordResetService:
    def __init__(
        self,
        users: UserStore,
        password_resets: SingleUseTokenStore[PasswordReset],
        auth_tokens: AuthTokenStore,
        tx: TransactionManager,
        dispatcher: TaskDispatcher,
        config: Settings = settings,
    ) -> None:
        self._users = users
        self._password_resets = password_resets
        self._auth_tokens = auth_tokens
        self._tx = tx
        self._dispatcher = dispatcher
        self._config = config

    async def request_reset(self, ctx: CallContext, email: str) -> None:
        """Email a reset link if the account exists.

        Returns the same way whether or not the email is registered, so the
        caller cannot learn which accounts exist.
        """
        async with ctx.time_limit():
            user = await self._users.get_by_email(email)
            if user is None:
                return
            token = generate_token(self._config.token_bytes)
            expires_at = utcnow() + self._config.password_reset_token_ttl
            await self._password_resets.create(user.id, hash_token(token), expires_at)

        trace_logger(logger, ctx.with_user(user.id).log_fields()).info("password reset requested")
        reset_link = f"{self._config.app_base_url}/reset-password?token={quote(token)}"
        await self._dispatcher.dispatch(
            ctx.with_user(user.id),
            TASK_EMAIL,
            EmailPayload(
                to=user.email,
                subject="Reset your password",
                template="password-reset",
                data={"name": user.name, "reset_link": reset_link},
            ),
        )

    async def execute_reset(self, ctx: CallContext, token: str, new_password: str) -> None:
        """Set a new password and sign the user out everywhere, atomically."""
        async with ctx.time_limit():
            reset = await self._password_resets.get_by_hash(hash_token(token))
        if reset is None:
            raise InvalidResetTokenError()
        if reset.used_at is not None:
            raise TokenAlreadyUsedError()
        if reset.is_expired(utcnow()):
            raise TokenExpiredError()

        password_hash = hash_password(new_password, cost=self._config.bcrypt_cost)

        async def _apply(session: AsyncSession) -> None:
            resets = self._password_resets.with_session(session)
            if not await resets.mark_used(reset.id):
                raise TokenAlreadyUsedError()
            await resets.invalidate_all_for_user(reset.user_id)
            await self._users.with_session(session).update_password_hash(reset.user_id, password_hash)
            await self._auth_tokens.with_session(session).revoke_all_for_user(reset.user_id)

        await self._tx.run_in_transaction(ctx, _apply)
        trace_logger(logger, ctx.with_user(reset.user_id).log_fields()).info(
            "password reset completed, sessions revoked"
        )
