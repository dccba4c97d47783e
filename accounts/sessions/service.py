"""Session tokens: login, logout and validation.

A token is ``active`` until it is revoked (logout, password reset, account
deletion) or it expires. Any number of active tokens per user is allowed,
one per device.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from accounts.config import Settings, settings
from accounts.core.context import CallContext
from accounts.core.exceptions import (
    InvalidCredentialsError,
    InvalidTokenError,
    TokenExpiredError,
    TokenRevokedError,
)
from accounts.core.logging import trace_logger
from accounts.core.security import burn_password_check, generate_token, hash_token, verify_password
from accounts.db.base import utcnow
from accounts.db.transaction import TransactionManager
from accounts.tokens.models import AuthToken
from accounts.tokens.store import AuthTokenStore
from accounts.users.models import User
from accounts.users.store import UserStore

logger = logging.getLogger(__name__)

# Applied when no auth token TTL is configured.
DEFAULT_AUTH_TOKEN_TTL = timedelta(days=365)


@dataclass(frozen=True)
class Session:
    user: User
    token: str


class SessionService:
    def __init__(
        self,
        users: UserStore,
        auth_tokens: AuthTokenStore,
        tx: TransactionManager,
        config: Settings = settings,
    ) -> None:
        self._users = users
        self._auth_tokens = auth_tokens
        self._tx = tx
        self._config = config

    async def login(self, ctx: CallContext, email: str, password: str) -> Session:
        """Unknown email and wrong password fail identically."""
        async with ctx.time_limit():
            user = await self._users.get_by_email(email)
            if user is None:
                burn_password_check(password, self._config.bcrypt_cost)
                raise InvalidCredentialsError()
            if not verify_password(password, user.password_hash):
                raise InvalidCredentialsError()
            if user.deletion_scheduled_at is not None and user.deletion_scheduled_at <= utcnow():
                # Past the grace period the account only awaits the purge.
                raise InvalidCredentialsError()

        cancel_deletion = user.deletion_scheduled_at is not None

        async def _start(session: AsyncSession) -> str:
            if cancel_deletion:
                await self._users.with_session(session).cancel_deletion(user.id)
            return await self._issue(user.id, session)

        token = await self._tx.run_in_transaction(ctx, _start)
        if cancel_deletion:
            user.deletion_scheduled_at = None
            trace_logger(logger, ctx.with_user(user.id).log_fields()).info(
                "scheduled deletion cancelled by login"
            )
        return Session(user=user, token=token)

    async def create_for_user(
        self, ctx: CallContext, user_id: uuid.UUID, session: AsyncSession | None = None
    ) -> str:
        """Issue a token without a password check, e.g. right after registration.

        Pass ``session`` to issue it inside the caller's transaction.
        """
        async with ctx.time_limit():
            return await self._issue(user_id, session)

    async def logout(self, ctx: CallContext, token: str) -> None:
        async with ctx.time_limit():
            await self._auth_tokens.revoke_by_hash(hash_token(token))

    async def validate(self, ctx: CallContext, token: str) -> AuthToken:
        async with ctx.time_limit():
            auth_token = await self._auth_tokens.get_by_hash(hash_token(token))
        if auth_token is None:
            raise InvalidTokenError()
        if auth_token.revoked_at is not None:
            raise TokenRevokedError()
        if auth_token.is_expired(utcnow()):
            raise TokenExpiredError()
        return auth_token

    async def _issue(self, user_id: uuid.UUID, session: AsyncSession | None = None) -> str:
        auth_tokens = self._auth_tokens.with_session(session) if session is not None else self._auth_tokens
        token = generate_token(self._config.token_bytes)
        ttl = self._config.auth_token_ttl or DEFAULT_AUTH_TOKEN_TTL
        await auth_tokens.create(user_id, hash_token(token), utcnow() + ttl)
        return token
