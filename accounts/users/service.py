import logging
import uuid

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from accounts.config import Settings, settings
from accounts.core.context import CallContext
from accounts.core.exceptions import (
    DeletionAlreadyScheduledError,
    EmailAlreadyExistsError,
    UserNotFoundError,
)
from accounts.core.logging import trace_logger
from accounts.core.security import hash_password
from accounts.db.base import utcnow
from accounts.db.transaction import TransactionManager
from accounts.sessions.service import Session, SessionService
from accounts.tokens.store import AuthTokenStore
from accounts.users.models import User
from accounts.users.store import UserStore
from accounts.workflows.dispatcher import TaskDispatcher
from accounts.workflows.envelope import TASK_EMAIL
from accounts.workflows.send_email import EmailPayload

logger = logging.getLogger(__name__)


class UserService:
    def __init__(
        self,
        users: UserStore,
        auth_tokens: AuthTokenStore,
        sessions: SessionService,
        tx: TransactionManager,
        dispatcher: TaskDispatcher,
        config: Settings = settings,
    ) -> None:
        self._users = users
        self._auth_tokens = auth_tokens
        self._sessions = sessions
        self._tx = tx
        self._dispatcher = dispatcher
        self._config = config

    async def register(self, ctx: CallContext, name: str, email: str, password: str) -> Session:
        """Create the account and its first session token in one transaction."""
        password_hash = hash_password(password, cost=self._config.bcrypt_cost)

        async def _create(session: AsyncSession) -> Session:
            users = self._users.with_session(session)
            if await users.email_exists(email):
                raise EmailAlreadyExistsError()
            user = await users.create(name, email, password_hash)
            token = await self._sessions.create_for_user(ctx, user.id, session=session)
            return Session(user=user, token=token)

        try:
            registered = await self._tx.run_in_transaction(ctx, _create)
        except IntegrityError as exc:
            # Lost a race with a concurrent registration of the same email.
            raise EmailAlreadyExistsError() from exc

        user = registered.user
        trace_logger(logger, ctx.with_user(user.id).log_fields()).info("user registered")
        await self._dispatcher.dispatch(
            ctx.with_user(user.id),
            TASK_EMAIL,
            EmailPayload(
                to=user.email,
                subject="Welcome",
                template="welcome",
                data={"name": user.name},
            ),
        )
        return registered

    async def get_by_id(self, ctx: CallContext, user_id: uuid.UUID) -> User:
        async with ctx.time_limit():
            user = await self._users.get_by_id(user_id)
        if user is None:
            raise UserNotFoundError()
        return user

    async def get_by_email(self, ctx: CallContext, email: str) -> User:
        async with ctx.time_limit():
            user = await self._users.get_by_email(email)
        if user is None:
            raise UserNotFoundError()
        return user

    async def schedule_deletion(self, ctx: CallContext, user_id: uuid.UUID) -> User:
        """Log the user out everywhere and delete the account after the grace period.

        Logging in again before the deadline cancels the deletion.
        """
        delay = self._config.account_deletion_delay
        scheduled_at = utcnow() + delay

        async def _schedule(session: AsyncSession) -> User:
            users = self._users.with_session(session)
            # Locks the row on PostgreSQL; the guarded update covers backends without FOR UPDATE.
            user = await users.get_by_id(user_id, for_update=True)
            if user is None:
                raise UserNotFoundError()
            if user.deletion_scheduled_at is not None or not await users.schedule_deletion(user_id, scheduled_at):
                raise DeletionAlreadyScheduledError()
            await self._auth_tokens.with_session(session).revoke_all_for_user(user_id)
            user.deletion_scheduled_at = scheduled_at
            return user

        user = await self._tx.run_in_transaction(ctx, _schedule)
        trace_logger(logger, ctx.with_user(user_id).log_fields()).info(
            "account deletion scheduled for %s", scheduled_at.isoformat()
        )

        await self._dispatcher.dispatch(
            ctx.with_user(user_id),
            TASK_EMAIL,
            EmailPayload(
                to=user.email,
                subject="Your account will be deleted",
                template="account-deletion-scheduled",
                data={
                    "name": user.name,
                    "scheduled_at": scheduled_at.date().isoformat(),
                    "days_left": delay.days,
                },
            ),
        )
        return user
