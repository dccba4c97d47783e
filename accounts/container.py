"""Builds the store and service graph for a process (API or worker)."""
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from accounts.config import Settings, settings
from accounts.core.reporting import capture_error
from accounts.db.transaction import TransactionManager
from accounts.email_verifications.service import EmailVerificationService
from accounts.password_resets.service import PasswordResetService
from accounts.sessions.service import SessionService
from accounts.tokens.models import EmailVerification, PasswordReset
from accounts.tokens.store import AuthTokenStore, SingleUseTokenStore
from accounts.users.service import UserService
from accounts.users.store import UserStore
from accounts.workflows.cleanup import CleanupStores
from accounts.workflows.dispatcher import TaskDispatcher, WorkflowStarter


@dataclass
class Stores:
    users: UserStore
    auth_tokens: AuthTokenStore
    password_resets: SingleUseTokenStore[PasswordReset]
    email_verifications: SingleUseTokenStore[EmailVerification]

    def for_cleanup(self) -> CleanupStores:
        return CleanupStores(
            auth_tokens=self.auth_tokens,
            password_resets=self.password_resets,
            email_verifications=self.email_verifications,
            users=self.users,
        )


@dataclass
class Services:
    stores: Stores
    tx: TransactionManager
    dispatcher: TaskDispatcher
    sessions: SessionService
    users: UserService
    password_resets: PasswordResetService
    email_verifications: EmailVerificationService


def build_stores(session_factory: async_sessionmaker[AsyncSession]) -> Stores:
    return Stores(
        users=UserStore(session_factory),
        auth_tokens=AuthTokenStore(session_factory),
        password_resets=SingleUseTokenStore(PasswordReset, session_factory),
        email_verifications=SingleUseTokenStore(EmailVerification, session_factory),
    )


def build_services(
    session_factory: async_sessionmaker[AsyncSession],
    client: WorkflowStarter,
    config: Settings = settings,
    reporter=capture_error,
) -> Services:
    stores = build_stores(session_factory)
    tx = TransactionManager(session_factory, reporter=reporter)
    dispatcher = TaskDispatcher(client, config=config, reporter=reporter)
    sessions = SessionService(stores.users, stores.auth_tokens, tx, config=config)
    return Services(
        stores=stores,
        tx=tx,
        dispatcher=dispatcher,
        sessions=sessions,
        users=UserService(stores.users, stores.auth_tokens, sessions, tx, dispatcher, config=config),
        password_resets=PasswordResetService(
            stores.users, stores.password_resets, stores.auth_tokens, tx, dispatcher, config=config
        ),
        email_verifications=EmailVerificationService(
            stores.users, stores.email_verifications, tx, dispatcher, config=config
        ),
    )


async def connect_temporal(config: Settings = settings):
    from temporalio.client import Client

    return await Client.connect(config.temporal_host, namespace=config.temporal_namespace)
