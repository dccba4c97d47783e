"""
Test fixtures using a throwaway SQLite file database (aiosqlite).
No PostgreSQL or Temporal server required.
"""
from typing import Any
from urllib.parse import parse_qs, urlparse

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from accounts.config import Settings
from accounts.container import build_services
from accounts.core.context import CallContext
from accounts.db.base import Base
from accounts.tokens.models import AuthToken, EmailVerification, PasswordReset  # noqa: F401
from accounts.users.models import User  # noqa: F401


class FakeTemporalClient:
    """Records ``start_workflow`` calls instead of talking to Temporal."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.started: list[dict[str, Any]] = []

    async def start_workflow(self, workflow: Any, arg: Any, **kwargs: Any) -> None:
        if self.fail:
            raise RuntimeError("temporal unavailable")
        self.started.append({"workflow": workflow, "envelope": arg, **kwargs})

    def emails(self, template: str | None = None) -> list[dict[str, Any]]:
        payloads = [s["envelope"].payload for s in self.started]
        if template is not None:
            payloads = [p for p in payloads if p["template"] == template]
        return payloads


class RecordingReporter:
    def __init__(self) -> None:
        self.calls: list[tuple[BaseException, dict[str, Any]]] = []

    def __call__(self, exc: BaseException, extras: dict[str, Any] | None = None) -> None:
        self.calls.append((exc, dict(extras or {})))


def token_from_link(link: str) -> str:
    return parse_qs(urlparse(link).query)["token"][0]


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        bcrypt_cost=4,
        app_base_url="https://accounts.test",
        email_provider="console",
        temporal_task_queue="accounts-test",
    )


@pytest.fixture
def ctx() -> CallContext:
    return CallContext(request_id="req-123")


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    """Fresh SQLite database per test, with foreign keys enforced."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'accounts.db'}", echo=False)

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, _record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def temporal() -> FakeTemporalClient:
    return FakeTemporalClient()


@pytest.fixture
def reporter() -> RecordingReporter:
    return RecordingReporter()


@pytest.fixture
def services(session_factory, temporal, reporter, test_settings):
    return build_services(session_factory, temporal, config=test_settings, reporter=reporter)


@pytest.fixture
def stores(services):
    return services.stores


@pytest_asyncio.fixture
async def alice(services, ctx):
    """Registered user alice@example.com / secret123."""
    registered = await services.users.register(ctx, "Alice", "alice@example.com", "secret123")
    return registered
