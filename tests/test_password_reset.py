"""Tests for the password reset flow."""
import asyncio
from datetime import timedelta

import pytest

from accounts.container import build_services
from accounts.core.exceptions import (
    InvalidCredentialsError,
    InvalidResetTokenError,
    TokenAlreadyUsedError,
    TokenExpiredError,
    TokenRevokedError,
)
from accounts.core.security import generate_token, hash_token
from accounts.db.base import utcnow
from accounts.tokens.store import AuthTokenStore

from conftest import FakeTemporalClient, token_from_link


async def _request_reset_token(services, temporal, ctx, email="alice@example.com") -> str:
    await services.password_resets.request_reset(ctx, email)
    link = temporal.emails("password-reset")[-1]["data"]["reset_link"]
    return token_from_link(link)


@pytest.mark.asyncio
async def test_request_sends_link_for_known_email(services, temporal, ctx, alice):
    """The email carries a 64-char token inside the reset link."""
    await services.password_resets.request_reset(ctx, "alice@example.com")

    [email] = temporal.emails("password-reset")
    assert email["to"] == "alice@example.com"
    assert email["data"]["name"] == "Alice"
    assert email["data"]["reset_link"].startswith("https://accounts.test/reset-password?token=")
    assert len(token_from_link(email["data"]["reset_link"])) == 64


@pytest.mark.asyncio
async def test_request_job_carries_user_id(services, temporal, ctx, alice):
    await services.password_resets.request_reset(ctx, "alice@example.com")

    metadata = temporal.started[-1]["envelope"].metadata
    assert metadata.user_id == str(alice.user.id)
    assert metadata.request_id == "req-123"


@pytest.mark.asyncio
async def test_request_for_unknown_email_is_silent(services, temporal, ctx, alice):
    """No error and no email, so callers cannot probe for accounts."""
    await services.password_resets.request_reset(ctx, "nobody@example.com")
    assert temporal.emails("password-reset") == []


@pytest.mark.asyncio
async def test_only_the_hash_is_stored(services, stores, temporal, ctx, alice):
    token = await _request_reset_token(services, temporal, ctx)
    assert await stores.password_resets.get_by_hash(token) is None
    reset = await stores.password_resets.get_by_hash(hash_token(token))
    assert reset.user_id == alice.user.id


@pytest.mark.asyncio
async def test_dispatch_failure_does_not_fail_request(session_factory, test_settings, reporter, ctx):
    """A broker outage is reported, not raised."""
    broken = build_services(session_factory, FakeTemporalClient(fail=True), config=test_settings, reporter=reporter)
    await broken.users.register(ctx, "Bob", "bob@example.com", "secret123")

    await broken.password_resets.request_reset(ctx, "bob@example.com")

    task_types = [extras["task_type"] for _, extras in reporter.calls]
    assert task_types == ["email.send", "email.send"]


@pytest.mark.asyncio
async def test_reset_changes_password_and_revokes_sessions(services, temporal, ctx, alice):
    token = await _request_reset_token(services, temporal, ctx)

    await services.password_resets.execute_reset(ctx, token, "new-secret")

    with pytest.raises(InvalidCredentialsError):
        await services.sessions.login(ctx, "alice@example.com", "secret123")
    await services.sessions.login(ctx, "alice@example.com", "new-secret")
    with pytest.raises(TokenRevokedError):
        await services.sessions.validate(ctx, alice.token)


@pytest.mark.asyncio
async def test_reset_token_is_single_use(services, temporal, ctx, alice):
    token = await _request_reset_token(services, temporal, ctx)
    await services.password_resets.execute_reset(ctx, token, "new-secret")

    with pytest.raises(TokenAlreadyUsedError):
        await services.password_resets.execute_reset(ctx, token, "another-secret")


@pytest.mark.asyncio
async def test_concurrent_resets_consume_the_token_once(services, temporal, ctx, alice):
    """Two simultaneous resets with one token: exactly one wins."""
    token = await _request_reset_token(services, temporal, ctx)

    results = await asyncio.gather(
        services.password_resets.execute_reset(ctx, token, "first-pass"),
        services.password_resets.execute_reset(ctx, token, "second-pass"),
        return_exceptions=True,
    )

    assert results.count(None) == 1
    [error] = [r for r in results if r is not None]
    assert isinstance(error, TokenAlreadyUsedError)

    winner = "first-pass" if results[0] is None else "second-pass"
    loser = "second-pass" if winner == "first-pass" else "first-pass"
    await services.sessions.login(ctx, "alice@example.com", winner)
    with pytest.raises(InvalidCredentialsError):
        await services.sessions.login(ctx, "alice@example.com", loser)


@pytest.mark.asyncio
async def test_sibling_reset_tokens_are_invalidated(services, temporal, ctx, alice):
    """Using one reset link kills every other outstanding link."""
    first = await _request_reset_token(services, temporal, ctx)
    second = await _request_reset_token(services, temporal, ctx)

    await services.password_resets.execute_reset(ctx, second, "new-secret")

    with pytest.raises(TokenAlreadyUsedError):
        await services.password_resets.execute_reset(ctx, first, "another-secret")


@pytest.mark.asyncio
async def test_unknown_reset_token(services, ctx, alice):
    with pytest.raises(InvalidResetTokenError):
        await services.password_resets.execute_reset(ctx, generate_token(), "new-secret")


@pytest.mark.asyncio
async def test_expired_reset_token(services, stores, ctx, alice):
    token = generate_token()
    await stores.password_resets.create(alice.user.id, hash_token(token), utcnow() - timedelta(seconds=1))
    with pytest.raises(TokenExpiredError):
        await services.password_resets.execute_reset(ctx, token, "new-secret")


@pytest.mark.asyncio
async def test_failure_midway_rolls_everything_back(services, stores, temporal, ctx, alice, monkeypatch):
    """Password, token and sessions all stay as they were."""
    token = await _request_reset_token(services, temporal, ctx)

    async def _boom(self, user_id):
        raise RuntimeError("database went away")

    with monkeypatch.context() as patch:
        patch.setattr(AuthTokenStore, "revoke_all_for_user", _boom)
        with pytest.raises(RuntimeError):
            await services.password_resets.execute_reset(ctx, token, "new-secret")

    await services.sessions.login(ctx, "alice@example.com", "secret123")
    reset = await stores.password_resets.get_by_hash(hash_token(token))
    assert reset.used_at is None
    await services.sessions.validate(ctx, alice.token)

    await services.password_resets.execute_reset(ctx, token, "new-secret")
