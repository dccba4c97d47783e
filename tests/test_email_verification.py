"""Tests for sending, verifying and resending email verification links."""
import asyncio
import uuid
from datetime import timedelta

import pytest

from accounts.core.exceptions import (
    EmailAlreadyVerifiedError,
    InvalidVerificationTokenError,
    TokenAlreadyUsedError,
    TokenExpiredError,
    UserNotFoundError,
)
from accounts.core.security import generate_token, hash_token
from accounts.db.base import utcnow

from conftest import token_from_link


def _latest_token(temporal) -> str:
    return token_from_link(temporal.emails("email-verification")[-1]["data"]["verification_link"])


@pytest.mark.asyncio
async def test_registration_does_not_send_verification(temporal, alice):
    assert temporal.emails("email-verification") == []


@pytest.mark.asyncio
async def test_send_dispatches_link(services, temporal, ctx, alice):
    """The link points at the app and the job is tagged with the user."""
    await services.email_verifications.send(ctx, alice.user.id)

    [email] = temporal.emails("email-verification")
    assert email["to"] == "alice@example.com"
    assert email["data"]["verification_link"].startswith("https://accounts.test/verify-email?token=")
    assert temporal.started[-1]["envelope"].metadata.user_id == str(alice.user.id)


@pytest.mark.asyncio
async def test_send_supersedes_previous_link(services, temporal, ctx, alice):
    """Only the newest link works."""
    await services.email_verifications.send(ctx, alice.user.id)
    first = _latest_token(temporal)
    await services.email_verifications.send(ctx, alice.user.id)
    second = _latest_token(temporal)

    with pytest.raises(TokenAlreadyUsedError):
        await services.email_verifications.verify(ctx, first)
    await services.email_verifications.verify(ctx, second)


@pytest.mark.asyncio
async def test_send_to_unknown_user(services, ctx):
    with pytest.raises(UserNotFoundError):
        await services.email_verifications.send(ctx, uuid.uuid4())


@pytest.mark.asyncio
async def test_send_when_already_verified(services, temporal, ctx, alice):
    await services.email_verifications.send(ctx, alice.user.id)
    await services.email_verifications.verify(ctx, _latest_token(temporal))

    with pytest.raises(EmailAlreadyVerifiedError):
        await services.email_verifications.send(ctx, alice.user.id)


@pytest.mark.asyncio
async def test_verify_marks_user_verified(services, stores, temporal, ctx, alice):
    """Verification sticks and the token cannot be replayed."""
    await services.email_verifications.send(ctx, alice.user.id)
    token = _latest_token(temporal)

    await services.email_verifications.verify(ctx, token)

    user = await stores.users.get_by_id(alice.user.id)
    assert user.email_verified
    with pytest.raises(TokenAlreadyUsedError):
        await services.email_verifications.verify(ctx, token)


@pytest.mark.asyncio
async def test_concurrent_verifications_consume_the_token_once(services, stores, temporal, ctx, alice):
    """Two simultaneous verifies with one token: exactly one wins."""
    await services.email_verifications.send(ctx, alice.user.id)
    token = _latest_token(temporal)

    results = await asyncio.gather(
        services.email_verifications.verify(ctx, token),
        services.email_verifications.verify(ctx, token),
        return_exceptions=True,
    )

    assert results.count(None) == 1
    [error] = [r for r in results if r is not None]
    assert isinstance(error, TokenAlreadyUsedError)
    assert (await stores.users.get_by_id(alice.user.id)).email_verified


@pytest.mark.asyncio
async def test_unknown_verification_token(services, ctx, alice):
    with pytest.raises(InvalidVerificationTokenError):
        await services.email_verifications.verify(ctx, generate_token())


@pytest.mark.asyncio
async def test_expired_verification_token(services, stores, ctx, alice):
    """An expired link fails and leaves the user unverified."""
    token = generate_token()
    await stores.email_verifications.create(alice.user.id, hash_token(token), utcnow() - timedelta(minutes=1))

    with pytest.raises(TokenExpiredError):
        await services.email_verifications.verify(ctx, token)
    user = await stores.users.get_by_id(alice.user.id)
    assert not user.email_verified


@pytest.mark.asyncio
async def test_resend_for_unverified_user(services, temporal, ctx, alice):
    await services.email_verifications.resend(ctx, "alice@example.com")
    assert len(temporal.emails("email-verification")) == 1


@pytest.mark.asyncio
async def test_resend_unknown_email_is_silent(services, temporal, ctx):
    await services.email_verifications.resend(ctx, "nobody@example.com")
    assert temporal.emails("email-verification") == []


@pytest.mark.asyncio
async def test_resend_verified_user_is_silent(services, temporal, ctx, alice):
    await services.email_verifications.send(ctx, alice.user.id)
    await services.email_verifications.verify(ctx, _latest_token(temporal))

    await services.email_verifications.resend(ctx, "alice@example.com")
    assert len(temporal.emails("email-verification")) == 1
