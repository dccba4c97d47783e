"""Run one cleanup pass outside the worker. Run with: python -m scripts.run_cleanup"""
import asyncio

from accounts.config import settings
from accounts.container import build_stores
from accounts.core.logging import configure_logging
from accounts.db.session import async_session_factory, engine
from accounts.workflows.cleanup import run_cleanup


async def main() -> None:
    configure_logging(settings.log_level)
    stores = build_stores(async_session_factory)
    try:
        result = await run_cleanup(stores.for_cleanup())
    finally:
        await engine.dispose()
    print(
        f"Cleanup complete: {result.auth_tokens_deleted} auth tokens, "
        f"{result.password_resets_deleted} password resets, "
        f"{result.email_verifications_deleted} email verifications, "
        f"{result.users_deleted} users."
    )


if __name__ == "__main__":
    asyncio.run(main())
