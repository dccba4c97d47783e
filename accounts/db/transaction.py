import logging
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from accounts.core.context import CallContext
from accounts.core.reporting import capture_error

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TransactionManager:
    """Runs a unit of work atomically across stores.

    ``fn`` receives the transaction's session and binds whatever stores it
    needs with ``store.with_session(session)``. Success commits; any
    exception, including cancellation, rolls back and is re-raised. A
    failing rollback is reported but never replaces the original error.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], reporter=capture_error) -> None:
        self._session_factory = session_factory
        self._reporter = reporter

    async def run_in_transaction(
        self, ctx: CallContext, fn: Callable[[AsyncSession], Awaitable[T]]
    ) -> T:
        async with ctx.time_limit():
            async with self._session_factory() as session:
                await session.begin()
                try:
                    result = await fn(session)
                except BaseException:
                    await self._rollback(ctx, session)
                    raise
                await session.commit()
                return result

    async def _rollback(self, ctx: CallContext, session: AsyncSession) -> None:
        try:
            await session.rollback()
        except Exception as exc:
            logger.error("transaction rollback failed", extra=ctx.log_fields())
            self._reporter(exc, {"stage": "rollback", **ctx.log_fields()})
