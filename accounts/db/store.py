import copy
from contextlib import asynccontextmanager
from typing import AsyncIterator, Self

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker


class BaseStore:
    """Persistence handle usable standalone or inside a caller's transaction.

    Unbound, every call runs in its own short transaction from the factory.
    ``with_session`` returns a copy that joins an open transaction instead;
    the owner of that transaction decides whether it commits.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        session: AsyncSession | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._session = session

    def with_session(self, session: AsyncSession) -> Self:
        bound = copy.copy(self)
        bound._session = session
        return bound

    @property
    def is_bound(self) -> bool:
        return self._session is not None

    @asynccontextmanager
    async def _use(self) -> AsyncIterator[AsyncSession]:
        if self._session is not None:
            yield self._session
            return
        async with self._session_factory() as session:
            async with session.begin():
                yield session
