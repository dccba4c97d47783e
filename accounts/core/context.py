import asyncio
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, replace
from typing import AsyncIterator


@dataclass(frozen=True)
class CallContext:
    """Per-call trace identifiers and deadline, passed explicitly to services.

    ``deadline`` is an absolute ``time.monotonic()`` value.
    """

    request_id: str | None = None
    user_id: str | None = None
    deadline: float | None = None

    def with_timeout(self, seconds: float) -> "CallContext":
        deadline = time.monotonic() + seconds
        if self.deadline is not None:
            deadline = min(deadline, self.deadline)
        return replace(self, deadline=deadline)

    def with_user(self, user_id: object) -> "CallContext":
        return replace(self, user_id=str(user_id))

    def remaining(self) -> float | None:
        if self.deadline is None:
            return None
        return max(self.deadline - time.monotonic(), 0.0)

    @asynccontextmanager
    async def time_limit(self) -> AsyncIterator[None]:
        """Raise ``TimeoutError`` if the block outlives the deadline."""
        remaining = self.remaining()
        if remaining is not None and remaining <= 0:
            raise TimeoutError("call deadline exceeded")
        async with asyncio.timeout(remaining):
            yield

    def log_fields(self) -> dict[str, str]:
        fields = {}
        if self.request_id:
            fields["request_id"] = self.request_id
        if self.user_id:
            fields["user_id"] = self.user_id
        return fields


BACKGROUND = CallContext()
