"""
Deadline propagation for accessor calls.

Search depth is data dependent, so every RPC issued on behalf of one search
shares a single time budget. Each call is bounded by the remaining budget and
an exhausted budget fails before the call is issued.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

T = TypeVar("T")


class Deadline:
    """Remaining time budget for one search, measured on the event loop clock."""

    def __init__(self, timeout: float | None = None) -> None:
        self.timeout = timeout
        self._expires_at: float | None = None
        if timeout is not None:
            if timeout <= 0:
                raise ValueError(f"Timeout must be positive, got {timeout}")
            self._expires_at = asyncio.get_running_loop().time() + timeout

    @classmethod
    def coerce(cls, deadline: "Deadline | float | None") -> "Deadline":
        """Accept an existing deadline, a timeout in seconds, or None (unbounded)."""
        if isinstance(deadline, Deadline):
            return deadline
        return cls(deadline)

    def remaining(self) -> float | None:
        if self._expires_at is None:
            return None
        return self._expires_at - asyncio.get_running_loop().time()

    @property
    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    async def call(self, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Invoke an async accessor method within the remaining budget."""
        remaining = self.remaining()
        if remaining is None:
            return await fn(*args, **kwargs)
        if remaining <= 0:
            raise asyncio.TimeoutError(f"Search deadline of {self.timeout}s exceeded")
        return await asyncio.wait_for(fn(*args, **kwargs), timeout=remaining)
