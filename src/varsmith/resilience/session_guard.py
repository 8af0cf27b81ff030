"""Single-writer guard for refinement sessions.

At most one refinement pipeline may be in flight per session. A second
submission for the same session is either rejected with
``SessionBusyError`` or queued behind the first, depending on policy.
Different sessions never block each other.

Single-process only, like the rest of the in-memory session state.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from varsmith.constants import BusyPolicy
from varsmith.resilience.errors import SessionBusyError

T = TypeVar("T")


class SessionGuard:
    """Serializes async operations per session id.

    Usage::

        guard = SessionGuard(BusyPolicy.REJECT)
        result = await guard.run("session-1", my_async_fn)
    """

    def __init__(self, policy: BusyPolicy = BusyPolicy.REJECT) -> None:
        self._policy = policy
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiting: dict[str, int] = {}

    async def run(
        self,
        session_id: str,
        operation: Callable[[], Awaitable[T]],
    ) -> T:
        """Run operation as the only writer of session_id.

        The busy check and lock acquisition happen without an await in
        between, so two callers can never both observe a free session.
        """
        lock = self._locks.setdefault(session_id, asyncio.Lock())
        if lock.locked() and self._policy is BusyPolicy.REJECT:
            raise SessionBusyError(session_id)

        self._waiting[session_id] = self._waiting.get(session_id, 0) + 1
        try:
            async with lock:
                return await operation()
        finally:
            self._waiting[session_id] -= 1
            if self._waiting[session_id] == 0:
                del self._waiting[session_id]
                if not lock.locked():
                    self._locks.pop(session_id, None)

    def is_busy(self, session_id: str) -> bool:
        lock = self._locks.get(session_id)
        return lock is not None and lock.locked()

    @property
    def active_sessions(self) -> list[str]:
        """Return session ids with a pipeline currently in flight."""
        return [sid for sid, lock in self._locks.items() if lock.locked()]
