"""Cooperative cancellation token owned by each job.

The pipeline checks the token at stage boundaries and around timed waits.
Outbound calls are wrapped with `guard()` so that `cancel()` aborts them
immediately, independent of the cooperative checks.
"""

import asyncio
import threading
from typing import Awaitable, Set, TypeVar

from seatwatch.errors import CancellationError

T = TypeVar("T")


class CancelToken:
    def __init__(self):
        self._cancelled = False
        self._lock = threading.Lock()
        self._inflight: Set[asyncio.Task] = set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Set the flag and abort every guarded call. Idempotent."""
        with self._lock:
            self._cancelled = True
            inflight = list(self._inflight)
        for task in inflight:
            # cancel() may be called from a thread other than the task's loop
            task.get_loop().call_soon_threadsafe(task.cancel)

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise CancellationError()

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Run an outbound call so that cancel() can abort it mid-flight."""
        task = asyncio.ensure_future(awaitable)
        with self._lock:
            if self._cancelled:
                task.cancel()
            else:
                self._inflight.add(task)
        try:
            return await task
        except asyncio.CancelledError:
            if self._cancelled:
                raise CancellationError() from None
            raise
        finally:
            with self._lock:
                self._inflight.discard(task)

    async def sleep(self, seconds: float) -> None:
        """Timed wait that is checked before and after, and aborted by cancel()."""
        self.raise_if_cancelled()
        if seconds > 0:
            await self.guard(asyncio.sleep(seconds))
        self.raise_if_cancelled()
