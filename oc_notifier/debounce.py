"""Keyed debounce timers.

Each key has at most one pending timer. A timer runs its callback once the
delay elapses unless it is canceled first. The key is released just before
the callback runs, so a callback that is already running can no longer be
canceled through the scheduler and a new timer may be scheduled for the same
key while it runs.
"""

import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

TimerCallback = Callable[[], Awaitable[None]]


class DebounceScheduler:
    """Schedules deferred async work keyed by string."""

    def __init__(self) -> None:
        # Pending timers: key -> Task
        self._timers: dict[str, asyncio.Task] = {}

    def __len__(self) -> int:
        return len(self._timers)

    def is_pending(self, key: str) -> bool:
        return key in self._timers

    def pending_keys(self) -> list[str]:
        return list(self._timers)

    def schedule(self, key: str, delay_sec: float, callback: TimerCallback) -> bool:
        """Start a timer for key unless one is already pending.

        Args:
            key: Timer identity
            delay_sec: Seconds to wait before running the callback
            callback: Coroutine function run on expiry

        Returns:
            True if a new timer was started, False if one was already pending
        """
        if key in self._timers:
            logger.debug(f"Timer {key} already pending, not rescheduling")
            return False

        async def timer() -> None:
            try:
                await asyncio.sleep(delay_sec)
            except asyncio.CancelledError:
                return

            # Release the key before firing
            if self._timers.get(key) is task:
                del self._timers[key]

            try:
                await callback()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Timer {key} callback failed: {e}", exc_info=True)

        task = asyncio.create_task(timer(), name=f"debounce:{key}")
        self._timers[key] = task
        logger.debug(f"Timer {key} scheduled in {delay_sec:.3f}s")
        return True

    def cancel(self, key: str) -> bool:
        """Cancel the pending timer for key without running it.

        Returns:
            True if a pending timer was canceled
        """
        task = self._timers.pop(key, None)
        if task is None:
            return False
        task.cancel()
        logger.debug(f"Timer {key} canceled")
        return True

    def cancel_all(self) -> int:
        """Cancel every pending timer.

        Returns:
            Number of timers canceled
        """
        count = len(self._timers)
        for task in self._timers.values():
            task.cancel()
        self._timers.clear()
        return count
