import asyncio
import logging
from typing import Awaitable, Callable, Dict, Hashable

logger = logging.getLogger(__name__)

Callback = Callable[[], Awaitable[None]]


class DelayedTaskScheduler:
    """
    Keyed, cancellable delayed callbacks (typing expiry, away/offline timers).
    Scheduling a key that is already pending replaces the old task.
    """

    def __init__(self):
        self._tasks: Dict[Hashable, asyncio.Task] = {}

    def schedule(self, key: Hashable, delay: float, callback: Callback) -> asyncio.Task:
        self.cancel(key)
        task = asyncio.create_task(self._run(key, delay, callback))
        self._tasks[key] = task
        return task

    async def _run(self, key: Hashable, delay: float, callback: Callback):
        await asyncio.sleep(delay)
        # drop the key before the callback so it may schedule the same key again
        if self._tasks.get(key) is asyncio.current_task():
            del self._tasks[key]
        try:
            await callback()
        except Exception:
            logger.exception("Scheduled callback failed (key=%s)", key)

    def cancel(self, key: Hashable) -> bool:
        task = self._tasks.pop(key, None)
        if task is None:
            return False
        task.cancel()
        return True

    def is_pending(self, key: Hashable) -> bool:
        return key in self._tasks

    def cancel_all(self):
        for task in self._tasks.values():
            task.cancel()
        self._tasks.clear()

    def __len__(self) -> int:
        return len(self._tasks)
