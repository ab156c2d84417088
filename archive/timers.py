from __future__ import annotations

import asyncio
from typing import Awaitable, Callable


TIMER_LIFETIME = "lifetime"
TIMER_ESCALATION = "escalation"


def _current_task() -> asyncio.Task | None:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


class TimerRegistry:
    """
    In-memory map of (kind, key) -> pending asyncio task.

    Nothing here is durable. After a restart the session manager rebuilds
    the handles from the rows in archive_sessions.
    """

    def __init__(self) -> None:
        self._tasks: dict[tuple[str, int], asyncio.Task] = {}

    def schedule(self, kind: str, key: int, delay_seconds: float, callback: Callable[[], Awaitable[None]]) -> asyncio.Task:
        handle = (str(kind), int(key))
        self.cancel(kind, key)
        task = asyncio.create_task(self._run_after(handle, max(0.0, float(delay_seconds)), callback))
        self._tasks[handle] = task
        return task

    async def _run_after(self, handle: tuple[str, int], delay_seconds: float, callback: Callable[[], Awaitable[None]]) -> None:
        await asyncio.sleep(delay_seconds)
        # Drop the handle before running so the callback can reschedule or cancel freely.
        if self._tasks.get(handle) is _current_task():
            self._tasks.pop(handle, None)
        try:
            await callback()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            print(f"[Session] action=timer_fired result=error kind={handle[0]} key={handle[1]} error={str(e)[:180]}")

    def cancel(self, kind: str, key: int) -> bool:
        task = self._tasks.pop((str(kind), int(key)), None)
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()
            return True
        return False

    def cancel_key(self, key: int) -> None:
        for kind, k in list(self._tasks.keys()):
            if k == int(key):
                self.cancel(kind, k)

    def cancel_all(self) -> None:
        for kind, k in list(self._tasks.keys()):
            self.cancel(kind, k)

    def has(self, kind: str, key: int) -> bool:
        task = self._tasks.get((str(kind), int(key)))
        return task is not None and not task.done()

    def __len__(self) -> int:
        return sum(1 for t in self._tasks.values() if not t.done())
