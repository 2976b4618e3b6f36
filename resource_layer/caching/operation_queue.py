"""
Per-object queue of outstanding asynchronous operations.
"""

import asyncio
from typing import Any, Awaitable, Callable, List, Optional, Set, Tuple


class OperationQueue:
    """Tracks the operations in flight for one entity or group.

    A new operation waits for every operation submitted in an earlier loop
    iteration to settle before it runs. Operations submitted by the same task
    step (or callback) within one iteration share a snapshot and may run
    concurrently once it settles.
    """

    def __init__(self):
        self._pending: List[asyncio.Task] = []
        self._fresh: Set[asyncio.Task] = set()
        self._fresh_owner: Optional[asyncio.Task] = None

    @property
    def pending(self) -> Tuple[asyncio.Task, ...]:
        """Outstanding operation handles, oldest first."""
        return tuple(self._pending)

    def __len__(self) -> int:
        return len(self._pending)

    def submit(self, operation: Callable[..., Awaitable[Any]], *args: Any) -> asyncio.Task:
        """Schedule ``operation(*args)`` behind the current snapshot."""
        loop = asyncio.get_running_loop()
        owner = asyncio.current_task(loop)
        if self._fresh and owner is not self._fresh_owner:
            # Submitted from a different task step or callback than the fresh batch
            self._fresh.clear()
        # Snapshot is taken before the new handle is recorded.
        prior = [task for task in self._pending if task not in self._fresh]
        if not self._fresh:
            self._fresh_owner = owner
            loop.call_soon(self._fresh.clear)
        task = loop.create_task(self._run(prior, operation, args))

        self._fresh.add(task)
        self._pending.append(task)
        task.add_done_callback(self._discard)
        return task

    async def _run(self, prior: List[asyncio.Task], operation: Callable[..., Awaitable[Any]],
                   args: Tuple[Any, ...]) -> Any:
        if prior:
            # Earlier callers receive their own failures.
            await asyncio.wait(prior)
        return await operation(*args)

    def _discard(self, task: asyncio.Task) -> None:
        self._fresh.discard(task)
        if task in self._pending:
            self._pending.remove(task)
