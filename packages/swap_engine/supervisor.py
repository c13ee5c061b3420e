"""
Task Supervisor - Owns fire-and-forget tasks (approvals, confirmations)

Tasks are kept referenced until they finish. A failing task is logged and
pushed to ``failures`` (and to the optional callback) instead of vanishing.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, List, Optional, Set

logger = logging.getLogger(__name__)


@dataclass
class TaskFailure:
    name: str
    error: BaseException
    failed_at: datetime = field(default_factory=datetime.utcnow)


class TaskSupervisor:
    """
    Usage:
        supervisor = TaskSupervisor()
        supervisor.spawn(confirm(tx_hash), name="confirm-42")
        ...
        await supervisor.join()
    """

    def __init__(self, on_failure: Optional[Callable[[TaskFailure], None]] = None):
        self.on_failure = on_failure
        self.failures: List[TaskFailure] = []
        self._tasks: Set[asyncio.Task] = set()

    @property
    def active(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Awaitable, name: str = "task") -> asyncio.Task:
        """Schedule ``coro`` on the running loop and keep a reference to it"""
        task = asyncio.ensure_future(coro)
        task.set_name(name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is None:
            return

        logger.error(f"Background task {task.get_name()} failed", exc_info=error)
        failure = TaskFailure(name=task.get_name(), error=error)
        self.failures.append(failure)
        if self.on_failure:
            try:
                self.on_failure(failure)
            except Exception:
                logger.exception("Failure callback raised")

    async def join(self, timeout: Optional[float] = None) -> None:
        """Wait for every task spawned so far (including ones spawned meanwhile)"""
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        while self._tasks:
            remaining = None if deadline is None else max(deadline - loop.time(), 0)
            await asyncio.wait(set(self._tasks), timeout=remaining)
            if deadline is not None and loop.time() >= deadline:
                break
            # Done callbacks run on the next loop iteration
            await asyncio.sleep(0)

    async def close(self) -> None:
        """Cancel whatever is still running"""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
