"""
Named asyncio tasks on the application's event loop. Scheduling a name that is already
in flight cancels the earlier task, so the most recent request always wins.
"""
import asyncio
import logging
from datetime import datetime
from typing import Any, Coroutine, Dict, List, Optional


class TaskManager:
    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self.tasks: Dict[str, asyncio.Task] = {}
        self.scheduled_at: Dict[str, datetime] = {}
        self.loop = loop
        self.logger = logging.getLogger("TaskManager")

    def schedule(self, name: str, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        """Run coro as task `name`, cancelling any earlier task of the same name."""
        loop = self.loop or asyncio.get_running_loop()
        self.cancel(name)
        self.logger.debug(f"Scheduling task {name}")
        task = loop.create_task(coro, name=name)
        self.tasks[name] = task
        self.scheduled_at[name] = datetime.now()
        task.add_done_callback(lambda t, n=name: self._forget(n, t))
        return task

    def cancel(self, name: str) -> bool:
        task = self.tasks.get(name)
        if task is None or task.done():
            return False
        self.logger.info(f"Cancelling existing task {name}")
        task.cancel()
        return True

    def _forget(self, name: str, task: asyncio.Task) -> None:
        if self.tasks.get(name) is task:
            del self.tasks[name]
            self.scheduled_at.pop(name, None)
        if not task.cancelled() and task.exception() is not None:
            self.logger.error(f"Task {name} failed: {task.exception()!r}")

    def get_active_tasks(self) -> List[Dict[str, Any]]:
        """Return running task names and when they were scheduled (for API)."""
        return [
            {"name": name, "scheduled_at": self.scheduled_at.get(name)}
            for name, task in self.tasks.items()
            if not task.done()
        ]

    def stop(self) -> None:
        """Cancel all tasks."""
        for name in list(self.tasks):
            self.cancel(name)
