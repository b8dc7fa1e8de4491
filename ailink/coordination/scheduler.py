"""
Scheduler - proactive task notifications.

Every tick the scheduler looks at pending tasks and registered agents and
mails a ``notification`` to the first capable agent of each task it has not
notified yet. Assignment is advisory: the scheduler never changes task
status, and an agent must still ``claim`` the task to own it.

The notified set lives in memory for the process lifetime. A restarted
scheduler may notify a still-pending task again, which is harmless because
claim stays exclusive.
"""

import asyncio
import logging
from typing import Any, Dict, Optional, Set

from ailink.coordination.mailbox import Mailbox
from ailink.coordination.models import MessageKind, Task
from ailink.coordination.registry import AgentRegistry
from ailink.coordination.task_queue import TaskQueue

logger = logging.getLogger("ailink.coordination.scheduler")

SCHEDULER_ID = "system-scheduler"


class Scheduler:
    """
    Periodic notifier of pending work.

    Usage:
        scheduler = Scheduler(registry, task_queue, mailbox, interval=1.0)
        await scheduler.start()
        ...
        await scheduler.stop()
    """

    def __init__(
        self,
        registry: AgentRegistry,
        task_queue: TaskQueue,
        mailbox: Mailbox,
        interval: float = 1.0,
        sender_id: str = SCHEDULER_ID,
    ):
        self.registry = registry
        self.task_queue = task_queue
        self.mailbox = mailbox
        self.interval = interval
        self.sender_id = sender_id

        self._notified: Set[str] = set()
        self._stop_event: Optional[asyncio.Event] = None
        self._loop_task: Optional[asyncio.Task] = None

        self._stats = {
            "ticks": 0,
            "notifications_sent": 0,
            "tick_errors": 0,
            "task_errors": 0,
        }

    @property
    def is_running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    def tick(self) -> int:
        """
        Run one scheduling pass.

        Returns:
            Number of notifications sent
        """
        pending = self.task_queue.pending()
        pending_ids = {task.id for task in pending}

        # Only pending tasks can be notified, so ids of claimed tasks are dead weight
        self._notified &= pending_ids

        candidates = [t for t in pending if t.id not in self._notified]
        if not candidates:
            return 0

        agents = self.registry.list()
        sent = 0
        for task in candidates:
            try:
                if self._notify(task, agents):
                    sent += 1
            except Exception as e:
                self._stats["task_errors"] += 1
                logger.error(f"Failed to schedule task {task.id}: {e}", exc_info=True)

        self._stats["notifications_sent"] += sent
        return sent

    def _notify(self, task: Task, agents) -> bool:
        capable = [a for a in agents if a.capabilities.satisfies(task.required_capabilities)]
        if not capable:
            logger.debug(f"No capable agent for task {task.id} yet")
            return False

        assignee = capable[0]
        self.mailbox.send(
            from_id=self.sender_id,
            to_id=assignee.id,
            body=f"Please work on task: {task.id}",
            kind=MessageKind.NOTIFICATION,
            metadata={
                "type": "task_assignment",
                "taskId": task.id,
                "description": task.description,
            },
        )
        self._notified.add(task.id)
        logger.info(f"Notified {assignee.id} of task {task.id}")
        return True

    def clear_notification(self, task_id: str) -> None:
        """Forget that ``task_id`` was notified so the next tick may notify again."""
        self._notified.discard(task_id)

    def is_notified(self, task_id: str) -> bool:
        return task_id in self._notified

    async def _run(self) -> None:
        logger.info(f"Scheduler started (interval {self.interval}s)")
        while not self._stop_event.is_set():
            self._stats["ticks"] += 1
            try:
                # Store access runs off the event loop so waiting on the guard never stalls other timers
                await asyncio.to_thread(self.tick)
            except Exception as e:
                self._stats["tick_errors"] += 1
                logger.error(f"Scheduler tick failed: {e}", exc_info=True)

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass
        logger.info("Scheduler stopped")

    async def start(self) -> None:
        if self.is_running:
            logger.warning("Scheduler already running")
            return
        self._stop_event = asyncio.Event()
        self._loop_task = asyncio.create_task(self._run(), name="ailink-scheduler")

    async def stop(self, timeout: float = 10.0) -> None:
        """Stop the loop, letting an in-flight tick finish."""
        if not self.is_running:
            return
        self._stop_event.set()
        try:
            await asyncio.wait_for(asyncio.shield(self._loop_task), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Scheduler did not stop within {timeout}s, cancelling")
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
        self._loop_task = None

    def get_stats(self) -> Dict[str, Any]:
        return {
            **self._stats,
            "notified_pending": len(self._notified),
            "interval": self.interval,
            "running": self.is_running,
        }
