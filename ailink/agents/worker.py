"""
Task worker - an agent that works the shared task queue.

Each tick, after draining its mail, the worker looks at pending tasks whose
required capabilities it covers, claims the first one it can get, runs its
``work`` callable and completes the task with the result. A scheduler
notification prompts an immediate attempt at the named task.
"""

import asyncio
import inspect
import logging
from typing import Any, Callable, Dict, Iterable, Optional

from ailink.agents.base import PollingAgent
from ailink.agents.transport import Transport
from ailink.errors import ToolCallError

logger = logging.getLogger("ailink.agents.worker")

# Claim failures that just mean another agent got there first
_LOST_CLAIM = ("InvalidState", "NotFound")


class TaskWorker(PollingAgent):
    """
    Usage:
        def add(task):
            a, b = task["description"].split("+")
            return str(int(a) + int(b))

        worker = TaskWorker("math-1", "Math Worker", transport, ["math"], work=add)
        await worker.start()
    """

    def __init__(
        self,
        agent_id: str,
        name: str,
        transport: Transport,
        capabilities: Optional[Iterable[str]] = None,
        work: Optional[Callable[[Dict[str, Any]], Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
        poll_interval: float = 2.0,
    ):
        super().__init__(
            agent_id,
            name,
            transport,
            capabilities=capabilities,
            metadata=metadata,
            poll_interval=poll_interval,
        )
        if work is None:
            raise ValueError("TaskWorker needs a work callable")
        self.work = work
        self.completed = 0

    async def process_request(self, body: str, metadata: Dict[str, Any]) -> str:
        return (
            f"{self.name} takes work from the task queue; "
            f"submit a task requiring {self.capabilities.to_list()}"
        )

    async def on_notification(self, message: Dict[str, Any]) -> None:
        metadata = message.get("metadata") or {}
        if metadata.get("type") == "task_assignment" and metadata.get("taskId"):
            logger.info(f"[{self.name}] Assigned task {metadata['taskId']}")
            await self.work_once(preferred_task_id=metadata["taskId"])
        else:
            await super().on_notification(message)

    async def on_tick(self) -> None:
        await self.work_once()

    async def _run_work(self, task: Dict[str, Any]) -> str:
        try:
            if inspect.iscoroutinefunction(self.work):
                result = await self.work(task)
            else:
                result = await asyncio.to_thread(self.work, task)
        except Exception as e:
            logger.error(f"[{self.name}] Work on {task['taskId']} failed: {e}", exc_info=True)
            return f"Error: {e}"
        return result if isinstance(result, str) else str(result)

    async def work_once(self, preferred_task_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """
        Claim, work and complete at most one task.

        Returns:
            The completed task, or None when nothing could be claimed
        """
        data = await self.call_tool("list_tasks", status="pending")
        candidates = [
            t for t in data.get("tasks", [])
            if self.capabilities.satisfies(t.get("requiredCapabilities") or [])
        ]
        if preferred_task_id:
            candidates.sort(key=lambda t: t["taskId"] != preferred_task_id)

        for task in candidates:
            try:
                claimed = await self.call_tool("claim_task", taskId=task["taskId"], id=self.agent_id)
            except ToolCallError as e:
                if e.kind in _LOST_CLAIM:
                    logger.debug(f"[{self.name}] Lost claim on {task['taskId']}: {e.message}")
                    continue
                raise

            logger.info(f"[{self.name}] Claimed task {claimed['taskId']}: {claimed['description']}")
            result = await self._run_work(claimed)
            completed = await self.call_tool("complete_task", taskId=claimed["taskId"], result=result)
            self.completed += 1
            logger.info(f"[{self.name}] Completed task {claimed['taskId']}")
            return completed
        return None
