"""
Task Queue - shared work items with capability-based matching.

Lifecycle:
    pending --claim--> in-progress --complete--> completed

Claim is the only way to take ownership and is exclusive: the status check
and the update run inside one guarded transaction, so of any number of
concurrent claimants exactly one wins and the rest see InvalidStateError.
"""

import json
import logging
import time
import uuid
from typing import Callable, Iterable, List, Optional, Union

from ailink.coordination.capabilities import CapabilitySet
from ailink.coordination.models import Task, TaskStatus, to_iso, utcnow
from ailink.database.persistence import Store
from ailink.errors import InvalidStateError, NotFoundError, ValidationError

logger = logging.getLogger("ailink.coordination.tasks")


class TaskQueue:
    """
    Store-backed task queue.

    Args:
        store: Shared store
        clock: Returns the current UTC datetime
        allow_result_overwrite: Accept ``complete`` on an already completed
            task and overwrite its result (off by default, so a second
            completion cannot silently clobber the first)
    """

    def __init__(
        self,
        store: Store,
        clock: Callable = utcnow,
        allow_result_overwrite: bool = False,
    ):
        self.store = store
        self._clock = clock
        self.allow_result_overwrite = allow_result_overwrite

    @staticmethod
    def _generate_task_id() -> str:
        return f"task-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"

    def submit(
        self,
        description: str,
        required_capabilities: Optional[Iterable[str]] = None,
    ) -> Task:
        """Add a pending task and return it."""
        if not description or not isinstance(description, str) or not description.strip():
            raise ValidationError("Task description cannot be empty")

        task = Task(
            id=self._generate_task_id(),
            description=description,
            required_capabilities=CapabilitySet.coerce(required_capabilities),
            status=TaskStatus.PENDING,
            created_at=self._clock(),
        )

        with self.store.guard.transaction() as conn:
            conn.execute(
                """
                INSERT INTO tasks (id, description, required_capabilities, status, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    task.id,
                    task.description,
                    json.dumps(task.required_capabilities.to_list()),
                    task.status.value,
                    to_iso(task.created_at),
                ),
            )

        logger.info(
            f"Submitted task {task.id} requiring {task.required_capabilities.to_list()}"
        )
        return task

    def get(self, task_id: str) -> Task:
        with self.store.guard.read() as conn:
            row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        if row is None:
            raise NotFoundError("Task", task_id)
        return Task.from_row(row)

    def list(
        self,
        status: Optional[Union[TaskStatus, str]] = None,
        capability: Optional[str] = None,
    ) -> List[Task]:
        """
        Tasks in creation order.

        Args:
            status: Only tasks with this status
            capability: Only tasks whose required capabilities include it
        """
        query = "SELECT * FROM tasks"
        params = ()
        if status:
            query += " WHERE status = ?"
            params = (TaskStatus.parse(status).value,)
        query += " ORDER BY rowid"

        with self.store.guard.read() as conn:
            tasks = [Task.from_row(row) for row in conn.execute(query, params)]
        if capability:
            tasks = [t for t in tasks if capability in t.required_capabilities]
        return tasks

    def pending(self) -> List[Task]:
        return self.list(status=TaskStatus.PENDING)

    def claim(self, task_id: str, agent_id: str) -> Task:
        """
        Take exclusive ownership of a pending task.

        Raises:
            NotFoundError: unknown task id
            InvalidStateError: task is not pending (someone else holds it)
        """
        if not agent_id:
            raise ValidationError("Claiming agent id is required", {"taskId": task_id})

        with self.store.guard.transaction() as conn:
            row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
            if row is None:
                raise NotFoundError("Task", task_id)
            task = Task.from_row(row)
            if task.status is not TaskStatus.PENDING:
                raise InvalidStateError(
                    f"Task {task_id} is not pending (status: {task.status.value}"
                    f", assigned to {task.assigned_to})",
                    current=task.status.value,
                    task_id=task_id,
                )
            task.status = TaskStatus.IN_PROGRESS
            task.assigned_to = agent_id
            task.started_at = self._clock()
            conn.execute(
                "UPDATE tasks SET status = ?, assigned_to = ?, started_at = ? WHERE id = ?",
                (task.status.value, task.assigned_to, to_iso(task.started_at), task_id),
            )

        logger.info(f"Task {task_id} claimed by {agent_id}")
        return task

    def complete(self, task_id: str, result: Optional[str]) -> Task:
        """
        Mark an in-progress task completed with ``result``.

        Raises:
            NotFoundError: unknown task id
            InvalidStateError: task was never claimed, or is already
                completed and result overwrite is disabled
        """
        if result is not None and not isinstance(result, str):
            result = json.dumps(result, default=str)

        with self.store.guard.transaction() as conn:
            row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
            if row is None:
                raise NotFoundError("Task", task_id)
            task = Task.from_row(row)

            if task.status is TaskStatus.PENDING:
                raise InvalidStateError(
                    f"Task {task_id} must be claimed before it can be completed",
                    current=task.status.value,
                    task_id=task_id,
                )
            if task.status is TaskStatus.COMPLETED:
                if not self.allow_result_overwrite:
                    raise InvalidStateError(
                        f"Task {task_id} is already completed",
                        current=task.status.value,
                        task_id=task_id,
                    )
                logger.warning(
                    f"Overwriting result of completed task {task_id} "
                    f"(previous: {task.result!r})"
                )

            task.status = TaskStatus.COMPLETED
            task.result = result
            task.completed_at = self._clock()
            conn.execute(
                "UPDATE tasks SET status = ?, result = ?, completed_at = ? WHERE id = ?",
                (task.status.value, task.result, to_iso(task.completed_at), task_id),
            )

        logger.info(f"Task {task_id} completed by {task.assigned_to}")
        return task
