"""
Coordination components backed by the shared store.

Provides:
- Agent registry with capability sets
- Per-recipient mailbox
- Task queue with exclusive claim
- Shared contexts with access lists and expiry
- Scheduler that notifies capable agents of pending tasks
"""

from ailink.coordination.capabilities import CapabilitySet
from ailink.coordination.context_store import ContextStore
from ailink.coordination.mailbox import Mailbox
from ailink.coordination.models import (
    AgentRecord,
    Context,
    Message,
    MessageKind,
    Task,
    TaskStatus,
)
from ailink.coordination.registry import AgentRegistry
from ailink.coordination.scheduler import Scheduler
from ailink.coordination.task_queue import TaskQueue

__all__ = [
    "CapabilitySet",
    "AgentRecord",
    "Context",
    "Message",
    "MessageKind",
    "Task",
    "TaskStatus",
    "AgentRegistry",
    "Mailbox",
    "TaskQueue",
    "ContextStore",
    "Scheduler",
]
