"""
Hub - one coordination bus instance.

Owns the store and every component built on it, and wires them into a
Dispatcher. Construct one per process (or per test) and pass it around;
there is no module-level state.

Usage:
    async with Hub(HubConfig(db_path=":memory:")) as hub:
        await hub.dispatcher.call("register_ai", {"id": "a", "name": "A"})
"""

import logging
import time
from typing import Any, Callable, Dict, Optional

from ailink.config import HubConfig
from ailink.coordination.context_store import ContextStore
from ailink.coordination.mailbox import Mailbox
from ailink.coordination.models import utcnow
from ailink.coordination.registry import AgentRegistry
from ailink.coordination.scheduler import Scheduler
from ailink.coordination.task_queue import TaskQueue
from ailink.database.persistence import Store
from ailink.tools.dispatcher import Dispatcher

logger = logging.getLogger("ailink.hub")


class Hub:
    def __init__(self, config: Optional[HubConfig] = None, clock: Callable = utcnow):
        self.config = config or HubConfig()
        self.store = Store(self.config.db_path, lock_timeout=self.config.lock_timeout)

        self.registry = AgentRegistry(self.store, clock=clock)
        self.mailbox = Mailbox(self.store, clock=clock)
        self.task_queue = TaskQueue(
            self.store,
            clock=clock,
            allow_result_overwrite=self.config.allow_result_overwrite,
        )
        self.contexts = ContextStore(self.store, clock=clock)
        self.scheduler = Scheduler(
            self.registry,
            self.task_queue,
            self.mailbox,
            interval=self.config.scheduler_interval,
        )
        self.dispatcher = Dispatcher(self.registry, self.mailbox, self.task_queue, self.contexts)

        self._started_at: Optional[float] = None

    @property
    def uptime_seconds(self) -> float:
        if self._started_at is None:
            return 0.0
        return time.monotonic() - self._started_at

    async def start(self) -> None:
        self._started_at = time.monotonic()
        await self.scheduler.start()
        logger.info(f"Hub started (db={self.config.db_path})")

    async def stop(self) -> None:
        await self.scheduler.stop()
        self.store.close()
        logger.info("Hub stopped")

    def stats(self) -> Dict[str, Any]:
        return {
            "tables": self.store.stats(),
            "scheduler": self.scheduler.get_stats(),
        }

    async def __aenter__(self) -> "Hub":
        await self.start()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.stop()
