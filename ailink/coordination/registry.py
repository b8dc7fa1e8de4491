"""
Agent Registry - who is on the bus and what they can do.

Registration is an idempotent upsert keyed by agent id: an agent that
restarts simply registers again and overwrites its previous record. Records
are never deleted by the bus. Listing order is first-registration order,
which the Scheduler relies on when it picks an assignee.
"""

import json
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional

from ailink.coordination.capabilities import CapabilitySet
from ailink.coordination.models import AgentRecord, to_iso, utcnow
from ailink.database.persistence import Store
from ailink.errors import NotFoundError, ValidationError

logger = logging.getLogger("ailink.coordination.registry")


class AgentRegistry:
    """
    Store-backed registry of agent identities and capability sets.

    Usage:
        registry = AgentRegistry(store)
        registry.register("oracle-1", "Price Oracle", ["price"])

        registry.list(filter_by_capability="price")
    """

    def __init__(self, store: Store, clock: Callable = utcnow):
        self.store = store
        self._clock = clock

    def register(
        self,
        agent_id: str,
        name: str,
        capabilities: Optional[Iterable[str]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AgentRecord:
        """Register or re-announce an agent. Always succeeds for valid input."""
        if not agent_id or not isinstance(agent_id, str):
            raise ValidationError("Agent id is required")
        if not name or not isinstance(name, str):
            raise ValidationError("Agent name is required", {"id": agent_id})
        if metadata is not None and not isinstance(metadata, dict):
            raise ValidationError("Agent metadata must be an object", {"id": agent_id})

        record = AgentRecord(
            id=agent_id,
            display_name=name,
            capabilities=CapabilitySet.coerce(capabilities),
            metadata=metadata or {},
            registered_at=self._clock(),
        )

        with self.store.guard.transaction() as conn:
            # ON CONFLICT keeps the rowid, so re-registration keeps listing order
            conn.execute(
                """
                INSERT INTO agents (id, name, capabilities, metadata, registered_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name = excluded.name,
                    capabilities = excluded.capabilities,
                    metadata = excluded.metadata,
                    registered_at = excluded.registered_at
                """,
                (
                    record.id,
                    record.display_name,
                    json.dumps(record.capabilities.to_list()),
                    json.dumps(record.metadata, default=str),
                    to_iso(record.registered_at),
                ),
            )

        logger.info(
            f"Registered agent {agent_id} ({name}) "
            f"capabilities={record.capabilities.to_list()}"
        )
        return record

    def get(self, agent_id: str) -> AgentRecord:
        with self.store.guard.read() as conn:
            row = conn.execute("SELECT * FROM agents WHERE id = ?", (agent_id,)).fetchone()
        if row is None:
            raise NotFoundError("Agent", agent_id)
        return AgentRecord.from_row(row)

    def exists(self, agent_id: str) -> bool:
        with self.store.guard.read() as conn:
            row = conn.execute("SELECT 1 FROM agents WHERE id = ?", (agent_id,)).fetchone()
        return row is not None

    def list(self, filter_by_capability: Optional[str] = None) -> List[AgentRecord]:
        """All agents in registration order, optionally those holding one capability."""
        with self.store.guard.read() as conn:
            rows = conn.execute("SELECT * FROM agents ORDER BY rowid").fetchall()
        agents = [AgentRecord.from_row(row) for row in rows]
        if filter_by_capability:
            agents = [a for a in agents if filter_by_capability in a.capabilities]
        return agents

    def capable_of(self, required: Iterable[str]) -> List[AgentRecord]:
        """Agents whose capabilities cover every capability in ``required``."""
        required = CapabilitySet.coerce(required)
        return [a for a in self.list() if a.capabilities.satisfies(required)]
