"""
Records held by the coordination store.

Each record serialises to the camelCase wire form returned by bus
operations and rebuilds itself from a store row.
"""

import json
import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from ailink.coordination.capabilities import CapabilitySet
from ailink.errors import ValidationError

logger = logging.getLogger("ailink.coordination.models")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def from_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def safe_json_loads(raw: Optional[str], fallback: Any) -> Any:
    """Decode a JSON column, returning ``fallback`` for missing or corrupt values."""
    if raw is None:
        return fallback
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        logger.warning(f"Failed to parse stored JSON: {str(raw)[:100]!r}")
        return fallback


class MessageKind(str, Enum):
    """Type of a mailbox message."""
    REQUEST = "request"
    RESPONSE = "response"
    NOTIFICATION = "notification"
    DATA = "data"

    @classmethod
    def parse(cls, value: Any) -> "MessageKind":
        try:
            return cls(value)
        except ValueError:
            allowed = ", ".join(k.value for k in cls)
            raise ValidationError(
                f"Invalid message kind {value!r}; expected one of: {allowed}",
                {"kind": value},
            )


class TaskStatus(str, Enum):
    """Status of a task in the queue."""
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"

    @classmethod
    def parse(cls, value: Any) -> "TaskStatus":
        try:
            return cls(value)
        except ValueError:
            allowed = ", ".join(s.value for s in cls)
            raise ValidationError(
                f"Invalid task status {value!r}; expected one of: {allowed}",
                {"status": value},
            )


@dataclass
class AgentRecord:
    """A registered participant."""
    id: str
    display_name: str
    capabilities: CapabilitySet = field(default_factory=CapabilitySet)
    metadata: Dict[str, Any] = field(default_factory=dict)
    registered_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.display_name,
            "capabilities": self.capabilities.to_list(),
            "metadata": self.metadata,
            "registeredAt": to_iso(self.registered_at),
        }

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "AgentRecord":
        return cls(
            id=row["id"],
            display_name=row["name"],
            capabilities=CapabilitySet(safe_json_loads(row["capabilities"], [])),
            metadata=safe_json_loads(row["metadata"], {}),
            registered_at=from_iso(row["registered_at"]),
        )


@dataclass
class Message:
    """A mailbox entry addressed to one recipient."""
    sequence_id: int
    from_id: str
    to_id: str
    body: str
    kind: MessageKind
    metadata: Dict[str, Any] = field(default_factory=dict)
    sent_at: datetime = field(default_factory=utcnow)
    read: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sequenceId": self.sequence_id,
            "from": self.from_id,
            "to": self.to_id,
            "body": self.body,
            "kind": self.kind.value,
            "metadata": self.metadata,
            "sentAt": to_iso(self.sent_at),
            "read": self.read,
        }

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Message":
        return cls(
            sequence_id=row["sequence_id"],
            from_id=row["from_id"],
            to_id=row["to_id"],
            body=row["body"],
            kind=MessageKind(row["kind"]),
            metadata=safe_json_loads(row["metadata"], {}),
            sent_at=from_iso(row["sent_at"]),
            read=bool(row["read"]),
        )


@dataclass
class Task:
    """A unit of work on the shared queue."""
    id: str
    description: str
    required_capabilities: CapabilitySet = field(default_factory=CapabilitySet)
    status: TaskStatus = TaskStatus.PENDING
    assigned_to: Optional[str] = None
    result: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "taskId": self.id,
            "description": self.description,
            "requiredCapabilities": self.required_capabilities.to_list(),
            "status": self.status.value,
            "assignedTo": self.assigned_to,
            "result": self.result,
            "createdAt": to_iso(self.created_at),
            "startedAt": to_iso(self.started_at),
            "completedAt": to_iso(self.completed_at),
        }

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Task":
        return cls(
            id=row["id"],
            description=row["description"],
            required_capabilities=CapabilitySet(
                safe_json_loads(row["required_capabilities"], [])
            ),
            status=TaskStatus(row["status"]),
            assigned_to=row["assigned_to"],
            result=row["result"],
            created_at=from_iso(row["created_at"]),
            started_at=from_iso(row["started_at"]),
            completed_at=from_iso(row["completed_at"]),
        )


@dataclass
class Context:
    """A named shared data blob with an access list and optional expiry."""
    id: str
    data: Any
    authorized_ids: frozenset = field(default_factory=frozenset)
    created_at: datetime = field(default_factory=utcnow)
    expires_at: Optional[datetime] = None

    @property
    def is_public(self) -> bool:
        return not self.authorized_ids

    def allows(self, requester_id: str) -> bool:
        return self.is_public or requester_id in self.authorized_ids

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and now > self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "contextId": self.id,
            "data": self.data,
            "authorizedIds": sorted(self.authorized_ids),
            "createdAt": to_iso(self.created_at),
            "expiresAt": to_iso(self.expires_at),
        }

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Context":
        return cls(
            id=row["id"],
            data=safe_json_loads(row["data"], None),
            authorized_ids=frozenset(safe_json_loads(row["authorized_ids"], [])),
            created_at=from_iso(row["created_at"]),
            expires_at=from_iso(row["expires_at"]),
        )
