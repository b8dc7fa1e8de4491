"""Exception hierarchy for the coordination bus.

Every error carries a machine-readable ``kind`` that survives the trip
across the operation boundary, so callers branch on ``kind`` and never on
message text.
"""
from typing import Any, Dict, Optional


class AILinkError(Exception):
    """Base exception for all bus errors."""
    kind: str = "Internal"
    code: str = "SYS_001"
    status_code: int = 500

    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class NotFoundError(AILinkError):
    """Unknown agent, task or context id."""
    kind = "NotFound"
    code = "BUS_404"
    status_code = 404

    def __init__(self, entity: str, entity_id: str):
        super().__init__(
            f"{entity} '{entity_id}' not found",
            {"entity": entity, "id": entity_id},
        )
        self.entity = entity
        self.entity_id = entity_id


class InvalidStateError(AILinkError):
    """Task is not in the status required for the requested transition."""
    kind = "InvalidState"
    code = "BUS_409"
    status_code = 409

    def __init__(self, message: str, current: Optional[str] = None, task_id: Optional[str] = None):
        super().__init__(message, {"status": current, "taskId": task_id})
        self.current = current
        self.task_id = task_id


class UnauthorizedError(AILinkError):
    """Requester is not on a context's access list."""
    kind = "Unauthorized"
    code = "BUS_403"
    status_code = 403


class ExpiredError(AILinkError):
    """Context is past its expiry time."""
    kind = "Expired"
    code = "BUS_410"
    status_code = 410


class ValidationError(AILinkError):
    """Input validation failed."""
    kind = "Validation"
    code = "VAL_001"
    status_code = 400


class ConfigurationError(ValidationError):
    """Configuration value could not be parsed."""
    code = "CFG_001"


class UnknownToolError(AILinkError):
    """No core handler or toolset accepts the operation name."""
    kind = "UnknownTool"
    code = "BUS_404_TOOL"
    status_code = 404

    def __init__(self, name: str):
        super().__init__(f"Unknown tool: {name}", {"tool": name})
        self.name = name


class StoreError(AILinkError):
    """Underlying store failed."""
    code = "DB_001"


class PersistenceError(StoreError):
    """Could not enter the persistence guard in time."""
    code = "DB_002"


class ToolCallError(Exception):
    """Raised on the agent side when the bus answers with an error payload."""

    def __init__(self, kind: str, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(f"{kind}: {message}")
        self.kind = kind
        self.message = message
        self.details = details or {}
