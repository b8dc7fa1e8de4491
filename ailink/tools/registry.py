"""
Tool Registry - schemas of the core bus operations.

Each core operation declares its canonical argument names, which of them are
required, and the older protocol names still accepted as aliases
(``aiId``, ``fromAiId``, ``message``, ...). ``ToolSpec.normalize`` maps an
incoming argument dict onto canonical names and rejects missing required
arguments before any handler runs.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from ailink.coordination.models import MessageKind, TaskStatus
from ailink.errors import ValidationError

logger = logging.getLogger("ailink.tools.registry")


@dataclass(frozen=True)
class ToolSpec:
    """Schema of one operation."""
    name: str
    description: str
    properties: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    required: Tuple[str, ...] = ()
    aliases: Dict[str, Tuple[str, ...]] = field(default_factory=dict)

    def normalize(self, args: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Resolve aliases and check required arguments.

        A canonical name wins over its aliases when both are given. Unknown
        keys are passed through untouched.
        """
        if args is None:
            args = {}
        if not isinstance(args, dict):
            raise ValidationError(f"Arguments for {self.name} must be an object")

        resolved = dict(args)
        for canonical, alias_names in self.aliases.items():
            for alias in alias_names:
                if alias not in resolved:
                    continue
                value = resolved.pop(alias)
                if resolved.get(canonical) is None:
                    resolved[canonical] = value
                else:
                    logger.debug(f"{self.name}: ignoring alias {alias} in favour of {canonical}")

        missing = [name for name in self.required if resolved.get(name) is None]
        if missing:
            raise ValidationError(
                f"Missing required argument(s) for {self.name}: {', '.join(missing)}",
                {"tool": self.name, "missing": missing},
            )
        return resolved

    def to_schema(self) -> Dict[str, Any]:
        schema = {
            "name": self.name,
            "description": self.description,
            "inputSchema": {
                "type": "object",
                "properties": self.properties,
                "required": list(self.required),
            },
        }
        if self.aliases:
            schema["aliases"] = {k: list(v) for k, v in self.aliases.items()}
        return schema


_STRING = {"type": "string"}
_STRING_LIST = {"type": "array", "items": {"type": "string"}}


CORE_TOOLS: List[ToolSpec] = [
    ToolSpec(
        name="register_ai",
        description="Register an agent with a display name and capabilities",
        properties={
            "id": {**_STRING, "description": "Unique agent id"},
            "name": {**_STRING, "description": "Display name"},
            "capabilities": {**_STRING_LIST, "description": "Capabilities the agent offers"},
            "metadata": {"type": "object"},
        },
        required=("id", "name"),
        aliases={"id": ("aiId",)},
    ),
    ToolSpec(
        name="send_message",
        description="Send a message to a registered agent",
        properties={
            "from": _STRING,
            "to": _STRING,
            "body": {**_STRING, "description": "Message content"},
            "kind": {**_STRING, "enum": [k.value for k in MessageKind]},
            "metadata": {"type": "object"},
        },
        required=("from", "to", "body"),
        aliases={
            "from": ("fromAiId",),
            "to": ("toAiId",),
            "body": ("message",),
            "kind": ("messageType",),
        },
    ),
    ToolSpec(
        name="read_messages",
        description="Read messages addressed to an agent",
        properties={
            "id": _STRING,
            "unreadOnly": {"type": "boolean"},
            "markAsRead": {"type": "boolean"},
        },
        required=("id",),
        aliases={"id": ("aiId",)},
    ),
    ToolSpec(
        name="submit_task",
        description="Add a task to the shared queue",
        properties={
            "description": _STRING,
            "requiredCapabilities": _STRING_LIST,
        },
        required=("description",),
    ),
    ToolSpec(
        name="list_tasks",
        description="List tasks, optionally by status or required capability",
        properties={
            "status": {**_STRING, "enum": [s.value for s in TaskStatus]},
            "capability": _STRING,
        },
    ),
    ToolSpec(
        name="claim_task",
        description="Take exclusive ownership of a pending task",
        properties={"taskId": _STRING, "id": _STRING},
        required=("taskId", "id"),
        aliases={"id": ("aiId",)},
    ),
    ToolSpec(
        name="complete_task",
        description="Mark a claimed task completed with a result",
        properties={"taskId": _STRING, "result": _STRING},
        required=("taskId", "result"),
    ),
    ToolSpec(
        name="list_connected_ais",
        description="List registered agents",
        properties={"filterByCapability": _STRING},
    ),
    ToolSpec(
        name="share_context",
        description="Share a named context with an optional access list and lifetime",
        properties={
            "contextId": _STRING,
            "data": {"description": "Any JSON value"},
            "authorizedIds": {**_STRING_LIST, "description": "Empty means public"},
            "ttlSeconds": {"type": "number", "description": "Lifetime in seconds"},
        },
        required=("contextId", "data"),
        aliases={
            "authorizedIds": ("authorizedAiIds",),
            "ttlSeconds": ("ttl", "expiresIn"),
        },
    ),
    ToolSpec(
        name="get_shared_context",
        description="Read a shared context",
        properties={"contextId": _STRING, "requesterId": _STRING},
        required=("contextId", "requesterId"),
        aliases={"requesterId": ("aiId",)},
    ),
    ToolSpec(
        name="list_tools",
        description="List the schemas of the core operations",
    ),
]


_BY_NAME: Dict[str, ToolSpec] = {spec.name: spec for spec in CORE_TOOLS}


def get_tool(name: str) -> Optional[ToolSpec]:
    return _BY_NAME.get(name)


def get_all_schemas() -> List[Dict[str, Any]]:
    return [spec.to_schema() for spec in CORE_TOOLS]
