"""
Dispatcher - the single entry point for bus operations.

Routes an operation name to a core handler or to an external toolset and
always answers with a ToolResult dict:

    {"ok": True, "result": ...}
    {"ok": False, "error": {"kind", "code", "message", "details"}}

Core handlers are synchronous store calls. They run in a worker thread so a
caller waiting on the persistence guard never blocks the event loop, and a
cancelled caller cannot interrupt a write halfway.
"""

import asyncio
import inspect
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, List, Optional

from ailink.coordination.context_store import ContextStore
from ailink.coordination.mailbox import Mailbox
from ailink.coordination.models import to_iso
from ailink.coordination.registry import AgentRegistry
from ailink.coordination.task_queue import TaskQueue
from ailink.errors import AILinkError, UnknownToolError
from ailink.logging_config import CorrelationContext
from ailink.tools.registry import get_all_schemas, get_tool

logger = logging.getLogger("ailink.tools.dispatcher")

ToolHandler = Callable[[str, Dict[str, Any]], Any]


def ok(result: Any) -> Dict[str, Any]:
    return {"ok": True, "result": result}


def error(err: AILinkError) -> Dict[str, Any]:
    return {"ok": False, "error": err.to_dict()}


@dataclass
class Toolset:
    """An external collaborator that serves a family of operations."""
    handler: ToolHandler
    prefix: Optional[str] = None
    match: Optional[Callable[[str], bool]] = None
    names: FrozenSet[str] = field(default_factory=frozenset)
    schemas: List[Dict[str, Any]] = field(default_factory=list)

    def matches(self, name: str) -> bool:
        if self.prefix and name.startswith(self.prefix):
            return True
        return bool(self.match and self.match(name))


class Dispatcher:
    """
    Operation router for in-process agents and the HTTP host.

    Usage:
        dispatcher = Dispatcher(registry, mailbox, task_queue, contexts)
        result = await dispatcher.call("submit_task", {"description": "scan"})

        dispatcher.register_toolset(handle_price_tool, prefix="price_")
    """

    def __init__(
        self,
        registry: AgentRegistry,
        mailbox: Mailbox,
        task_queue: TaskQueue,
        contexts: ContextStore,
    ):
        self.registry = registry
        self.mailbox = mailbox
        self.task_queue = task_queue
        self.contexts = contexts
        self.toolsets: List[Toolset] = []

        self._core: Dict[str, Callable[[Dict[str, Any]], Any]] = {
            "register_ai": self._register_ai,
            "send_message": self._send_message,
            "read_messages": self._read_messages,
            "submit_task": self._submit_task,
            "list_tasks": self._list_tasks,
            "claim_task": self._claim_task,
            "complete_task": self._complete_task,
            "list_connected_ais": self._list_connected_ais,
            "share_context": self._share_context,
            "get_shared_context": self._get_shared_context,
        }

    def register_toolset(
        self,
        handler: ToolHandler,
        prefix: Optional[str] = None,
        match: Optional[Callable[[str], bool]] = None,
        names=None,
        schemas: Optional[List[Dict[str, Any]]] = None,
    ) -> Toolset:
        """
        Register an external toolset.

        Args:
            handler: ``handler(name, args)``, sync or async
            prefix: Serve every operation whose name starts with this
            match: Predicate on the operation name
            names: Exact operation names served (checked before any prefix)
            schemas: Optional schemas reported by ``list_tools``
        """
        if not (prefix or match or names):
            raise ValueError("Toolset needs a prefix, a match predicate or explicit names")
        toolset = Toolset(
            handler=handler,
            prefix=prefix,
            match=match,
            names=frozenset(names or ()),
            schemas=list(schemas or []),
        )
        self.toolsets.append(toolset)
        logger.info(
            f"Registered toolset prefix={prefix!r} names={sorted(toolset.names)} "
            f"match={'yes' if match else 'no'}"
        )
        return toolset

    def _find_toolset(self, name: str) -> Optional[Toolset]:
        for toolset in self.toolsets:
            if name in toolset.names:
                return toolset
        for toolset in self.toolsets:
            if toolset.matches(name):
                return toolset
        return None

    def list_tools(self) -> List[Dict[str, Any]]:
        schemas = get_all_schemas()
        for toolset in self.toolsets:
            schemas.extend(toolset.schemas)
        return schemas

    async def call(self, name: str, args: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Run one operation. Never raises."""
        with CorrelationContext() as ctx:
            logger.debug(f"Dispatching {name} [{ctx.correlation_id}]")
            try:
                return ok(await self._route(name, args))
            except AILinkError as e:
                logger.info(f"{name} failed: {e.kind}: {e.message}")
                return error(e)
            except Exception as e:
                logger.error(f"Unexpected error in {name}: {e}", exc_info=True)
                return error(AILinkError(str(e) or type(e).__name__, {"tool": name}))

    async def _route(self, name: str, args: Optional[Dict[str, Any]]) -> Any:
        spec = get_tool(name)
        if spec is not None:
            resolved = spec.normalize(args)
            if name == "list_tools":
                tools = self.list_tools()
                return {"count": len(tools), "tools": tools}
            return await asyncio.to_thread(self._core[name], resolved)

        toolset = self._find_toolset(name)
        if toolset is None:
            raise UnknownToolError(name)

        result = toolset.handler(name, dict(args or {}))
        if inspect.isawaitable(result):
            result = await result
        # Results cross the HTTP boundary, so reject anything json cannot carry
        json.dumps(result)
        return result

    # Core handlers. Arguments arrive already normalized to canonical names.

    def _register_ai(self, args: Dict[str, Any]) -> Dict[str, Any]:
        record = self.registry.register(
            args["id"],
            args["name"],
            capabilities=args.get("capabilities"),
            metadata=args.get("metadata"),
        )
        return {"id": record.id, "name": record.display_name, "registered": True}

    def _send_message(self, args: Dict[str, Any]) -> Dict[str, Any]:
        message = self.mailbox.send(
            args["from"],
            args["to"],
            args["body"],
            kind=args.get("kind") or "request",
            metadata=args.get("metadata"),
        )
        return {"sequenceId": message.sequence_id, "from": message.from_id, "to": message.to_id}

    def _read_messages(self, args: Dict[str, Any]) -> Dict[str, Any]:
        messages = self.mailbox.read(
            args["id"],
            unread_only=bool(args.get("unreadOnly", False)),
            mark_as_read=bool(args.get("markAsRead", False)),
        )
        return {
            "id": args["id"],
            "count": len(messages),
            "messages": [m.to_dict() for m in messages],
        }

    def _submit_task(self, args: Dict[str, Any]) -> Dict[str, Any]:
        task = self.task_queue.submit(args["description"], args.get("requiredCapabilities"))
        return {"taskId": task.id, "status": task.status.value}

    def _list_tasks(self, args: Dict[str, Any]) -> Dict[str, Any]:
        tasks = self.task_queue.list(status=args.get("status"), capability=args.get("capability"))
        return {"count": len(tasks), "tasks": [t.to_dict() for t in tasks]}

    def _claim_task(self, args: Dict[str, Any]) -> Dict[str, Any]:
        return self.task_queue.claim(args["taskId"], args["id"]).to_dict()

    def _complete_task(self, args: Dict[str, Any]) -> Dict[str, Any]:
        return self.task_queue.complete(args["taskId"], args["result"]).to_dict()

    def _list_connected_ais(self, args: Dict[str, Any]) -> Dict[str, Any]:
        agents = self.registry.list(filter_by_capability=args.get("filterByCapability"))
        return {"count": len(agents), "agents": [a.to_dict() for a in agents]}

    def _share_context(self, args: Dict[str, Any]) -> Dict[str, Any]:
        context = self.contexts.share(
            args["contextId"],
            args["data"],
            authorized_ids=args.get("authorizedIds"),
            ttl_seconds=args.get("ttlSeconds"),
        )
        return {"contextId": context.id, "expiresAt": to_iso(context.expires_at)}

    def _get_shared_context(self, args: Dict[str, Any]) -> Any:
        return self.contexts.get(args["contextId"], args["requesterId"])
