"""
Base polling agent.

An agent registers once, then on every tick drains its unread mail:

- ``request`` messages go to ``process_request`` and get exactly one
  ``response`` back to the sender (``"Error: <message>"`` if it raised)
- ``notification`` messages go to ``on_notification``
- everything else goes to ``on_message``

Subclasses implement ``process_request`` and may extend ``on_tick`` for
periodic work of their own.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, Optional

from ailink.agents.transport import HttpTransport, Transport
from ailink.config import HubConfig
from ailink.coordination.capabilities import CapabilitySet
from ailink.errors import ToolCallError
from ailink.logging_config import CorrelationContext

logger = logging.getLogger("ailink.agents")


class PollingAgent(ABC):
    """
    Usage:
        class EchoAgent(PollingAgent):
            async def process_request(self, body, metadata):
                return body

        agent = EchoAgent("echo", "Echo", InProcessTransport(hub.dispatcher))
        await agent.start()
        ...
        await agent.stop()
    """

    def __init__(
        self,
        agent_id: str,
        name: str,
        transport: Transport,
        capabilities: Optional[Iterable[str]] = None,
        metadata: Optional[Dict[str, Any]] = None,
        poll_interval: float = 2.0,
    ):
        self.agent_id = agent_id
        self.name = name
        self.transport = transport
        self.capabilities = CapabilitySet.coerce(capabilities)
        self.metadata = metadata or {}
        self.poll_interval = poll_interval

        self._registered = False
        self._stop_event: Optional[asyncio.Event] = None
        self._loop_task: Optional[asyncio.Task] = None

    @classmethod
    def from_config(
        cls,
        config: HubConfig,
        agent_id: str,
        name: str,
        transport: Optional[Transport] = None,
        **kwargs,
    ) -> "PollingAgent":
        """
        Build an agent that polls at ``config.poll_interval``.

        Without a transport the agent talks to the hub at ``config.host`` and
        ``config.port`` over HTTP, using ``config.api_key``.
        """
        if transport is None:
            transport = HttpTransport(f"http://{config.host}:{config.port}", api_key=config.api_key)
        kwargs.setdefault("poll_interval", config.poll_interval)
        return cls(agent_id, name, transport, **kwargs)

    @property
    def is_running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    async def call_tool(self, tool: str, /, **args) -> Any:
        """
        Call a bus operation and return its result, raising ToolCallError on error.

        ``tool`` is positional-only so operation arguments such as ``name``
        pass through untouched.
        """
        response = await self.transport.call(tool, args)
        if response.get("ok"):
            return response.get("result")
        err = response.get("error") or {}
        raise ToolCallError(
            err.get("kind", "Internal"),
            err.get("message", "unknown error"),
            err.get("details"),
        )

    async def initialize(self) -> None:
        """Register with the bus. Only the first call does anything."""
        if self._registered:
            return
        await self.call_tool(
            "register_ai",
            id=self.agent_id,
            name=self.name,
            capabilities=self.capabilities.to_list(),
            metadata=self.metadata,
        )
        self._registered = True
        logger.info(f"[{self.name}] Registered as {self.agent_id}")

    async def send_message(
        self,
        to: str,
        body: Any,
        kind: str = "request",
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        if not isinstance(body, str):
            body = json.dumps(body, default=str)
        result = await self.call_tool(
            "send_message",
            **{"from": self.agent_id, "to": to, "body": body, "kind": kind, "metadata": metadata or {}},
        )
        logger.debug(f"[{self.name}] Sent {kind} to {to}")
        return result

    async def check_messages(self) -> int:
        """Drain unread mail. Returns the number of messages handled."""
        data = await self.call_tool(
            "read_messages", id=self.agent_id, unreadOnly=True, markAsRead=True
        )
        messages = data.get("messages", [])
        if messages:
            logger.info(f"[{self.name}] Received {len(messages)} messages")
        for message in messages:
            await self._handle_message(message)
        return len(messages)

    async def _handle_message(self, message: Dict[str, Any]) -> None:
        kind = message.get("kind")
        try:
            if kind == "request":
                await self._answer_request(message)
            elif kind == "notification":
                await self.on_notification(message)
            else:
                await self.on_message(message)
        except Exception as e:
            # Mail is already marked read, so one bad message must not drop the rest
            logger.error(
                f"[{self.name}] Failed handling message #{message.get('sequenceId')}: {e}",
                exc_info=True,
            )

    async def _answer_request(self, message: Dict[str, Any]) -> None:
        sender = message.get("from")
        with CorrelationContext(agent_id=self.agent_id):
            try:
                reply = await self.process_request(message.get("body", ""), message.get("metadata") or {})
            except Exception as e:
                logger.error(f"[{self.name}] Processing error: {e}", exc_info=True)
                reply = f"Error: {e}"
        await self.send_message(
            sender,
            reply if reply is not None else "",
            kind="response",
            metadata={"inReplyTo": message.get("sequenceId")},
        )

    @abstractmethod
    async def process_request(self, body: str, metadata: Dict[str, Any]) -> Any:
        """Answer a request. Non-string results are JSON-encoded."""

    async def on_notification(self, message: Dict[str, Any]) -> None:
        logger.info(f"[{self.name}] Notification from {message.get('from')}: {message.get('body')}")

    async def on_message(self, message: Dict[str, Any]) -> None:
        logger.info(
            f"[{self.name}] {message.get('kind')} from {message.get('from')}: {message.get('body')}"
        )

    async def on_tick(self) -> None:
        """Hook for periodic work after the mailbox has been drained."""

    async def tick(self) -> None:
        await self.check_messages()
        await self.on_tick()

    async def _run(self) -> None:
        logger.info(f"[{self.name}] Polling every {self.poll_interval}s")
        while not self._stop_event.is_set():
            try:
                await self.tick()
            except Exception as e:
                logger.error(f"[{self.name}] Poll failed: {e}", exc_info=True)

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass
        logger.info(f"[{self.name}] Stopped polling")

    async def start(self) -> None:
        if self.is_running:
            return
        await self.initialize()
        self._stop_event = asyncio.Event()
        self._loop_task = asyncio.create_task(self._run(), name=f"agent-{self.agent_id}")

    async def stop(self, timeout: float = 10.0) -> None:
        """Stop polling after the in-flight tick has sent its responses."""
        if not self.is_running:
            return
        self._stop_event.set()
        try:
            await asyncio.wait_for(asyncio.shield(self._loop_task), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"[{self.name}] Tick still running after {timeout}s, cancelling")
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
        self._loop_task = None
