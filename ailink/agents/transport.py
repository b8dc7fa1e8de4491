"""
Transports carry an agent's tool calls to the bus.

Both return the same ToolResult dict the Dispatcher produces, so an agent
behaves identically whether it runs inside the hub process or talks to it
over HTTP.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import aiohttp

from ailink.tools.dispatcher import Dispatcher

logger = logging.getLogger("ailink.agents.transport")


class Transport(ABC):
    """Carries one tool call and returns its ToolResult."""

    @abstractmethod
    async def call(self, name: str, args: Dict[str, Any]) -> Dict[str, Any]:
        pass

    async def close(self) -> None:
        pass


class InProcessTransport(Transport):
    """Calls the Dispatcher directly."""

    def __init__(self, dispatcher: Dispatcher):
        self.dispatcher = dispatcher

    async def call(self, name: str, args: Dict[str, Any]) -> Dict[str, Any]:
        return await self.dispatcher.call(name, args)


class HttpTransport(Transport):
    """
    Calls a remote hub through ``POST /api/tools/{name}``.

    Network failures are reported as an ``Internal`` error payload rather
    than raised, matching what the Dispatcher does for in-process calls.
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["x-api-key"] = self.api_key
        return headers

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
            self._owns_session = True
        return self._session

    async def call(self, name: str, args: Dict[str, Any]) -> Dict[str, Any]:
        session = await self._get_session()
        url = f"{self.base_url}/api/tools/{name}"
        try:
            async with session.post(url, json=args or {}, headers=self._headers()) as resp:
                try:
                    payload = await resp.json(content_type=None)
                except ValueError:
                    text = await resp.text()
                    return _transport_error(f"HTTP {resp.status}: {text[:200]}", url)
                if isinstance(payload, dict) and "ok" in payload:
                    return payload
                return _transport_error(f"HTTP {resp.status}: unexpected response", url)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"Request to {url} failed: {e}")
            return _transport_error(str(e) or type(e).__name__, url)

    async def list_tools(self) -> Dict[str, Any]:
        session = await self._get_session()
        async with session.get(f"{self.base_url}/api/tools", headers=self._headers()) as resp:
            return await resp.json(content_type=None)

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None


def _transport_error(message: str, url: str) -> Dict[str, Any]:
    return {
        "ok": False,
        "error": {
            "kind": "Internal",
            "code": "NET_001",
            "message": message,
            "details": {"url": url},
        },
    }
