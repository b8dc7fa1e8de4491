"""
AI-Link HTTP host.

Exposes the operation surface over HTTP for agents in other processes, plus
a few read-only views for dashboards.

Endpoints:
    POST /api/tools/{name}   run one operation, body is the argument object
    GET  /api/tools          operation schemas
    GET  /api/health         liveness (public)
    GET  /api/stats          row counts (public)
    GET  /api/agents         registered agents (?capability=)
    GET  /api/tasks          tasks (?status=&capability=)
    GET  /api/messages       mailbox view without marking read (?id=)

When an API key is configured every other route needs a matching
``x-api-key`` header.
"""

import asyncio
import hmac
import json
import logging
from typing import Any, Dict, Optional

from aiohttp import web

from ailink.config import HubConfig
from ailink.errors import ValidationError
from ailink.hub import Hub
from ailink.shutdown import ShutdownManager, ShutdownPhase

logger = logging.getLogger("ailink.api")

HUB_KEY = web.AppKey("hub", Hub)
API_KEY = web.AppKey("api_key", str)

PUBLIC_PATHS = frozenset({"/api/health", "/api/stats"})

KIND_STATUS = {
    "Validation": 400,
    "Unauthenticated": 401,
    "Unauthorized": 403,
    "NotFound": 404,
    "UnknownTool": 404,
    "InvalidState": 409,
    "Expired": 410,
    "Internal": 500,
}


def _respond(result: Dict[str, Any]) -> web.Response:
    if result.get("ok"):
        return web.json_response(result)
    status = KIND_STATUS.get(result["error"].get("kind"), 500)
    return web.json_response(result, status=status)


@web.middleware
async def auth_middleware(request: web.Request, handler):
    expected = request.app[API_KEY]
    if not expected or request.path in PUBLIC_PATHS or not request.path.startswith("/api/"):
        return await handler(request)

    provided = request.headers.get("x-api-key", "")
    if not hmac.compare_digest(provided.encode(), expected.encode()):
        logger.warning(f"Rejected {request.method} {request.path} from {request.remote}: bad api key")
        return web.json_response(
            {
                "ok": False,
                "error": {
                    "kind": "Unauthenticated",
                    "code": "AUTH_001",
                    "message": "Invalid or missing x-api-key header",
                    "details": {},
                },
            },
            status=401,
        )
    return await handler(request)


async def tool_handler(request: web.Request) -> web.Response:
    hub = request.app[HUB_KEY]
    name = request.match_info["name"]

    raw = await request.text()
    try:
        args = json.loads(raw) if raw.strip() else {}
    except ValueError as e:
        return _respond({"ok": False, "error": ValidationError(f"Request body is not valid JSON: {e}").to_dict()})
    if not isinstance(args, dict):
        return _respond({"ok": False, "error": ValidationError("Request body must be a JSON object").to_dict()})

    return _respond(await hub.dispatcher.call(name, args))


async def list_tools_handler(request: web.Request) -> web.Response:
    tools = request.app[HUB_KEY].dispatcher.list_tools()
    return web.json_response({"count": len(tools), "tools": tools})


async def health_handler(request: web.Request) -> web.Response:
    hub = request.app[HUB_KEY]
    return web.json_response({
        "status": "healthy",
        "uptime_seconds": round(hub.uptime_seconds, 1),
        "scheduler_running": hub.scheduler.is_running,
    })


async def stats_handler(request: web.Request) -> web.Response:
    hub = request.app[HUB_KEY]
    tables = await asyncio.to_thread(hub.store.stats)
    return web.json_response({
        "agents": tables["agents"],
        "messages": tables["messages"],
        "tasks": tables["tasks"],
        "contexts": tables["contexts"],
        "scheduler": hub.scheduler.get_stats(),
    })


async def agents_handler(request: web.Request) -> web.Response:
    hub = request.app[HUB_KEY]
    args = {"filterByCapability": request.query.get("capability")}
    return _respond(await hub.dispatcher.call("list_connected_ais", args))


async def tasks_handler(request: web.Request) -> web.Response:
    hub = request.app[HUB_KEY]
    args = {
        "status": request.query.get("status"),
        "capability": request.query.get("capability"),
    }
    return _respond(await hub.dispatcher.call("list_tasks", args))


async def messages_handler(request: web.Request) -> web.Response:
    hub = request.app[HUB_KEY]
    args = {
        "id": request.query.get("id") or request.query.get("aiId"),
        "unreadOnly": request.query.get("unreadOnly", "").lower() in ("1", "true", "yes"),
    }
    return _respond(await hub.dispatcher.call("read_messages", args))


def create_app(hub: Hub, api_key: Optional[str] = None) -> web.Application:
    """Build the aiohttp application around an existing hub."""
    app = web.Application(middlewares=[auth_middleware])
    app[HUB_KEY] = hub
    app[API_KEY] = api_key or ""

    app.router.add_post("/api/tools/{name}", tool_handler)
    app.router.add_get("/api/tools", list_tools_handler)
    app.router.add_get("/api/health", health_handler)
    app.router.add_get("/api/stats", stats_handler)
    app.router.add_get("/api/agents", agents_handler)
    app.router.add_get("/api/tasks", tasks_handler)
    app.router.add_get("/api/messages", messages_handler)

    if not api_key:
        logger.warning("No API key configured; HTTP operations are unauthenticated")
    return app


async def run_server(config: HubConfig) -> None:
    """Serve until SIGINT or SIGTERM, then shut down in order."""
    hub = Hub(config)
    app = create_app(hub, api_key=config.api_key)

    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, config.host, config.port)
    await site.start()
    await hub.start()
    logger.info(f"AI-Link listening on http://{config.host}:{config.port}")

    async def close_store():
        await asyncio.to_thread(hub.store.close)

    manager = ShutdownManager()
    manager.register_hook("http", runner.cleanup, ShutdownPhase.IMMEDIATE)
    manager.register_hook("scheduler", hub.scheduler.stop, ShutdownPhase.GRACEFUL, timeout=15.0)
    manager.register_hook("store", close_store, ShutdownPhase.CLEANUP)
    manager.install_signal_handlers()

    try:
        await manager.wait_for_shutdown()
    finally:
        await manager.shutdown()
        manager.remove_signal_handlers()
