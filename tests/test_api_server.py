"""
Tests for ailink/api_server.py

Tests cover:
- POST /api/tools/{name} envelope and status mapping
- Request body validation
- x-api-key enforcement and the public health/stats routes
- Dashboard views
- HttpTransport against a live test server
"""

import pytest
from aiohttp import test_utils

from ailink.agents.transport import HttpTransport
from ailink.api_server import create_app

API_KEY = "test-secret"


@pytest.fixture
async def http(hub):
    client = test_utils.TestClient(test_utils.TestServer(create_app(hub)))
    await client.start_server()
    yield client
    await client.close()


@pytest.fixture
async def secured(hub):
    client = test_utils.TestClient(test_utils.TestServer(create_app(hub, api_key=API_KEY)))
    await client.start_server()
    yield client
    await client.close()


class TestToolEndpoint:
    """Test POST /api/tools/{name}."""

    @pytest.mark.asyncio
    async def test_success_is_200(self, http):
        """Should return 200 with the ok envelope."""
        resp = await http.post("/api/tools/register_ai", json={"aiId": "a1", "name": "A"})
        assert resp.status == 200
        body = await resp.json()
        assert body == {"ok": True, "result": {"id": "a1", "name": "A", "registered": True}}

    @pytest.mark.asyncio
    async def test_validation_is_400(self, http):
        """Should map Validation to 400."""
        resp = await http.post("/api/tools/submit_task", json={})
        assert resp.status == 400
        assert (await resp.json())["error"]["kind"] == "Validation"

    @pytest.mark.asyncio
    async def test_unknown_tool_is_404(self, http):
        """Should map UnknownTool to 404."""
        resp = await http.post("/api/tools/nope", json={})
        assert resp.status == 404
        assert (await resp.json())["error"]["kind"] == "UnknownTool"

    @pytest.mark.asyncio
    async def test_not_found_is_404(self, http):
        """Should map NotFound to 404."""
        resp = await http.post("/api/tools/send_message", json={"from": "a", "to": "ghost", "body": "x"})
        assert resp.status == 404
        assert (await resp.json())["error"]["kind"] == "NotFound"

    @pytest.mark.asyncio
    async def test_lost_claim_is_409(self, http):
        """Should map InvalidState to 409."""
        task_id = (await (await http.post("/api/tools/submit_task", json={"description": "x"})).json())["result"]["taskId"]
        await http.post("/api/tools/claim_task", json={"taskId": task_id, "id": "a"})

        resp = await http.post("/api/tools/claim_task", json={"taskId": task_id, "id": "b"})
        assert resp.status == 409

    @pytest.mark.asyncio
    async def test_unauthorized_and_expired(self, http, clock):
        """Should map Unauthorized to 403 and Expired to 410."""
        await http.post("/api/tools/share_context", json={
            "contextId": "c", "data": {}, "authorizedIds": ["a"], "ttlSeconds": 1,
        })
        resp = await http.post("/api/tools/get_shared_context", json={"contextId": "c", "requesterId": "b"})
        assert resp.status == 403

        clock.advance(2)
        resp = await http.post("/api/tools/get_shared_context", json={"contextId": "c", "requesterId": "a"})
        assert resp.status == 410

    @pytest.mark.asyncio
    async def test_non_object_body_is_400(self, http):
        """Should reject a JSON body that is not an object."""
        resp = await http.post("/api/tools/list_tasks", json=["pending"])
        assert resp.status == 400
        assert (await resp.json())["error"]["kind"] == "Validation"

    @pytest.mark.asyncio
    async def test_invalid_json_is_400(self, http):
        """Should reject a body that is not JSON."""
        resp = await http.post("/api/tools/list_tasks", data="{oops", headers={"Content-Type": "application/json"})
        assert resp.status == 400

    @pytest.mark.asyncio
    async def test_empty_body_means_no_arguments(self, http):
        """Should treat an empty body as an empty argument object."""
        resp = await http.post("/api/tools/list_tasks")
        assert resp.status == 200
        assert (await resp.json())["result"] == {"count": 0, "tasks": []}


class TestAuth:
    """Test x-api-key enforcement."""

    @pytest.mark.asyncio
    async def test_missing_key_is_401(self, secured):
        """Should reject calls without the key."""
        resp = await secured.post("/api/tools/list_tasks", json={})
        assert resp.status == 401
        assert (await resp.json())["error"]["kind"] == "Unauthenticated"

    @pytest.mark.asyncio
    async def test_wrong_key_is_401(self, secured):
        """Should reject calls with the wrong key."""
        resp = await secured.get("/api/agents", headers={"x-api-key": "guess"})
        assert resp.status == 401

    @pytest.mark.asyncio
    async def test_correct_key_passes(self, secured):
        """Should accept calls with the configured key."""
        resp = await secured.post("/api/tools/list_tasks", json={}, headers={"x-api-key": API_KEY})
        assert resp.status == 200

    @pytest.mark.asyncio
    async def test_health_and_stats_are_public(self, secured):
        """Should serve health and stats without a key."""
        assert (await secured.get("/api/health")).status == 200
        assert (await secured.get("/api/stats")).status == 200


class TestViews:
    """Test read-only routes."""

    @pytest.mark.asyncio
    async def test_health(self, http, hub):
        """Should report healthy with scheduler state."""
        body = await (await http.get("/api/health")).json()
        assert body["status"] == "healthy"
        assert body["scheduler_running"] is False
        assert "uptime_seconds" in body

    @pytest.mark.asyncio
    async def test_stats_counts_rows(self, http):
        """Should count rows per table."""
        await http.post("/api/tools/register_ai", json={"id": "a", "name": "A"})
        await http.post("/api/tools/submit_task", json={"description": "x"})

        body = await (await http.get("/api/stats")).json()
        assert body["agents"] == 1
        assert body["tasks"] == 1
        assert body["messages"] == 0

    @pytest.mark.asyncio
    async def test_tools_listing(self, http):
        """Should list operation schemas."""
        body = await (await http.get("/api/tools")).json()
        assert "claim_task" in [t["name"] for t in body["tools"]]

    @pytest.mark.asyncio
    async def test_agents_and_tasks_views(self, http):
        """Should filter agents and tasks from query parameters."""
        await http.post("/api/tools/register_ai", json={"id": "a", "name": "A", "capabilities": ["price"]})
        await http.post("/api/tools/register_ai", json={"id": "b", "name": "B"})
        await http.post("/api/tools/submit_task", json={"description": "x", "requiredCapabilities": ["price"]})

        agents = await (await http.get("/api/agents", params={"capability": "price"})).json()
        assert [a["id"] for a in agents["result"]["agents"]] == ["a"]

        tasks = await (await http.get("/api/tasks", params={"status": "pending"})).json()
        assert tasks["result"]["count"] == 1

    @pytest.mark.asyncio
    async def test_messages_view_does_not_mark_read(self, http):
        """Should show a mailbox without flipping read flags."""
        await http.post("/api/tools/register_ai", json={"id": "b", "name": "B"})
        await http.post("/api/tools/send_message", json={"from": "a", "to": "b", "body": "hi"})

        await http.get("/api/messages", params={"id": "b"})
        view = await (await http.get("/api/messages", params={"id": "b", "unreadOnly": "true"})).json()
        assert view["result"]["count"] == 1

    @pytest.mark.asyncio
    async def test_messages_view_needs_id(self, http):
        """Should report Validation without an id."""
        assert (await http.get("/api/messages")).status == 400


class TestHttpTransport:
    """Test HttpTransport against a running app."""

    @pytest.mark.asyncio
    async def test_round_trip(self, secured):
        """Should carry calls and errors over HTTP with the api key."""
        transport = HttpTransport(str(secured.make_url("")), api_key=API_KEY)
        try:
            ok = await transport.call("register_ai", {"id": "a", "name": "A"})
            assert ok["ok"] is True

            err = await transport.call("claim_task", {"taskId": "none", "id": "a"})
            assert err["error"]["kind"] == "NotFound"
        finally:
            await transport.close()

    @pytest.mark.asyncio
    async def test_missing_key_surfaces_unauthenticated(self, secured):
        """Should pass the 401 envelope through."""
        transport = HttpTransport(str(secured.make_url("")))
        try:
            response = await transport.call("list_tasks", {})
            assert response["error"]["kind"] == "Unauthenticated"
        finally:
            await transport.close()

    @pytest.mark.asyncio
    async def test_unreachable_host_is_internal(self):
        """Should report network failures as Internal instead of raising."""
        transport = HttpTransport("http://127.0.0.1:1", timeout=2)
        try:
            response = await transport.call("list_tasks", {})
            assert response["ok"] is False
            assert response["error"]["kind"] == "Internal"
        finally:
            await transport.close()
