"""
Tests for ailink/hub.py and ailink/shutdown.py

Tests cover:
- Hub wiring, start/stop and async context manager use
- ShutdownManager hook ordering, timeouts and failure isolation
"""

import asyncio

import pytest

from ailink.config import HubConfig
from ailink.hub import Hub
from ailink.shutdown import ShutdownManager, ShutdownPhase


class TestHub:
    """Test Hub lifecycle."""

    def test_components_share_one_store(self, hub):
        """Should build every component on the same store."""
        assert hub.registry.store is hub.store
        assert hub.mailbox.store is hub.store
        assert hub.task_queue.store is hub.store
        assert hub.contexts.store is hub.store
        assert hub.dispatcher.registry is hub.registry

    def test_overwrite_setting_reaches_queue(self):
        """Should pass allow_result_overwrite to the task queue."""
        h = Hub(HubConfig(db_path=":memory:", allow_result_overwrite=True))
        try:
            assert h.task_queue.allow_result_overwrite is True
        finally:
            h.store.close()

    @pytest.mark.asyncio
    async def test_start_stop(self, hub):
        """Should run the scheduler while started and close the store on stop."""
        await hub.start()
        assert hub.scheduler.is_running

        await hub.stop()
        assert not hub.scheduler.is_running
        assert hub.store.closed

    @pytest.mark.asyncio
    async def test_context_manager(self, hub_config):
        """Should start on enter and stop on exit."""
        async with Hub(hub_config) as h:
            assert h.scheduler.is_running
            result = await h.dispatcher.call("register_ai", {"id": "a", "name": "A"})
            assert result["ok"]
        assert h.store.closed

    @pytest.mark.asyncio
    async def test_file_backed_hub_survives_restart(self, temp_dir):
        """Should keep tasks across hub restarts on the same database."""
        config = HubConfig(db_path=str(temp_dir / "bus.db"), scheduler_interval=0.05)
        async with Hub(config) as first:
            task_id = (await first.dispatcher.call("submit_task", {"description": "persist me"}))["result"]["taskId"]

        async with Hub(config) as second:
            listed = (await second.dispatcher.call("list_tasks", {}))["result"]
        assert [t["taskId"] for t in listed["tasks"]] == [task_id]

    def test_stats(self, hub):
        """Should report table counts and scheduler stats."""
        stats = hub.stats()
        assert stats["tables"]["tasks"] == 0
        assert stats["scheduler"]["running"] is False


class TestShutdownManager:
    """Test ShutdownManager."""

    @pytest.mark.asyncio
    async def test_hooks_run_in_phase_order(self):
        """Should run phases in order and higher priority first within a phase."""
        order = []

        def hook(name):
            async def run():
                order.append(name)
            return run

        manager = ShutdownManager()
        manager.register_hook("store", hook("store"), ShutdownPhase.CLEANUP)
        manager.register_hook("scheduler", hook("scheduler"), ShutdownPhase.GRACEFUL)
        manager.register_hook("agents", hook("agents"), ShutdownPhase.GRACEFUL, priority=5)
        manager.register_hook("http", hook("http"), ShutdownPhase.IMMEDIATE)

        await manager.shutdown()

        assert order == ["http", "agents", "scheduler", "store"]

    @pytest.mark.asyncio
    async def test_failure_and_timeout_do_not_stop_others(self):
        """Should continue past failing and slow hooks."""
        ran = []

        async def broken():
            raise RuntimeError("boom")

        async def slow():
            await asyncio.sleep(5)

        async def last():
            ran.append("last")

        manager = ShutdownManager()
        manager.register_hook("broken", broken, ShutdownPhase.IMMEDIATE)
        manager.register_hook("slow", slow, ShutdownPhase.GRACEFUL, timeout=0.05)
        manager.register_hook("last", last, ShutdownPhase.CLEANUP)

        await manager.shutdown()

        assert ran == ["last"]

    @pytest.mark.asyncio
    async def test_shutdown_runs_once(self):
        """Should ignore a second shutdown call."""
        calls = []

        async def hook():
            calls.append(1)

        manager = ShutdownManager()
        manager.register_hook("once", hook)
        await manager.shutdown()
        await manager.shutdown()

        assert calls == [1]
        assert manager.is_shutting_down()

    @pytest.mark.asyncio
    async def test_request_shutdown_releases_waiter(self):
        """Should wake wait_for_shutdown when shutdown is requested."""
        manager = ShutdownManager()
        waiter = asyncio.create_task(manager.wait_for_shutdown())
        await asyncio.sleep(0)
        assert not waiter.done()

        manager.request_shutdown()
        await asyncio.wait_for(waiter, timeout=1)
