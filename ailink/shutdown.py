"""
Graceful shutdown for the hub process.

Hooks run in phase order: stop taking requests, let in-flight work finish
(scheduler and agent loops), then close the store.
"""

import asyncio
import logging
import signal
import time
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, List, Optional

logger = logging.getLogger("ailink.shutdown")


class ShutdownPhase(Enum):
    """Shutdown phase for prioritized cleanup."""
    IMMEDIATE = 1  # Stop accepting new requests
    GRACEFUL = 2   # Finish in-flight ticks
    CLEANUP = 3    # Close the store


@dataclass
class ShutdownHook:
    name: str
    callback: Callable[[], Awaitable[None]]
    phase: ShutdownPhase
    timeout: float = 5.0
    priority: int = 0  # Higher runs first within a phase


class ShutdownManager:
    """
    Usage:
        manager = ShutdownManager()
        manager.register_hook("store", close_store, ShutdownPhase.CLEANUP)
        manager.install_signal_handlers()

        await manager.wait_for_shutdown()
        await manager.shutdown()
    """

    def __init__(self):
        self.hooks: List[ShutdownHook] = []
        self._shutdown_event = asyncio.Event()
        self._is_shutting_down = False
        self._signals_installed: List[signal.Signals] = []

    def register_hook(
        self,
        name: str,
        callback: Callable[[], Awaitable[None]],
        phase: ShutdownPhase = ShutdownPhase.GRACEFUL,
        timeout: float = 5.0,
        priority: int = 0,
    ) -> None:
        self.hooks.append(ShutdownHook(name, callback, phase, timeout, priority))
        logger.debug(f"Registered shutdown hook: {name} (phase={phase.name}, priority={priority})")

    def install_signal_handlers(self) -> None:
        """Trigger shutdown on SIGINT and SIGTERM. Must be called from the running loop."""
        if self._signals_installed:
            logger.warning("Signal handlers already installed")
            return

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.request_shutdown, sig)
            except (NotImplementedError, RuntimeError):
                # No loop signal support on Windows; fall back to the plain handler
                signal.signal(sig, lambda s, _f: loop.call_soon_threadsafe(self.request_shutdown, s))
            self._signals_installed.append(sig)
        logger.info("Signal handlers installed (SIGTERM, SIGINT)")

    def remove_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in self._signals_installed:
            try:
                loop.remove_signal_handler(sig)
            except (NotImplementedError, RuntimeError):
                signal.signal(sig, signal.SIG_DFL)
        self._signals_installed.clear()

    def request_shutdown(self, sig: Optional[int] = None) -> None:
        if sig is not None:
            logger.info(f"Received {signal.Signals(sig).name}, initiating graceful shutdown...")
        self._shutdown_event.set()

    async def wait_for_shutdown(self) -> None:
        await self._shutdown_event.wait()

    def is_shutting_down(self) -> bool:
        return self._is_shutting_down

    async def shutdown(self) -> None:
        """Run every hook in phase order. A failing or slow hook does not stop the rest."""
        if self._is_shutting_down:
            logger.warning("Shutdown already in progress")
            return
        self._is_shutting_down = True
        started = time.monotonic()
        logger.info("Graceful shutdown initiated")

        ordered = sorted(self.hooks, key=lambda h: (h.phase.value, -h.priority))
        for hook in ordered:
            try:
                logger.info(f"  [{hook.phase.name}] {hook.name}...")
                await asyncio.wait_for(hook.callback(), timeout=hook.timeout)
            except asyncio.TimeoutError:
                logger.error(f"  [{hook.name}] Timeout after {hook.timeout}s")
            except Exception as e:
                logger.error(f"  [{hook.name}] Failed: {e}", exc_info=True)

        logger.info(f"Shutdown complete ({time.monotonic() - started:.1f}s)")
