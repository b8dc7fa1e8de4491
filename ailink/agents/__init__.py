"""Agent-side helpers: polling base class, task worker and transports."""

from ailink.agents.base import PollingAgent
from ailink.agents.transport import HttpTransport, InProcessTransport, Transport
from ailink.agents.worker import TaskWorker

__all__ = [
    "PollingAgent",
    "TaskWorker",
    "Transport",
    "InProcessTransport",
    "HttpTransport",
]
