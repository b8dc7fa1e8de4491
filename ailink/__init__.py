"""
AI-Link - coordination bus for cooperating agents.

Agents register with capabilities, exchange mailbox messages, work a shared
task queue and share access-controlled contexts through one store.
"""

__version__ = "1.0.0"
