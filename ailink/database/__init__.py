"""SQLite store and persistence guard."""

from ailink.database.persistence import MEMORY_DB, PersistenceGuard, Store

__all__ = ["MEMORY_DB", "PersistenceGuard", "Store"]
