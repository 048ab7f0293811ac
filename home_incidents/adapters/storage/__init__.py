"""
Storage adapters for home incidents hexagonal architecture.

This module contains the SQLite stores behind the repository, task and
notification ports, and in-memory equivalents of each.
"""

from .sqlite_incidents import SQLiteIncidentStore
from .sqlite_tasks import SQLiteTaskStore
from .sqlite_notifications import SQLiteNotificationStore
from .memory import InMemoryIncidentStore, InMemoryTaskStore, InMemoryNotificationStore

__all__ = [
    "SQLiteIncidentStore", "SQLiteTaskStore", "SQLiteNotificationStore",
    "InMemoryIncidentStore", "InMemoryTaskStore", "InMemoryNotificationStore",
]
