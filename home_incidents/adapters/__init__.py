"""
Adapters for home incidents hexagonal architecture.

This module contains the concrete implementations of port interfaces
that handle external I/O and infrastructure concerns.
"""

from .storage import (
    SQLiteIncidentStore, SQLiteTaskStore, SQLiteNotificationStore,
    InMemoryIncidentStore, InMemoryTaskStore, InMemoryNotificationStore,
)
from .homeassistant import HomeAssistantNotifyChannel, LogChannel

__all__ = [
    "SQLiteIncidentStore", "SQLiteTaskStore", "SQLiteNotificationStore",
    "InMemoryIncidentStore", "InMemoryTaskStore", "InMemoryNotificationStore",
    "HomeAssistantNotifyChannel", "LogChannel",
]
