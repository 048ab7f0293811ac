"""
Port interfaces for home incidents hexagonal architecture.

This module defines the port interfaces (Protocols) that define
the contracts between the incident services and external adapters.
"""

from .repository import IncidentRepositoryPort
from .tasks import TaskMaterializerPort, TaskSpec
from .notifications import NotificationStorePort, NotificationChannelPort

__all__ = [
    "IncidentRepositoryPort", "TaskMaterializerPort", "TaskSpec",
    "NotificationStorePort", "NotificationChannelPort",
]
