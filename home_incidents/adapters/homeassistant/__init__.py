"""
Home Assistant adapters for home incidents.

Notification channel senders used by the dispatcher.
"""

from .notify_channel import HomeAssistantNotifyChannel, LogChannel

__all__ = ["HomeAssistantNotifyChannel", "LogChannel"]
