"""
Common utilities for home incidents.

This module contains small shared helpers (time handling, retries)
used by services and adapters.
"""

from .clock import Clock, utcnow, ensure_utc
from .retry import retry_with_backoff

__all__ = ["Clock", "utcnow", "ensure_utc", "retry_with_backoff"]
