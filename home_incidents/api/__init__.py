"""
HTTP boundary for home incidents.
"""

from .incidents import create_incident_router, register_error_handlers

__all__ = ["create_incident_router", "register_error_handlers"]
