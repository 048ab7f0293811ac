"""
Orchestrators for home incidents.

This module contains the orchestrators that coordinate
the flow between services and ports.
"""
from .action_orchestrator import ActionOrchestrator, OrchestrationResult

__all__ = ["ActionOrchestrator", "OrchestrationResult"]
