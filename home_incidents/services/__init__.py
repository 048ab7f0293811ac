"""
Services for home incidents.

Suppression matching, the audit event log, notification dispatch,
evaluation and action execution. ``IncidentService`` lives in
``home_incidents.services.incidents`` and composes these with the
action orchestrator.
"""

from .suppression import SuppressionMatcher, SuppressionDecision
from .events import EventLog, EventLogResult
from .notifications import NotificationDispatcher, DispatchResult
from .evaluator import Evaluator
from .executor import Executor, ExecutionResult

__all__ = [
    "SuppressionMatcher", "SuppressionDecision", "EventLog", "EventLogResult",
    "NotificationDispatcher", "DispatchResult", "Evaluator", "Executor", "ExecutionResult",
]
