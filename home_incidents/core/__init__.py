"""
Core domain models and pure functions for home incidents.

This module contains the domain models and pure business logic
(scoring, context derivation, recommendations, lifecycle rules)
that are independent of external I/O and infrastructure concerns.
"""

from .models import Incident, IncidentAction, IncidentDetail, Severity, IncidentStatus
from .scoring import compute_severity, compute_confidence, ScoringContext
from .context import build_scoring_context
from .recommendations import recommend_actions, register_recommender

__all__ = [
    "Incident", "IncidentAction", "IncidentDetail", "Severity", "IncidentStatus",
    "compute_severity", "compute_confidence", "ScoringContext",
    "build_scoring_context", "recommend_actions", "register_recommender",
]
