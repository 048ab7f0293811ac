"""
Home incidents core.

Deduplicated, scored and lifecycle-tracked home-ownership risk incidents:
ingestion, evaluation, action proposal and execution, suppression and
notifications.
"""

__version__ = "0.1.0"
