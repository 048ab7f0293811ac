"""
Metrics definitions for home incidents.

This module defines Prometheus metrics for monitoring the incident
lifecycle: ingestion, scoring, activation, action proposal/execution
and notification delivery.
"""

from prometheus_client import Counter, Histogram

# 카운터 메트릭
incidents_ingested = Counter(
    "incidents_ingested_total",
    "Number of incident upserts",
    ["type_key", "outcome"]
)

incidents_suppressed_on_ingest = Counter(
    "incidents_suppressed_on_ingest_total",
    "Number of upserts forced into SUPPRESSED by a suppression rule",
    ["type_key"]
)

severity_computed = Counter(
    "incident_severity_computed_total",
    "Number of scoring passes",
    ["severity"]
)

incidents_activated = Counter(
    "incidents_activated_total",
    "Number of incidents auto-activated by the evaluator",
    ["severity"]
)

actions_proposed = Counter(
    "incident_actions_proposed_total",
    "Number of actions proposed by the orchestrator",
    ["type_key"]
)

actions_executed = Counter(
    "incident_actions_executed_total",
    "Number of actions materialized by the executor",
    ["action_type", "outcome"]
)

notifications = Counter(
    "incident_notifications_total",
    "Notification dispatch outcomes",
    ["type", "outcome"]
)

event_log_failures = Counter(
    "incident_event_log_failures_total",
    "Number of audit events that could not be written"
)

# 히스토그램 메트릭
evaluation_seconds = Histogram(
    "incident_evaluation_duration_seconds",
    "Time spent evaluating an incident",
    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0]
)

upsert_seconds = Histogram(
    "incident_upsert_duration_seconds",
    "End-to-end upsert latency (ingest, evaluate, orchestrate)",
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0]
)
