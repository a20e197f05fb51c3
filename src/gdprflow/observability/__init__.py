"""Observability module for the compliance engine.

Provides structured logging, trace ID correlation and Prometheus metrics.
"""

from .logging_config import configure_logging, JSONFormatter, TraceIDFilter
from .metrics import (
    retention_jobs_total,
    retention_records_total,
    retention_job_duration_seconds,
    consent_events_total,
    consent_write_conflicts_total,
    dpia_assessments_total,
    subject_requests_total,
    compliance_overall_score,
    dashboard_category_failures_total,
)
from .request_id import trace_id_var, get_trace_id, set_trace_id, generate_trace_id

__all__ = [
    # Logging
    "configure_logging",
    "JSONFormatter",
    "TraceIDFilter",
    # Metrics
    "retention_jobs_total",
    "retention_records_total",
    "retention_job_duration_seconds",
    "consent_events_total",
    "consent_write_conflicts_total",
    "dpia_assessments_total",
    "subject_requests_total",
    "compliance_overall_score",
    "dashboard_category_failures_total",
    # Trace ID
    "trace_id_var",
    "get_trace_id",
    "set_trace_id",
    "generate_trace_id",
]
