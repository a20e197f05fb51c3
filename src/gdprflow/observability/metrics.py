"""Prometheus metrics for the compliance engine.

Defines operational metrics for monitoring retention sweeps, consent writes,
DPIA assessments and dashboard computation.
"""

from prometheus_client import Counter, Histogram, Gauge

# Retention metrics
retention_jobs_total = Counter(
    "gdprflow_retention_jobs_total",
    "Total retention policy executions",
    ["data_type", "status"]  # status: COMPLETED|FAILED
)

retention_records_total = Counter(
    "gdprflow_retention_records_total",
    "Records disposed of by retention",
    ["data_type", "disposition"]  # disposition: deleted|anonymized|skipped
)

retention_job_duration_seconds = Histogram(
    "gdprflow_retention_job_duration_seconds",
    "Time spent executing one retention policy in seconds",
    ["data_type"],
    buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 300.0]
)

# Consent metrics
consent_events_total = Counter(
    "gdprflow_consent_events_total",
    "Consent events recorded",
    ["purpose", "granted"]
)

consent_write_conflicts_total = Counter(
    "gdprflow_consent_write_conflicts_total",
    "Optimistic version conflicts on consent key writes"
)

# DPIA metrics
dpia_assessments_total = Counter(
    "gdprflow_dpia_assessments_total",
    "DPIA assessments performed",
    ["risk_level"]
)

# Data subject request metrics
subject_requests_total = Counter(
    "gdprflow_subject_requests_total",
    "Data subject requests by type and final status",
    ["request_type", "status"]
)

# Dashboard metrics
compliance_overall_score = Gauge(
    "gdprflow_compliance_overall_score",
    "Latest overall compliance score per tenant",
    ["tenant_id"]
)

dashboard_category_failures_total = Counter(
    "gdprflow_dashboard_category_failures_total",
    "Dashboard category computations that raised",
    ["category"]
)
