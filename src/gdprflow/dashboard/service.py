"""Compliance dashboard service.

Fuses the DPIA, consent, retention, subject-rights and audit views of one
tenant into a single compliance posture. The dashboard performs no writes.

Each of the six score categories is computed in isolation: a category that
raises is reported with score None and an error, counted in a metric, and
the overall score is taken over the remaining categories with their weights
renormalised. Auxiliary views (metrics, recent activity, tasks, alerts)
degrade to empty on failure and are listed in ComplianceDashboard.errors.

Categories run sequentially on the injected Session, which is not safe to
share across threads.
"""

import logging
from datetime import datetime, timedelta
from functools import cached_property
from typing import Callable, Dict, List, Optional, TypeVar
from uuid import UUID

from sqlalchemy.orm import Session

from ..audit.schemas import AuditLogFilter, AuditStats
from ..audit.service import AuditLogger
from ..config import RegulatoryConfig, Settings, get_regulatory_config, get_settings
from ..consent.schemas import ConsentReport
from ..consent.service import ConsentService
from ..dpia.assessor import add_months
from ..dpia.models import ComplianceStatus, DPIAReport, RiskLevel
from ..dpia.service import DPIAService
from ..errors import NotFoundError
from ..models.audit_log import AuditSeverity
from ..models.base import utcnow
from ..models.consent_record import ConsentKeyHead
from ..models.data_breach import BreachSeverity, BreachStatus, DataBreach
from ..models.data_subject_request import DataSubjectRequest, RequestStatus
from ..models.dpia_assessment import DPIAAssessmentRecord
from ..models.processing_activity import ProcessingActivity
from ..models.tenant import Tenant
from ..observability.metrics import compliance_overall_score, dashboard_category_failures_total
from ..retention.schemas import RetentionReport
from ..retention.service import RetentionService
from .schemas import (
    ALERT_PRIORITY,
    Alert,
    AlertLevel,
    BreachMetrics,
    ComplianceDashboard,
    ComplianceMetrics,
    ComplianceScore,
    ComplianceStatusView,
    ConsentMetrics,
    DataSubjectRequestMetrics,
    DPIAMetrics,
    RecentActivity,
    RetentionMetrics,
    UpcomingTask,
)
from .scoring import (
    Category,
    CategoryResult,
    calculate_risk_level,
    determine_status,
    generate_recommendations,
    score_audit_trail,
    score_consent_management,
    score_data_protection,
    score_retention_policies,
    score_risk_assessment,
    score_subject_rights,
    weighted_overall,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Statutory response deadline for data subject requests (Art. 12(3))
SUBJECT_REQUEST_DEADLINE_DAYS = 30
# Authority notification deadline for breaches (Art. 33)
BREACH_NOTIFICATION_HOURS = 72
CONSENT_REPORT_DAYS = 30
AUDIT_WINDOW_DAYS = 30
RECENT_ACTIVITY_DAYS = 7
RECENT_ACTIVITY_LIMIT = 20
DPIA_REVIEW_HORIZON_DAYS = 30
REVIEW_INTERVAL_MONTHS = 3
APPLICABLE_REGULATIONS = ["GDPR"]


class TenantSnapshot:
    """Inputs shared by the categories and views of one dashboard build.

    Each input is computed at most once. A failing input is not cached, so
    every category that needs it fails on its own.
    """

    def __init__(self, service: "ComplianceDashboardService", tenant_id: UUID, now: datetime):
        self.service = service
        self.db = service.db
        self.tenant_id = tenant_id
        self.now = now

    @cached_property
    def dpia_report(self) -> DPIAReport:
        return self.service.dpia.generate_dpia_report(self.tenant_id)

    @cached_property
    def latest_dpia_snapshots(self) -> List[DPIAAssessmentRecord]:
        """Most recent persisted assessment of each active activity."""
        records = (
            self.db.query(DPIAAssessmentRecord)
            .join(ProcessingActivity, DPIAAssessmentRecord.activity_id == ProcessingActivity.id)
            .filter(
                DPIAAssessmentRecord.tenant_id == self.tenant_id,
                ProcessingActivity.is_active.is_(True),
            )
            .order_by(DPIAAssessmentRecord.conducted_at)
            .all()
        )
        latest: Dict[UUID, DPIAAssessmentRecord] = {}
        for record in records:
            latest[record.activity_id] = record
        return list(latest.values())

    @cached_property
    def consent_report(self) -> ConsentReport:
        return self.service.consent.generate_consent_report(
            self.tenant_id, self.now - timedelta(days=CONSENT_REPORT_DAYS), self.now
        )

    @cached_property
    def expired_consents(self) -> int:
        return self.service.consent.get_expired_consents_count(self.tenant_id)

    @cached_property
    def retention_report(self) -> RetentionReport:
        return self.service.retention.generate_retention_report(self.tenant_id)

    @cached_property
    def subject_requests(self) -> List[DataSubjectRequest]:
        return (
            self.db.query(DataSubjectRequest)
            .filter(DataSubjectRequest.tenant_id == self.tenant_id)
            .all()
        )

    @cached_property
    def subject_request_metrics(self) -> DataSubjectRequestMetrics:
        requests = self.subject_requests
        overdue_before = self.now - timedelta(days=SUBJECT_REQUEST_DEADLINE_DAYS)
        pending = [r for r in requests if r.status == RequestStatus.PENDING.value]
        completed = [r for r in requests if r.status == RequestStatus.COMPLETED.value]

        response_days = [
            (r.completed_at - r.requested_at).total_seconds() / 86400
            for r in completed if r.completed_at is not None
        ]
        return DataSubjectRequestMetrics(
            total=len(requests),
            pending=len(pending),
            completed=len(completed),
            overdue=sum(1 for r in pending if r.requested_at < overdue_before),
            average_response_days=round(sum(response_days) / len(response_days), 1) if response_days else 0.0,
        )

    @cached_property
    def audit_stats(self) -> AuditStats:
        return self.service.audit.get_stats(
            self.tenant_id, self.now - timedelta(days=AUDIT_WINDOW_DAYS), self.now
        )

    @cached_property
    def active_activities(self) -> int:
        return (
            self.db.query(ProcessingActivity)
            .filter(
                ProcessingActivity.tenant_id == self.tenant_id,
                ProcessingActivity.is_active.is_(True),
            )
            .count()
        )


class ComplianceDashboardService:
    """Builds the compliance dashboard of a tenant.

    Usage:
        service = ComplianceDashboardService(db=session, audit=AuditLogger(session))
        dashboard = service.generate_dashboard(tenant_id)
    """

    def __init__(
        self,
        db: Session,
        audit: AuditLogger,
        settings: Optional[Settings] = None,
        regulatory: Optional[RegulatoryConfig] = None,
        dpia: Optional[DPIAService] = None,
        consent: Optional[ConsentService] = None,
        retention: Optional[RetentionService] = None,
    ):
        self.db = db
        self.audit = audit
        self.settings = settings or get_settings()
        self.regulatory = regulatory or get_regulatory_config()
        self.dpia = dpia or DPIAService(db, audit, self.settings, self.regulatory)
        self.consent = consent or ConsentService(db, audit, self.settings, self.regulatory)
        self.retention = retention or RetentionService(db, audit, self.settings, self.regulatory)

    def generate_dashboard(self, tenant_id: UUID) -> ComplianceDashboard:
        """Raises NotFoundError for an unknown tenant."""
        if self.db.get(Tenant, tenant_id) is None:
            raise NotFoundError(f"Tenant {tenant_id} not found")

        logger.info("Generating compliance dashboard", extra={"tenant_id": tenant_id})
        now = utcnow()
        snapshot = TenantSnapshot(self, tenant_id, now)
        errors: Dict[str, str] = {}

        score = self.calculate_compliance_score(snapshot)
        metrics = self._safe_view("metrics", lambda: self.gather_metrics(snapshot), None, errors, tenant_id)
        recent_activity = self._safe_view(
            "recent_activity", lambda: self.get_recent_activity(snapshot), [], errors, tenant_id
        )
        upcoming_tasks = self._safe_view(
            "upcoming_tasks", lambda: self.get_upcoming_tasks(snapshot), [], errors, tenant_id
        )
        alerts = self._safe_view(
            "alerts", lambda: self.get_alerts(snapshot, score), [], errors, tenant_id
        )

        compliance_overall_score.labels(tenant_id=str(tenant_id)).set(score.overall)

        return ComplianceDashboard(
            tenant_id=tenant_id,
            score=score,
            metrics=metrics,
            status=ComplianceStatusView(
                status=determine_status(score.overall, score.risk_level, score.critical_issues),
                last_assessment=now,
                next_review=add_months(now, REVIEW_INTERVAL_MONTHS),
                regulations=list(APPLICABLE_REGULATIONS),
            ),
            recent_activity=recent_activity,
            upcoming_tasks=upcoming_tasks,
            alerts=alerts,
            errors=errors,
        )

    def _safe_view(
        self,
        name: str,
        build: Callable[[], T],
        default: T,
        errors: Dict[str, str],
        tenant_id: UUID,
    ) -> T:
        try:
            return build()
        except Exception as e:
            # Read-only: discard whatever the failed query left behind
            self.db.rollback()
            errors[name] = str(e)
            logger.error(
                f"Dashboard view {name} failed",
                exc_info=True,
                extra={"tenant_id": tenant_id},
            )
            return default

    # Score

    def _category_scorers(self, snapshot: TenantSnapshot) -> Dict[Category, Callable[[], int]]:
        return {
            Category.DATA_PROTECTION: lambda: score_data_protection(snapshot.active_activities),
            Category.CONSENT_MANAGEMENT: lambda: score_consent_management(
                snapshot.consent_report.withdrawal_rate,
                snapshot.consent_report.compliance_metrics.expired_consents,
            ),
            Category.RETENTION_POLICIES: lambda: score_retention_policies(
                snapshot.retention_report.summary.get("data_types_managed", 0),
                snapshot.retention_report.summary.get("records_due_deletion", 0),
            ),
            Category.SUBJECT_RIGHTS: lambda: score_subject_rights(
                snapshot.subject_request_metrics.average_response_days,
                snapshot.subject_request_metrics.overdue,
            ),
            Category.RISK_ASSESSMENT: lambda: score_risk_assessment(
                sum(
                    1 for a in snapshot.dpia_report.assessments
                    if a.risk_level in (RiskLevel.HIGH, RiskLevel.CRITICAL)
                ),
                snapshot.dpia_report.compliance_status,
            ),
            Category.AUDIT_TRAIL: lambda: score_audit_trail(
                snapshot.audit_stats.total_logs,
                snapshot.audit_stats.severity_count(AuditSeverity.CRITICAL),
            ),
        }

    def calculate_category(
        self, category: Category, scorer: Callable[[], int], tenant_id: UUID
    ) -> CategoryResult:
        try:
            return CategoryResult(category=category, score=scorer())
        except Exception as e:
            self.db.rollback()
            dashboard_category_failures_total.labels(category=category.value).inc()
            logger.error(
                f"Compliance category {category.value} could not be computed",
                exc_info=True,
                extra={"tenant_id": tenant_id},
            )
            return CategoryResult(category=category, error=str(e) or type(e).__name__)

    def calculate_compliance_score(self, snapshot: TenantSnapshot) -> ComplianceScore:
        results = [
            self.calculate_category(category, scorer, snapshot.tenant_id)
            for category, scorer in self._category_scorers(snapshot).items()
        ]

        overall = weighted_overall({r.category: r.score for r in results if r.ok})
        risk_level = calculate_risk_level(overall)
        recommendations, critical_issues = generate_recommendations(results, risk_level)

        return ComplianceScore(
            overall=overall,
            breakdown={r.category.value: r.score for r in results},
            category_errors={r.category.value: r.error for r in results if not r.ok},
            risk_level=risk_level,
            recommendations=recommendations,
            critical_issues=critical_issues,
        )

    # Metrics

    def gather_metrics(self, snapshot: TenantSnapshot) -> ComplianceMetrics:
        return ComplianceMetrics(
            data_subject_requests=snapshot.subject_request_metrics,
            consent_metrics=self._consent_metrics(snapshot),
            dpia_metrics=self._dpia_metrics(snapshot),
            retention_metrics=self._retention_metrics(snapshot),
            breach_metrics=self._breach_metrics(snapshot),
        )

    def _consent_metrics(self, snapshot: TenantSnapshot) -> ConsentMetrics:
        report = snapshot.consent_report
        total_events = report.summary.get("total_consent_events", 0)
        expired = report.compliance_metrics.expired_consents
        active = (
            self.db.query(ConsentKeyHead)
            .filter(
                ConsentKeyHead.tenant_id == snapshot.tenant_id,
                ConsentKeyHead.latest_granted.is_(True),
            )
            .count()
        )
        return ConsentMetrics(
            total_consents=report.summary.get("total_consents_granted", 0),
            active_consents=active,
            withdrawal_rate=report.withdrawal_rate,
            expired_consents=expired,
            compliance_rate=(
                int(max(0, total_events - expired) / total_events * 100 + 0.5) if total_events else 100
            ),
        )

    def _dpia_metrics(self, snapshot: TenantSnapshot) -> DPIAMetrics:
        assessments = snapshot.dpia_report.assessments
        total = len(assessments)
        compliant = sum(1 for a in assessments if a.compliance_status == ComplianceStatus.COMPLIANT)
        return DPIAMetrics(
            total_assessments=total,
            high_risk_activities=sum(
                1 for a in assessments if a.risk_level in (RiskLevel.HIGH, RiskLevel.CRITICAL)
            ),
            overdue_dpias=sum(1 for s in snapshot.latest_dpia_snapshots if s.next_review < snapshot.now),
            compliance_rate=int(compliant / total * 100 + 0.5) if total else 100,
        )

    def _retention_metrics(self, snapshot: TenantSnapshot) -> RetentionMetrics:
        report = snapshot.retention_report
        executions = [
            datetime.fromisoformat(p["last_executed"])
            for p in report.policies if p.get("last_executed")
        ]
        return RetentionMetrics(
            active_policies=report.summary.get("active_policies", 0),
            overdue_records=report.summary.get("records_due_deletion", 0),
            data_types_managed=report.summary.get("data_types_managed", 0),
            last_execution_time=max(executions, default=None),
        )

    def _breach_metrics(self, snapshot: TenantSnapshot) -> BreachMetrics:
        breaches = (
            self.db.query(DataBreach)
            .filter(DataBreach.tenant_id == snapshot.tenant_id)
            .all()
        )
        notified_hours = [
            (b.authorities_notified_at - b.detected_at).total_seconds() / 3600
            for b in breaches
            if b.authorities_notified and b.authorities_notified_at is not None
        ]
        on_time = sum(1 for hours in notified_hours if hours <= BREACH_NOTIFICATION_HOURS)

        return BreachMetrics(
            total_breaches=len(breaches),
            open_breaches=sum(1 for b in breaches if b.status != BreachStatus.RESOLVED.value),
            average_notification_hours=(
                round(sum(notified_hours) / len(notified_hours), 1) if notified_hours else 0.0
            ),
            notification_compliance=int(on_time / len(breaches) * 100 + 0.5) if breaches else 100,
        )

    # Auxiliary views

    def get_recent_activity(self, snapshot: TenantSnapshot) -> List[RecentActivity]:
        logs = self.audit.get_logs(AuditLogFilter(
            tenant_id=snapshot.tenant_id,
            start_date=snapshot.now - timedelta(days=RECENT_ACTIVITY_DAYS),
            limit=RECENT_ACTIVITY_LIMIT,
        ))
        return [
            RecentActivity(
                type=log.action,
                description=log.details or f"{log.action} on {log.resource}",
                timestamp=log.timestamp,
                severity=log.severity,
                action_required=log.severity in (AuditSeverity.HIGH.value, AuditSeverity.CRITICAL.value),
            )
            for log in logs
        ]

    def get_upcoming_tasks(self, snapshot: TenantSnapshot) -> List[UpcomingTask]:
        now = snapshot.now
        tasks = []

        review_horizon = now + timedelta(days=DPIA_REVIEW_HORIZON_DAYS)
        for record in snapshot.latest_dpia_snapshots:
            if record.next_review <= review_horizon:
                tasks.append(UpcomingTask(
                    task=f"DPIA Review: {record.activity_name}",
                    due_date=record.next_review,
                    priority=RiskLevel.CRITICAL if record.risk_level == RiskLevel.CRITICAL.value else RiskLevel.MEDIUM,
                    category="Risk Assessment",
                ))

        overdue_before = now - timedelta(days=SUBJECT_REQUEST_DEADLINE_DAYS)
        for request in snapshot.subject_requests:
            if request.status == RequestStatus.PENDING.value and request.requested_at < overdue_before:
                tasks.append(UpcomingTask(
                    task=f"Overdue Data Subject Request: {request.request_type}",
                    due_date=request.requested_at + timedelta(days=SUBJECT_REQUEST_DEADLINE_DAYS),
                    priority=RiskLevel.HIGH,
                    category="Subject Rights",
                ))

        for policy in self.retention.get_tenant_retention_policies(snapshot.tenant_id):
            if policy.next_execution is not None and policy.next_execution <= now:
                tasks.append(UpcomingTask(
                    task=f"Execute Retention Policy: {policy.name}",
                    due_date=policy.next_execution,
                    priority=RiskLevel.MEDIUM,
                    category="Data Retention",
                ))

        return sorted(tasks, key=lambda t: t.due_date)

    def get_alerts(self, snapshot: TenantSnapshot, score: ComplianceScore) -> List[Alert]:
        now = snapshot.now
        alerts = []

        if score.risk_level == RiskLevel.CRITICAL:
            alerts.append(Alert(
                level=AlertLevel.CRITICAL,
                message="Critical compliance issues detected. Immediate action required.",
                timestamp=now,
                action="Review critical issues and implement remediation plan",
            ))

        if score.critical_issues:
            alerts.append(Alert(
                level=AlertLevel.ERROR,
                message=f"{len(score.critical_issues)} critical compliance issues found",
                timestamp=now,
                action="Address critical issues immediately",
            ))

        if snapshot.expired_consents > 0:
            alerts.append(Alert(
                level=AlertLevel.WARNING,
                message=f"{snapshot.expired_consents} expired consents require renewal",
                timestamp=now,
                action="Contact affected users for consent renewal",
            ))

        unnotified = (
            self.db.query(DataBreach)
            .filter(
                DataBreach.tenant_id == snapshot.tenant_id,
                DataBreach.authorities_notified.is_(False),
                DataBreach.severity.in_([BreachSeverity.HIGH.value, BreachSeverity.CRITICAL.value]),
                DataBreach.detected_at >= now - timedelta(hours=BREACH_NOTIFICATION_HOURS),
            )
            .count()
        )
        if unnotified > 0:
            alerts.append(Alert(
                level=AlertLevel.CRITICAL,
                message=f"{unnotified} high-severity breaches require authority notification",
                timestamp=now,
                action="Notify data protection authorities within 72 hours",
            ))

        return sorted(alerts, key=lambda a: ALERT_PRIORITY[a.level], reverse=True)
