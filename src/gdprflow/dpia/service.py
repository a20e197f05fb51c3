"""DPIA service.

Runs Data Protection Impact Assessments for a tenant's processing activities.
Every perform_dpia call recomputes the assessment from the activity and also
appends an immutable DPIAAssessmentRecord, so the assessment in force on any
past date can be reconstructed.
"""

import logging
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from ..audit.service import AuditLogger
from ..config import RegulatoryConfig, Settings, get_regulatory_config, get_settings
from ..errors import ForbiddenError, NotFoundError
from ..models.base import utcnow
from ..models.audit_log import AuditCategory, AuditSeverity
from ..models.dpia_assessment import DPIAAssessmentRecord
from ..models.processing_activity import ProcessingActivity
from ..observability.metrics import dpia_assessments_total
from .assessor import assess_activity
from .criteria import build_criteria
from .flags import build_profile, suggest_risk_flags
from .models import (
    COMPLIANCE_ORDER,
    RISK_ORDER,
    ComplianceStatus,
    DPIAAssessment,
    DPIAReport,
    RiskFlags,
    RiskLevel,
)
from .schemas import ProcessingActivityCreate

logger = logging.getLogger(__name__)


class DPIAService:
    """DPIA operations for processing activities.

    Usage:
        service = DPIAService(db=session, audit=AuditLogger(session))
        assessment = service.perform_dpia(tenant_id, activity_id, actor_id)
    """

    def __init__(
        self,
        db: Session,
        audit: AuditLogger,
        settings: Optional[Settings] = None,
        regulatory: Optional[RegulatoryConfig] = None,
    ):
        self.db = db
        self.audit = audit
        self.settings = settings or get_settings()
        self.regulatory = regulatory or get_regulatory_config()
        self.criteria = build_criteria(self.regulatory)

    def _get_activity(self, tenant_id: UUID, activity_id: UUID) -> ProcessingActivity:
        activity = self.db.get(ProcessingActivity, activity_id)
        if activity is None:
            raise NotFoundError(f"Processing activity {activity_id} not found")
        if activity.tenant_id != tenant_id:
            raise ForbiddenError(
                f"Processing activity {activity_id} does not belong to tenant {tenant_id}"
            )
        return activity

    def _assess(self, activity: ProcessingActivity, now: datetime) -> DPIAAssessment:
        profile = build_profile(activity, self.settings.DPIA_KEYWORD_HEURISTICS)
        return assess_activity(profile, self.criteria, now, activity_id=activity.id)

    def create_processing_activity(
        self,
        tenant_id: UUID,
        data: ProcessingActivityCreate,
        actor_id: Optional[UUID] = None,
    ) -> ProcessingActivity:
        activity = ProcessingActivity(tenant_id=tenant_id, **data.model_dump())
        self.db.add(activity)
        self.db.flush()

        self.audit.log(
            action="PROCESSING_ACTIVITY_CREATED",
            resource="ProcessingActivity",
            resource_id=activity.id,
            tenant_id=tenant_id,
            actor_id=actor_id,
            details=f"Registered processing activity: {activity.name}",
            category=AuditCategory.DATA_MODIFICATION,
            severity=AuditSeverity.MEDIUM,
            new_values={"name": activity.name, "legal_basis": activity.legal_basis},
        )
        return activity

    def deactivate_processing_activity(
        self,
        tenant_id: UUID,
        activity_id: UUID,
        actor_id: Optional[UUID] = None,
    ) -> ProcessingActivity:
        """Mark an activity inactive. Activities are never deleted."""
        activity = self._get_activity(tenant_id, activity_id)
        if not activity.is_active:
            return activity

        activity.is_active = False
        self.db.flush()

        self.audit.log(
            action="PROCESSING_ACTIVITY_DEACTIVATED",
            resource="ProcessingActivity",
            resource_id=activity.id,
            tenant_id=tenant_id,
            actor_id=actor_id,
            details=f"Deactivated processing activity: {activity.name}",
            category=AuditCategory.DATA_MODIFICATION,
            severity=AuditSeverity.MEDIUM,
        )
        return activity

    def suggest_flags(self, tenant_id: UUID, activity_id: UUID) -> RiskFlags:
        """Keyword-derived flag suggestions. Does not modify the activity."""
        return suggest_risk_flags(self._get_activity(tenant_id, activity_id))

    def perform_dpia(
        self,
        tenant_id: UUID,
        activity_id: UUID,
        actor_id: Optional[UUID] = None,
    ) -> DPIAAssessment:
        """Assess an activity, persist a snapshot and audit the run.

        Raises:
            NotFoundError: Unknown activity id
            ForbiddenError: Activity belongs to another tenant
        """
        activity = self._get_activity(tenant_id, activity_id)
        now = utcnow()
        assessment = self._assess(activity, now)

        record = DPIAAssessmentRecord(
            id=assessment.id,
            tenant_id=tenant_id,
            activity_id=activity.id,
            activity_name=activity.name,
            score=assessment.score,
            risk_level=assessment.risk_level.value,
            compliance_status=assessment.compliance_status.value,
            recommendations=list(assessment.recommendations),
            required_actions=list(assessment.required_actions),
            criteria_scores=assessment.criteria_scores,
            next_review=assessment.next_review,
            conducted_by=actor_id,
            conducted_at=now,
            config_version=self.regulatory.version,
        )
        self.db.add(record)
        self.db.flush()

        self.audit.log_data_processing(
            activity=f"DPIA Assessment: {activity.name}",
            data_types=list(activity.data_categories or []),
            legal_basis=activity.legal_basis,
            tenant_id=tenant_id,
            actor_id=actor_id,
            purpose=f"DPIA Score: {assessment.score}, Risk Level: {assessment.risk_level.value}",
        )

        dpia_assessments_total.labels(risk_level=assessment.risk_level.value).inc()
        logger.info(
            f"DPIA for activity {activity.name}: score={assessment.score} "
            f"risk={assessment.risk_level.value} status={assessment.compliance_status.value}",
            extra={"tenant_id": tenant_id, "activity_id": activity.id},
        )
        return assessment

    def get_tenant_dpias(self, tenant_id: UUID) -> List[DPIAAssessment]:
        """Live assessments of every active activity of the tenant."""
        activities = (
            self.db.query(ProcessingActivity)
            .filter(
                ProcessingActivity.tenant_id == tenant_id,
                ProcessingActivity.is_active.is_(True),
            )
            .order_by(ProcessingActivity.created_at)
            .all()
        )
        now = utcnow()
        return [self._assess(activity, now) for activity in activities]

    def get_assessment_history(self, tenant_id: UUID, activity_id: UUID) -> List[DPIAAssessmentRecord]:
        """Persisted snapshots for an activity, oldest first."""
        self._get_activity(tenant_id, activity_id)
        return (
            self.db.query(DPIAAssessmentRecord)
            .filter(
                DPIAAssessmentRecord.tenant_id == tenant_id,
                DPIAAssessmentRecord.activity_id == activity_id,
            )
            .order_by(DPIAAssessmentRecord.conducted_at)
            .all()
        )

    def get_assessment_in_force(
        self, tenant_id: UUID, activity_id: UUID, at: datetime
    ) -> Optional[DPIAAssessmentRecord]:
        """Most recent snapshot conducted at or before `at`, if any."""
        self._get_activity(tenant_id, activity_id)
        return (
            self.db.query(DPIAAssessmentRecord)
            .filter(
                DPIAAssessmentRecord.tenant_id == tenant_id,
                DPIAAssessmentRecord.activity_id == activity_id,
                DPIAAssessmentRecord.conducted_at <= at,
            )
            .order_by(DPIAAssessmentRecord.conducted_at.desc())
            .first()
        )

    def generate_dpia_report(self, tenant_id: UUID) -> DPIAReport:
        assessments = self.get_tenant_dpias(tenant_id)
        total = len(assessments)

        summary = {
            "total_assessments": total,
            "risk_distribution": {
                level.value: sum(1 for a in assessments if a.risk_level == level)
                for level in reversed(RISK_ORDER)
            },
            "compliance_distribution": {
                status.value: sum(1 for a in assessments if a.compliance_status == status)
                for status in COMPLIANCE_ORDER
            },
            "average_score": (sum(a.score for a in assessments) / total) if total else 0,
        }

        # Order-preserving de-duplication
        recommendations = list(dict.fromkeys(r for a in assessments for r in a.recommendations))

        overall_risk = max(
            (a.risk_level for a in assessments), key=RISK_ORDER.index, default=RiskLevel.LOW
        )
        overall_compliance = max(
            (a.compliance_status for a in assessments),
            key=COMPLIANCE_ORDER.index,
            default=ComplianceStatus.COMPLIANT,
        )

        return DPIAReport(
            summary=summary,
            assessments=assessments,
            overall_risk=overall_risk,
            recommendations=recommendations,
            compliance_status=overall_compliance,
        )
