"""Pydantic schemas for the compliance dashboard"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from ..dpia.models import RiskLevel


class DashboardStatus(str, Enum):
    COMPLIANT = "COMPLIANT"
    NEEDS_ATTENTION = "NEEDS_ATTENTION"
    NON_COMPLIANT = "NON_COMPLIANT"
    CRITICAL = "CRITICAL"


class AlertLevel(str, Enum):
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


ALERT_PRIORITY = {
    AlertLevel.CRITICAL: 4,
    AlertLevel.ERROR: 3,
    AlertLevel.WARNING: 2,
    AlertLevel.INFO: 1,
}


class ComplianceScore(BaseModel):
    overall: int = Field(ge=0, le=100)
    breakdown: Dict[str, Optional[int]] = Field(
        description="Score per category; None when the category could not be computed"
    )
    category_errors: Dict[str, str] = Field(default_factory=dict)
    risk_level: RiskLevel
    recommendations: List[str] = Field(default_factory=list)
    critical_issues: List[str] = Field(default_factory=list)


class DataSubjectRequestMetrics(BaseModel):
    total: int = 0
    pending: int = 0
    completed: int = 0
    overdue: int = 0
    average_response_days: float = 0.0


class ConsentMetrics(BaseModel):
    total_consents: int = 0
    active_consents: int = 0
    withdrawal_rate: float = 0.0
    expired_consents: int = 0
    compliance_rate: int = 100


class DPIAMetrics(BaseModel):
    total_assessments: int = 0
    high_risk_activities: int = 0
    overdue_dpias: int = 0
    compliance_rate: int = 100


class RetentionMetrics(BaseModel):
    active_policies: int = 0
    overdue_records: int = 0
    data_types_managed: int = 0
    last_execution_time: Optional[datetime] = None


class BreachMetrics(BaseModel):
    total_breaches: int = 0
    open_breaches: int = 0
    average_notification_hours: float = 0.0
    notification_compliance: int = 100


class ComplianceMetrics(BaseModel):
    data_subject_requests: DataSubjectRequestMetrics
    consent_metrics: ConsentMetrics
    dpia_metrics: DPIAMetrics
    retention_metrics: RetentionMetrics
    breach_metrics: BreachMetrics


class ComplianceStatusView(BaseModel):
    status: DashboardStatus
    last_assessment: datetime
    next_review: datetime
    regulations: List[str] = Field(default_factory=list)


class RecentActivity(BaseModel):
    type: str
    description: str
    timestamp: datetime
    severity: str
    action_required: bool


class UpcomingTask(BaseModel):
    task: str
    due_date: datetime
    priority: RiskLevel
    category: str


class Alert(BaseModel):
    level: AlertLevel
    message: str
    timestamp: datetime
    action: Optional[str] = None


class ComplianceDashboard(BaseModel):
    tenant_id: UUID
    score: ComplianceScore
    metrics: Optional[ComplianceMetrics] = None
    status: ComplianceStatusView
    recent_activity: List[RecentActivity] = Field(default_factory=list)
    upcoming_tasks: List[UpcomingTask] = Field(default_factory=list)
    alerts: List[Alert] = Field(default_factory=list)
    errors: Dict[str, str] = Field(
        default_factory=dict,
        description="Auxiliary views that failed and were returned empty"
    )
