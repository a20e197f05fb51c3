"""Compliance score aggregator over the DPIA, consent, retention and audit views."""

from .schemas import (
    Alert,
    AlertLevel,
    ComplianceDashboard,
    ComplianceMetrics,
    ComplianceScore,
    ComplianceStatusView,
    DashboardStatus,
    RecentActivity,
    UpcomingTask,
)
from .scoring import (
    CATEGORY_WEIGHTS,
    Category,
    CategoryResult,
    calculate_risk_level,
    determine_status,
    generate_recommendations,
    weighted_overall,
)
from .service import ComplianceDashboardService, TenantSnapshot

__all__ = [
    "Alert",
    "AlertLevel",
    "ComplianceDashboard",
    "ComplianceMetrics",
    "ComplianceScore",
    "ComplianceStatusView",
    "DashboardStatus",
    "RecentActivity",
    "UpcomingTask",
    "CATEGORY_WEIGHTS",
    "Category",
    "CategoryResult",
    "calculate_risk_level",
    "determine_status",
    "generate_recommendations",
    "weighted_overall",
    "ComplianceDashboardService",
    "TenantSnapshot",
]
