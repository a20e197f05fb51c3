"""Pure compliance scoring.

Each category starts at 100 and loses points per deduction rule, floored at
0. The overall score is the weighted sum of the category scores, rounded half
up. Weights are Decimals so that they sum to exactly 1.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Dict, List, Optional, Tuple

from ..dpia.models import ComplianceStatus, RiskLevel
from .schemas import DashboardStatus


class Category(str, Enum):
    DATA_PROTECTION = "data_protection"
    CONSENT_MANAGEMENT = "consent_management"
    RETENTION_POLICIES = "retention_policies"
    SUBJECT_RIGHTS = "subject_rights"
    RISK_ASSESSMENT = "risk_assessment"
    AUDIT_TRAIL = "audit_trail"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ")


CATEGORY_WEIGHTS: Dict[Category, Decimal] = {
    Category.DATA_PROTECTION: Decimal("0.20"),
    Category.CONSENT_MANAGEMENT: Decimal("0.20"),
    Category.RETENTION_POLICIES: Decimal("0.15"),
    Category.SUBJECT_RIGHTS: Decimal("0.15"),
    Category.RISK_ASSESSMENT: Decimal("0.20"),
    Category.AUDIT_TRAIL: Decimal("0.10"),
}

CRITICAL_ISSUE_THRESHOLD = 50
RECOMMENDATION_THRESHOLD = 70


@dataclass
class CategoryResult:
    """Score of one category, or the error that prevented computing it."""
    category: Category
    score: Optional[int] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.score is not None


def _floor(score: int) -> int:
    return max(0, score)


def score_data_protection(active_activities: int) -> int:
    score = 100
    if active_activities < 5:
        # Insufficient processing documentation
        score -= 20
    return _floor(score)


def score_consent_management(withdrawal_rate: float, expired_consents: int) -> int:
    score = 100
    if withdrawal_rate > 30:
        score -= 30
    elif withdrawal_rate > 15:
        score -= 15

    if expired_consents > 100:
        score -= 25
    elif expired_consents > 50:
        score -= 10
    return _floor(score)


def score_retention_policies(data_types_managed: int, overdue_records: int) -> int:
    score = 100
    if data_types_managed < 5:
        score -= 40
    elif data_types_managed < 10:
        score -= 20

    if overdue_records > 1000:
        score -= 30
    elif overdue_records > 100:
        score -= 15
    return _floor(score)


def score_subject_rights(average_response_days: float, overdue_requests: int) -> int:
    score = 100
    if average_response_days > 30:
        score -= 40
    elif average_response_days > 15:
        score -= 20

    if overdue_requests > 5:
        score -= 30
    elif overdue_requests > 0:
        score -= 10
    return _floor(score)


def score_risk_assessment(high_risk_count: int, compliance_status: ComplianceStatus) -> int:
    score = 100
    if high_risk_count > 5:
        score -= 40
    elif high_risk_count > 2:
        score -= 20

    if compliance_status == ComplianceStatus.NON_COMPLIANT:
        score -= 50
    elif compliance_status == ComplianceStatus.NEEDS_REVIEW:
        score -= 25
    return _floor(score)


def score_audit_trail(total_logs: int, critical_events: int) -> int:
    score = 100
    if total_logs < 100:
        # Too few events suggests incomplete logging
        score -= 30
    if critical_events > 10:
        score -= 25
    return _floor(score)


def weighted_overall(scores: Dict[Category, int]) -> int:
    """round(sum(score * weight) / sum(weight)) over the given categories.

    With all six categories present the divisor is exactly 1.
    """
    if not scores:
        return 0
    total_weight = sum(CATEGORY_WEIGHTS[c] for c in scores)
    weighted = sum(Decimal(s) * CATEGORY_WEIGHTS[c] for c, s in scores.items())
    return int((weighted / total_weight).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def calculate_risk_level(overall: int) -> RiskLevel:
    if overall < 50:
        return RiskLevel.CRITICAL
    if overall < 70:
        return RiskLevel.HIGH
    if overall < 85:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def generate_recommendations(
    results: List[CategoryResult], risk_level: RiskLevel
) -> Tuple[List[str], List[str]]:
    """(recommendations, critical_issues) for a set of category results."""
    recommendations = []
    critical_issues = []

    for result in results:
        label = result.category.label
        if not result.ok:
            critical_issues.append(f"Could not assess {label}: {result.error}")
        elif result.score < CRITICAL_ISSUE_THRESHOLD:
            critical_issues.append(f"Critical issues in {label}")
        elif result.score < RECOMMENDATION_THRESHOLD:
            recommendations.append(f"Improve {label} practices")

    if risk_level == RiskLevel.CRITICAL:
        recommendations.insert(0, "Immediate compliance review and remediation required")
        recommendations.append("Consider engaging external compliance consultant")
    elif risk_level == RiskLevel.HIGH:
        recommendations.append("Conduct comprehensive compliance audit")
        recommendations.append("Implement additional monitoring and controls")

    return recommendations, critical_issues


def determine_status(overall: int, risk_level: RiskLevel, critical_issues: List[str]) -> DashboardStatus:
    if overall < 50 or risk_level == RiskLevel.CRITICAL:
        return DashboardStatus.CRITICAL
    if overall < 70 or risk_level == RiskLevel.HIGH:
        return DashboardStatus.NON_COMPLIANT
    if overall < 85 or critical_issues:
        return DashboardStatus.NEEDS_ATTENTION
    return DashboardStatus.COMPLIANT
