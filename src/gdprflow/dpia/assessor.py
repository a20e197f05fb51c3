"""Pure DPIA scoring.

score = round(100 * sum(weight * raw / 10) / sum(weight)) over all criteria.
Nothing in this module touches the database.
"""

import calendar
import uuid
from datetime import datetime
from typing import Optional
from uuid import UUID

from .criteria import HIGH_PRIORITY_RAW_SCORE, DPIACriterion
from .models import (
    ActivityProfile,
    ComplianceStatus,
    CriterionResult,
    DPIAAssessment,
    RiskLevel,
)

RISK_THRESHOLDS = {
    RiskLevel.CRITICAL: 85,
    RiskLevel.HIGH: 70,
    RiskLevel.MEDIUM: 50,
}

REVIEW_PERIOD_MONTHS = {
    RiskLevel.CRITICAL: 3,
    RiskLevel.HIGH: 6,
    RiskLevel.MEDIUM: 12,
    RiskLevel.LOW: 24,
}

GENERAL_RECOMMENDATIONS = {
    RiskLevel.HIGH: [
        "Consider consulting with Data Protection Officer",
        "Implement enhanced monitoring and logging",
        "Conduct annual compliance review",
    ],
    RiskLevel.MEDIUM: [
        "Review and update security measures",
        "Ensure staff training on data protection",
    ],
    RiskLevel.LOW: [
        "Maintain current security measures",
        "Monitor for changes in processing scope",
    ],
}

MANDATORY_ACTIONS = [
    "MANDATORY: Consult with Data Protection Authority before processing",
    "MANDATORY: Implement Privacy by Design principles",
    "MANDATORY: Conduct regular compliance audits",
]

LEGAL_BASIS_RECOMMENDATIONS = {
    "CONSENT": [
        "Ensure consent is freely given, specific, informed and unambiguous",
        "Implement easy consent withdrawal mechanism",
    ],
    "LEGITIMATE_INTERESTS": [
        "Conduct balancing test to ensure legitimate interests override data subject rights",
        "Provide clear information about legitimate interests in privacy notice",
    ],
}


def round_half_up(numerator: int, denominator: int) -> int:
    """Integer division rounding .5 upward, without float error."""
    return (2 * numerator + denominator) // (2 * denominator)


def calculate_risk_level(score: int) -> RiskLevel:
    if score >= RISK_THRESHOLDS[RiskLevel.CRITICAL]:
        return RiskLevel.CRITICAL
    if score >= RISK_THRESHOLDS[RiskLevel.HIGH]:
        return RiskLevel.HIGH
    if score >= RISK_THRESHOLDS[RiskLevel.MEDIUM]:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def determine_compliance_status(score: int, required_action_count: int) -> ComplianceStatus:
    if score >= RISK_THRESHOLDS[RiskLevel.HIGH] and required_action_count > 3:
        return ComplianceStatus.NON_COMPLIANT
    if score >= RISK_THRESHOLDS[RiskLevel.MEDIUM] or required_action_count > 0:
        return ComplianceStatus.NEEDS_REVIEW
    return ComplianceStatus.COMPLIANT


def add_months(moment: datetime, months: int) -> datetime:
    """Shift by whole calendar months, clamping the day to the target month."""
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def next_review_date(risk_level: RiskLevel, now: datetime) -> datetime:
    return add_months(now, REVIEW_PERIOD_MONTHS[risk_level])


def general_recommendations(
    risk_level: RiskLevel, legal_basis: str
) -> tuple[list[str], list[str]]:
    """Boilerplate (recommendations, required_actions) for a risk level and legal basis."""
    recommendations = list(GENERAL_RECOMMENDATIONS.get(risk_level, []))
    required_actions = list(MANDATORY_ACTIONS) if risk_level == RiskLevel.CRITICAL else []
    recommendations.extend(LEGAL_BASIS_RECOMMENDATIONS.get(legal_basis, []))
    return recommendations, required_actions


def assess_activity(
    profile: ActivityProfile,
    criteria: list[DPIACriterion],
    now: datetime,
    activity_id: Optional[UUID] = None,
    assessment_id: Optional[UUID] = None,
) -> DPIAAssessment:
    """Score a profile against the criteria.

    Compliance status is decided from the criterion-driven required actions
    only, before the risk-level boilerplate (including the CRITICAL mandatory
    actions) is appended.
    """
    results: list[CriterionResult] = []
    recommendations: list[str] = []
    required_actions: list[str] = []
    weighted_raw = 0  # sum of weight * raw, in tenths of a point
    max_total = 0

    for criterion in criteria:
        raw = criterion.evaluator(profile)
        result = CriterionResult(
            name=criterion.name,
            raw_score=raw,
            weight=criterion.weight,
            threshold=criterion.threshold,
        )
        results.append(result)
        weighted_raw += criterion.weight * raw
        max_total += criterion.weight

        if raw >= criterion.threshold:
            recommendations.append(f"Address {criterion.name}: {criterion.description}")
            if raw >= HIGH_PRIORITY_RAW_SCORE:
                required_actions.append(
                    f"HIGH PRIORITY: Implement additional safeguards for {criterion.name}"
                )

    score = round_half_up(100 * weighted_raw, 10 * max_total) if max_total else 0
    risk_level = calculate_risk_level(score)
    compliance_status = determine_compliance_status(score, len(required_actions))

    extra_recommendations, extra_actions = general_recommendations(risk_level, profile.legal_basis)
    recommendations.extend(extra_recommendations)
    required_actions.extend(extra_actions)

    return DPIAAssessment(
        id=assessment_id or uuid.uuid4(),
        activity_id=activity_id,
        activity_name=profile.name,
        score=score,
        risk_level=risk_level,
        compliance_status=compliance_status,
        recommendations=recommendations,
        required_actions=required_actions,
        criteria=results,
        last_assessment=now,
        next_review=next_review_date(risk_level, now),
    )
