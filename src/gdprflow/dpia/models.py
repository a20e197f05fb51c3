"""DPIA domain models and enums.

Result types are Pydantic models; serialize them with model_dump(mode="json").
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel


class RiskLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class ComplianceStatus(str, Enum):
    COMPLIANT = "COMPLIANT"
    NEEDS_REVIEW = "NEEDS_REVIEW"
    NON_COMPLIANT = "NON_COMPLIANT"


# Ordering used when several assessments are reduced to one worst value
RISK_ORDER = [RiskLevel.LOW, RiskLevel.MEDIUM, RiskLevel.HIGH, RiskLevel.CRITICAL]
COMPLIANCE_ORDER = [
    ComplianceStatus.COMPLIANT,
    ComplianceStatus.NEEDS_REVIEW,
    ComplianceStatus.NON_COMPLIANT,
]


class RiskFlags(BaseModel):
    """The six boolean risk indicators scored by the criteria."""
    automated_decision_making: bool = False
    large_scale_processing: bool = False
    sensitive_data: bool = False
    publicly_accessible: bool = False
    new_technology: bool = False
    systematic_monitoring: bool = False

    def merged(self, other: "RiskFlags") -> "RiskFlags":
        """Logical OR of two flag sets."""
        mine = self.model_dump()
        theirs = other.model_dump()
        return RiskFlags(**{name: mine[name] or theirs[name] for name in mine})


@dataclass
class ActivityProfile:
    """Scoring input: the structured fields of a processing activity plus
    its effective risk flags.

    Decoupled from the ORM row so the assessor stays a pure function.
    """
    name: str
    purpose: str
    legal_basis: str
    description: str = ""
    data_categories: list[str] = field(default_factory=list)
    data_subjects: list[str] = field(default_factory=list)
    recipients: list[str] = field(default_factory=list)
    third_countries: list[str] = field(default_factory=list)
    security_measures: list[str] = field(default_factory=list)
    retention_period: Optional[str] = None
    flags: RiskFlags = field(default_factory=RiskFlags)


class CriterionResult(BaseModel):
    name: str
    raw_score: int
    weight: int
    threshold: int

    @property
    def contribution(self) -> float:
        return self.weight * self.raw_score / 10


class DPIAAssessment(BaseModel):
    """Result of scoring one processing activity.

    id identifies this computation. For perform_dpia it is the id of the
    persisted snapshot; live recomputations get a fresh id per call.
    """
    id: UUID
    activity_id: Optional[UUID] = None
    activity_name: str
    score: int
    risk_level: RiskLevel
    compliance_status: ComplianceStatus
    recommendations: List[str]
    required_actions: List[str]
    criteria: List[CriterionResult]
    last_assessment: datetime
    next_review: datetime

    @property
    def criteria_scores(self) -> Dict[str, int]:
        return {c.name: c.raw_score for c in self.criteria}


class DPIAReport(BaseModel):
    summary: Dict[str, Any]
    assessments: List[DPIAAssessment]
    overall_risk: RiskLevel
    recommendations: List[str]
    compliance_status: ComplianceStatus
