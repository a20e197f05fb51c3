"""DPIA risk assessment for processing activities"""

from .assessor import assess_activity, calculate_risk_level, determine_compliance_status
from .flags import derive_risk_flags, suggest_risk_flags
from .models import ComplianceStatus, DPIAAssessment, DPIAReport, RiskFlags, RiskLevel
from .service import DPIAService

__all__ = [
    "DPIAService",
    "assess_activity",
    "calculate_risk_level",
    "determine_compliance_status",
    "derive_risk_flags",
    "suggest_risk_flags",
    "ComplianceStatus",
    "DPIAAssessment",
    "DPIAReport",
    "RiskFlags",
    "RiskLevel",
]
