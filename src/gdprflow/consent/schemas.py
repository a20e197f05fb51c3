"""Pydantic schemas for the consent ledger.

This module defines consent-related schemas:
- ConsentRequest: Input for recording one consent decision
- ConsentChoice: One purpose/decision pair of a bulk (cookie banner) submission
- ConsentStatus: Latest-event view of one purpose
- ConsentValidationResult: Outcome of the structural GDPR validator
- ConsentDashboard: Self-service view for a data subject
- ConsentReport: Tenant-level consent reporting
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from ..models.consent_record import ConsentPurpose


class ConsentSource(str, Enum):
    REGISTRATION = "registration"
    COOKIE_BANNER = "cookie_banner"
    SETTINGS = "settings"
    API = "api"


class ConsentRequest(BaseModel):
    user_id: UUID
    tenant_id: UUID
    purpose: ConsentPurpose
    granted: bool
    version: str = Field(..., min_length=1, description="Privacy policy version the decision refers to")
    source: ConsentSource = ConsentSource.API
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    expires_at: Optional[datetime] = Field(
        default=None,
        description="Overrides the per-purpose default expiry"
    )


class ConsentChoice(BaseModel):
    purpose: ConsentPurpose
    granted: bool


class ConsentStatus(BaseModel):
    purpose: ConsentPurpose
    granted: bool
    granted_at: Optional[datetime] = None
    revoked_at: Optional[datetime] = None
    version: str
    source: str
    expires_at: Optional[datetime] = None
    needs_renewal: bool = False


class ConsentValidationResult(BaseModel):
    is_valid: bool
    violations: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)


class ProcessingActivitySummary(BaseModel):
    name: str
    purpose: str
    legal_basis: str
    consent_required: bool
    data_types: List[str] = Field(default_factory=list)


class ConsentDashboard(BaseModel):
    user_id: UUID
    consents: List[ConsentStatus]
    can_withdraw: List[ConsentPurpose]
    data_processing_activities: List[ProcessingActivitySummary]
    downloadable_data: bool = True
    deletion_possible: bool


class ConsentComplianceMetrics(BaseModel):
    average_consent_lifetime_days: int = 0
    expired_consents: int = 0
    renewal_rate: float = 0.0
    data_subject_requests_influence: int = 0


class ConsentReport(BaseModel):
    summary: Dict[str, int]
    consents_by_purpose: Dict[str, int]
    withdrawal_rate: float
    compliance_metrics: ConsentComplianceMetrics


class ConsentCleanupResult(BaseModel):
    cleaned_count: int
    tenants_processed: int
