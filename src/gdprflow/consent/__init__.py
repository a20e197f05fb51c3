"""Consent ledger: append-only per-purpose consent events."""

from .actions import TOGGLED_FEATURES, ConsentActionDispatcher
from .schemas import (
    ConsentChoice,
    ConsentCleanupResult,
    ConsentComplianceMetrics,
    ConsentDashboard,
    ConsentReport,
    ConsentRequest,
    ConsentSource,
    ConsentStatus,
    ConsentValidationResult,
    ProcessingActivitySummary,
)
from .service import ConsentService
from .validation import validate_gdpr_consent

__all__ = [
    "TOGGLED_FEATURES",
    "ConsentActionDispatcher",
    "ConsentChoice",
    "ConsentCleanupResult",
    "ConsentComplianceMetrics",
    "ConsentDashboard",
    "ConsentReport",
    "ConsentRequest",
    "ConsentSource",
    "ConsentStatus",
    "ConsentValidationResult",
    "ProcessingActivitySummary",
    "ConsentService",
    "validate_gdpr_consent",
]
