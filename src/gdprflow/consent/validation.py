"""Structural GDPR checks for a consent request.

validate_gdpr_consent never raises: it inspects a raw request (a mapping or a
ConsentRequest) and reports what is wrong, leaving the decision to reject or
merely warn to the caller. Checks follow the Art. 7 conditions for consent:
freely given, specific, informed, unambiguous.
"""

from typing import Any, Mapping, Union

from pydantic import BaseModel

from ..models.consent_record import ConsentPurpose
from .schemas import ConsentValidationResult

ESSENTIAL_VIOLATION = "Essential services cannot require consent as they are necessary for service provision"
SPECIFIC_VIOLATION = "Consent purpose must be specific and clearly defined"
INFORMED_VIOLATION = "Consent must reference a specific privacy policy version"
UNAMBIGUOUS_VIOLATION = "Consent must be unambiguously granted or denied"
BUNDLING_VIOLATION = "Consent bundling detected - each purpose must have separate consent"

EVIDENCE_RECOMMENDATION = "Include IP address and user agent for better consent evidence"
SOURCE_RECOMMENDATION = "Specify the source/context where consent was obtained"

BUNDLED_PURPOSE_PREFIX = "purpose_"


def _purpose_value(purpose: Any) -> Any:
    return purpose.value if isinstance(purpose, ConsentPurpose) else purpose


def validate_gdpr_consent(request: Union[BaseModel, Mapping[str, Any]]) -> ConsentValidationResult:
    if isinstance(request, BaseModel):
        data = request.model_dump()
    elif isinstance(request, Mapping):
        data = dict(request)
    else:
        return ConsentValidationResult(
            is_valid=False,
            violations=[SPECIFIC_VIOLATION, INFORMED_VIOLATION, UNAMBIGUOUS_VIOLATION],
            recommendations=[],
        )
    violations = []
    recommendations = []

    purpose = _purpose_value(data.get("purpose"))
    known_purposes = {p.value for p in ConsentPurpose}

    # Freely given
    if purpose == ConsentPurpose.ESSENTIAL.value:
        violations.append(ESSENTIAL_VIOLATION)

    # Specific
    if not isinstance(purpose, str) or purpose not in known_purposes:
        violations.append(SPECIFIC_VIOLATION)

    # Informed
    if not data.get("version"):
        violations.append(INFORMED_VIOLATION)

    # Unambiguous
    if not isinstance(data.get("granted"), bool):
        violations.append(UNAMBIGUOUS_VIOLATION)

    metadata = data.get("metadata")
    if isinstance(metadata, Mapping):
        own_key = f"{BUNDLED_PURPOSE_PREFIX}{purpose}"
        bundled = [
            key for key in metadata
            if str(key).startswith(BUNDLED_PURPOSE_PREFIX) and key != own_key
        ]
        if bundled:
            violations.append(BUNDLING_VIOLATION)

    if not data.get("ip_address") or not data.get("user_agent"):
        recommendations.append(EVIDENCE_RECOMMENDATION)

    if not data.get("source"):
        recommendations.append(SOURCE_RECOMMENDATION)

    return ConsentValidationResult(
        is_valid=not violations,
        violations=violations,
        recommendations=recommendations,
    )
