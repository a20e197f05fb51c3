"""Risk flag derivation for processing activities.

Stored boolean columns are the system of record. Two assists can raise
(never clear) flags on top of them:

- structured derivation from the category and subject lists, always applied;
- keyword heuristics on the free-text description, applied only when
  DPIA_KEYWORD_HEURISTICS is enabled. suggest_risk_flags exposes them
  separately so an administrator can accept suggestions explicitly.
"""

from typing import Iterable

from ..models.processing_activity import ProcessingActivity
from .models import ActivityProfile, RiskFlags

SENSITIVE_CATEGORIES = (
    "health", "medical", "biometric", "genetic", "racial", "ethnic",
    "political", "religious", "sexual", "criminal", "financial",
)
LARGE_SCALE_MARKERS = ("large", "massive", "extensive")

AUTOMATED_KEYWORDS = ("automated", "algorithm")
PUBLIC_KEYWORDS = ("public", "website", "online")
NEW_TECH_KEYWORDS = ("ai", "blockchain", "iot", "machine learning", "facial recognition")
MONITORING_KEYWORDS = ("monitoring", "tracking", "surveillance")


def _mentions(values: Iterable[str], needles: Iterable[str]) -> bool:
    lowered = [v.lower() for v in values if v]
    return any(n in v for v in lowered for n in needles)


def stored_risk_flags(activity: ProcessingActivity) -> RiskFlags:
    return RiskFlags(
        automated_decision_making=bool(activity.automated_decision_making),
        large_scale_processing=bool(activity.large_scale_processing),
        sensitive_data=bool(activity.sensitive_data),
        publicly_accessible=bool(activity.publicly_accessible),
        new_technology=bool(activity.new_technology),
        systematic_monitoring=bool(activity.systematic_monitoring),
    )


def structured_risk_flags(activity: ProcessingActivity) -> RiskFlags:
    """Flags implied by the structured category and subject lists."""
    return RiskFlags(
        sensitive_data=_mentions(activity.data_categories or [], SENSITIVE_CATEGORIES),
        large_scale_processing=_mentions(activity.data_subjects or [], LARGE_SCALE_MARKERS),
    )


def suggest_risk_flags(activity: ProcessingActivity) -> RiskFlags:
    """Keyword-based flag suggestions from description, purpose and measures.

    Matching is plain substring search, so results are locale dependent and
    prone to false positives ("ai" matches "maintain"). Never persisted
    automatically.
    """
    description = activity.description or ""
    purpose = activity.purpose or ""
    return RiskFlags(
        automated_decision_making=(
            _mentions([description], AUTOMATED_KEYWORDS) or "decision" in purpose.lower()
        ),
        publicly_accessible=_mentions([description], PUBLIC_KEYWORDS),
        new_technology=_mentions(
            [description, *(activity.security_measures or [])], NEW_TECH_KEYWORDS
        ),
        systematic_monitoring=_mentions([description], MONITORING_KEYWORDS),
    )


def derive_risk_flags(activity: ProcessingActivity, use_keyword_heuristics: bool = False) -> RiskFlags:
    """Effective flags used for scoring."""
    flags = stored_risk_flags(activity).merged(structured_risk_flags(activity))
    if use_keyword_heuristics:
        flags = flags.merged(suggest_risk_flags(activity))
    return flags


def build_profile(activity: ProcessingActivity, use_keyword_heuristics: bool = False) -> ActivityProfile:
    return ActivityProfile(
        name=activity.name,
        purpose=activity.purpose,
        legal_basis=activity.legal_basis,
        description=activity.description or "",
        data_categories=list(activity.data_categories or []),
        data_subjects=list(activity.data_subjects or []),
        recipients=list(activity.recipients or []),
        third_countries=list(activity.third_countries or []),
        security_measures=list(activity.security_measures or []),
        retention_period=activity.retention_period,
        flags=derive_risk_flags(activity, use_keyword_heuristics),
    )
