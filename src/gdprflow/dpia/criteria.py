"""Weighted DPIA criteria.

The first three criteria are the Article 35(3) GDPR triggers; the rest are
additional risk factors from the supervisory-authority guidelines. Each
evaluator maps an ActivityProfile to a raw score in 0..10.
"""

from dataclasses import dataclass
from typing import Callable

from ..config import RegulatoryConfig
from .models import ActivityProfile

VULNERABLE_SUBJECTS = ("children", "employees", "patients", "disabled persons")

# Raw score at or above which a criterion also produces a required action
HIGH_PRIORITY_RAW_SCORE = 8


@dataclass(frozen=True)
class DPIACriterion:
    name: str
    weight: int
    threshold: int
    description: str
    evaluator: Callable[[ActivityProfile], int]


def _systematic_evaluation(a: ActivityProfile) -> int:
    if a.flags.automated_decision_making and a.flags.large_scale_processing:
        return 10
    if a.flags.automated_decision_making or a.flags.large_scale_processing:
        return 6
    return 2


def _special_categories(a: ActivityProfile) -> int:
    if a.flags.sensitive_data and a.flags.large_scale_processing:
        return 10
    if a.flags.sensitive_data:
        return 7
    if a.flags.large_scale_processing:
        return 4
    return 1


def _public_monitoring(a: ActivityProfile) -> int:
    f = a.flags
    if f.systematic_monitoring and f.publicly_accessible and f.large_scale_processing:
        return 10
    if f.systematic_monitoring and f.publicly_accessible:
        return 7
    if f.systematic_monitoring:
        return 4
    return 1


def _vulnerability(a: ActivityProfile) -> int:
    vulnerable = [
        s for s in a.data_subjects
        if any(v in s.lower() for v in VULNERABLE_SUBJECTS)
    ]
    return min(10, len(vulnerable) * 3)


def _new_technology(a: ActivityProfile) -> int:
    return 8 if a.flags.new_technology else 1


def _data_combination(a: ActivityProfile) -> int:
    if len(a.recipients) > 3:
        return 8
    if len(a.recipients) > 1:
        return 5
    return 2


def _service_denial(a: ActivityProfile) -> int:
    if a.flags.automated_decision_making and "decision" in a.purpose.lower():
        return 9
    if a.flags.automated_decision_making:
        return 5
    return 1


def _security_measures(a: ActivityProfile) -> int:
    # Fewer measures means higher risk
    return 10 - min(10, len(a.security_measures))


def build_criteria(regulatory: RegulatoryConfig) -> list[DPIACriterion]:
    """Build the nine criteria. Weights sum to 100.

    The cross-border evaluator closes over the configured adequacy list.
    """

    def cross_border(a: ActivityProfile) -> int:
        unsafe = [c for c in a.third_countries if not regulatory.is_adequate_country(c)]
        return min(10, len(unsafe) * 2)

    return [
        DPIACriterion(
            name="Systematic and extensive evaluation",
            weight=15,
            threshold=7,
            description="Systematic and extensive evaluation of personal aspects relating to natural persons",
            evaluator=_systematic_evaluation,
        ),
        DPIACriterion(
            name="Large scale processing of special categories",
            weight=20,
            threshold=8,
            description=(
                "Processing on a large scale of special categories of data or personal data "
                "relating to criminal convictions"
            ),
            evaluator=_special_categories,
        ),
        DPIACriterion(
            name="Systematic monitoring of publicly accessible area",
            weight=12,
            threshold=6,
            description="Systematic monitoring of a publicly accessible area on a large scale",
            evaluator=_public_monitoring,
        ),
        DPIACriterion(
            name="Data subject vulnerability",
            weight=10,
            threshold=5,
            description="Processing affects vulnerable data subjects (children, employees, etc.)",
            evaluator=_vulnerability,
        ),
        DPIACriterion(
            name="Cross-border transfers",
            weight=8,
            threshold=4,
            description="Transfer of personal data to third countries without adequacy decision",
            evaluator=cross_border,
        ),
        DPIACriterion(
            name="New technology or innovative use",
            weight=8,
            threshold=4,
            description="Use of new technological or organisational solutions",
            evaluator=_new_technology,
        ),
        DPIACriterion(
            name="Data combination or matching",
            weight=7,
            threshold=4,
            description="Combining or matching data from multiple sources",
            evaluator=_data_combination,
        ),
        DPIACriterion(
            name="Denial of service or contract",
            weight=10,
            threshold=5,
            description="Processing may result in denial of service or contract to data subjects",
            evaluator=_service_denial,
        ),
        DPIACriterion(
            name="Security measures adequacy",
            weight=10,
            threshold=5,
            description="Adequacy of technical and organizational security measures",
            evaluator=_security_measures,
        ),
    ]
