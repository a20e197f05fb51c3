"""Unit tests for the DPIA assessor and service.

Tests criterion evaluation, score aggregation, risk-level boundaries,
compliance status, and the persisted assessment history.
"""

from datetime import datetime, timedelta
from uuid import uuid4

import pytest

from gdprflow.config import RegulatoryConfig
from gdprflow.dpia.assessor import (
    MANDATORY_ACTIONS,
    add_months,
    assess_activity,
    calculate_risk_level,
    determine_compliance_status,
    round_half_up,
)
from gdprflow.dpia.criteria import build_criteria
from gdprflow.dpia.flags import derive_risk_flags, suggest_risk_flags
from gdprflow.dpia.models import ActivityProfile, ComplianceStatus, RiskFlags, RiskLevel
from gdprflow.dpia.schemas import ProcessingActivityCreate
from gdprflow.dpia.service import DPIAService
from gdprflow.errors import ForbiddenError, NotFoundError
from gdprflow.models import AuditLog, DPIAAssessmentRecord, LegalBasis, ProcessingActivity

NOW = datetime(2024, 1, 31, 12, 0, 0)


@pytest.fixture
def criteria():
    return build_criteria(RegulatoryConfig())


def _criterion(assessment, name):
    return next(c for c in assessment.criteria if c.name == name)


class TestCriteria:
    """Test the nine weighted criteria."""

    def test_weights_sum_to_100(self, criteria):
        assert len(criteria) == 9
        assert sum(c.weight for c in criteria) == 100

    def test_large_scale_sensitive_reaches_maximum(self, criteria):
        """Sensitive data processed at large scale scores 10 and contributes the full weight."""
        profile = ActivityProfile(
            name="Patient records",
            purpose="Treatment",
            legal_basis="LEGAL_OBLIGATION",
            flags=RiskFlags(sensitive_data=True, large_scale_processing=True),
        )
        result = _criterion(
            assess_activity(profile, criteria, NOW),
            "Large scale processing of special categories",
        )

        assert result.raw_score == 10
        assert result.weight == 20
        assert result.contribution == 20.0

    def test_vulnerable_subjects_capped_at_10(self, criteria):
        profile = ActivityProfile(
            name="School portal",
            purpose="Education",
            legal_basis="PUBLIC_TASK",
            data_subjects=["Children", "employees", "patients", "disabled persons"],
        )
        result = _criterion(assess_activity(profile, criteria, NOW), "Data subject vulnerability")
        assert result.raw_score == 10

    def test_adequate_countries_do_not_count(self, criteria):
        profile = ActivityProfile(
            name="Support desk",
            purpose="Support",
            legal_basis="CONTRACT",
            third_countries=["Japan", "United States", "India"],
        )
        result = _criterion(assess_activity(profile, criteria, NOW), "Cross-border transfers")
        assert result.raw_score == 4

    def test_adequacy_list_comes_from_config(self):
        criteria = build_criteria(RegulatoryConfig(adequate_countries=["united states"]))
        profile = ActivityProfile(
            name="Support desk",
            purpose="Support",
            legal_basis="CONTRACT",
            third_countries=["United States"],
        )
        result = _criterion(assess_activity(profile, criteria, NOW), "Cross-border transfers")
        assert result.raw_score == 0

    def test_security_measures_lower_risk(self, criteria):
        profile = ActivityProfile(
            name="Newsletter",
            purpose="Marketing",
            legal_basis="CONSENT",
            security_measures=["encryption", "access control", "backups"],
        )
        result = _criterion(assess_activity(profile, criteria, NOW), "Security measures adequacy")
        assert result.raw_score == 7


class TestAssessment:
    """Test score aggregation and derived fields."""

    def test_low_risk_activity(self, criteria):
        """All flags false with documented security measures scores LOW."""
        profile = ActivityProfile(
            name="Contact form",
            purpose="Answer enquiries",
            legal_basis="LEGITIMATE_INTERESTS",
            data_categories=["contact details"],
            data_subjects=["customers"],
            recipients=["support team"],
            security_measures=["encryption", "access control", "backups", "logging", "pseudonymisation"],
        )
        assessment = assess_activity(profile, criteria, NOW)

        assert assessment.score == 14
        assert assessment.risk_level == RiskLevel.LOW
        assert assessment.compliance_status == ComplianceStatus.COMPLIANT
        assert assessment.required_actions == []
        assert "Maintain current security measures" in assessment.recommendations
        assert (
            "Conduct balancing test to ensure legitimate interests override data subject rights"
            in assessment.recommendations
        )
        assert assessment.next_review == datetime(2026, 1, 31, 12, 0, 0)

    def test_three_core_flags_without_measures(self, criteria):
        """Automated, large-scale, sensitive processing with no measures.

        Three criteria hit their maximum, but the other six stay low, so the
        weighted score lands in MEDIUM rather than CRITICAL. Weight x raw:

            systematic evaluation      15 x 10 = 150
            special categories         20 x 10 = 200
            public monitoring          12 x  1 =  12
            subject vulnerability      10 x  0 =   0
            cross-border transfers      8 x  0 =   0
            new technology              8 x  1 =   8
            data combination            7 x  2 =  14
            service denial             10 x  5 =  50  (no "decision" in purpose)
            security measures          10 x 10 = 100
                                                 ---
                                                 534 / 10 = 53.4 -> 53

        The three raw-10 criteria each add a high-priority action. Reaching
        CRITICAL takes elevated inputs, see test_critical_activity.
        """
        profile = ActivityProfile(
            name="Credit scoring",
            purpose="Scoring",
            legal_basis="CONTRACT",
            flags=RiskFlags(
                automated_decision_making=True,
                large_scale_processing=True,
                sensitive_data=True,
            ),
        )
        assessment = assess_activity(profile, criteria, NOW)

        assert assessment.score == 53
        assert assessment.risk_level == RiskLevel.MEDIUM
        assert assessment.compliance_status == ComplianceStatus.NEEDS_REVIEW
        assert len(assessment.required_actions) == 3
        assert all(a.startswith("HIGH PRIORITY") for a in assessment.required_actions)

    def test_critical_activity(self, criteria):
        """Worst case on every criterion: CRITICAL, NON_COMPLIANT, mandatory consultation."""
        profile = ActivityProfile(
            name="Automated loan decisions",
            purpose="Automated credit decision",
            legal_basis="CONTRACT",
            data_subjects=["children", "employees", "patients", "disabled persons"],
            recipients=["bureau", "bank", "insurer", "broker"],
            third_countries=["Brazil", "India", "China", "Russia", "Nigeria"],
            security_measures=[],
            flags=RiskFlags(
                automated_decision_making=True,
                large_scale_processing=True,
                sensitive_data=True,
                publicly_accessible=True,
                new_technology=True,
                systematic_monitoring=True,
            ),
        )
        assessment = assess_activity(profile, criteria, NOW)

        assert assessment.score == 96
        assert assessment.risk_level == RiskLevel.CRITICAL
        assert assessment.compliance_status == ComplianceStatus.NON_COMPLIANT
        assert "MANDATORY: Consult with Data Protection Authority before processing" in assessment.required_actions
        assert assessment.required_actions[-3:] == MANDATORY_ACTIONS
        assert assessment.next_review == datetime(2024, 4, 30, 12, 0, 0)

    def test_consent_basis_adds_consent_reminders(self, criteria):
        profile = ActivityProfile(name="Newsletter", purpose="Marketing", legal_basis="CONSENT")
        assessment = assess_activity(profile, criteria, NOW)
        assert "Implement easy consent withdrawal mechanism" in assessment.recommendations

    def test_assessment_is_pure(self, criteria):
        profile = ActivityProfile(name="Newsletter", purpose="Marketing", legal_basis="CONSENT")
        first = assess_activity(profile, criteria, NOW)
        second = assess_activity(profile, criteria, NOW)

        assert first.score == second.score
        assert first.recommendations == second.recommendations
        assert first.id != second.id

    def test_assessment_serializes_to_json(self, criteria):
        profile = ActivityProfile(name="Newsletter", purpose="Marketing", legal_basis="CONSENT")
        assessment = assess_activity(profile, criteria, NOW, activity_id=uuid4())

        data = assessment.model_dump(mode="json")

        assert data["id"] == str(assessment.id)
        assert data["activity_id"] == str(assessment.activity_id)
        assert data["risk_level"] == assessment.risk_level.value
        assert data["last_assessment"] == "2024-01-31T12:00:00"
        assert len(data["criteria"]) == 9
        assert assessment.criteria_scores["Security measures adequacy"] == 10

    def test_flags_merge_with_or(self):
        merged = RiskFlags(sensitive_data=True).merged(RiskFlags(new_technology=True))

        assert merged.sensitive_data is True
        assert merged.new_technology is True
        assert merged.large_scale_processing is False


class TestRiskLevels:
    """Test risk-level and compliance-status thresholds."""

    @pytest.mark.parametrize("score,expected", [
        (100, RiskLevel.CRITICAL),
        (85, RiskLevel.CRITICAL),
        (84, RiskLevel.HIGH),
        (70, RiskLevel.HIGH),
        (69, RiskLevel.MEDIUM),
        (50, RiskLevel.MEDIUM),
        (49, RiskLevel.LOW),
        (0, RiskLevel.LOW),
    ])
    def test_boundaries(self, score, expected):
        assert calculate_risk_level(score) == expected

    def test_compliance_status(self):
        assert determine_compliance_status(70, 4) == ComplianceStatus.NON_COMPLIANT
        assert determine_compliance_status(70, 3) == ComplianceStatus.NEEDS_REVIEW
        assert determine_compliance_status(69, 10) == ComplianceStatus.NEEDS_REVIEW
        assert determine_compliance_status(50, 0) == ComplianceStatus.NEEDS_REVIEW
        assert determine_compliance_status(10, 1) == ComplianceStatus.NEEDS_REVIEW
        assert determine_compliance_status(49, 0) == ComplianceStatus.COMPLIANT

    def test_round_half_up(self):
        assert round_half_up(845, 10) == 85
        assert round_half_up(844, 10) == 84
        assert round_half_up(0, 10) == 0

    def test_add_months_clamps_day(self):
        assert add_months(datetime(2024, 1, 31), 1) == datetime(2024, 2, 29)
        assert add_months(datetime(2024, 11, 30), 3) == datetime(2025, 2, 28)
        assert add_months(datetime(2024, 5, 15), 24) == datetime(2026, 5, 15)


class _Activity:
    """Attribute bag standing in for a ProcessingActivity row."""

    def __init__(self, **kwargs):
        self.description = None
        self.purpose = ""
        self.data_categories = []
        self.data_subjects = []
        self.security_measures = []
        for flag in RiskFlags.model_fields:
            setattr(self, flag, False)
        self.__dict__.update(kwargs)


class TestRiskFlags:
    """Test stored, structured and keyword-derived flags."""

    def test_stored_flags_are_used(self):
        flags = derive_risk_flags(_Activity(new_technology=True))
        assert flags.new_technology is True
        assert flags.sensitive_data is False

    def test_structured_lists_raise_flags(self):
        flags = derive_risk_flags(_Activity(
            data_categories=["Health records"],
            data_subjects=["large customer base"],
        ))
        assert flags.sensitive_data is True
        assert flags.large_scale_processing is True

    def test_keywords_ignored_unless_enabled(self):
        activity = _Activity(description="Website tracking with machine learning")

        assert derive_risk_flags(activity).systematic_monitoring is False

        enabled = derive_risk_flags(activity, use_keyword_heuristics=True)
        assert enabled.systematic_monitoring is True
        assert enabled.publicly_accessible is True
        assert enabled.new_technology is True

    def test_suggestions_from_purpose(self):
        suggestion = suggest_risk_flags(_Activity(purpose="Automated hiring decision"))
        assert suggestion.automated_decision_making is True


@pytest.fixture
def dpia_service(db_session, audit, settings, regulatory):
    return DPIAService(db=db_session, audit=audit, settings=settings, regulatory=regulatory)


@pytest.fixture
def activity(db_session, dpia_service, tenant):
    activity = dpia_service.create_processing_activity(
        tenant.id,
        ProcessingActivityCreate(
            name="Customer analytics",
            purpose="Product analytics",
            legal_basis=LegalBasis.CONSENT,
            data_categories=["usage data", " "],
            data_subjects=["customers"],
            recipients=["analytics vendor"],
            security_measures=["encryption", "access control"],
        ),
    )
    db_session.commit()
    return activity


class TestDPIAService:
    """Test DPIA persistence and tenant checks."""

    def test_create_activity_strips_blank_entries(self, db_session, activity):
        assert activity.data_categories == ["usage data"]
        entry = db_session.query(AuditLog).filter(AuditLog.action == "PROCESSING_ACTIVITY_CREATED").one()
        assert entry.resource_id == str(activity.id)

    def test_perform_dpia_persists_snapshot(self, db_session, dpia_service, tenant, user, activity):
        assessment = dpia_service.perform_dpia(tenant.id, activity.id, actor_id=user.id)
        db_session.commit()

        record = db_session.get(DPIAAssessmentRecord, assessment.id)
        assert record is not None
        assert record.score == assessment.score
        assert record.risk_level == assessment.risk_level.value
        assert record.config_version == "test-1"
        assert record.conducted_by == user.id

        entry = db_session.query(AuditLog).filter(AuditLog.resource == "PersonalData").one()
        assert entry.action == "READ"
        assert f"DPIA Score: {assessment.score}" in entry.details

    def test_perform_dpia_unknown_activity(self, dpia_service, tenant):
        with pytest.raises(NotFoundError):
            dpia_service.perform_dpia(tenant.id, uuid4())

    def test_perform_dpia_other_tenant(self, dpia_service, other_tenant, activity):
        with pytest.raises(ForbiddenError):
            dpia_service.perform_dpia(other_tenant.id, activity.id)

    def test_history_and_assessment_in_force(self, db_session, dpia_service, tenant, activity):
        first = dpia_service.perform_dpia(tenant.id, activity.id)
        record = db_session.get(DPIAAssessmentRecord, first.id)
        record.conducted_at = record.conducted_at - timedelta(days=10)
        db_session.commit()

        second = dpia_service.perform_dpia(tenant.id, activity.id)
        db_session.commit()

        history = dpia_service.get_assessment_history(tenant.id, activity.id)
        assert [r.id for r in history] == [first.id, second.id]

        in_force = dpia_service.get_assessment_in_force(
            tenant.id, activity.id, record.conducted_at + timedelta(days=1)
        )
        assert in_force.id == first.id
        assert dpia_service.get_assessment_in_force(
            tenant.id, activity.id, record.conducted_at - timedelta(days=1)
        ) is None

    def test_deactivated_activities_are_not_assessed(self, db_session, dpia_service, tenant, activity):
        dpia_service.deactivate_processing_activity(tenant.id, activity.id)
        db_session.commit()

        assert db_session.get(ProcessingActivity, activity.id).is_active is False
        assert dpia_service.get_tenant_dpias(tenant.id) == []

    def test_report(self, db_session, dpia_service, tenant, activity):
        dpia_service.create_processing_activity(
            tenant.id,
            ProcessingActivityCreate(
                name="Fraud screening",
                purpose="Automated fraud decision",
                legal_basis=LegalBasis.LEGITIMATE_INTERESTS,
                automated_decision_making=True,
                large_scale_processing=True,
                sensitive_data=True,
            ),
        )
        db_session.commit()

        report = dpia_service.generate_dpia_report(tenant.id)

        assert report.summary["total_assessments"] == 2
        assert sum(report.summary["risk_distribution"].values()) == 2
        assert report.overall_risk == max(
            (a.risk_level for a in report.assessments),
            key=[RiskLevel.LOW, RiskLevel.MEDIUM, RiskLevel.HIGH, RiskLevel.CRITICAL].index,
        )
        assert len(report.recommendations) == len(set(report.recommendations))

    def test_empty_report(self, dpia_service, tenant):
        report = dpia_service.generate_dpia_report(tenant.id)

        assert report.summary["total_assessments"] == 0
        assert report.summary["average_score"] == 0
        assert report.overall_risk == RiskLevel.LOW
        assert report.compliance_status == ComplianceStatus.COMPLIANT
