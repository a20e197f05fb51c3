"""Unit tests for the data subject rights portal.

Tests request lifecycle, access export, erasure with legal hold,
portability formats, rectification and consent withdrawal.
"""

import csv
import io
import json
import xml.etree.ElementTree as ET
from datetime import timedelta
from unittest.mock import patch
from uuid import uuid4

import pytest

from gdprflow.consent.actions import ConsentActionDispatcher
from gdprflow.consent.schemas import ConsentRequest
from gdprflow.consent.service import ConsentService
from gdprflow.dashboard.service import ComplianceDashboardService
from gdprflow.errors import ForbiddenError, NotFoundError, StateTransitionError
from gdprflow.models import (
    AuditLog,
    ConsentPurpose,
    ConsentRecord,
    DataSubjectRequest,
    Employee,
    LegalBasis,
    ProcessingActivity,
    RequestStatus,
    RequestType,
    User,
    UserSession,
    utcnow,
)
from gdprflow.models.user import ANONYMIZED_EMAIL_DOMAIN, ANONYMIZED_FIRST_NAME
from gdprflow.retention.handlers import EMPLOYEE_RETENTION_REASON, UserRetentionHandler
from gdprflow.subject_rights.schemas import PortableFormat
from gdprflow.subject_rights.service import SubjectRightsService, pseudonymize_details
from gdprflow.subject_rights.status import get_allowed_transitions, validate_transition


@pytest.fixture
def consent_service(db_session, audit, settings, regulatory):
    return ConsentService(
        db=db_session, audit=audit, settings=settings, regulatory=regulatory,
        dispatcher=ConsentActionDispatcher(),
    )


@pytest.fixture
def rights(db_session, audit, consent_service):
    return SubjectRightsService(db=db_session, audit=audit, consent=consent_service)


def _grant(consent_service, user, purpose, **kwargs):
    consent_service.record_consent(ConsentRequest(
        user_id=user.id,
        tenant_id=user.tenant_id,
        purpose=purpose,
        granted=True,
        version="2.1",
        **kwargs,
    ))


class TestRequestLifecycle:
    """Test creation, completion and rejection of requests."""

    def test_create_request_is_pending(self, db_session, rights, user, tenant):
        request = rights.create_request(tenant.id, user.id, RequestType.OBJECTION, "Stop profiling")

        stored = db_session.get(DataSubjectRequest, request.id)
        assert stored.status == RequestStatus.PENDING.value
        assert stored.request_type == "OBJECTION"
        assert stored.completed_at is None
        assert db_session.query(AuditLog).filter(AuditLog.action == "DSR_OBJECTION").count() == 1

    def test_complete_stamps_completed_at(self, db_session, rights, user, tenant):
        request = rights.create_request(tenant.id, user.id, RequestType.RESTRICTION)
        rights.start_request(tenant.id, request.id)

        rights.complete_request(tenant.id, request.id, notes="Processing restricted")

        stored = db_session.get(DataSubjectRequest, request.id)
        assert stored.status == RequestStatus.COMPLETED.value
        assert stored.completed_at is not None
        assert stored.completed_at >= stored.requested_at
        assert stored.processing_notes == "Processing restricted"

    def test_reject_keeps_reason(self, db_session, rights, user, tenant):
        request = rights.create_request(tenant.id, user.id, RequestType.OBJECTION)

        rights.reject_request(tenant.id, request.id, "Compelling legitimate grounds")

        stored = db_session.get(DataSubjectRequest, request.id)
        assert stored.status == RequestStatus.REJECTED.value
        assert stored.rejection_reason == "Compelling legitimate grounds"
        assert stored.completed_at is None

    def test_closed_request_cannot_be_reopened(self, rights, user, tenant):
        request = rights.create_request(tenant.id, user.id, RequestType.OBJECTION)
        rights.complete_request(tenant.id, request.id)

        with pytest.raises(StateTransitionError):
            rights.reject_request(tenant.id, request.id, "late")
        with pytest.raises(StateTransitionError):
            rights.complete_request(tenant.id, request.id)

    def test_user_of_another_tenant(self, rights, user, other_tenant):
        with pytest.raises(ForbiddenError):
            rights.create_request(other_tenant.id, user.id, RequestType.ACCESS)

    def test_unknown_user(self, rights, tenant):
        with pytest.raises(NotFoundError):
            rights.create_request(tenant.id, uuid4(), RequestType.ACCESS)

    def test_request_of_another_tenant(self, rights, user, tenant, other_tenant):
        request = rights.create_request(tenant.id, user.id, RequestType.ACCESS)
        with pytest.raises(ForbiddenError):
            rights.get_request(other_tenant.id, request.id)

    def test_list_requests_filters(self, rights, user, stale_user, tenant):
        first = rights.create_request(tenant.id, user.id, RequestType.ACCESS)
        rights.create_request(tenant.id, stale_user.id, RequestType.ACCESS)
        rights.complete_request(tenant.id, first.id)

        assert len(rights.list_requests(tenant.id)) == 2
        assert [r.id for r in rights.list_requests(tenant.id, user_id=user.id)] == [first.id]
        assert len(rights.list_requests(tenant.id, status=RequestStatus.PENDING)) == 1


class TestDataAccess:
    """Test the Art. 15 export."""

    def test_export_contents(self, db_session, rights, consent_service, audit, user, tenant):
        _grant(consent_service, user, ConsentPurpose.ANALYTICS)
        audit.log(
            action="LOGIN", resource="User", tenant_id=tenant.id, actor_id=user.id,
            details="Login by alice@example.com with card 4111-1111-1111-1111",
        )
        db_session.add(ProcessingActivity(
            tenant_id=tenant.id, name="Newsletter", purpose="Marketing",
            legal_basis=LegalBasis.CONSENT.value, data_categories=["email address"],
            retention_period="2 years",
        ))
        db_session.commit()

        export = rights.request_data_access(tenant.id, user.id)

        assert export.personal_data["profile"]["email"] == "alice@example.com"
        assert export.personal_data["employee_data"] is None
        assert export.consent_history[0]["purpose"] == "ANALYTICS"
        assert export.consent_history[0]["granted"] is True
        login = next(log for log in export.activity_logs if log["action"] == "LOGIN")
        assert login["details"] == "Login by [EMAIL] with card [CARD]"
        assert export.processed_data == [{
            "name": "Newsletter",
            "purpose": "Marketing",
            "legal_basis": "CONSENT",
            "data_categories": ["email address"],
            "retention_period": "2 years",
        }]
        assert export.metadata.user_id == user.id

        request = db_session.get(DataSubjectRequest, export.metadata.request_id)
        assert request.status == RequestStatus.COMPLETED.value
        assert request.completed_at is not None

    def test_export_includes_employee_data(self, rights, employee_user, tenant):
        export = rights.request_data_access(tenant.id, employee_user.id)
        assert export.personal_data["employee_data"]["position"] == "Accountant"

    def test_failure_rejects_request(self, db_session, rights, user, tenant):
        with patch.object(rights, "_activity_logs", side_effect=RuntimeError("audit store offline")):
            with pytest.raises(RuntimeError):
                rights.request_data_access(tenant.id, user.id)

        request = db_session.query(DataSubjectRequest).one()
        assert request.status == RequestStatus.REJECTED.value
        assert request.rejection_reason == "audit store offline"


class TestDataDeletion:
    """Test Art. 17 erasure."""

    def test_erasure_anonymizes_user(self, db_session, rights, consent_service, user, tenant):
        _grant(consent_service, user, ConsentPurpose.MARKETING, ip_address="198.51.100.4")
        db_session.add(UserSession(
            user_id=user.id, session_token="live", expires=utcnow() + timedelta(days=1)
        ))
        db_session.commit()

        outcome = rights.request_data_deletion(tenant.id, user.id)

        assert outcome.status == "completed"
        assert outcome.can_delete is True

        erased = db_session.get(User, user.id)
        assert erased.email == f"deleted-{user.id.hex}@{ANONYMIZED_EMAIL_DOMAIN}"
        assert erased.first_name == ANONYMIZED_FIRST_NAME
        assert erased.is_active is False
        assert erased.anonymized_at is not None
        assert db_session.query(UserSession).count() == 0

        # Grant revoked through the ledger, then every event stripped
        records = db_session.query(ConsentRecord).order_by(ConsentRecord.sequence).all()
        assert [r.granted for r in records] == [True, False]
        assert all(r.ip_address is None and r.anonymized_at is not None for r in records)
        assert not consent_service.has_valid_consent(user.id, tenant.id, ConsentPurpose.MARKETING)

        request = db_session.get(DataSubjectRequest, outcome.request_id)
        assert request.status == RequestStatus.COMPLETED.value
        assert request.completed_at is not None
        assert db_session.query(AuditLog).filter(AuditLog.action == "ANONYMIZE").count() == 1

    def test_employee_link_blocks_erasure(self, db_session, rights, employee_user, tenant):
        outcome = rights.request_data_deletion(tenant.id, employee_user.id)

        assert outcome.status == "failed"
        assert outcome.can_delete is False
        assert outcome.retention_reasons == [EMPLOYEE_RETENTION_REASON]

        user = db_session.get(User, employee_user.id)
        assert user.email == "carol@example.com"
        assert user.anonymized_at is None

        request = db_session.get(DataSubjectRequest, outcome.request_id)
        assert request.status == RequestStatus.REJECTED.value
        assert EMPLOYEE_RETENTION_REASON in request.rejection_reason

    def test_erasure_failure_is_recorded(self, db_session, rights, user, tenant):
        with patch(
            "gdprflow.subject_rights.service.anonymize_user",
            side_effect=RuntimeError("row locked"),
        ):
            outcome = rights.request_data_deletion(tenant.id, user.id)

        assert outcome.status == "failed"
        assert db_session.get(User, user.id).email == "alice@example.com"
        request = db_session.get(DataSubjectRequest, outcome.request_id)
        assert request.status == RequestStatus.REJECTED.value
        assert request.rejection_reason == "row locked"

    def test_erased_user_not_picked_up_by_retention(self, db_session, rights, user, tenant):
        rights.request_data_deletion(tenant.id, user.id)

        handler = UserRetentionHandler(db_session, rights.audit)
        assert handler.count_due(utcnow() + timedelta(days=1), tenant.id) == 0


class TestDataPortability:
    """Test Art. 20 portable exports."""

    def test_json_ld(self, db_session, rights, user, tenant):
        package = rights.request_data_portability(tenant.id, user.id)

        data = json.loads(package.content)
        assert data["@context"] == "https://schema.org"
        assert data["@type"] == "Person"
        assert data["identifier"] == str(user.id)
        assert package.format == PortableFormat.JSON_LD
        assert package.schema_url == "https://schema.org/Person"
        assert package.size == len(package.content.encode("utf-8"))
        assert package.expires_at - utcnow() > timedelta(days=6)

        request = db_session.get(DataSubjectRequest, package.request_id)
        assert request.request_type == RequestType.PORTABILITY.value
        assert request.description == "User requested data portability in JSON-LD format"
        assert request.status == RequestStatus.COMPLETED.value

    def test_csv(self, rights, user, tenant):
        package = rights.request_data_portability(tenant.id, user.id, PortableFormat.CSV)

        header, row = list(csv.reader(io.StringIO(package.content)))
        assert header[:3] == ["@context", "@type", "identifier"]
        assert row[2] == str(user.id)
        assert json.loads(row[header.index("personal_data")])["profile"]["first_name"] == "Alice"

    def test_xml(self, rights, user, tenant):
        package = rights.request_data_portability(tenant.id, user.id, "XML")

        root = ET.fromstring(package.content.split("?>", 1)[1])
        assert root.tag == "userData"
        assert root.find("type").text == "Person"
        assert root.find("identifier").text == str(user.id)


class TestDataRectification:
    """Test Art. 16 corrections."""

    def test_allowed_fields_applied(self, db_session, rights, user, tenant):
        result = rights.request_data_rectification(
            tenant.id, user.id, {"last_name": "Beispiel", "email": "evil@example.com"}
        )

        assert result.applied == {"last_name": "Beispiel"}
        assert result.ignored_fields == ["email"]

        stored = db_session.get(User, user.id)
        assert stored.last_name == "Beispiel"
        assert stored.email == "alice@example.com"

        entry = db_session.query(AuditLog).filter(AuditLog.action == "RECTIFY").one()
        assert entry.old_values == {"last_name": "Example"}
        request = db_session.get(DataSubjectRequest, result.request_id)
        assert request.processing_notes == 'Applied corrections: {"last_name": "Beispiel"}'

    def test_employee_position(self, db_session, rights, employee_user, tenant):
        rights.request_data_rectification(tenant.id, employee_user.id, {"position": "Controller"})

        employee = db_session.query(Employee).filter(Employee.user_id == employee_user.id).one()
        assert employee.position == "Controller"

    def test_erased_user_rejected(self, db_session, rights, user, tenant):
        rights.request_data_deletion(tenant.id, user.id)

        with pytest.raises(ForbiddenError):
            rights.request_data_rectification(tenant.id, user.id, {"first_name": "Alice"})

        assert db_session.get(User, user.id).first_name == ANONYMIZED_FIRST_NAME
        rejected = rights.list_requests(tenant.id, status=RequestStatus.REJECTED)
        assert [r.request_type for r in rejected] == ["RECTIFICATION"]


class TestConsentWithdrawal:
    """Test withdrawal recorded as a data subject request."""

    def test_withdrawal(self, db_session, rights, consent_service, user, tenant):
        _grant(consent_service, user, ConsentPurpose.MARKETING)

        result = rights.withdraw_consent(tenant.id, user.id, ConsentPurpose.MARKETING)

        assert result.success is True
        assert result.stopped_processing == ["Email marketing campaigns", "Promotional notifications"]
        assert not consent_service.has_valid_consent(user.id, tenant.id, ConsentPurpose.MARKETING)

        request = db_session.get(DataSubjectRequest, result.request_id)
        assert request.request_type == RequestType.WITHDRAW_CONSENT.value
        assert request.status == RequestStatus.COMPLETED.value

    def test_withdrawal_without_grant(self, db_session, rights, user, tenant):
        with pytest.raises(NotFoundError):
            rights.withdraw_consent(tenant.id, user.id, ConsentPurpose.ANALYTICS)

        request = db_session.query(DataSubjectRequest).one()
        assert request.status == RequestStatus.REJECTED.value
        assert request.rejection_reason == "No active consent found for this purpose"


class TestPseudonymize:

    def test_masks_identifiers(self):
        assert pseudonymize_details("SSN 123-45-6789 for bob@example.org") == "SSN [SSN] for [EMAIL]"

    def test_empty(self):
        assert pseudonymize_details(None) == ""


class TestRequestStatusStateMachine:

    def test_pending_can_close_directly(self):
        validate_transition(RequestStatus.PENDING, RequestStatus.COMPLETED)
        validate_transition(RequestStatus.PENDING, RequestStatus.REJECTED)

    def test_in_progress_cannot_go_back(self):
        with pytest.raises(StateTransitionError):
            validate_transition(RequestStatus.IN_PROGRESS, RequestStatus.PENDING)

    def test_terminal_states(self):
        assert get_allowed_transitions(RequestStatus.COMPLETED) == []
        assert get_allowed_transitions(RequestStatus.REJECTED) == []


class TestDashboardIntegration:

    def test_closed_requests_feed_subject_rights_metrics(
        self, rights, employee_user, user, tenant, db_session, audit, settings, regulatory
    ):
        rights.request_data_access(tenant.id, user.id)
        rights.request_data_deletion(tenant.id, employee_user.id)
        rights.create_request(tenant.id, user.id, RequestType.OBJECTION)

        dashboard = ComplianceDashboardService(
            db=db_session, audit=audit, settings=settings, regulatory=regulatory
        )
        metrics = dashboard.generate_dashboard(tenant.id).metrics.data_subject_requests

        assert metrics.total == 3
        assert metrics.completed == 1
        assert metrics.pending == 1
        assert metrics.overdue == 0
