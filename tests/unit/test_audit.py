"""Unit tests for the audit logger."""

from datetime import timedelta

from gdprflow.audit.schemas import AuditLogFilter
from gdprflow.models import AuditCategory, AuditLog, AuditSeverity, utcnow


class TestAuditLogger:

    def test_log_flushes_without_commit(self, db_session, audit, tenant):
        entry = audit.log(action="EXPORT", resource="User", tenant_id=tenant.id, resource_id=tenant.id)

        assert entry.id is not None
        assert entry.resource_id == str(tenant.id)
        assert entry.severity == "INFO"
        assert entry.category == "DATA_ACCESS"

        db_session.rollback()
        assert db_session.query(AuditLog).count() == 0

    def test_log_consent(self, audit, user):
        entry = audit.log_consent(user_id=user.id, action="CONSENT_GRANTED", purpose="ANALYTICS",
                                  tenant_id=user.tenant_id)

        assert entry.actor_id == user.id
        assert entry.resource == "ConsentRecord"
        assert entry.details == "Consent consent_granted for purpose: ANALYTICS"
        assert entry.category == AuditCategory.CONSENT_MANAGEMENT.value

    def test_log_anonymization_is_high_severity(self, audit, user):
        entry = audit.log_anonymization(subject_id=user.id, resource="User", resource_id=user.id)

        assert entry.action == "ANONYMIZE"
        assert entry.severity == AuditSeverity.HIGH.value
        assert entry.category == AuditCategory.PRIVACY_RIGHTS.value
        assert entry.details == f"Anonymized User for user {user.id}"

    def test_log_data_processing(self, audit, tenant):
        entry = audit.log_data_processing(
            activity="Payroll",
            data_types=["salary", "bank account"],
            legal_basis="CONTRACT",
            tenant_id=tenant.id,
            purpose="Salary payments",
        )

        assert entry.action == "READ"
        assert entry.resource == "PersonalData"
        assert entry.details == (
            "Processing activity: Payroll, Data types: salary, bank account, "
            "Legal basis: CONTRACT, Purpose: Salary payments"
        )

    def test_get_logs_filters(self, db_session, audit, tenant, other_tenant):
        audit.log(action="EXPORT", resource="User", tenant_id=tenant.id, severity=AuditSeverity.HIGH)
        audit.log(action="LOGIN", resource="User", tenant_id=tenant.id)
        audit.log(action="EXPORT", resource="User", tenant_id=other_tenant.id)
        old = audit.log(action="EXPORT", resource="User", tenant_id=tenant.id)
        old.timestamp = utcnow() - timedelta(days=90)
        db_session.commit()

        assert len(audit.get_logs(AuditLogFilter(tenant_id=tenant.id))) == 3
        assert len(audit.get_logs(AuditLogFilter(tenant_id=tenant.id, action="EXPORT"))) == 2
        assert len(audit.get_logs(AuditLogFilter(severity=AuditSeverity.HIGH))) == 1
        recent = audit.get_logs(AuditLogFilter(
            tenant_id=tenant.id, start_date=utcnow() - timedelta(days=7)
        ))
        assert {e.action for e in recent} == {"EXPORT", "LOGIN"}
        assert len(recent) == 2

    def test_get_logs_newest_first_with_paging(self, db_session, audit, tenant):
        now = utcnow()
        for i in range(5):
            audit.log(action=f"EVENT_{i}", resource="User", tenant_id=tenant.id).timestamp = now - timedelta(hours=i)
        db_session.commit()

        page = audit.get_logs(AuditLogFilter(tenant_id=tenant.id, limit=2, offset=1))

        assert [e.action for e in page] == ["EVENT_1", "EVENT_2"]

    def test_get_stats(self, db_session, audit, tenant):
        audit.log(action="EXPORT", resource="User", tenant_id=tenant.id, severity="CRITICAL")
        audit.log(action="EXPORT", resource="User", tenant_id=tenant.id)
        audit.log(action="LOGIN", resource="User", tenant_id=tenant.id, category="AUTHENTICATION")
        db_session.commit()

        stats = audit.get_stats(tenant.id, utcnow() - timedelta(days=1), utcnow())

        assert stats.total_logs == 3
        assert stats.by_action == {"EXPORT": 2, "LOGIN": 1}
        assert stats.severity_count(AuditSeverity.CRITICAL) == 1
        assert stats.severity_count(AuditSeverity.HIGH) == 0
        assert stats.by_category["AUTHENTICATION"] == 1

    def test_get_stats_empty(self, audit, tenant):
        stats = audit.get_stats(tenant.id)
        assert stats.total_logs == 0
        assert stats.by_severity == {}
