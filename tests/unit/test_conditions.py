"""Unit tests for typed retention policy conditions."""

from datetime import datetime

import pytest

from gdprflow.errors import RetentionConditionError
from gdprflow.models import AuditLog, Notification
from gdprflow.retention.conditions import apply_conditions, parse_conditions, validate_conditions
from gdprflow.retention.schemas import ConditionOp, RetentionCondition


class TestParseConditions:

    def test_empty(self):
        assert parse_conditions(None) == []
        assert parse_conditions([]) == []

    def test_stored_clauses(self):
        conditions = parse_conditions([
            {"field": "action", "op": "in", "value": ["LOGIN", "LOGOUT"]},
            {"field": "actor_id", "op": "is_null"},
        ])
        assert [c.op for c in conditions] == [ConditionOp.IN, ConditionOp.IS_NULL]
        assert conditions[0].value == ["LOGIN", "LOGOUT"]

    def test_mapping_rejected(self):
        """A free-form mapping is not a condition list"""
        with pytest.raises(RetentionConditionError, match="not a mapping"):
            parse_conditions({"action": "LOGIN"})

    def test_unknown_operator(self):
        with pytest.raises(RetentionConditionError):
            parse_conditions([{"field": "action", "op": "like", "value": "LOG%"}])

    def test_in_requires_list(self):
        with pytest.raises(RetentionConditionError):
            parse_conditions([{"field": "action", "op": "in", "value": "LOGIN"}])

    def test_comparison_requires_value(self):
        with pytest.raises(RetentionConditionError):
            parse_conditions([{"field": "action", "op": "eq"}])


class TestApplyConditions:

    def test_unknown_field(self):
        conditions = [RetentionCondition(field="password", op="eq", value="x")]
        with pytest.raises(RetentionConditionError, match="Unknown field 'password' for Notification"):
            validate_conditions(Notification, conditions)

    def test_filters_query(self, db_session, tenant):
        db_session.add_all([
            Notification(tenant_id=tenant.id, title="Welcome", is_read=True),
            Notification(tenant_id=tenant.id, title="Invoice", is_read=True),
            Notification(tenant_id=tenant.id, title="Reminder", is_read=False),
        ])
        db_session.commit()

        query = apply_conditions(db_session.query(Notification), Notification, [
            RetentionCondition(field="is_read", op="eq", value=True),
            RetentionCondition(field="title", op="ne", value="Invoice"),
        ])

        assert [n.title for n in query] == ["Welcome"]

    def test_iso_datetime_coerced(self, db_session, tenant):
        db_session.add_all([
            AuditLog(tenant_id=tenant.id, action="LOGIN", resource="User",
                     timestamp=datetime(2020, 1, 1)),
            AuditLog(tenant_id=tenant.id, action="LOGIN", resource="User",
                     timestamp=datetime(2024, 1, 1)),
        ])
        db_session.commit()

        query = apply_conditions(db_session.query(AuditLog), AuditLog, [
            RetentionCondition(field="timestamp", op="lt", value="2022-06-30T00:00:00"),
        ])

        assert [e.timestamp.year for e in query] == [2020]

    def test_invalid_datetime(self, db_session):
        with pytest.raises(RetentionConditionError, match="Invalid datetime"):
            apply_conditions(db_session.query(AuditLog), AuditLog, [
                RetentionCondition(field="timestamp", op="gt", value="last tuesday"),
            ])
