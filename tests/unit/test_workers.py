"""Unit tests for worker tenant validation and log formatting."""

import json
import logging
import sys
from unittest.mock import patch
from uuid import uuid4

import pytest

from gdprflow.models import Notification
from gdprflow.observability.logging_config import JSONFormatter, TraceIDFilter
from gdprflow.observability.request_id import get_trace_id, set_trace_id, trace_id_var
from gdprflow.workers.base import BaseTask, validate_tenant_id


class TestValidateTenantId:

    def test_invalid_format(self):
        with pytest.raises(ValueError, match="Invalid tenant_id format"):
            validate_tenant_id("not-a-uuid")

    def test_unknown_tenant(self, db_session):
        with patch("gdprflow.workers.base.new_session", return_value=db_session):
            with pytest.raises(ValueError, match="does not exist"):
                validate_tenant_id(str(uuid4()))

    def test_existing_tenant(self, db_session, tenant):
        tenant_id = tenant.id
        with patch("gdprflow.workers.base.new_session", return_value=db_session):
            assert validate_tenant_id(str(tenant_id)) == tenant_id

    def test_base_task_requires_tenant(self):
        task = BaseTask()
        with pytest.raises(ValueError, match="tenant_id parameter is required"):
            task()


class TestTenantScopedSession:

    def test_new_rows_get_session_tenant(self, db_session, tenant):
        db_session.info["tenant_id"] = tenant.id
        notification = Notification(title="Policy updated")
        db_session.add(notification)
        db_session.flush()

        assert notification.tenant_id == tenant.id


class TestJSONFormatter:

    def _record(self, **extra):
        record = logging.LogRecord(
            name="gdprflow.retention.service",
            level=logging.INFO,
            pathname=__file__,
            lineno=1,
            msg="Executed %d policies",
            args=(3,),
            exc_info=None,
            func="execute_retention_policies",
        )
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_format_includes_trace_and_context(self):
        token = trace_id_var.set("trace-123")
        try:
            record = self._record(tenant_id=uuid4(), data_type="Session", unrelated="x")
            TraceIDFilter().filter(record)
            line = json.loads(JSONFormatter().format(record))
        finally:
            trace_id_var.reset(token)

        assert line["message"] == "Executed 3 policies"
        assert line["level"] == "INFO"
        assert line["trace_id"] == "trace-123"
        assert line["data_type"] == "Session"
        assert line["tenant_id"] == str(record.tenant_id)
        assert "unrelated" not in line
        assert line["timestamp"].endswith("Z")

    def test_exception_info(self):
        try:
            raise RuntimeError("lease lost")
        except RuntimeError:
            record = self._record()
            record.exc_info = sys.exc_info()

        line = json.loads(JSONFormatter().format(record))

        assert line["error"] == "lease lost"
        assert "RuntimeError" in line["traceback"]

    def test_default_trace_id(self):
        token = trace_id_var.set(None)
        try:
            assert get_trace_id() == "no-trace-id"
            set_trace_id("abc")
            assert get_trace_id() == "abc"
        finally:
            trace_id_var.reset(token)
