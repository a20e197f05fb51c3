"""Per data type retention dispositions.

Each handler knows how to select the records of one data type that are past
a cutoff and what to do with them. Disposition is deliberately not uniform:

- User: anonymize, never delete; skip users linked to an employee record
- AuditLog: delete LOW/INFO entries only
- Session: delete
- ConsentRecord: strip network and metadata fields of revoked records
- FormSubmission: delete
- Notification: delete read notifications only

Every candidate filter excludes the state a disposition leaves behind
(deleted rows are gone, anonymized rows carry anonymized_at), so rerunning a
policy immediately finds nothing new to do.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterator, List, Optional, Type
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Query, Session, selectinload

from ..audit.service import AuditLogger
from ..models.audit_log import AuditLog, AuditSeverity
from ..models.consent_record import ConsentRecord
from ..models.form import Form, FormSubmission
from ..models.notification import Notification
from ..models.user import (
    ANONYMIZED_EMAIL_DOMAIN,
    ANONYMIZED_FIRST_NAME,
    ANONYMIZED_LAST_NAME,
    User,
)
from ..models.user_session import UserSession
from .conditions import apply_conditions
from .schemas import RetentionCondition

logger = logging.getLogger(__name__)


@dataclass
class BatchOutcome:
    processed: int = 0
    deleted: int = 0
    anonymized: int = 0
    skipped: int = 0


EMPLOYEE_RETENTION_REASON = "Employee data must be retained for 7 years after employment ends"


def legal_hold_reasons(user: User) -> List[str]:
    """Statutory obligations that block anonymizing a user."""
    reasons = []
    if user.employee is not None:
        reasons.append(EMPLOYEE_RETENTION_REASON)
    return reasons


def anonymize_user(user: User, now: datetime) -> None:
    """Replace identifying fields with sentinel values. The row is kept."""
    user.email = f"deleted-{user.id.hex}@{ANONYMIZED_EMAIL_DOMAIN}"
    user.first_name = ANONYMIZED_FIRST_NAME
    user.last_name = ANONYMIZED_LAST_NAME
    user.phone_number = None
    user.bio = None
    user.profile_image_url = None
    user.anonymized_at = now


def strip_consent_record(record: ConsentRecord, now: datetime) -> None:
    """Drop network and metadata context; the decision itself stays."""
    record.ip_address = None
    record.user_agent = None
    record.metadata_json = None
    record.anonymized_at = now


class RetentionHandler:
    """Base handler: keyset-paged scan of candidates, batch disposition."""

    data_type: str = ""
    model = None
    # Column used for the inventory's oldest/newest record
    age_column: str = "created_at"

    def __init__(self, db: Session, audit: AuditLogger):
        self.db = db
        self.audit = audit

    def scoped_query(self, tenant_id: Optional[UUID]) -> Query:
        """All records of this type visible to the tenant (all tenants if None)."""
        query = self.db.query(self.model)
        if tenant_id is not None:
            query = query.filter(self.model.tenant_id == tenant_id)
        return query

    def candidate_query(self, cutoff: datetime, tenant_id: Optional[UUID]) -> Query:
        raise NotImplementedError

    def dispose(self, rows: list, tenant_id: Optional[UUID], now: datetime) -> BatchOutcome:
        raise NotImplementedError

    def _delete_rows(self, rows: list) -> int:
        ids = [row.id for row in rows]
        return (
            self.db.query(self.model)
            .filter(self.model.id.in_(ids))
            .delete(synchronize_session="fetch")
        )

    def run(
        self,
        cutoff: datetime,
        tenant_id: Optional[UUID],
        conditions: List[RetentionCondition],
        auto_delete: bool,
        batch_size: int,
        now: datetime,
    ) -> Iterator[BatchOutcome]:
        """Yield one outcome per batch; the caller commits between batches.

        Paging is by primary key rather than offset so rows that stay in the
        candidate set (skipped users, dry runs) are not revisited.
        """
        query = apply_conditions(self.candidate_query(cutoff, tenant_id), self.model, conditions)
        last_id = None

        while True:
            page = query
            if last_id is not None:
                page = page.filter(self.model.id > last_id)
            rows = page.order_by(self.model.id).limit(batch_size).all()
            if not rows:
                return

            last_id = rows[-1].id
            if auto_delete:
                yield self.dispose(rows, tenant_id, now)
            else:
                yield BatchOutcome(processed=len(rows))

    def count_due(self, cutoff: datetime, tenant_id: Optional[UUID]) -> int:
        return self.candidate_query(cutoff, tenant_id).order_by(None).count()

    def inventory_stats(self, tenant_id: Optional[UUID]):
        """(total, oldest, newest) over the tenant's records."""
        age = getattr(self.model, self.age_column)
        query = self.scoped_query(tenant_id).with_entities(
            func.count(self.model.id), func.min(age), func.max(age)
        )
        total, oldest, newest = query.order_by(None).one()
        return total or 0, oldest, newest


class UserRetentionHandler(RetentionHandler):
    data_type = "User"
    model = User

    def candidate_query(self, cutoff, tenant_id):
        return (
            self.scoped_query(tenant_id)
            .options(selectinload(User.employee))
            .filter(
                User.updated_at < cutoff,
                User.is_active.is_(False),
                User.anonymized_at.is_(None),
            )
        )

    def dispose(self, rows, tenant_id, now):
        outcome = BatchOutcome(processed=len(rows))
        for user in rows:
            if legal_hold_reasons(user):
                # Employment records carry their own statutory retention
                outcome.skipped += 1
                continue

            anonymize_user(user, now)
            outcome.anonymized += 1

            self.audit.log_anonymization(
                subject_id=user.id,
                resource="User",
                resource_id=user.id,
                performed_by=None,
                tenant_id=user.tenant_id or tenant_id,
            )

        self.db.flush()
        return outcome


class AuditLogRetentionHandler(RetentionHandler):
    data_type = "AuditLog"
    model = AuditLog
    age_column = "timestamp"

    DELETABLE_SEVERITIES = (AuditSeverity.LOW.value, AuditSeverity.INFO.value)

    def candidate_query(self, cutoff, tenant_id):
        return self.scoped_query(tenant_id).filter(
            AuditLog.timestamp < cutoff,
            AuditLog.severity.in_(self.DELETABLE_SEVERITIES),
        )

    def dispose(self, rows, tenant_id, now):
        return BatchOutcome(processed=len(rows), deleted=self._delete_rows(rows))


class SessionRetentionHandler(RetentionHandler):
    """Sessions have no tenant column; scope through the owning user."""
    data_type = "Session"
    model = UserSession

    def scoped_query(self, tenant_id):
        query = self.db.query(UserSession)
        if tenant_id is not None:
            query = query.join(User, UserSession.user_id == User.id).filter(User.tenant_id == tenant_id)
        return query

    def candidate_query(self, cutoff, tenant_id):
        return self.scoped_query(tenant_id).filter(UserSession.expires < cutoff)

    def dispose(self, rows, tenant_id, now):
        return BatchOutcome(processed=len(rows), deleted=self._delete_rows(rows))


class ConsentRecordRetentionHandler(RetentionHandler):
    """Revoked consent keeps its decision; only identifying context is removed."""
    data_type = "ConsentRecord"
    model = ConsentRecord

    def candidate_query(self, cutoff, tenant_id):
        return self.scoped_query(tenant_id).filter(
            ConsentRecord.updated_at < cutoff,
            ConsentRecord.granted.is_(False),
            ConsentRecord.anonymized_at.is_(None),
        )

    def dispose(self, rows, tenant_id, now):
        for record in rows:
            strip_consent_record(record, now)
        self.db.flush()
        return BatchOutcome(processed=len(rows), anonymized=len(rows))


class FormSubmissionRetentionHandler(RetentionHandler):
    """Submissions are tenant scoped through their form."""
    data_type = "FormSubmission"
    model = FormSubmission

    def scoped_query(self, tenant_id):
        query = self.db.query(FormSubmission)
        if tenant_id is not None:
            query = query.join(Form, FormSubmission.form_id == Form.id).filter(Form.tenant_id == tenant_id)
        return query

    def candidate_query(self, cutoff, tenant_id):
        return self.scoped_query(tenant_id).filter(FormSubmission.created_at < cutoff)

    def dispose(self, rows, tenant_id, now):
        return BatchOutcome(processed=len(rows), deleted=self._delete_rows(rows))


class NotificationRetentionHandler(RetentionHandler):
    data_type = "Notification"
    model = Notification

    def candidate_query(self, cutoff, tenant_id):
        return self.scoped_query(tenant_id).filter(
            Notification.created_at < cutoff,
            Notification.is_read.is_(True),
        )

    def dispose(self, rows, tenant_id, now):
        return BatchOutcome(processed=len(rows), deleted=self._delete_rows(rows))


HANDLERS: Dict[str, Type[RetentionHandler]] = {
    handler.data_type: handler
    for handler in (
        UserRetentionHandler,
        AuditLogRetentionHandler,
        SessionRetentionHandler,
        ConsentRecordRetentionHandler,
        FormSubmissionRetentionHandler,
        NotificationRetentionHandler,
    )
}

SUPPORTED_DATA_TYPES = list(HANDLERS)


def get_handler(data_type: str, db: Session, audit: AuditLogger) -> Optional[RetentionHandler]:
    handler_cls = HANDLERS.get(data_type)
    return handler_cls(db, audit) if handler_cls else None
