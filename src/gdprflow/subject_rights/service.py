"""Data subject rights portal.

Handles requests under GDPR Art. 15-17 and 20 plus consent withdrawal
(Art. 7(3)). Every operation first persists a DataSubjectRequest, then either
completes it, stamping completed_at, or rejects it with a reason. Request
rows are committed at each step, so a failed request stays on record for the
dashboard's subject-rights metrics.

Erasure reuses the retention engine's user anonymization and its employee
legal hold: an erased user keeps its row with sentinel values.
"""

import csv
import io
import json
import logging
import re
import xml.etree.ElementTree as ET
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from ..audit.service import AuditLogger
from ..consent.service import ConsentService
from ..errors import ForbiddenError, NotFoundError
from ..models.audit_log import AuditCategory, AuditLog, AuditSeverity
from ..models.base import utcnow
from ..models.consent_record import ConsentPurpose, ConsentRecord
from ..models.data_subject_request import DataSubjectRequest, RequestStatus, RequestType
from ..models.processing_activity import ProcessingActivity
from ..models.user import User
from ..models.user_session import UserSession
from ..observability.metrics import subject_requests_total
from ..retention.handlers import anonymize_user, legal_hold_reasons, strip_consent_record
from .schemas import (
    ConsentWithdrawalResult,
    DataExport,
    DeletionOutcome,
    ExportMetadata,
    PortableData,
    PortableFormat,
    RectificationResult,
)
from .status import validate_transition

logger = logging.getLogger(__name__)

EXPORT_LINK_DAYS = 7
ACTIVITY_LOG_LIMIT = 100

RECTIFIABLE_USER_FIELDS = ("first_name", "last_name", "phone_number", "bio")
RECTIFIABLE_EMPLOYEE_FIELDS = ("position",)

STOPPED_PROCESSING = {
    ConsentPurpose.MARKETING: ["Email marketing campaigns", "Promotional notifications"],
    ConsentPurpose.ANALYTICS: ["User behavior tracking", "Performance analytics"],
    ConsentPurpose.PERSONALIZATION: ["Content personalization", "Recommendation engine"],
}

_PSEUDONYMIZE = [
    (re.compile(r"\b[\w.%+-]+@[\w.-]+\.[A-Za-z]{2,}\b"), "[EMAIL]"),
    (re.compile(r"\b\d{4}-\d{4}-\d{4}-\d{4}\b"), "[CARD]"),
    (re.compile(r"\b\d{3}-\d{2}-\d{4}\b"), "[SSN]"),
]


def pseudonymize_details(details: Optional[str]) -> str:
    """Mask e-mail addresses, card numbers and SSNs in audit details."""
    if not details:
        return ""
    for pattern, replacement in _PSEUDONYMIZE:
        details = pattern.sub(replacement, details)
    return details


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _flat(value: Any) -> str:
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return str(value)


def render_portable(dataset: Dict[str, Any], fmt: PortableFormat) -> str:
    """Serialize a portable dataset. CSV and XML flatten nested values to JSON."""
    if fmt == PortableFormat.CSV:
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(list(dataset))
        writer.writerow([_flat(v) for v in dataset.values()])
        return buffer.getvalue()

    if fmt == PortableFormat.XML:
        root = ET.Element("userData")
        for key, value in dataset.items():
            # "@context" and "@type" are not valid element names
            ET.SubElement(root, key.lstrip("@")).text = _flat(value)
        return ET.tostring(root, encoding="unicode", xml_declaration=True)

    return json.dumps(dataset, indent=2, default=str)


class SubjectRightsService:
    """Create, process and close data subject requests.

    Usage:
        service = SubjectRightsService(db=session, audit=AuditLogger(session))
        export = service.request_data_access(tenant_id, user_id)
    """

    def __init__(self, db: Session, audit: AuditLogger, consent: Optional[ConsentService] = None):
        self.db = db
        self.audit = audit
        self.consent = consent or ConsentService(db=db, audit=audit)

    def _get_user(self, tenant_id: UUID, user_id: UUID) -> User:
        user = self.db.get(User, user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        if user.tenant_id != tenant_id:
            raise ForbiddenError(f"User {user_id} does not belong to tenant {tenant_id}")
        return user

    def get_request(self, tenant_id: UUID, request_id: UUID) -> DataSubjectRequest:
        request = self.db.get(DataSubjectRequest, request_id)
        if request is None:
            raise NotFoundError(f"Data subject request {request_id} not found")
        if request.tenant_id != tenant_id:
            raise ForbiddenError(
                f"Data subject request {request_id} does not belong to tenant {tenant_id}"
            )
        return request

    def list_requests(
        self,
        tenant_id: UUID,
        user_id: Optional[UUID] = None,
        status: Optional[RequestStatus] = None,
    ) -> List[DataSubjectRequest]:
        """Requests of a tenant, newest first."""
        query = self.db.query(DataSubjectRequest).filter(DataSubjectRequest.tenant_id == tenant_id)
        if user_id is not None:
            query = query.filter(DataSubjectRequest.user_id == user_id)
        if status is not None:
            query = query.filter(DataSubjectRequest.status == RequestStatus(status).value)
        return query.order_by(DataSubjectRequest.requested_at.desc()).all()

    # Request lifecycle

    def create_request(
        self,
        tenant_id: UUID,
        user_id: UUID,
        request_type: RequestType,
        description: Optional[str] = None,
    ) -> DataSubjectRequest:
        """Persist a PENDING request and commit it.

        Raises:
            NotFoundError: Unknown user id
            ForbiddenError: User belongs to another tenant
        """
        self._get_user(tenant_id, user_id)
        request_type = RequestType(request_type)
        request = DataSubjectRequest(
            tenant_id=tenant_id,
            user_id=user_id,
            request_type=request_type.value,
            status=RequestStatus.PENDING.value,
            description=description,
            requested_at=utcnow(),
        )
        self.db.add(request)
        self.db.flush()

        self.audit.log_data_subject_request(
            user_id=user_id,
            request_type=request_type.value,
            request_id=request.id,
            status="RECEIVED",
            tenant_id=tenant_id,
        )
        self.db.commit()

        logger.info(
            f"Received {request_type.value} request {request.id}",
            extra={"tenant_id": tenant_id, "user_id": user_id},
        )
        return request

    def _transition(self, request: DataSubjectRequest, new_status: RequestStatus) -> None:
        validate_transition(RequestStatus(request.status), new_status)
        request.status = new_status.value

    def start_request(self, tenant_id: UUID, request_id: UUID) -> DataSubjectRequest:
        request = self.get_request(tenant_id, request_id)
        self._transition(request, RequestStatus.IN_PROGRESS)
        self.db.commit()
        return request

    def complete_request(
        self, tenant_id: UUID, request_id: UUID, notes: Optional[str] = None
    ) -> DataSubjectRequest:
        """Close a request as COMPLETED and stamp completed_at.

        Commits together with any work the caller left pending.

        Raises:
            StateTransitionError: If the request is already closed
        """
        request = self.get_request(tenant_id, request_id)
        self._transition(request, RequestStatus.COMPLETED)
        request.completed_at = utcnow()
        if notes:
            request.processing_notes = notes

        self.audit.log_data_subject_request(
            user_id=request.user_id,
            request_type=request.request_type,
            request_id=request.id,
            status=RequestStatus.COMPLETED.value,
            tenant_id=tenant_id,
        )
        self.db.commit()

        subject_requests_total.labels(
            request_type=request.request_type, status=RequestStatus.COMPLETED.value
        ).inc()
        logger.info(
            f"Completed {request.request_type} request {request.id}",
            extra={"tenant_id": tenant_id, "user_id": request.user_id},
        )
        return request

    def reject_request(self, tenant_id: UUID, request_id: UUID, reason: str) -> DataSubjectRequest:
        """Close a request as REJECTED. completed_at stays unset.

        Raises:
            StateTransitionError: If the request is already closed
        """
        request = self.get_request(tenant_id, request_id)
        self._transition(request, RequestStatus.REJECTED)
        request.rejection_reason = reason

        self.audit.log_data_subject_request(
            user_id=request.user_id,
            request_type=request.request_type,
            request_id=request.id,
            status=RequestStatus.REJECTED.value,
            tenant_id=tenant_id,
        )
        self.db.commit()

        subject_requests_total.labels(
            request_type=request.request_type, status=RequestStatus.REJECTED.value
        ).inc()
        logger.warning(
            f"Rejected {request.request_type} request {request.id}: {reason}",
            extra={"tenant_id": tenant_id, "user_id": request.user_id},
        )
        return request

    def _fail(self, tenant_id: UUID, request_id: UUID, error: Exception) -> None:
        """Discard partial work and reject the request with the error message."""
        self.db.rollback()
        self.reject_request(tenant_id, request_id, str(error) or type(error).__name__)

    # Data collection

    def _personal_data(self, user: User) -> Dict[str, Any]:
        profile = user.to_dict()
        profile.update(
            phone_number=user.phone_number,
            bio=user.bio,
            profile_image_url=user.profile_image_url,
        )
        employee = None
        if user.employee is not None:
            employee = {
                "position": user.employee.position,
                "hired_at": _iso(user.employee.hired_at),
            }
        return {"profile": profile, "employee_data": employee}

    def _consent_history(self, tenant_id: UUID, user_id: UUID) -> List[Dict[str, Any]]:
        records = (
            self.db.query(ConsentRecord)
            .filter(ConsentRecord.tenant_id == tenant_id, ConsentRecord.user_id == user_id)
            .order_by(ConsentRecord.created_at.desc(), ConsentRecord.sequence.desc())
            .all()
        )
        return [
            {
                "purpose": r.purpose,
                "granted": r.granted,
                "granted_at": _iso(r.granted_at),
                "revoked_at": _iso(r.revoked_at),
                "version": r.version,
                "source": r.source,
            }
            for r in records
        ]

    def _activity_logs(self, tenant_id: UUID, user_id: UUID) -> List[Dict[str, Any]]:
        logs = (
            self.db.query(AuditLog)
            .filter(AuditLog.tenant_id == tenant_id, AuditLog.actor_id == user_id)
            .order_by(AuditLog.timestamp.desc())
            .limit(ACTIVITY_LOG_LIMIT)
            .all()
        )
        return [
            {
                "action": log.action,
                "resource": log.resource,
                "timestamp": _iso(log.timestamp),
                "category": log.category,
                "severity": log.severity,
                "details": pseudonymize_details(log.details),
            }
            for log in logs
        ]

    def _processed_data(self, tenant_id: UUID) -> List[Dict[str, Any]]:
        activities = (
            self.db.query(ProcessingActivity)
            .filter(ProcessingActivity.tenant_id == tenant_id, ProcessingActivity.is_active.is_(True))
            .order_by(ProcessingActivity.created_at)
            .all()
        )
        return [
            {
                "name": a.name,
                "purpose": a.purpose,
                "legal_basis": a.legal_basis,
                "data_categories": list(a.data_categories or []),
                "retention_period": a.retention_period,
            }
            for a in activities
        ]

    # Art. 15

    def request_data_access(
        self, tenant_id: UUID, user_id: UUID, description: Optional[str] = None
    ) -> DataExport:
        request = self.create_request(
            tenant_id, user_id, RequestType.ACCESS,
            description or "User requested access to personal data",
        )
        try:
            user = self._get_user(tenant_id, user_id)
            export = DataExport(
                personal_data=self._personal_data(user),
                consent_history=self._consent_history(tenant_id, user_id),
                activity_logs=self._activity_logs(tenant_id, user_id),
                processed_data=self._processed_data(tenant_id),
                metadata=ExportMetadata(
                    exported_at=utcnow(), request_id=request.id, user_id=user_id
                ),
            )
        except Exception as e:
            self._fail(tenant_id, request.id, e)
            raise

        self.complete_request(tenant_id, request.id)
        return export

    # Art. 17

    def request_data_deletion(
        self, tenant_id: UUID, user_id: UUID, description: Optional[str] = None
    ) -> DeletionOutcome:
        """Erase a user's personal data unless a legal hold applies.

        Active consent grants are revoked through the ledger first, one commit
        per purpose. The rest of the erasure commits with the completion.
        """
        reasons = legal_hold_reasons(self._get_user(tenant_id, user_id))
        request = self.create_request(
            tenant_id, user_id, RequestType.ERASURE,
            description or "User requested data deletion",
        )
        if reasons:
            self.reject_request(
                tenant_id, request.id,
                f"Data cannot be deleted due to legal retention requirements: {', '.join(reasons)}",
            )
            return DeletionOutcome(
                request_id=request.id, status="failed", can_delete=False, retention_reasons=reasons
            )

        try:
            notes = self._erase(tenant_id, user_id)
        except Exception as e:
            logger.error(
                f"Erasure failed for request {request.id}",
                exc_info=True,
                extra={"tenant_id": tenant_id, "user_id": user_id},
            )
            self._fail(tenant_id, request.id, e)
            return DeletionOutcome(request_id=request.id, status="failed", can_delete=False)

        self.complete_request(tenant_id, request.id, notes)
        return DeletionOutcome(request_id=request.id, status="completed", can_delete=True)

    def _erase(self, tenant_id: UUID, user_id: UUID) -> str:
        for status in self.consent.get_user_consents(user_id, tenant_id):
            if status.granted:
                self.consent.withdraw_consent(user_id, tenant_id, status.purpose)

        now = utcnow()
        user = self._get_user(tenant_id, user_id)

        records = (
            self.db.query(ConsentRecord)
            .filter(
                ConsentRecord.tenant_id == tenant_id,
                ConsentRecord.user_id == user_id,
                ConsentRecord.anonymized_at.is_(None),
            )
            .all()
        )
        for record in records:
            strip_consent_record(record, now)

        sessions = (
            self.db.query(UserSession)
            .filter(UserSession.user_id == user_id)
            .delete(synchronize_session="fetch")
        )

        anonymize_user(user, now)
        user.is_active = False
        self.db.flush()

        self.audit.log_anonymization(
            subject_id=user_id,
            resource="User",
            resource_id=user_id,
            performed_by=user_id,
            tenant_id=tenant_id,
        )
        return (
            f"Anonymized user, stripped {len(records)} consent records, "
            f"deleted {sessions} sessions"
        )

    # Art. 20

    def request_data_portability(
        self,
        tenant_id: UUID,
        user_id: UUID,
        fmt: PortableFormat = PortableFormat.JSON_LD,
    ) -> PortableData:
        """Build a machine-readable schema.org Person dataset.

        The caller stores the content and hands out the download link; it
        should expire at expires_at.
        """
        fmt = PortableFormat(fmt)
        request = self.create_request(
            tenant_id, user_id, RequestType.PORTABILITY,
            f"User requested data portability in {fmt.value} format",
        )
        try:
            user = self._get_user(tenant_id, user_id)
            now = utcnow()
            dataset = {
                "@context": "https://schema.org",
                "@type": "Person",
                "identifier": str(user_id),
                "personal_data": self._personal_data(user),
                "consent_history": self._consent_history(tenant_id, user_id),
                "exported_at": now.isoformat(),
                "format": fmt.value,
            }
            content = render_portable(dataset, fmt)
        except Exception as e:
            self._fail(tenant_id, request.id, e)
            raise

        self.complete_request(tenant_id, request.id)
        return PortableData(
            request_id=request.id,
            format=fmt,
            content=content,
            size=len(content.encode("utf-8")),
            expires_at=now + timedelta(days=EXPORT_LINK_DAYS),
        )

    # Art. 16

    def request_data_rectification(
        self,
        tenant_id: UUID,
        user_id: UUID,
        corrections: Dict[str, Any],
        description: Optional[str] = None,
    ) -> RectificationResult:
        """Apply corrections to whitelisted profile fields. Other keys are ignored.

        Raises:
            ForbiddenError: If the user has already been erased
        """
        request = self.create_request(
            tenant_id, user_id, RequestType.RECTIFICATION,
            description or f"User requested data corrections: {json.dumps(corrections, default=str)}",
        )
        try:
            user = self._get_user(tenant_id, user_id)
            if user.is_anonymized:
                raise ForbiddenError(f"User {user_id} has been erased and cannot be rectified")

            applied: Dict[str, Any] = {}
            old_values: Dict[str, Any] = {}
            ignored: List[str] = []
            for field, value in corrections.items():
                if field in RECTIFIABLE_USER_FIELDS:
                    target = user
                elif field in RECTIFIABLE_EMPLOYEE_FIELDS and user.employee is not None:
                    target = user.employee
                else:
                    ignored.append(field)
                    continue
                old_values[field] = getattr(target, field)
                setattr(target, field, value)
                applied[field] = value
            self.db.flush()

            self.audit.log(
                action="RECTIFY",
                resource="User",
                resource_id=user_id,
                tenant_id=tenant_id,
                actor_id=user_id,
                details=f"Rectified fields: {', '.join(applied) or 'none'}",
                category=AuditCategory.DATA_MODIFICATION,
                severity=AuditSeverity.MEDIUM,
                old_values=old_values,
                new_values=applied,
            )
        except Exception as e:
            self._fail(tenant_id, request.id, e)
            raise

        self.complete_request(
            tenant_id, request.id, f"Applied corrections: {json.dumps(applied, default=str)}"
        )
        return RectificationResult(
            request_id=request.id, status="completed", applied=applied, ignored_fields=ignored
        )

    # Art. 7(3)

    def withdraw_consent(
        self,
        tenant_id: UUID,
        user_id: UUID,
        purpose: ConsentPurpose,
        description: Optional[str] = None,
    ) -> ConsentWithdrawalResult:
        """Withdraw consent through the ledger and record it as a request.

        Raises:
            NotFoundError: If there is no active grant for the purpose
        """
        purpose = ConsentPurpose(purpose)
        request = self.create_request(
            tenant_id, user_id, RequestType.WITHDRAW_CONSENT,
            description or f"User withdrew consent for {purpose.value}",
        )
        try:
            self.consent.withdraw_consent(user_id, tenant_id, purpose)
        except Exception as e:
            self._fail(tenant_id, request.id, e)
            raise

        stopped = list(STOPPED_PROCESSING.get(purpose, []))
        self.complete_request(
            tenant_id, request.id, f"Stopped processing activities: {', '.join(stopped)}"
        )
        return ConsentWithdrawalResult(request_id=request.id, success=True, stopped_processing=stopped)
