"""Consent ledger service.

Consent is stored as an append-only event log keyed by (tenant, user,
purpose). The latest event of a key (highest sequence) is its current state.
When a new event flips the granted value, every other event of the key is
marked revoked.

Writes to one key are serialized through its ConsentKeyHead row, which
carries an optimistic version counter: a writer whose head changed underneath
it gets StaleDataError (or IntegrityError when two writers create the head),
rolls back and retries. Writes commit on success.
"""

import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ..audit.service import AuditLogger
from ..config import RegulatoryConfig, Settings, get_regulatory_config, get_settings
from ..errors import ConsentWriteConflictError, ForbiddenError, NotFoundError
from ..models.base import utcnow
from ..models.consent_record import ConsentKeyHead, ConsentPurpose, ConsentRecord
from ..models.data_subject_request import DataSubjectRequest, RequestType
from ..models.processing_activity import LegalBasis, ProcessingActivity
from ..models.user import User
from ..observability.metrics import consent_events_total, consent_write_conflicts_total
from .actions import ConsentActionDispatcher
from .schemas import (
    ConsentChoice,
    ConsentCleanupResult,
    ConsentComplianceMetrics,
    ConsentDashboard,
    ConsentReport,
    ConsentRequest,
    ConsentSource,
    ConsentStatus,
    ProcessingActivitySummary,
)

logger = logging.getLogger(__name__)


def _status_from_record(record: ConsentRecord, now: datetime) -> ConsentStatus:
    needs_renewal = record.expires_at is not None and record.expires_at < now
    return ConsentStatus(
        purpose=record.purpose,
        granted=record.granted and not needs_renewal,
        granted_at=record.granted_at,
        revoked_at=record.revoked_at,
        version=record.version,
        source=record.source or "unknown",
        expires_at=record.expires_at,
        needs_renewal=needs_renewal,
    )


class ConsentService:
    """Record, evaluate and report consent decisions.

    Usage:
        service = ConsentService(db=session, audit=AuditLogger(session))
        service.record_consent(ConsentRequest(...))
        service.has_valid_consent(user_id, tenant_id, ConsentPurpose.ANALYTICS)
    """

    def __init__(
        self,
        db: Session,
        audit: AuditLogger,
        settings: Optional[Settings] = None,
        regulatory: Optional[RegulatoryConfig] = None,
        dispatcher: Optional[ConsentActionDispatcher] = None,
    ):
        self.db = db
        self.audit = audit
        self.settings = settings or get_settings()
        self.regulatory = regulatory or get_regulatory_config()
        self.dispatcher = dispatcher or ConsentActionDispatcher()

    def _key_filter(self, model, user_id: UUID, tenant_id: UUID, purpose: str):
        return (model.tenant_id == tenant_id, model.user_id == user_id, model.purpose == purpose)

    def _get_user(self, tenant_id: UUID, user_id: UUID) -> User:
        user = self.db.get(User, user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        if user.tenant_id != tenant_id:
            raise ForbiddenError(f"User {user_id} does not belong to tenant {tenant_id}")
        return user

    def _latest_record(self, user_id: UUID, tenant_id: UUID, purpose: ConsentPurpose) -> Optional[ConsentRecord]:
        return (
            self.db.query(ConsentRecord)
            .filter(*self._key_filter(ConsentRecord, user_id, tenant_id, ConsentPurpose(purpose).value))
            .order_by(ConsentRecord.sequence.desc())
            .first()
        )

    def _resolve_expiry(self, request: ConsentRequest, now: datetime) -> Tuple[Optional[datetime], Dict]:
        """Explicit expiry wins; otherwise apply the configured per-purpose period."""
        metadata = dict(request.metadata)
        if request.expires_at is not None:
            return request.expires_at, metadata

        days = self.regulatory.consent_expiry_days.get(request.purpose.value)
        metadata["expiry_policy_version"] = self.regulatory.version
        if days is None:
            return None, metadata
        return now + timedelta(days=days), metadata

    # Writes

    def record_consent(self, request: ConsentRequest) -> ConsentStatus:
        """Append a consent event and commit it.

        Raises:
            NotFoundError: Unknown user id
            ForbiddenError: User belongs to another tenant
            ConsentWriteConflictError: If the key kept changing concurrently
                for CONSENT_WRITE_RETRIES attempts
        """
        self._get_user(request.tenant_id, request.user_id)
        now = utcnow()
        expires_at, metadata = self._resolve_expiry(request, now)
        attempts = self.settings.CONSENT_WRITE_RETRIES
        log_extra = {"user_id": request.user_id, "tenant_id": request.tenant_id}

        last_error = None
        for attempt in range(1, attempts + 1):
            try:
                record = self._append_event(request, expires_at, metadata, now)
                self.db.commit()
                break
            except (StaleDataError, IntegrityError) as e:
                self.db.rollback()
                last_error = e
                consent_write_conflicts_total.inc()
                logger.warning(
                    f"Consent write conflict for {request.purpose.value} (attempt {attempt}/{attempts})",
                    extra=log_extra,
                )
        else:
            raise ConsentWriteConflictError(
                f"Consent for user {request.user_id}, purpose {request.purpose.value} "
                f"changed concurrently {attempts} times"
            ) from last_error

        logger.info(
            f"Recorded consent for user {request.user_id}, purpose: {request.purpose.value}, "
            f"granted: {request.granted}",
            extra=log_extra,
        )
        consent_events_total.labels(
            purpose=request.purpose.value, granted=str(request.granted).lower()
        ).inc()
        self.dispatcher.dispatch(request.user_id, request.tenant_id, request.purpose, request.granted)

        return _status_from_record(record, now)

    def _append_event(
        self,
        request: ConsentRequest,
        expires_at: Optional[datetime],
        metadata: Dict,
        now: datetime,
    ) -> ConsentRecord:
        purpose = request.purpose.value
        key = self._key_filter(ConsentKeyHead, request.user_id, request.tenant_id, purpose)

        head = self.db.query(ConsentKeyHead).filter(*key).one_or_none()
        if head is None:
            head = ConsentKeyHead(
                tenant_id=request.tenant_id,
                user_id=request.user_id,
                purpose=purpose,
                sequence=0,
            )
            self.db.add(head)

        previous_granted = head.latest_granted
        head.sequence += 1

        record = ConsentRecord(
            tenant_id=request.tenant_id,
            user_id=request.user_id,
            purpose=purpose,
            granted=request.granted,
            granted_at=now if request.granted else None,
            revoked_at=None if request.granted else now,
            version=request.version,
            source=request.source.value,
            ip_address=request.ip_address,
            user_agent=request.user_agent,
            metadata_json=metadata or None,
            expires_at=expires_at,
            sequence=head.sequence,
        )
        self.db.add(record)
        # Version check on the head happens here
        self.db.flush()

        if previous_granted is not None and previous_granted != request.granted:
            # Every other event of the key is superseded, not only the previous one
            (
                self.db.query(ConsentRecord)
                .filter(
                    *self._key_filter(ConsentRecord, request.user_id, request.tenant_id, purpose),
                    ConsentRecord.id != record.id,
                )
                .update({ConsentRecord.revoked_at: now}, synchronize_session="fetch")
            )

        head.latest_record_id = record.id
        head.latest_granted = request.granted

        self.audit.log_consent(
            user_id=request.user_id,
            action="CONSENT_GRANTED" if request.granted else "CONSENT_REVOKED",
            purpose=purpose,
            tenant_id=request.tenant_id,
            details=(
                f"Consent {'granted' if request.granted else 'revoked'} via "
                f"{request.source.value}, version: {request.version}"
            ),
            resource_id=record.id,
        )
        self.db.flush()
        return record

    def record_bulk_consent(
        self,
        user_id: UUID,
        tenant_id: UUID,
        choices: List[ConsentChoice],
        version: str,
        source: ConsentSource = ConsentSource.COOKIE_BANNER,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> List[ConsentStatus]:
        """Record one event per choice, in order (cookie banner submissions)."""
        return [
            self.record_consent(ConsentRequest(
                user_id=user_id,
                tenant_id=tenant_id,
                purpose=choice.purpose,
                granted=choice.granted,
                version=version,
                source=source,
                ip_address=ip_address,
                user_agent=user_agent,
            ))
            for choice in choices
        ]

    def withdraw_consent(
        self,
        user_id: UUID,
        tenant_id: UUID,
        purpose: ConsentPurpose,
        source: ConsentSource = ConsentSource.SETTINGS,
    ) -> ConsentStatus:
        """Revoke the current grant for a purpose.

        Raises:
            NotFoundError: If the key's current event is not a grant
        """
        current = self._latest_record(user_id, tenant_id, purpose)
        if current is None or not current.granted:
            raise NotFoundError("No active consent found for this purpose")

        return self.record_consent(ConsentRequest(
            user_id=user_id,
            tenant_id=tenant_id,
            purpose=purpose,
            granted=False,
            version=current.version,
            source=source,
        ))

    def cleanup_expired_consents(self, tenant_id: Optional[UUID] = None) -> ConsentCleanupResult:
        """Revoke granted consents whose expiry has passed.

        Records are marked revoked rather than deleted so the decision history
        stays auditable.
        """
        now = utcnow()
        query = self.db.query(ConsentRecord).filter(
            ConsentRecord.granted.is_(True),
            ConsentRecord.expires_at.isnot(None),
            ConsentRecord.expires_at < now,
        )
        if tenant_id is not None:
            query = query.filter(ConsentRecord.tenant_id == tenant_id)
        expired = query.all()

        for record in expired:
            record.granted = False
            record.revoked_at = now
            self.audit.log_consent(
                user_id=record.user_id,
                action="CONSENT_EXPIRED",
                purpose=record.purpose,
                tenant_id=record.tenant_id,
                details="Consent expired and automatically revoked",
                resource_id=record.id,
            )

        expired_ids = [record.id for record in expired]
        if expired_ids:
            heads = (
                self.db.query(ConsentKeyHead)
                .filter(ConsentKeyHead.latest_record_id.in_(expired_ids))
                .all()
            )
            for head in heads:
                head.latest_granted = False

        result = ConsentCleanupResult(
            cleaned_count=len(expired),
            tenants_processed=1 if tenant_id else len({r.tenant_id for r in expired}),
        )
        self.db.commit()

        logger.info(
            f"Revoked {result.cleaned_count} expired consents",
            extra={"tenant_id": tenant_id} if tenant_id else {},
        )
        return result

    # Reads

    def has_valid_consent(self, user_id: UUID, tenant_id: UUID, purpose: ConsentPurpose) -> bool:
        """True iff the key's latest event is an unexpired grant."""
        latest = self._latest_record(user_id, tenant_id, purpose)
        if latest is None or not latest.granted:
            return False
        return not latest.is_expired(utcnow())

    def get_user_consents(self, user_id: UUID, tenant_id: UUID) -> List[ConsentStatus]:
        """Latest-event view per purpose."""
        records = (
            self.db.query(ConsentRecord)
            .filter(ConsentRecord.tenant_id == tenant_id, ConsentRecord.user_id == user_id)
            .order_by(ConsentRecord.purpose, ConsentRecord.sequence.desc())
            .all()
        )
        latest: Dict[str, ConsentRecord] = {}
        for record in records:
            latest.setdefault(record.purpose, record)

        now = utcnow()
        return [_status_from_record(record, now) for record in latest.values()]

    def get_user_consent_dashboard(self, user_id: UUID, tenant_id: UUID) -> ConsentDashboard:
        """Raises NotFoundError for an unknown user and ForbiddenError for a
        user of another tenant."""
        user = self._get_user(tenant_id, user_id)

        consents = self.get_user_consents(user_id, tenant_id)
        activities = (
            self.db.query(ProcessingActivity)
            .filter(ProcessingActivity.tenant_id == tenant_id, ProcessingActivity.is_active.is_(True))
            .order_by(ProcessingActivity.created_at)
            .all()
        )

        return ConsentDashboard(
            user_id=user_id,
            consents=consents,
            can_withdraw=[
                c.purpose for c in consents
                if c.granted and c.purpose != ConsentPurpose.ESSENTIAL
            ],
            data_processing_activities=[
                ProcessingActivitySummary(
                    name=a.name,
                    purpose=a.purpose,
                    legal_basis=a.legal_basis,
                    consent_required=a.legal_basis == LegalBasis.CONSENT.value,
                    data_types=list(a.data_categories or []),
                )
                for a in activities
            ],
            downloadable_data=True,
            # Employment records carry statutory retention
            deletion_possible=user.employee is None,
        )

    def get_expired_consents_count(self, tenant_id: UUID) -> int:
        """Granted records past their expiry that cleanup has not revoked yet."""
        return (
            self.db.query(ConsentRecord)
            .filter(
                ConsentRecord.tenant_id == tenant_id,
                ConsentRecord.granted.is_(True),
                ConsentRecord.expires_at.isnot(None),
                ConsentRecord.expires_at < utcnow(),
            )
            .count()
        )

    def _tenant_history(self, tenant_id: UUID) -> List[ConsentRecord]:
        return (
            self.db.query(ConsentRecord)
            .filter(ConsentRecord.tenant_id == tenant_id)
            .order_by(ConsentRecord.user_id, ConsentRecord.purpose, ConsentRecord.sequence)
            .all()
        )

    @staticmethod
    def calculate_average_consent_lifetime(history: List[ConsentRecord]) -> int:
        """Mean days between a grant and the revocation that ended it.

        history must be ordered by key and sequence.
        """
        open_grants: Dict[tuple, datetime] = {}
        lifetimes = []
        for record in history:
            key = (record.user_id, record.purpose)
            if record.granted:
                open_grants.setdefault(key, record.granted_at or record.created_at)
                continue
            # Expired consents carry both timestamps on the same record
            granted_at = record.granted_at or open_grants.get(key)
            open_grants.pop(key, None)
            if granted_at is not None and record.revoked_at is not None:
                lifetimes.append((record.revoked_at - granted_at).total_seconds())

        if not lifetimes:
            return 0
        return int(sum(lifetimes) / len(lifetimes) / 86400 + 0.5)

    @staticmethod
    def calculate_renewal_rate(history: List[ConsentRecord], now: datetime) -> float:
        """Percentage of (user, purpose) keys with an expired grant that were granted again."""
        expired_keys = set()
        renewed_keys = set()
        for record in history:
            key = (record.user_id, record.purpose)
            expired = (
                record.granted_at is not None
                and record.expires_at is not None
                and record.expires_at < now
            )
            if expired:
                expired_keys.add(key)
            elif record.granted and key in expired_keys:
                renewed_keys.add(key)

        if not expired_keys:
            return 0.0
        return round(len(renewed_keys) / len(expired_keys) * 100, 2)

    def generate_consent_report(
        self,
        tenant_id: UUID,
        start_date: datetime,
        end_date: datetime,
    ) -> ConsentReport:
        events = (
            self.db.query(ConsentRecord)
            .filter(
                ConsentRecord.tenant_id == tenant_id,
                ConsentRecord.created_at >= start_date,
                ConsentRecord.created_at <= end_date,
            )
            .all()
        )

        grants = Counter(e.purpose for e in events if e.granted)
        withdrawals = Counter(e.purpose for e in events if not e.granted)
        total_grants = sum(grants.values())
        total_withdrawals = sum(withdrawals.values())
        withdrawal_rate = total_withdrawals / total_grants * 100 if total_grants > 0 else 0.0

        history = self._tenant_history(tenant_id)
        dsr_withdrawals = (
            self.db.query(DataSubjectRequest)
            .filter(
                DataSubjectRequest.tenant_id == tenant_id,
                DataSubjectRequest.request_type == RequestType.WITHDRAW_CONSENT.value,
                DataSubjectRequest.requested_at >= start_date,
                DataSubjectRequest.requested_at <= end_date,
            )
            .count()
        )

        return ConsentReport(
            summary={
                "total_consent_events": len(events),
                "total_consents_granted": total_grants,
                "total_withdrawals": total_withdrawals,
                "unique_users": len({e.user_id for e in events}),
                "purposes_covered": len(grants),
            },
            consents_by_purpose=dict(grants),
            withdrawal_rate=withdrawal_rate,
            compliance_metrics=ConsentComplianceMetrics(
                average_consent_lifetime_days=self.calculate_average_consent_lifetime(history),
                expired_consents=self.get_expired_consents_count(tenant_id),
                renewal_rate=self.calculate_renewal_rate(history, utcnow()),
                data_subject_requests_influence=dsr_withdrawals,
            ),
        )
