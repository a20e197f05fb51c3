"""Audit logging service for compliance events.

AuditLogger is the single write path for the append-only audit trail and the
read path used by the dashboard for scoring and recent-activity views.

Compliance events written by the engines:
- CONSENT_GRANTED, CONSENT_REVOKED, CONSENT_EXPIRED
- ANONYMIZE
- READ on PersonalData (one per DPIA run, carrying score and risk level)
- RETENTION_EXECUTED, RETENTION_POLICY_CREATED
- PROCESSING_ACTIVITY_CREATED, PROCESSING_ACTIVITY_DEACTIVATED
- DSR_<type> (ACCESS, ERASURE, PORTABILITY, RECTIFICATION, WITHDRAW_CONSENT)
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Union
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..models.audit_log import AuditCategory, AuditLog, AuditSeverity
from .schemas import AuditLogFilter, AuditStats


def _enum_value(value: Union[str, AuditSeverity, AuditCategory]) -> str:
    return value.value if hasattr(value, "value") else value


class AuditLogger:
    """Append-only audit trail bound to a database session.

    Entries are flushed, not committed: they become durable together with the
    caller's transaction, so an audit row never outlives a rolled-back change.
    """

    def __init__(self, db: Session):
        self.db = db

    def log(
        self,
        action: str,
        resource: str,
        tenant_id: Optional[UUID] = None,
        actor_id: Optional[UUID] = None,
        resource_id: Optional[Any] = None,
        details: Optional[str] = None,
        category: Union[str, AuditCategory] = AuditCategory.DATA_ACCESS,
        severity: Union[str, AuditSeverity] = AuditSeverity.INFO,
        old_values: Optional[Dict[str, Any]] = None,
        new_values: Optional[Dict[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> AuditLog:
        """Create an audit log entry.

        Args:
            action: Event action (e.g., "CONSENT_GRANTED", "ANONYMIZE")
            resource: Type of entity affected (e.g., "ConsentRecord", "User")
            tenant_id: Owning tenant (None for system-wide events)
            actor_id: User who performed the action (None for system events)
            resource_id: ID of affected entity; stored as text
            details: Human-readable description
            category: AuditCategory
            severity: AuditSeverity
            metadata: Additional context as JSON

        Returns:
            AuditLog: The created audit log entry
        """
        entry = AuditLog(
            tenant_id=tenant_id,
            actor_id=actor_id,
            action=action,
            resource=resource,
            resource_id=str(resource_id) if resource_id is not None else None,
            details=details,
            category=_enum_value(category),
            severity=_enum_value(severity),
            old_values=old_values,
            new_values=new_values,
            metadata_json=metadata,
            ip_address=ip_address,
            user_agent=user_agent,
        )

        self.db.add(entry)
        self.db.flush()  # Get ID without committing transaction

        return entry

    def log_consent(
        self,
        user_id: UUID,
        action: str,
        purpose: str,
        tenant_id: Optional[UUID] = None,
        details: Optional[str] = None,
        resource_id: Optional[Any] = None,
    ) -> AuditLog:
        return self.log(
            action=action,
            resource="ConsentRecord",
            resource_id=resource_id,
            tenant_id=tenant_id,
            actor_id=user_id,
            details=details or f"Consent {action.lower()} for purpose: {purpose}",
            category=AuditCategory.CONSENT_MANAGEMENT,
            severity=AuditSeverity.INFO,
        )

    def log_anonymization(
        self,
        subject_id: Any,
        resource: str,
        resource_id: Any,
        performed_by: Optional[UUID] = None,
        tenant_id: Optional[UUID] = None,
    ) -> AuditLog:
        """Record an irreversible anonymization. Always HIGH severity."""
        return self.log(
            action="ANONYMIZE",
            resource=resource,
            resource_id=resource_id,
            tenant_id=tenant_id,
            actor_id=performed_by,
            details=f"Anonymized {resource} for user {subject_id}",
            category=AuditCategory.PRIVACY_RIGHTS,
            severity=AuditSeverity.HIGH,
        )

    def log_data_processing(
        self,
        activity: str,
        data_types: List[str],
        legal_basis: str,
        tenant_id: Optional[UUID] = None,
        actor_id: Optional[UUID] = None,
        purpose: Optional[str] = None,
    ) -> AuditLog:
        details = (
            f"Processing activity: {activity}, Data types: {', '.join(data_types)}, "
            f"Legal basis: {legal_basis}"
        )
        if purpose:
            details += f", Purpose: {purpose}"
        return self.log(
            action="READ",
            resource="PersonalData",
            tenant_id=tenant_id,
            actor_id=actor_id,
            details=details,
            category=AuditCategory.DATA_ACCESS,
            severity=AuditSeverity.INFO,
        )

    def log_data_subject_request(
        self,
        user_id: UUID,
        request_type: str,
        request_id: Any,
        status: str,
        tenant_id: Optional[UUID] = None,
    ) -> AuditLog:
        return self.log(
            action=f"DSR_{request_type}",
            resource="DataSubjectRequest",
            resource_id=request_id,
            tenant_id=tenant_id,
            actor_id=user_id,
            details=f"Data subject request {request_type} {status.lower()}",
            category=AuditCategory.PRIVACY_RIGHTS,
            severity=AuditSeverity.MEDIUM,
        )

    def _apply_range(self, query, start_date: Optional[datetime], end_date: Optional[datetime]):
        if start_date:
            query = query.filter(AuditLog.timestamp >= start_date)
        if end_date:
            query = query.filter(AuditLog.timestamp <= end_date)
        return query

    def get_logs(self, filters: Optional[AuditLogFilter] = None) -> List[AuditLog]:
        """Query audit entries, newest first."""
        filters = filters or AuditLogFilter()
        query = self.db.query(AuditLog)

        if filters.tenant_id:
            query = query.filter(AuditLog.tenant_id == filters.tenant_id)
        if filters.actor_id:
            query = query.filter(AuditLog.actor_id == filters.actor_id)
        if filters.resource:
            query = query.filter(AuditLog.resource == filters.resource)
        if filters.action:
            query = query.filter(AuditLog.action == filters.action)
        if filters.category:
            query = query.filter(AuditLog.category == filters.category.value)
        if filters.severity:
            query = query.filter(AuditLog.severity == filters.severity.value)
        query = self._apply_range(query, filters.start_date, filters.end_date)

        return (
            query.order_by(AuditLog.timestamp.desc())
            .offset(filters.offset)
            .limit(filters.limit)
            .all()
        )

    def get_stats(
        self,
        tenant_id: Optional[UUID] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> AuditStats:
        """Count entries in range, grouped by action, category and severity."""

        def grouped(column) -> Dict[str, int]:
            query = self.db.query(column, func.count(AuditLog.id))
            if tenant_id:
                query = query.filter(AuditLog.tenant_id == tenant_id)
            query = self._apply_range(query, start_date, end_date)
            return {key: count for key, count in query.group_by(column).all()}

        by_action = grouped(AuditLog.action)
        return AuditStats(
            total_logs=sum(by_action.values()),
            by_action=by_action,
            by_category=grouped(AuditLog.category),
            by_severity=grouped(AuditLog.severity),
        )
