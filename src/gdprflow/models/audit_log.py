"""AuditLog SQLAlchemy model"""

import enum
import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, Text, Uuid
from sqlalchemy.orm import relationship

from .base import Base, PortableJSONB, enum_check, utcnow


class AuditSeverity(str, enum.Enum):
    LOW = "LOW"
    INFO = "INFO"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class AuditCategory(str, enum.Enum):
    AUTHENTICATION = "AUTHENTICATION"
    DATA_ACCESS = "DATA_ACCESS"
    DATA_MODIFICATION = "DATA_MODIFICATION"
    CONSENT_MANAGEMENT = "CONSENT_MANAGEMENT"
    PRIVACY_RIGHTS = "PRIVACY_RIGHTS"
    SYSTEM_ADMIN = "SYSTEM_ADMIN"


class AuditLog(Base):
    """AuditLog model for append-only compliance event logging.

    Records compliance-relevant events (consent changes, anonymizations,
    assessments, retention runs). Entries are never updated; retention may
    delete old LOW/INFO entries only.
    """
    __tablename__ = "audit_log"
    __table_args__ = (
        Index("ix_audit_log_tenant_id", "tenant_id"),
        Index("ix_audit_log_tenant_id_timestamp", "tenant_id", "timestamp"),
        CheckConstraint(enum_check("severity", AuditSeverity), name="ck_audit_log_severity"),
        CheckConstraint(enum_check("category", AuditCategory), name="ck_audit_log_category"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("tenant.id", ondelete="RESTRICT"), nullable=True)
    actor_id = Column(Uuid, ForeignKey("user.id", ondelete="SET NULL"), nullable=True)
    action = Column(Text, nullable=False)
    resource = Column(Text, nullable=False)
    resource_id = Column(Text, nullable=True)
    details = Column(Text, nullable=True)
    old_values = Column(PortableJSONB, nullable=True)
    new_values = Column(PortableJSONB, nullable=True)
    metadata_json = Column(PortableJSONB, nullable=True)
    ip_address = Column(Text, nullable=True)
    user_agent = Column(Text, nullable=True)
    severity = Column(Text, nullable=False, default=AuditSeverity.INFO.value)
    category = Column(Text, nullable=False, default=AuditCategory.DATA_ACCESS.value)
    timestamp = Column(DateTime, nullable=False, default=utcnow)

    # Relationships
    actor = relationship("User")

    def to_dict(self):
        """Convert audit log entry to dictionary representation"""
        return {
            "id": str(self.id),
            "tenant_id": str(self.tenant_id) if self.tenant_id else None,
            "actor_id": str(self.actor_id) if self.actor_id else None,
            "action": self.action,
            "resource": self.resource,
            "resource_id": self.resource_id,
            "details": self.details,
            "metadata": self.metadata_json,
            "severity": self.severity,
            "category": self.category,
            "timestamp": self.timestamp.isoformat(),
        }
