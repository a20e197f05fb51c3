"""DataBreach SQLAlchemy model"""

import enum
import uuid

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, Text, Uuid

from .base import Base, PortableJSONB, enum_check, utcnow


class BreachSeverity(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class BreachStatus(str, enum.Enum):
    DETECTED = "DETECTED"
    INVESTIGATING = "INVESTIGATING"
    CONTAINED = "CONTAINED"
    RESOLVED = "RESOLVED"


class DataBreach(Base):
    """Personal data breach. Qualifying breaches must reach the authority within 72 hours."""
    __tablename__ = "data_breach"
    __table_args__ = (
        Index("ix_data_breach_tenant_id_detected_at", "tenant_id", "detected_at"),
        CheckConstraint(enum_check("severity", BreachSeverity), name="ck_data_breach_severity"),
        CheckConstraint(enum_check("status", BreachStatus), name="ck_data_breach_status"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("tenant.id", ondelete="RESTRICT"), nullable=False)
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    severity = Column(Text, nullable=False)
    status = Column(Text, nullable=False, default=BreachStatus.DETECTED.value)
    affected_records = Column(Integer, nullable=False, default=0)
    data_types = Column(PortableJSONB, nullable=False, default=list)
    detected_at = Column(DateTime, nullable=False, default=utcnow)
    authorities_notified = Column(Boolean, nullable=False, default=False)
    authorities_notified_at = Column(DateTime, nullable=True)
    resolved_at = Column(DateTime, nullable=True)
