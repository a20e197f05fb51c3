"""DataSubjectRequest SQLAlchemy model"""

import enum
import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, Text, Uuid

from .base import Base, enum_check, utcnow


class RequestType(str, enum.Enum):
    ACCESS = "ACCESS"
    RECTIFICATION = "RECTIFICATION"
    ERASURE = "ERASURE"
    PORTABILITY = "PORTABILITY"
    RESTRICTION = "RESTRICTION"
    OBJECTION = "OBJECTION"
    WITHDRAW_CONSENT = "WITHDRAW_CONSENT"


class RequestStatus(str, enum.Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    REJECTED = "REJECTED"


class DataSubjectRequest(Base):
    """Request from a data subject exercising GDPR rights (Art. 15-22)."""
    __tablename__ = "data_subject_request"
    __table_args__ = (
        Index("ix_data_subject_request_tenant_id_status", "tenant_id", "status"),
        CheckConstraint(enum_check("request_type", RequestType), name="ck_dsr_request_type"),
        CheckConstraint(enum_check("status", RequestStatus), name="ck_dsr_status"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("tenant.id", ondelete="RESTRICT"), nullable=False)
    user_id = Column(Uuid, ForeignKey("user.id", ondelete="SET NULL"), nullable=True)
    request_type = Column(Text, nullable=False)
    status = Column(Text, nullable=False, default=RequestStatus.PENDING.value)
    description = Column(Text, nullable=True)
    requested_at = Column(DateTime, nullable=False, default=utcnow)
    completed_at = Column(DateTime, nullable=True)
    processing_notes = Column(Text, nullable=True)
    rejection_reason = Column(Text, nullable=True)
