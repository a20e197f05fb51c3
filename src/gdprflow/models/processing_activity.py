"""ProcessingActivity SQLAlchemy model"""

import enum
import uuid

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Index, Text, Uuid
from sqlalchemy.orm import relationship, validates

from .base import Base, PortableJSONB, enum_check, utcnow


class LegalBasis(str, enum.Enum):
    """GDPR Article 6 lawful bases for processing"""
    CONSENT = "CONSENT"
    CONTRACT = "CONTRACT"
    LEGAL_OBLIGATION = "LEGAL_OBLIGATION"
    VITAL_INTERESTS = "VITAL_INTERESTS"
    PUBLIC_TASK = "PUBLIC_TASK"
    LEGITIMATE_INTERESTS = "LEGITIMATE_INTERESTS"


class ProcessingActivity(Base):
    """Record of a processing activity (GDPR Art. 30).

    The six boolean risk flags are the system of record for DPIA scoring.
    They are captured when the activity is created; description keywords
    only ever suggest values. Activities are deactivated, never deleted.
    """
    __tablename__ = "processing_activity"
    __table_args__ = (
        Index("ix_processing_activity_tenant_id", "tenant_id"),
        CheckConstraint(enum_check("legal_basis", LegalBasis), name="ck_processing_activity_legal_basis"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("tenant.id", ondelete="RESTRICT"), nullable=False)
    name = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    purpose = Column(Text, nullable=False)
    legal_basis = Column(Text, nullable=False)
    data_categories = Column(PortableJSONB, nullable=False, default=list)
    data_subjects = Column(PortableJSONB, nullable=False, default=list)
    recipients = Column(PortableJSONB, nullable=False, default=list)
    third_countries = Column(PortableJSONB, nullable=False, default=list)
    retention_period = Column(Text, nullable=True)
    security_measures = Column(PortableJSONB, nullable=False, default=list)

    # Risk flags
    automated_decision_making = Column(Boolean, nullable=False, default=False)
    large_scale_processing = Column(Boolean, nullable=False, default=False)
    sensitive_data = Column(Boolean, nullable=False, default=False)
    publicly_accessible = Column(Boolean, nullable=False, default=False)
    new_technology = Column(Boolean, nullable=False, default=False)
    systematic_monitoring = Column(Boolean, nullable=False, default=False)

    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Relationships
    tenant = relationship("Tenant", back_populates="processing_activities")

    @validates('name', 'purpose')
    def validate_required_text(self, key, value):
        if not value or not value.strip():
            raise ValueError(f"Processing activity {key} cannot be empty")
        return value.strip()

    @validates('legal_basis')
    def validate_legal_basis(self, key, value):
        if isinstance(value, LegalBasis):
            return value.value
        if value not in {b.value for b in LegalBasis}:
            raise ValueError(f"Unknown legal basis: {value}")
        return value
