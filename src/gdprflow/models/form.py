"""Form and FormSubmission SQLAlchemy models"""

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Index, Text, Uuid
from sqlalchemy.orm import relationship

from .base import Base, PortableJSONB, utcnow


class Form(Base):
    __tablename__ = "form"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("tenant.id", ondelete="RESTRICT"), nullable=False)
    name = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    submissions = relationship("FormSubmission", back_populates="form")


class FormSubmission(Base):
    """Submitted form payload. Tenant scoping goes through the form."""
    __tablename__ = "form_submission"
    __table_args__ = (
        Index("ix_form_submission_form_id_created_at", "form_id", "created_at"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    form_id = Column(Uuid, ForeignKey("form.id", ondelete="CASCADE"), nullable=False)
    data = Column(PortableJSONB, nullable=False, default=dict)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    form = relationship("Form", back_populates="submissions")
