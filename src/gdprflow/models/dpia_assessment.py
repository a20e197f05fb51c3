"""DPIAAssessmentRecord SQLAlchemy model"""

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, Text, Uuid

from .base import Base, PortableJSONB, utcnow


class DPIAAssessmentRecord(Base):
    """Immutable snapshot of a DPIA as computed at conducted_at.

    Rows are append-only. Live assessments are always recomputed from the
    activity; these snapshots answer which assessment was in force on a date.
    """
    __tablename__ = "dpia_assessment"
    __table_args__ = (
        Index("ix_dpia_assessment_activity_conducted", "activity_id", "conducted_at"),
        Index("ix_dpia_assessment_tenant_id", "tenant_id"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("tenant.id", ondelete="RESTRICT"), nullable=False)
    activity_id = Column(Uuid, ForeignKey("processing_activity.id", ondelete="RESTRICT"), nullable=False)
    activity_name = Column(Text, nullable=False)
    score = Column(Integer, nullable=False)
    risk_level = Column(Text, nullable=False)
    compliance_status = Column(Text, nullable=False)
    recommendations = Column(PortableJSONB, nullable=False, default=list)
    required_actions = Column(PortableJSONB, nullable=False, default=list)
    criteria_scores = Column(PortableJSONB, nullable=False, default=dict)
    next_review = Column(DateTime, nullable=False)
    conducted_by = Column(Uuid, nullable=True)
    conducted_at = Column(DateTime, nullable=False, default=utcnow)
    config_version = Column(Text, nullable=False)
