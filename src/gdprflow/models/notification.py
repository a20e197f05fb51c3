"""Notification SQLAlchemy model"""

import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Text, Uuid

from .base import Base, utcnow


class Notification(Base):
    __tablename__ = "notification"
    __table_args__ = (
        Index("ix_notification_tenant_id_created_at", "tenant_id", "created_at"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("tenant.id", ondelete="RESTRICT"), nullable=False)
    user_id = Column(Uuid, ForeignKey("user.id", ondelete="CASCADE"), nullable=True)
    title = Column(Text, nullable=False)
    message = Column(Text, nullable=True)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
