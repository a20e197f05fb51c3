"""DataRetentionPolicy and RetentionExecutionLease SQLAlchemy models"""

import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, Text, Uuid

from .base import Base, PortableJSONB, utcnow

GLOBAL_SCOPE = "*"


class DataRetentionPolicy(Base):
    """Retention rule for one data type.

    tenant_id NULL marks a global policy. retention_days NULL means the data
    never expires. conditions holds a list of {field, op, value} clauses.
    """
    __tablename__ = "data_retention_policy"
    __table_args__ = (
        Index("ix_data_retention_policy_due", "is_active", "next_execution"),
        Index("ix_data_retention_policy_tenant_id", "tenant_id"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("tenant.id", ondelete="RESTRICT"), nullable=True)
    name = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    data_type = Column(Text, nullable=False)
    retention_days = Column(Integer, nullable=True)
    auto_delete = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    conditions = Column(PortableJSONB, nullable=True)
    last_executed = Column(DateTime, nullable=True)
    next_execution = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            "id": str(self.id),
            "tenant_id": str(self.tenant_id) if self.tenant_id else None,
            "name": self.name,
            "data_type": self.data_type,
            "retention_days": self.retention_days,
            "auto_delete": self.auto_delete,
            "is_active": self.is_active,
            "conditions": self.conditions,
            "last_executed": self.last_executed.isoformat() if self.last_executed else None,
            "next_execution": self.next_execution.isoformat() if self.next_execution else None,
        }


class RetentionExecutionLease(Base):
    """Time-bounded lease on retention execution for one (tenant, data type).

    scope_key is "<tenant_id or *>:<data_type>"; its unique constraint makes
    the INSERT of a fresh lease the arbitration point between workers.
    """
    __tablename__ = "retention_execution_lease"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    scope_key = Column(Text, nullable=False, unique=True)
    holder = Column(Text, nullable=False)
    acquired_at = Column(DateTime, nullable=False, default=utcnow)
    expires_at = Column(DateTime, nullable=False)
