"""User and Employee SQLAlchemy models"""

import re
import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship, validates

from .base import Base, utcnow

# Sentinel values written by retention anonymization
ANONYMIZED_EMAIL_DOMAIN = "deleted.local"
ANONYMIZED_FIRST_NAME = "DELETED"
ANONYMIZED_LAST_NAME = "USER"


class User(Base):
    """User model for data subjects belonging to a tenant.

    Users are never hard-deleted by retention: identifying fields are replaced
    with sentinel values and anonymized_at is set, so foreign keys from orders,
    bookings and audit entries stay valid.
    """
    __tablename__ = "user"
    __table_args__ = (
        UniqueConstraint('tenant_id', 'email', name='uq_user_tenant_email'),
        Index("ix_user_tenant_id_updated_at", "tenant_id", "updated_at"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("tenant.id", ondelete="RESTRICT"), nullable=True)
    email = Column(Text, nullable=False)
    first_name = Column(Text, nullable=True)
    last_name = Column(Text, nullable=True)
    phone_number = Column(Text, nullable=True)
    bio = Column(Text, nullable=True)
    profile_image_url = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    anonymized_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Relationships
    tenant = relationship("Tenant", back_populates="users")
    employee = relationship("Employee", back_populates="user", uselist=False)

    @validates('email')
    def validate_email(self, key, value):
        """Basic email format validation"""
        if not re.match(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$', value):
            raise ValueError("Invalid email format")
        return value.lower()

    @property
    def is_anonymized(self) -> bool:
        return self.anonymized_at is not None

    def to_dict(self):
        """Convert user to dictionary representation"""
        return {
            "id": str(self.id),
            "tenant_id": str(self.tenant_id) if self.tenant_id else None,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "is_active": self.is_active,
            "anonymized_at": self.anonymized_at.isoformat() if self.anonymized_at else None,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


class Employee(Base):
    """Employment record linked to a user.

    Its existence places the user under an independent legal retention
    obligation, so retention never anonymizes a linked user.
    """
    __tablename__ = "employee"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("tenant.id", ondelete="RESTRICT"), nullable=False)
    user_id = Column(Uuid, ForeignKey("user.id", ondelete="RESTRICT"), nullable=False, unique=True)
    position = Column(Text, nullable=True)
    hired_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    user = relationship("User", back_populates="employee")
