"""Tenant model - Root entity for multi-tenant isolation"""

import re
import uuid

from sqlalchemy import Column, DateTime, Text, Uuid
from sqlalchemy.orm import validates, relationship

from .base import Base, PortableJSONB, utcnow


class Tenant(Base):
    """
    Tenant model - Root entity for the multi-tenant system.

    Each tenant owns its processing activities, consent records, retention
    policies, breaches and data subject requests. Global retention policies
    and system audit events carry no tenant.
    """
    __tablename__ = "tenant"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(Text, nullable=False)
    slug = Column(Text, nullable=False, unique=True)
    settings_json = Column(PortableJSONB, nullable=False, default=dict)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Relationships
    users = relationship("User", back_populates="tenant")
    processing_activities = relationship("ProcessingActivity", back_populates="tenant")

    @validates('slug')
    def validate_slug(self, key, value):
        """
        Ensure slug is URL-friendly.

        Pattern: ^[a-z0-9-]+$

        Raises:
            ValueError: If slug doesn't match pattern or length requirements
        """
        if not re.match(r'^[a-z0-9-]+$', value):
            raise ValueError(
                "Slug must contain only lowercase letters, numbers, and hyphens"
            )
        if len(value) < 2 or len(value) > 100:
            raise ValueError("Slug must be between 2 and 100 characters")
        return value

    @validates('name')
    def validate_name(self, key, value):
        if not value or len(value.strip()) == 0:
            raise ValueError("Tenant name cannot be empty")
        if len(value) > 200:
            raise ValueError("Tenant name cannot exceed 200 characters")
        return value.strip()

    def __repr__(self):
        return f"<Tenant(id={self.id}, slug='{self.slug}', name='{self.name}')>"
