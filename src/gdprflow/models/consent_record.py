"""ConsentRecord and ConsentKeyHead SQLAlchemy models"""

import enum
import uuid

from sqlalchemy import (
    Boolean, CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, Text,
    UniqueConstraint, Uuid,
)

from .base import Base, PortableJSONB, enum_check, utcnow


class ConsentPurpose(str, enum.Enum):
    ESSENTIAL = "ESSENTIAL"
    ANALYTICS = "ANALYTICS"
    MARKETING = "MARKETING"
    PERSONALIZATION = "PERSONALIZATION"
    THIRD_PARTY = "THIRD_PARTY"
    COOKIES = "COOKIES"
    PROFILING = "PROFILING"


class ConsentRecord(Base):
    """Append-only consent event for a (tenant, user, purpose) key.

    Exactly one record per key is current: the one with the highest sequence.
    When a new record flips the granted value, every older record for the key
    gets revoked_at set.
    """
    __tablename__ = "consent_record"
    __table_args__ = (
        UniqueConstraint("tenant_id", "user_id", "purpose", "sequence", name="uq_consent_record_key_sequence"),
        Index("ix_consent_record_key", "tenant_id", "user_id", "purpose"),
        CheckConstraint(enum_check("purpose", ConsentPurpose), name="ck_consent_record_purpose"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("tenant.id", ondelete="RESTRICT"), nullable=False)
    user_id = Column(Uuid, ForeignKey("user.id", ondelete="RESTRICT"), nullable=False)
    purpose = Column(Text, nullable=False)
    granted = Column(Boolean, nullable=False)
    granted_at = Column(DateTime, nullable=True)
    revoked_at = Column(DateTime, nullable=True)
    version = Column(Text, nullable=False)
    source = Column(Text, nullable=False, default="web")
    ip_address = Column(Text, nullable=True)
    user_agent = Column(Text, nullable=True)
    metadata_json = Column(PortableJSONB, nullable=True)
    expires_at = Column(DateTime, nullable=True)
    sequence = Column(Integer, nullable=False)
    anonymized_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def is_expired(self, now) -> bool:
        return self.expires_at is not None and self.expires_at <= now

    def to_dict(self):
        return {
            "id": str(self.id),
            "user_id": str(self.user_id),
            "purpose": self.purpose,
            "granted": self.granted,
            "granted_at": self.granted_at.isoformat() if self.granted_at else None,
            "revoked_at": self.revoked_at.isoformat() if self.revoked_at else None,
            "version": self.version,
            "source": self.source,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "sequence": self.sequence,
        }


class ConsentKeyHead(Base):
    """Serialization point for writes to one consent key.

    version_id is checked on every UPDATE, so two writers that read the same
    head cannot both advance it.
    """
    __tablename__ = "consent_key_head"
    __table_args__ = (
        UniqueConstraint("tenant_id", "user_id", "purpose", name="uq_consent_key_head_key"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("tenant.id", ondelete="RESTRICT"), nullable=False)
    user_id = Column(Uuid, ForeignKey("user.id", ondelete="RESTRICT"), nullable=False)
    purpose = Column(Text, nullable=False)
    sequence = Column(Integer, nullable=False, default=0)
    latest_record_id = Column(Uuid, nullable=True)
    latest_granted = Column(Boolean, nullable=True)
    version_id = Column(Integer, nullable=False)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"version_id_col": version_id}
