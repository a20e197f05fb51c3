"""UserSession SQLAlchemy model"""

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Index, Text, Uuid
from sqlalchemy.orm import relationship

from .base import Base, utcnow


class UserSession(Base):
    """Login session issued to a user.

    Sessions carry no tenant of their own; tenant scoping goes through the
    owning user. Expired sessions are hard-deleted by retention.
    """
    __tablename__ = "user_session"
    __table_args__ = (
        Index("ix_user_session_expires", "expires"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("user.id", ondelete="CASCADE"), nullable=False)
    session_token = Column(Text, nullable=False, unique=True)
    expires = Column(DateTime, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    user = relationship("User")
