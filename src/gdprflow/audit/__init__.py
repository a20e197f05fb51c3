"""Audit trail: append-only compliance event log"""

from .service import AuditLogger
from .schemas import AuditLogFilter, AuditStats

__all__ = ["AuditLogger", "AuditLogFilter", "AuditStats"]
