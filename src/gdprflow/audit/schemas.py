"""Pydantic schemas for audit log queries"""

from datetime import datetime
from typing import Dict, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from ..models.audit_log import AuditCategory, AuditSeverity


class AuditLogFilter(BaseModel):
    """Filters accepted by AuditLogger.get_logs. Unset fields do not filter."""
    tenant_id: Optional[UUID] = None
    actor_id: Optional[UUID] = None
    resource: Optional[str] = None
    action: Optional[str] = None
    category: Optional[AuditCategory] = None
    severity: Optional[AuditSeverity] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    limit: int = Field(default=100, ge=1, le=10_000)
    offset: int = Field(default=0, ge=0)


class AuditStats(BaseModel):
    """Aggregate counts over a set of audit entries"""
    total_logs: int
    by_action: Dict[str, int] = Field(default_factory=dict)
    by_category: Dict[str, int] = Field(default_factory=dict)
    by_severity: Dict[str, int] = Field(default_factory=dict)

    def severity_count(self, severity: AuditSeverity) -> int:
        return self.by_severity.get(severity.value, 0)
