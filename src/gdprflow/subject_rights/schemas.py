"""Pydantic schemas for data subject requests.

This module defines:
- SubjectRequestResponse: A persisted DataSubjectRequest
- DataExport: Art. 15 access export
- PortableData: Art. 20 portability package
- DeletionOutcome: Art. 17 erasure result
- RectificationResult: Art. 16 rectification result
- ConsentWithdrawalResult: Art. 7(3) withdrawal result
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class PortableFormat(str, Enum):
    JSON_LD = "JSON-LD"
    CSV = "CSV"
    XML = "XML"


class SubjectRequestResponse(BaseModel):
    id: UUID
    tenant_id: UUID
    user_id: Optional[UUID] = None
    request_type: str
    status: str
    description: Optional[str] = None
    requested_at: datetime
    completed_at: Optional[datetime] = None
    processing_notes: Optional[str] = None
    rejection_reason: Optional[str] = None

    class Config:
        from_attributes = True


class ExportMetadata(BaseModel):
    exported_at: datetime
    data_format: str = "JSON"
    request_id: UUID
    user_id: UUID


class DataExport(BaseModel):
    """Everything held about a data subject, as returned by an access request."""
    personal_data: Dict[str, Any]
    consent_history: List[Dict[str, Any]] = Field(default_factory=list)
    activity_logs: List[Dict[str, Any]] = Field(default_factory=list)
    processed_data: List[Dict[str, Any]] = Field(default_factory=list)
    metadata: ExportMetadata


class PortableData(BaseModel):
    request_id: UUID
    format: PortableFormat
    schema_url: str = "https://schema.org/Person"
    content: str
    size: int = Field(..., description="Encoded content size in bytes")
    expires_at: datetime


class DeletionOutcome(BaseModel):
    request_id: UUID
    status: str  # "completed" or "failed"
    can_delete: bool
    retention_reasons: List[str] = Field(default_factory=list)


class RectificationResult(BaseModel):
    request_id: UUID
    status: str
    applied: Dict[str, Any] = Field(default_factory=dict)
    ignored_fields: List[str] = Field(default_factory=list)


class ConsentWithdrawalResult(BaseModel):
    request_id: UUID
    success: bool
    stopped_processing: List[str] = Field(default_factory=list)
