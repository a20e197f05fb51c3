"""Pydantic schemas for processing activity input"""

from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from ..models.processing_activity import LegalBasis


class ProcessingActivityCreate(BaseModel):
    """Schema for registering a processing activity.

    The risk flags are captured here, at creation time, and become the
    system of record for DPIA scoring.
    """
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    purpose: str = Field(..., min_length=1)
    legal_basis: LegalBasis
    data_categories: List[str] = Field(default_factory=list)
    data_subjects: List[str] = Field(default_factory=list)
    recipients: List[str] = Field(default_factory=list)
    third_countries: List[str] = Field(default_factory=list)
    retention_period: Optional[str] = None
    security_measures: List[str] = Field(default_factory=list)

    automated_decision_making: bool = False
    large_scale_processing: bool = False
    sensitive_data: bool = False
    publicly_accessible: bool = False
    new_technology: bool = False
    systematic_monitoring: bool = False

    @field_validator(
        "data_categories", "data_subjects", "recipients", "third_countries", "security_measures"
    )
    @classmethod
    def strip_entries(cls, v: List[str]) -> List[str]:
        """Drop blank entries so list lengths reflect real values."""
        return [item.strip() for item in v if item and item.strip()]
