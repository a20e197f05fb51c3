"""Pydantic schemas for retention policies, jobs and reporting.

This module defines retention-related schemas:
- RetentionCondition: One typed filter clause of a policy
- RetentionPolicyCreate: Input for creating a policy
- RetentionJob: Ephemeral record of one policy execution
- DataInventory / RetentionReport: Reporting views
- RetentionStatistics: Aggregate of a batch run
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, model_validator

from ..models.base import utcnow
from .status import TERMINAL_STATES, RetentionJobStatus, validate_transition


class ConditionOp(str, Enum):
    EQ = "eq"
    NE = "ne"
    IN = "in"
    IS_NULL = "is_null"
    NOT_NULL = "not_null"
    LT = "lt"
    GT = "gt"


class RetentionCondition(BaseModel):
    """Filter clause narrowing the records a policy selects.

    field must name a column of the policy's data type. value is required
    for eq/ne/lt/gt, must be a list for `in`, and is ignored for the null
    checks.
    """
    field: str = Field(..., min_length=1)
    op: ConditionOp
    value: Any = None

    @model_validator(mode="after")
    def check_value(self) -> "RetentionCondition":
        if self.op == ConditionOp.IN and not isinstance(self.value, list):
            raise ValueError("Operator 'in' requires a list value")
        if self.op in (ConditionOp.EQ, ConditionOp.NE, ConditionOp.LT, ConditionOp.GT) and self.value is None:
            raise ValueError(f"Operator '{self.op.value}' requires a value")
        return self


class RetentionPolicyCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    data_type: str = Field(..., min_length=1)
    retention_days: Optional[int] = Field(
        default=None,
        ge=1,
        description="Days to keep records; None means the data never expires"
    )
    auto_delete: bool = True
    is_active: bool = True
    conditions: List[RetentionCondition] = Field(default_factory=list)
    tenant_id: Optional[UUID] = None


class RetentionJob(BaseModel):
    """Run record for one policy execution. Not persisted."""
    id: UUID = Field(default_factory=uuid4)
    policy_id: UUID
    tenant_id: Optional[UUID] = None
    data_type: str
    status: RetentionJobStatus = RetentionJobStatus.PENDING
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    records_processed: int = 0
    records_deleted: int = 0
    records_anonymized: int = 0
    errors: List[str] = Field(default_factory=list)

    def transition(self, new_status: RetentionJobStatus) -> None:
        """Move to new_status, stamping completed_at on terminal states.

        Raises:
            StateTransitionError: If the transition is not allowed
        """
        validate_transition(self.status, new_status)
        self.status = new_status
        if new_status in TERMINAL_STATES:
            self.completed_at = utcnow()

    def fail(self, message: str) -> None:
        self.errors.append(message)
        self.transition(RetentionJobStatus.FAILED)


class DataInventory(BaseModel):
    data_type: str
    total_records: int
    oldest_record: Optional[datetime] = None
    newest_record: Optional[datetime] = None
    retention_policy: Optional[str] = None
    due_deletion_count: int = 0
    scheduled_deletion: Optional[datetime] = None


class UpcomingDeletion(BaseModel):
    data_type: str
    scheduled_date: datetime
    estimated_records: int


class RetentionReport(BaseModel):
    summary: Dict[str, int]
    policies: List[Dict[str, Any]]
    inventory: List[DataInventory]
    upcoming_deletions: List[UpcomingDeletion]
    compliance_status: str


class RetentionStatistics(BaseModel):
    """Statistics from a batch retention run.

    Used for monitoring and alerting on retention job health.
    """

    job_started_at: datetime = Field(description="When the batch run started")
    job_completed_at: datetime = Field(description="When the batch run completed")
    duration_seconds: float = Field(ge=0.0, description="Execution duration in seconds")

    jobs_completed: int = Field(default=0, ge=0)
    jobs_failed: int = Field(default=0, ge=0)
    records_processed: int = Field(default=0, ge=0)
    records_deleted: int = Field(default=0, ge=0)
    records_anonymized: int = Field(default=0, ge=0)

    @property
    def total_records_deleted(self) -> int:
        return self.records_deleted

    @property
    def has_errors(self) -> bool:
        return self.jobs_failed > 0

    @property
    def is_anomaly(self) -> bool:
        """Whether deletion volume exceeds normal thresholds (alert condition)."""
        return self.total_records_deleted > 10000
