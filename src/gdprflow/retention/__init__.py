"""Data retention engine.

Policies map a data type to a retention period. Due policies are executed by
the daily Celery sweep; each data type has its own disposition (delete or
anonymize) implemented in handlers.
"""

from .handlers import HANDLERS, SUPPORTED_DATA_TYPES, BatchOutcome, RetentionHandler, get_handler
from .lease import RetentionLease
from .schemas import (
    ConditionOp,
    DataInventory,
    RetentionCondition,
    RetentionJob,
    RetentionPolicyCreate,
    RetentionReport,
    RetentionStatistics,
    UpcomingDeletion,
)
from .service import RetentionService, calculate_next_execution, run_global_retention
from .status import RetentionJobStatus, can_transition, validate_transition

__all__ = [
    "HANDLERS",
    "SUPPORTED_DATA_TYPES",
    "BatchOutcome",
    "RetentionHandler",
    "get_handler",
    "RetentionLease",
    "ConditionOp",
    "DataInventory",
    "RetentionCondition",
    "RetentionJob",
    "RetentionPolicyCreate",
    "RetentionReport",
    "RetentionStatistics",
    "UpcomingDeletion",
    "RetentionService",
    "calculate_next_execution",
    "run_global_retention",
    "RetentionJobStatus",
    "can_transition",
    "validate_transition",
]
