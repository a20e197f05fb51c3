"""RetentionJob status state machine.

State Flow:
    PENDING → RUNNING → COMPLETED|FAILED
    PENDING → FAILED (execution lease not acquired)

Terminal States: COMPLETED, FAILED
"""

from enum import Enum
from typing import List

from ..errors import StateTransitionError


class RetentionJobStatus(str, Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


ALLOWED_TRANSITIONS = {
    RetentionJobStatus.PENDING: [
        RetentionJobStatus.RUNNING,
        RetentionJobStatus.FAILED,
    ],
    RetentionJobStatus.RUNNING: [
        RetentionJobStatus.COMPLETED,
        RetentionJobStatus.FAILED,
    ],
    RetentionJobStatus.COMPLETED: [],  # Terminal state
    RetentionJobStatus.FAILED: [],  # Terminal state
}

TERMINAL_STATES = {RetentionJobStatus.COMPLETED, RetentionJobStatus.FAILED}


def validate_transition(
    current_status: RetentionJobStatus,
    new_status: RetentionJobStatus
) -> None:
    """Validate that a state transition is allowed.

    Raises:
        StateTransitionError: If transition is not allowed
    """
    allowed = ALLOWED_TRANSITIONS.get(current_status, [])
    if new_status not in allowed:
        raise StateTransitionError(
            f"Invalid transition: {current_status.value} -> {new_status.value}. "
            f"Allowed transitions from {current_status.value}: "
            f"{[s.value for s in allowed]}"
        )


def can_transition(
    current_status: RetentionJobStatus,
    new_status: RetentionJobStatus
) -> bool:
    return new_status in ALLOWED_TRANSITIONS.get(current_status, [])


def get_allowed_transitions(status: RetentionJobStatus) -> List[RetentionJobStatus]:
    return ALLOWED_TRANSITIONS.get(status, [])
