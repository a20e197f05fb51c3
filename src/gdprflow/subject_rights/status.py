"""DataSubjectRequest status state machine.

State Flow:
    PENDING → IN_PROGRESS → COMPLETED|REJECTED
    PENDING → COMPLETED|REJECTED (handled in one step)

Terminal States: COMPLETED, REJECTED
"""

from typing import List

from ..errors import StateTransitionError
from ..models.data_subject_request import RequestStatus

ALLOWED_TRANSITIONS = {
    RequestStatus.PENDING: [
        RequestStatus.IN_PROGRESS,
        RequestStatus.COMPLETED,
        RequestStatus.REJECTED,
    ],
    RequestStatus.IN_PROGRESS: [
        RequestStatus.COMPLETED,
        RequestStatus.REJECTED,
    ],
    RequestStatus.COMPLETED: [],  # Terminal state
    RequestStatus.REJECTED: [],  # Terminal state
}


def validate_transition(current_status: RequestStatus, new_status: RequestStatus) -> None:
    """Raises StateTransitionError if the transition is not allowed."""
    allowed = ALLOWED_TRANSITIONS.get(current_status, [])
    if new_status not in allowed:
        raise StateTransitionError(
            f"Invalid transition: {current_status.value} -> {new_status.value}. "
            f"Allowed transitions from {current_status.value}: "
            f"{[s.value for s in allowed]}"
        )


def get_allowed_transitions(status: RequestStatus) -> List[RequestStatus]:
    return ALLOWED_TRANSITIONS.get(status, [])
