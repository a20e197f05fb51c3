"""Trace ID management for log correlation.

Each service call chain or Celery task run gets one trace ID, propagated
through a ContextVar so it follows threads and async tasks.
"""

import uuid
from contextvars import ContextVar
from typing import Optional

trace_id_var: ContextVar[Optional[str]] = ContextVar("trace_id", default=None)


def generate_trace_id() -> str:
    """Generate a new unique trace ID.

    Returns:
        str: UUID v4 trace ID
    """
    return str(uuid.uuid4())


def get_trace_id() -> str:
    """Get current trace ID from context.

    Returns:
        str: Current trace ID or "no-trace-id" if not set
    """
    return trace_id_var.get() or "no-trace-id"


def set_trace_id(trace_id: str) -> None:
    trace_id_var.set(trace_id)
