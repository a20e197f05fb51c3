"""Background workers for scheduled compliance jobs.

Tenant-bound tasks must:
1. Accept tenant_id as an explicit parameter (UUID string)
2. Validate the tenant exists before processing
3. Use get_scoped_session for database access
4. Filter all queries by tenant_id
"""

from .base import (
    validate_tenant_id,
    get_scoped_session,
    BaseTask,
)

__all__ = [
    "validate_tenant_id",
    "get_scoped_session",
    "BaseTask",
]
