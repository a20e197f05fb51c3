"""Base utilities for multi-tenant background tasks.

This module provides utilities for ensuring tenant isolation in Celery tasks:
- tenant_id validation (verify the tenant exists)
- Scoped session creation (tenant context attached to the session)
- Base task class with tenant validation

Task Signature Pattern:
======================

Tenant-bound tasks take tenant_id as a UUID string keyword argument:

@shared_task(base=BaseTask, bind=True)
def my_task(self, tenant_id: str) -> Dict[str, Any]:
    tenant_uuid = UUID(tenant_id)  # already validated by BaseTask
    session = get_scoped_session(tenant_uuid)
    try:
        ...
        session.commit()
        return {"status": "completed"}
    finally:
        session.close()

Enqueue with an explicit tenant_id:

    my_task.delay(tenant_id=str(tenant_uuid))

Queries inside tasks must still filter on tenant_id explicitly; the scoped
session only fills tenant_id on new rows.
"""

from uuid import UUID

from celery import Task
from sqlalchemy.orm import Session

from ..database import new_session, tenant_scoped_session
from ..models.tenant import Tenant


def validate_tenant_id(tenant_id: str) -> UUID:
    """Validate that tenant_id is a UUID of an existing tenant.

    Args:
        tenant_id: Tenant UUID as string (from task parameters)

    Returns:
        UUID: Validated tenant UUID

    Raises:
        ValueError: If tenant_id is not a UUID or the tenant doesn't exist
    """
    try:
        tenant_uuid = UUID(tenant_id)
    except (ValueError, AttributeError, TypeError) as e:
        raise ValueError(f"Invalid tenant_id format '{tenant_id}': {str(e)}")

    session = new_session()
    try:
        tenant = session.query(Tenant).filter(Tenant.id == tenant_uuid).first()
        if not tenant:
            raise ValueError(f"Tenant {tenant_id} does not exist")
    finally:
        session.close()

    return tenant_uuid


def get_scoped_session(tenant_id: UUID) -> Session:
    """Create a database session scoped to a tenant for worker tasks.

    The session has tenant_id attached to session.info.
    """
    return tenant_scoped_session(tenant_id)


class BaseTask(Task):
    """Base Celery task class with tenant validation.

    Tasks using this base class must be called with a tenant_id keyword
    argument; it is validated before the task body runs.
    """

    def __call__(self, *args, **kwargs):
        """Validate tenant_id before running task.

        Raises:
            ValueError: If tenant_id parameter is missing or invalid
        """
        tenant_id = kwargs.get('tenant_id')

        if not tenant_id:
            raise ValueError(
                "tenant_id parameter is required for all multi-tenant tasks. "
                "Ensure you pass tenant_id=str(tenant_uuid) when enqueuing the task."
            )

        validate_tenant_id(tenant_id)

        return super().__call__(*args, **kwargs)
