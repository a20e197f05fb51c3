"""Celery tasks for retention policy execution.

Tasks:
- retention_execute_due_task: Daily sweep of all due policies (02:00 UTC)
- retention_execute_policy_task: Manual execution of one policy
- retention_initialize_tenant_task: Default policies for a new tenant
"""

import logging
from typing import Any, Dict, Optional
from uuid import UUID

from celery import shared_task

from ..audit.service import AuditLogger
from ..database import new_session
from ..errors import ForbiddenError, NotFoundError
from ..observability.request_id import generate_trace_id, set_trace_id
from ..workers.base import BaseTask, get_scoped_session, validate_tenant_id
from .service import RetentionService, run_global_retention

logger = logging.getLogger(__name__)


@shared_task(name="retention.execute_due", bind=True)
def retention_execute_due_task(self) -> Dict[str, Any]:
    """Execute every due retention policy across all tenants.

    Scheduled daily at 02:00 UTC via Celery Beat (see workers.celery_app).
    Rerunning is safe: processed records no longer match any candidate filter.

    Returns:
        Dict with run statistics, or {'status': 'failed', ...} on error
    """
    set_trace_id(generate_trace_id())
    logger.info("Retention sweep task started")

    db = new_session()
    try:
        statistics = run_global_retention(db)

        result = {
            'status': 'completed',
            'job_started_at': statistics.job_started_at.isoformat(),
            'job_completed_at': statistics.job_completed_at.isoformat(),
            'duration_seconds': statistics.duration_seconds,
            'jobs_completed': statistics.jobs_completed,
            'jobs_failed': statistics.jobs_failed,
            'records_processed': statistics.records_processed,
            'records_deleted': statistics.records_deleted,
            'records_anonymized': statistics.records_anonymized,
            'has_errors': statistics.has_errors,
            'is_anomaly': statistics.is_anomaly,
        }
        logger.info("Retention sweep task completed", extra=result)
        return result

    except Exception as e:
        db.rollback()
        logger.error(
            "Retention sweep task failed",
            exc_info=True,
            extra={"error": str(e)}
        )
        return {
            'status': 'failed',
            'error': str(e),
            'records_deleted': 0,
        }

    finally:
        db.close()


@shared_task(name="retention.execute_policy", bind=True)
def retention_execute_policy_task(self, policy_id: str, tenant_id: Optional[str] = None) -> Dict[str, Any]:
    """Execute a single retention policy now.

    Args:
        policy_id: Policy UUID as string
        tenant_id: Optional tenant UUID as string; when given, the policy
            must belong to that tenant or be global

    Raises:
        ValueError: If an id is not a valid UUID or the tenant does not exist
    """
    set_trace_id(generate_trace_id())
    policy_uuid = UUID(policy_id)
    tenant_uuid = validate_tenant_id(tenant_id) if tenant_id else None

    db = get_scoped_session(tenant_uuid) if tenant_uuid else new_session()
    try:
        service = RetentionService(db=db, audit=AuditLogger(db))
        job = service.execute_retention_policy(policy_uuid, tenant_id=tenant_uuid)
        result = {
            'status': job.status.value,
            'policy_id': policy_id,
            **job.model_dump(mode="json", include={
                'records_processed', 'records_deleted', 'records_anonymized', 'errors',
            }),
        }
        logger.info(
            f"Retention policy {policy_id} executed",
            extra={"policy_id": policy_id, "job_id": str(job.id), "status": job.status.value},
        )
        return result

    except (NotFoundError, ForbiddenError) as e:
        logger.error(
            f"Retention policy {policy_id} cannot be executed: {e}",
            extra={"policy_id": policy_id, "tenant_id": tenant_id},
        )
        raise

    except Exception as e:
        db.rollback()
        logger.error(
            f"Retention policy {policy_id} execution failed",
            exc_info=True,
            extra={"policy_id": policy_id, "error": str(e)},
        )
        return {
            'status': 'failed',
            'policy_id': policy_id,
            'error': str(e),
        }

    finally:
        db.close()


@shared_task(name="retention.initialize_tenant", base=BaseTask, bind=True)
def retention_initialize_tenant_task(self, tenant_id: str) -> Dict[str, Any]:
    """Create the default retention policy of every data type for a tenant.

    Args:
        tenant_id: Tenant UUID as string (validated by BaseTask)
    """
    set_trace_id(generate_trace_id())
    tenant_uuid = UUID(tenant_id)

    db = get_scoped_session(tenant_uuid)
    try:
        service = RetentionService(db=db, audit=AuditLogger(db))
        policies = service.initialize_tenant_policies(tenant_uuid)
        db.commit()
        return {
            'status': 'completed',
            'tenant_id': tenant_id,
            'policies_created': len(policies),
        }

    except Exception:
        db.rollback()
        logger.error(
            f"Retention policy initialization failed for tenant {tenant_id}",
            exc_info=True,
            extra={"tenant_id": tenant_id},
        )
        raise

    finally:
        db.close()
