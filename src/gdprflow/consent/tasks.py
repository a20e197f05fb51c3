"""Celery tasks for the consent ledger.

Tasks:
- consent_cleanup_expired_task: Daily revocation of expired consents
"""

import logging
from typing import Any, Dict, Optional
from celery import shared_task

from ..audit.service import AuditLogger
from ..database import new_session
from ..observability.request_id import generate_trace_id, set_trace_id
from ..workers.base import get_scoped_session, validate_tenant_id
from .service import ConsentService

logger = logging.getLogger(__name__)


@shared_task(name="retention.cleanup_expired_consents", bind=True)
def consent_cleanup_expired_task(self, tenant_id: Optional[str] = None) -> Dict[str, Any]:
    """Revoke granted consents past their expiry.

    Args:
        tenant_id: Optional tenant UUID as string; all tenants when omitted

    Returns:
        Dict with cleaned_count and tenants_processed, or {'status': 'failed', ...}
    """
    set_trace_id(generate_trace_id())
    tenant_uuid = validate_tenant_id(tenant_id) if tenant_id else None

    db = get_scoped_session(tenant_uuid) if tenant_uuid else new_session()
    try:
        service = ConsentService(db=db, audit=AuditLogger(db))
        result = {
            'status': 'completed',
            **service.cleanup_expired_consents(tenant_id=tenant_uuid).model_dump(),
        }
        logger.info("Expired consent cleanup completed", extra=result)
        return result

    except Exception as e:
        db.rollback()
        logger.error(
            "Expired consent cleanup failed",
            exc_info=True,
            extra={"tenant_id": tenant_id, "error": str(e)},
        )
        return {
            'status': 'failed',
            'error': str(e),
            'cleaned_count': 0,
        }

    finally:
        db.close()
