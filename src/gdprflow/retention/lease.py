"""Execution lease for retention runs.

At most one worker may execute retention for a given (tenant, data type) at a
time. A lease is a row in retention_execution_lease with an expiry; a crashed
worker's lease simply lapses after RETENTION_LEASE_SECONDS. A live run renews its
lease after every committed batch.

Acquisition is arbitrated by the database: a conditional UPDATE takes over
an expired lease, and the unique scope_key makes concurrent INSERTs of a
fresh lease fail for all but one worker.
"""

import logging
import os
import socket
import uuid
from datetime import timedelta
from typing import Optional
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..errors import RetentionLeaseError
from ..models.base import utcnow
from ..models.retention_policy import GLOBAL_SCOPE, RetentionExecutionLease

logger = logging.getLogger(__name__)


def default_holder() -> str:
    return f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"


def scope_key(tenant_id: Optional[UUID], data_type: str) -> str:
    return f"{tenant_id or GLOBAL_SCOPE}:{data_type}"


class RetentionLease:
    """Acquire and release execution leases.

    Both operations commit: a lease is only useful once other workers can
    see it.
    """

    def __init__(self, db: Session, lease_seconds: int, holder: Optional[str] = None):
        self.db = db
        self.lease_seconds = lease_seconds
        self.holder = holder or default_holder()

    def acquire(self, tenant_id: Optional[UUID], data_type: str) -> None:
        """Take the lease for (tenant, data type).

        Raises:
            RetentionLeaseError: If another holder has an unexpired lease
        """
        key = scope_key(tenant_id, data_type)
        now = utcnow()
        expires_at = now + timedelta(seconds=self.lease_seconds)

        existing = (
            self.db.query(RetentionExecutionLease)
            .filter(RetentionExecutionLease.scope_key == key)
            .one_or_none()
        )

        if existing is not None:
            # Only an expired lease may be taken over
            result = self.db.execute(
                update(RetentionExecutionLease)
                .where(
                    RetentionExecutionLease.scope_key == key,
                    RetentionExecutionLease.expires_at <= now,
                )
                .values(holder=self.holder, acquired_at=now, expires_at=expires_at)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise RetentionLeaseError(
                    f"Retention lease {key} is held by {existing.holder} until {existing.expires_at}"
                )
            self.db.commit()
            self.db.expire_all()
            return

        try:
            self.db.add(RetentionExecutionLease(
                scope_key=key,
                holder=self.holder,
                acquired_at=now,
                expires_at=expires_at,
            ))
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise RetentionLeaseError(f"Retention lease {key} was taken concurrently") from e

        logger.debug(f"Acquired retention lease {key}", extra={"data_type": data_type})

    def renew(self, tenant_id: Optional[UUID], data_type: str) -> None:
        """Push our lease expiry forward by lease_seconds.

        Runs inside the caller's transaction, so the new expiry becomes
        visible with the caller's next commit.

        Raises:
            RetentionLeaseError: If the lease is no longer ours
        """
        key = scope_key(tenant_id, data_type)
        result = self.db.execute(
            update(RetentionExecutionLease)
            .where(
                RetentionExecutionLease.scope_key == key,
                RetentionExecutionLease.holder == self.holder,
            )
            .values(expires_at=utcnow() + timedelta(seconds=self.lease_seconds))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise RetentionLeaseError(f"Retention lease {key} was lost by {self.holder}")

    def release(self, tenant_id: Optional[UUID], data_type: str) -> None:
        key = scope_key(tenant_id, data_type)
        (
            self.db.query(RetentionExecutionLease)
            .filter(
                RetentionExecutionLease.scope_key == key,
                RetentionExecutionLease.holder == self.holder,
            )
            .delete(synchronize_session="fetch")
        )
        self.db.commit()
