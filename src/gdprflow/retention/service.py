"""Retention service for policy-driven data cleanup.

This service implements the retention engine:
- Policy management (create, bootstrap defaults, list)
- Execution of due policies per data type, in primary-key batches
- Per (tenant, data type) execution leases
- Data inventory and retention compliance reporting

Execution is at-least-once and not atomic: each batch is committed as it
completes, so a failure part-way leaves earlier batches applied. The
candidate filters exclude already-processed rows, so a retry is safe.
"""

import logging
import time
from datetime import datetime, timedelta
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..audit.service import AuditLogger
from ..config import RegulatoryConfig, Settings, get_regulatory_config, get_settings
from ..errors import ForbiddenError, NotFoundError, RetentionLeaseError
from ..models.audit_log import AuditCategory, AuditSeverity
from ..models.base import utcnow
from ..models.retention_policy import DataRetentionPolicy
from ..observability.metrics import (
    retention_job_duration_seconds,
    retention_jobs_total,
    retention_records_total,
)
from .conditions import parse_conditions, validate_conditions
from .handlers import HANDLERS, SUPPORTED_DATA_TYPES, get_handler
from .lease import RetentionLease
from .schemas import (
    DataInventory,
    RetentionJob,
    RetentionPolicyCreate,
    RetentionReport,
    RetentionStatistics,
    UpcomingDeletion,
)
from .status import RetentionJobStatus

logger = logging.getLogger(__name__)


def calculate_next_execution(now: datetime, sweep_hour: int) -> datetime:
    """Tomorrow at the sweep hour.

    The cadence is daily for every policy, independent of retention_days.
    """
    return (now + timedelta(days=1)).replace(hour=sweep_hour, minute=0, second=0, microsecond=0)


class RetentionService:
    """Service for managing and executing retention policies.

    Usage:
        service = RetentionService(db=session, audit=AuditLogger(session))
        jobs = service.execute_retention_policies(tenant_id=tenant_uuid)
    """

    def __init__(
        self,
        db: Session,
        audit: AuditLogger,
        settings: Optional[Settings] = None,
        regulatory: Optional[RegulatoryConfig] = None,
        lease_holder: Optional[str] = None,
    ):
        self.db = db
        self.audit = audit
        self.settings = settings or get_settings()
        self.regulatory = regulatory or get_regulatory_config()
        self.batch_size = self.settings.RETENTION_BATCH_SIZE
        self.lease = RetentionLease(db, self.settings.RETENTION_LEASE_SECONDS, holder=lease_holder)

    # Policy management

    def create_retention_policy(
        self,
        data: RetentionPolicyCreate,
        actor_id: Optional[UUID] = None,
    ) -> DataRetentionPolicy:
        """Create a policy scheduled for the next daily sweep.

        Raises:
            RetentionConditionError: If a condition names an unknown column
        """
        handler_cls = HANDLERS.get(data.data_type)
        if handler_cls is not None and data.conditions:
            validate_conditions(handler_cls.model, data.conditions)

        policy = DataRetentionPolicy(
            tenant_id=data.tenant_id,
            name=data.name,
            description=data.description,
            data_type=data.data_type,
            retention_days=data.retention_days,
            auto_delete=data.auto_delete,
            is_active=data.is_active,
            conditions=[c.model_dump(mode="json") for c in data.conditions] or None,
            next_execution=calculate_next_execution(utcnow(), self.settings.RETENTION_SWEEP_HOUR),
        )
        self.db.add(policy)
        self.db.flush()

        self.audit.log(
            action="RETENTION_POLICY_CREATED",
            resource="DataRetentionPolicy",
            resource_id=policy.id,
            tenant_id=data.tenant_id,
            actor_id=actor_id,
            details=f"Created retention policy: {data.name} for {data.data_type}",
            category=AuditCategory.SYSTEM_ADMIN,
            severity=AuditSeverity.MEDIUM,
        )
        return policy

    def initialize_tenant_policies(self, tenant_id: UUID) -> List[DataRetentionPolicy]:
        """Create one auto-deleting policy per data type of the default table."""
        policies = [
            self.create_retention_policy(RetentionPolicyCreate(
                name=f"{data_type} Retention Policy",
                description=f"Automatic retention policy for {data_type} data",
                data_type=data_type,
                retention_days=retention_days,
                auto_delete=True,
                is_active=True,
                tenant_id=tenant_id,
            ))
            for data_type, retention_days in self.regulatory.default_retention_days.items()
        ]
        logger.info(
            f"Created {len(policies)} retention policies for tenant {tenant_id}",
            extra={"tenant_id": tenant_id},
        )
        return policies

    def get_tenant_retention_policies(self, tenant_id: UUID) -> List[DataRetentionPolicy]:
        """Tenant policies plus global ones, newest first."""
        return (
            self.db.query(DataRetentionPolicy)
            .filter(or_(
                DataRetentionPolicy.tenant_id == tenant_id,
                DataRetentionPolicy.tenant_id.is_(None),
            ))
            .order_by(DataRetentionPolicy.created_at.desc())
            .all()
        )

    def get_all_retention_policies(self) -> List[DataRetentionPolicy]:
        return self.db.query(DataRetentionPolicy).order_by(DataRetentionPolicy.created_at.desc()).all()

    def get_policy(self, policy_id: UUID, tenant_id: Optional[UUID] = None) -> DataRetentionPolicy:
        """Load a policy, checking tenant access when tenant_id is given.

        Global policies are visible to every tenant.

        Raises:
            NotFoundError: Unknown policy id
            ForbiddenError: Policy belongs to another tenant
        """
        policy = self.db.get(DataRetentionPolicy, policy_id)
        if policy is None:
            raise NotFoundError(f"Retention policy {policy_id} not found")
        if tenant_id is not None and policy.tenant_id is not None and policy.tenant_id != tenant_id:
            raise ForbiddenError(f"Retention policy {policy_id} does not belong to tenant {tenant_id}")
        return policy

    def get_due_policies(self, tenant_id: Optional[UUID] = None) -> List[DataRetentionPolicy]:
        query = self.db.query(DataRetentionPolicy).filter(
            DataRetentionPolicy.is_active.is_(True),
            DataRetentionPolicy.next_execution <= utcnow(),
        )
        if tenant_id is not None:
            query = query.filter(DataRetentionPolicy.tenant_id == tenant_id)
        return query.order_by(DataRetentionPolicy.next_execution).all()

    # Execution

    def execute_retention_policies(self, tenant_id: Optional[UUID] = None) -> List[RetentionJob]:
        """Execute every due policy. One policy's failure does not stop the others."""
        policy_ids = [p.id for p in self.get_due_policies(tenant_id)]
        logger.info(
            f"Executing {len(policy_ids)} due retention policies"
            + (f" for tenant {tenant_id}" if tenant_id else " globally"),
            extra={"tenant_id": tenant_id} if tenant_id else {},
        )

        jobs = []
        for policy_id in policy_ids:
            try:
                jobs.append(self.execute_retention_policy(policy_id))
            except Exception as e:
                self.db.rollback()
                logger.error(
                    f"Retention policy {policy_id} could not be executed",
                    exc_info=True,
                    extra={"policy_id": policy_id},
                )
                job = RetentionJob(policy_id=policy_id, data_type="unknown")
                job.fail(str(e))
                jobs.append(job)
        return jobs

    def execute_retention_policy(
        self,
        policy_id: UUID,
        tenant_id: Optional[UUID] = None,
    ) -> RetentionJob:
        """Execute one policy under its (tenant, data type) lease.

        The policy's last_executed/next_execution are updated whether the job
        completes or fails. A job that cannot get the lease fails without
        touching the policy.

        Raises:
            NotFoundError: Unknown policy id
            ForbiddenError: Policy belongs to another tenant
        """
        policy = self.get_policy(policy_id, tenant_id)
        policy_tenant = policy.tenant_id
        data_type = policy.data_type
        job = RetentionJob(policy_id=policy.id, tenant_id=policy_tenant, data_type=data_type)

        # Publish pending work; the lease runs in its own transaction
        self.db.commit()
        try:
            self.lease.acquire(policy_tenant, data_type)
        except RetentionLeaseError as e:
            job.fail(str(e))
            logger.warning(
                f"Skipped retention policy {policy_id}: {e}",
                extra={"policy_id": policy_id, "data_type": data_type},
            )
            retention_jobs_total.labels(data_type=data_type, status=job.status.value).inc()
            return job

        started = time.monotonic()
        try:
            self._run_job(policy_id, job)
            self._schedule_next(policy_id)
        finally:
            self._release_lease(policy_tenant, data_type)

        retention_job_duration_seconds.labels(data_type=data_type).observe(time.monotonic() - started)
        retention_jobs_total.labels(data_type=data_type, status=job.status.value).inc()
        return job

    def _run_job(self, policy_id: UUID, job: RetentionJob) -> None:
        policy = self.db.get(DataRetentionPolicy, policy_id)
        job.transition(RetentionJobStatus.RUNNING)
        logger.info(
            f"Executing retention policy: {policy.name} for {policy.data_type}",
            extra={"policy_id": policy_id, "data_type": policy.data_type, "job_id": job.id},
        )

        try:
            self._dispose(policy, job)
            job.transition(RetentionJobStatus.COMPLETED)

            self.audit.log(
                action="RETENTION_EXECUTED",
                resource=job.data_type,
                resource_id=policy_id,
                tenant_id=job.tenant_id,
                details=(
                    f"Retention policy executed: {job.records_deleted} deleted, "
                    f"{job.records_anonymized} anonymized, {job.records_processed} processed"
                ),
                category=AuditCategory.SYSTEM_ADMIN,
                severity=AuditSeverity.HIGH,
            )
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            job.fail(f"Error processing {job.data_type}: {e}")
            logger.error(
                f"Retention policy execution failed for {job.data_type}",
                exc_info=True,
                extra={"policy_id": policy_id, "data_type": job.data_type, "job_id": job.id},
            )

    def _dispose(self, policy: DataRetentionPolicy, job: RetentionJob) -> None:
        data_type = policy.data_type
        handler = get_handler(data_type, self.db, self.audit)
        if handler is None:
            job.errors.append(f"Unsupported data type: {data_type}")
            return
        if policy.retention_days is None:
            # Never expires
            return

        conditions = parse_conditions(policy.conditions)
        now = utcnow()
        cutoff = now - timedelta(days=policy.retention_days)

        batches = handler.run(
            cutoff=cutoff,
            tenant_id=policy.tenant_id,
            conditions=conditions,
            auto_delete=policy.auto_delete,
            batch_size=self.batch_size,
            now=now,
        )
        for outcome in batches:
            # Fails the job before committing if another worker took over
            self.lease.renew(policy.tenant_id, data_type)
            job.records_processed += outcome.processed
            job.records_deleted += outcome.deleted
            job.records_anonymized += outcome.anonymized
            self.db.commit()

            retention_records_total.labels(data_type=data_type, disposition="deleted").inc(outcome.deleted)
            retention_records_total.labels(data_type=data_type, disposition="anonymized").inc(outcome.anonymized)
            retention_records_total.labels(data_type=data_type, disposition="skipped").inc(outcome.skipped)

    def _schedule_next(self, policy_id: UUID) -> None:
        policy = self.db.get(DataRetentionPolicy, policy_id)
        now = utcnow()
        policy.last_executed = now
        policy.next_execution = calculate_next_execution(now, self.settings.RETENTION_SWEEP_HOUR)
        self.db.commit()

    def _release_lease(self, tenant_id: Optional[UUID], data_type: str) -> None:
        try:
            self.lease.release(tenant_id, data_type)
        except SQLAlchemyError:
            self.db.rollback()
            logger.error(
                f"Failed to release retention lease for {data_type}; it lapses at expiry",
                exc_info=True,
                extra={"tenant_id": tenant_id, "data_type": data_type},
            )

    # Reporting

    def _effective_retention_days(self, tenant_id: Optional[UUID]) -> Dict[str, Optional[int]]:
        """Retention days per data type: active policy if any, else the default table."""
        days: Dict[str, Optional[int]] = dict(self.regulatory.default_retention_days)
        query = self.db.query(DataRetentionPolicy).filter(DataRetentionPolicy.is_active.is_(True))
        if tenant_id is not None:
            query = query.filter(or_(
                DataRetentionPolicy.tenant_id == tenant_id,
                DataRetentionPolicy.tenant_id.is_(None),
            ))
        # Tenant policies override global ones
        for policy in sorted(query.all(), key=lambda p: p.tenant_id is not None):
            days[policy.data_type] = policy.retention_days
        return days

    def get_data_inventory(self, tenant_id: Optional[UUID] = None) -> List[DataInventory]:
        """Record counts and due-deletion counts per supported data type.

        Data types with no records are omitted.
        """
        now = utcnow()
        next_run = calculate_next_execution(now, self.settings.RETENTION_SWEEP_HOUR)
        retention_days = self._effective_retention_days(tenant_id)

        inventory = []
        for data_type in SUPPORTED_DATA_TYPES:
            handler = get_handler(data_type, self.db, self.audit)
            total, oldest, newest = handler.inventory_stats(tenant_id)
            if total == 0:
                continue

            days = retention_days.get(data_type)
            due = handler.count_due(now - timedelta(days=days), tenant_id) if days else 0
            inventory.append(DataInventory(
                data_type=data_type,
                total_records=total,
                oldest_record=oldest,
                newest_record=newest,
                retention_policy=f"{days} days" if days else "never expires",
                due_deletion_count=due,
                scheduled_deletion=next_run,
            ))
        return inventory

    @staticmethod
    def calculate_retention_compliance(
        policies: List[DataRetentionPolicy], inventory: List[DataInventory]
    ) -> str:
        """COMPLIANT, NEEDS_IMPROVEMENT or NON_COMPLIANT.

        Coverage is the share of data types present in the inventory that
        some policy manages.
        """
        if not policies:
            return "NON_COMPLIANT"

        managed = {p.data_type for p in policies}
        existing = {inv.data_type for inv in inventory}
        coverage = len(managed & existing) / len(existing) if existing else 1.0
        overdue = sum(inv.due_deletion_count for inv in inventory)

        if coverage < 0.5 or overdue > 1000:
            return "NON_COMPLIANT"
        if coverage < 0.8 or overdue > 100:
            return "NEEDS_IMPROVEMENT"
        return "COMPLIANT"

    def generate_retention_report(self, tenant_id: Optional[UUID] = None) -> RetentionReport:
        policies = (
            self.get_tenant_retention_policies(tenant_id)
            if tenant_id else self.get_all_retention_policies()
        )
        inventory = self.get_data_inventory(tenant_id)

        summary = {
            "total_policies": len(policies),
            "active_policies": sum(1 for p in policies if p.is_active),
            "data_types_managed": len({p.data_type for p in policies}),
            "total_records_managed": sum(inv.total_records for inv in inventory),
            "records_due_deletion": sum(inv.due_deletion_count for inv in inventory),
        }
        upcoming = [
            UpcomingDeletion(
                data_type=inv.data_type,
                scheduled_date=inv.scheduled_deletion,
                estimated_records=inv.due_deletion_count,
            )
            for inv in inventory if inv.due_deletion_count > 0
        ]

        report = RetentionReport(
            summary=summary,
            policies=[p.to_dict() for p in policies],
            inventory=inventory,
            upcoming_deletions=upcoming,
            compliance_status=self.calculate_retention_compliance(policies, inventory),
        )
        logger.info(
            "Generated retention report",
            extra={"tenant_id": tenant_id} if tenant_id else {},
        )
        return report


def run_global_retention(db: Session) -> RetentionStatistics:
    """Execute all due policies across tenants.

    This is the entry point called by the scheduled Celery task.
    """
    start_time = utcnow()
    logger.info("Starting global retention run")

    service = RetentionService(db=db, audit=AuditLogger(db))
    jobs = service.execute_retention_policies()

    end_time = utcnow()
    statistics = RetentionStatistics(
        job_started_at=start_time,
        job_completed_at=end_time,
        duration_seconds=max(0.0, (end_time - start_time).total_seconds()),
        jobs_completed=sum(1 for j in jobs if j.status == RetentionJobStatus.COMPLETED),
        jobs_failed=sum(1 for j in jobs if j.status == RetentionJobStatus.FAILED),
        records_processed=sum(j.records_processed for j in jobs),
        records_deleted=sum(j.records_deleted for j in jobs),
        records_anonymized=sum(j.records_anonymized for j in jobs),
    )

    logger.info(
        "Global retention run completed",
        extra={
            "duration_seconds": statistics.duration_seconds,
            "total_deleted": statistics.total_records_deleted,
            "jobs_completed": statistics.jobs_completed,
            "has_errors": statistics.has_errors,
            "is_anomaly": statistics.is_anomaly,
        }
    )

    # Alert if anomaly detected
    if statistics.is_anomaly:
        logger.warning(
            f"Retention anomaly detected: {statistics.total_records_deleted} records deleted",
            extra={"statistics": statistics.model_dump(mode="json")}
        )

    if statistics.has_errors:
        logger.error(
            f"Retention run completed with {statistics.jobs_failed} failed jobs",
            extra={"jobs_failed": statistics.jobs_failed},
        )

    return statistics
