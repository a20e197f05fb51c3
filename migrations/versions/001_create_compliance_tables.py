"""Create compliance engine tables

Revision ID: 001
Revises:
Create Date: 2026-10-17 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def _uuid_pk():
    return sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False)


def _tenant_fk(nullable=False):
    return sa.Column('tenant_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('tenant.id', ondelete='RESTRICT'), nullable=nullable)


def _jsonb(name, default="'[]'::jsonb", nullable=False):
    return sa.Column(
        name,
        postgresql.JSONB(astext_type=sa.Text()),
        server_default=sa.text(default) if default else None,
        nullable=nullable,
    )


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), server_default=sa.text("(NOW() AT TIME ZONE 'utc')"), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text("(NOW() AT TIME ZONE 'utc')"), nullable=False),
    ]


def upgrade():
    op.execute('CREATE EXTENSION IF NOT EXISTS "pgcrypto"')

    op.create_table(
        'tenant',
        _uuid_pk(),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('slug', sa.Text(), nullable=False),
        _jsonb('settings_json', default="'{}'::jsonb"),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_tenant_slug', 'tenant', ['slug'], unique=True)

    op.create_table(
        'user',
        _uuid_pk(),
        _tenant_fk(nullable=True),
        sa.Column('email', sa.Text(), nullable=False),
        sa.Column('first_name', sa.Text(), nullable=True),
        sa.Column('last_name', sa.Text(), nullable=True),
        sa.Column('phone_number', sa.Text(), nullable=True),
        sa.Column('bio', sa.Text(), nullable=True),
        sa.Column('profile_image_url', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        sa.Column('anonymized_at', sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'email', name='uq_user_tenant_email'),
    )
    op.create_index('ix_user_tenant_id_updated_at', 'user', ['tenant_id', 'updated_at'])

    op.create_table(
        'employee',
        _uuid_pk(),
        _tenant_fk(),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('user.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('position', sa.Text(), nullable=True),
        sa.Column('hired_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text("(NOW() AT TIME ZONE 'utc')"), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', name='uq_employee_user_id'),
    )

    op.create_table(
        'user_session',
        _uuid_pk(),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('user.id', ondelete='CASCADE'), nullable=False),
        sa.Column('session_token', sa.Text(), nullable=False),
        sa.Column('expires', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text("(NOW() AT TIME ZONE 'utc')"), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('session_token', name='uq_user_session_token'),
    )
    op.create_index('ix_user_session_expires', 'user_session', ['expires'])

    op.create_table(
        'audit_log',
        _uuid_pk(),
        _tenant_fk(nullable=True),
        sa.Column('actor_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('user.id', ondelete='SET NULL'), nullable=True),
        sa.Column('action', sa.Text(), nullable=False),
        sa.Column('resource', sa.Text(), nullable=False),
        sa.Column('resource_id', sa.Text(), nullable=True),
        sa.Column('details', sa.Text(), nullable=True),
        _jsonb('old_values', default=None, nullable=True),
        _jsonb('new_values', default=None, nullable=True),
        _jsonb('metadata_json', default=None, nullable=True),
        sa.Column('ip_address', sa.Text(), nullable=True),
        sa.Column('user_agent', sa.Text(), nullable=True),
        sa.Column('severity', sa.Text(), server_default='INFO', nullable=False),
        sa.Column('category', sa.Text(), server_default='DATA_ACCESS', nullable=False),
        sa.Column('timestamp', sa.DateTime(), server_default=sa.text("(NOW() AT TIME ZONE 'utc')"), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint(
            "severity IN ('LOW', 'INFO', 'MEDIUM', 'HIGH', 'CRITICAL')",
            name='ck_audit_log_severity'
        ),
        sa.CheckConstraint(
            "category IN ('AUTHENTICATION', 'DATA_ACCESS', 'DATA_MODIFICATION', "
            "'CONSENT_MANAGEMENT', 'PRIVACY_RIGHTS', 'SYSTEM_ADMIN')",
            name='ck_audit_log_category'
        ),
    )
    op.create_index('ix_audit_log_tenant_id', 'audit_log', ['tenant_id'])
    op.create_index('ix_audit_log_tenant_id_timestamp', 'audit_log', ['tenant_id', 'timestamp'])

    op.create_table(
        'processing_activity',
        _uuid_pk(),
        _tenant_fk(),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('purpose', sa.Text(), nullable=False),
        sa.Column('legal_basis', sa.Text(), nullable=False),
        _jsonb('data_categories'),
        _jsonb('data_subjects'),
        _jsonb('recipients'),
        _jsonb('third_countries'),
        sa.Column('retention_period', sa.Text(), nullable=True),
        _jsonb('security_measures'),
        sa.Column('automated_decision_making', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('large_scale_processing', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('sensitive_data', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('publicly_accessible', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('new_technology', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('systematic_monitoring', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint(
            "legal_basis IN ('CONSENT', 'CONTRACT', 'LEGAL_OBLIGATION', 'VITAL_INTERESTS', "
            "'PUBLIC_TASK', 'LEGITIMATE_INTERESTS')",
            name='ck_processing_activity_legal_basis'
        ),
    )
    op.create_index('ix_processing_activity_tenant_id', 'processing_activity', ['tenant_id'])

    # Append-only DPIA snapshots
    op.create_table(
        'dpia_assessment',
        _uuid_pk(),
        _tenant_fk(),
        sa.Column('activity_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('processing_activity.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('activity_name', sa.Text(), nullable=False),
        sa.Column('score', sa.Integer(), nullable=False),
        sa.Column('risk_level', sa.Text(), nullable=False),
        sa.Column('compliance_status', sa.Text(), nullable=False),
        _jsonb('recommendations'),
        _jsonb('required_actions'),
        _jsonb('criteria_scores', default="'{}'::jsonb"),
        sa.Column('next_review', sa.DateTime(), nullable=False),
        sa.Column('conducted_by', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('conducted_at', sa.DateTime(), server_default=sa.text("(NOW() AT TIME ZONE 'utc')"), nullable=False),
        sa.Column('config_version', sa.Text(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_dpia_assessment_activity_conducted', 'dpia_assessment', ['activity_id', 'conducted_at'])
    op.create_index('ix_dpia_assessment_tenant_id', 'dpia_assessment', ['tenant_id'])

    op.create_table(
        'consent_record',
        _uuid_pk(),
        _tenant_fk(),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('user.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('purpose', sa.Text(), nullable=False),
        sa.Column('granted', sa.Boolean(), nullable=False),
        sa.Column('granted_at', sa.DateTime(), nullable=True),
        sa.Column('revoked_at', sa.DateTime(), nullable=True),
        sa.Column('version', sa.Text(), nullable=False),
        sa.Column('source', sa.Text(), server_default='web', nullable=False),
        sa.Column('ip_address', sa.Text(), nullable=True),
        sa.Column('user_agent', sa.Text(), nullable=True),
        _jsonb('metadata_json', default=None, nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column('anonymized_at', sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'user_id', 'purpose', 'sequence', name='uq_consent_record_key_sequence'),
        sa.CheckConstraint(
            "purpose IN ('ESSENTIAL', 'ANALYTICS', 'MARKETING', 'PERSONALIZATION', "
            "'THIRD_PARTY', 'COOKIES', 'PROFILING')",
            name='ck_consent_record_purpose'
        ),
    )
    op.create_index('ix_consent_record_key', 'consent_record', ['tenant_id', 'user_id', 'purpose'])

    # Per-key serialization point for consent writes (optimistic version_id)
    op.create_table(
        'consent_key_head',
        _uuid_pk(),
        _tenant_fk(),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('user.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('purpose', sa.Text(), nullable=False),
        sa.Column('sequence', sa.Integer(), server_default='0', nullable=False),
        sa.Column('latest_record_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('latest_granted', sa.Boolean(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text("(NOW() AT TIME ZONE 'utc')"), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'user_id', 'purpose', name='uq_consent_key_head_key'),
    )

    op.create_table(
        'data_retention_policy',
        _uuid_pk(),
        _tenant_fk(nullable=True),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('data_type', sa.Text(), nullable=False),
        sa.Column('retention_days', sa.Integer(), nullable=True),
        sa.Column('auto_delete', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        _jsonb('conditions', default=None, nullable=True),
        sa.Column('last_executed', sa.DateTime(), nullable=True),
        sa.Column('next_execution', sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_data_retention_policy_due', 'data_retention_policy', ['is_active', 'next_execution'])
    op.create_index('ix_data_retention_policy_tenant_id', 'data_retention_policy', ['tenant_id'])

    op.create_table(
        'retention_execution_lease',
        _uuid_pk(),
        sa.Column('scope_key', sa.Text(), nullable=False),
        sa.Column('holder', sa.Text(), nullable=False),
        sa.Column('acquired_at', sa.DateTime(), server_default=sa.text("(NOW() AT TIME ZONE 'utc')"), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('scope_key', name='uq_retention_execution_lease_scope_key'),
    )

    op.create_table(
        'form',
        _uuid_pk(),
        _tenant_fk(),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text("(NOW() AT TIME ZONE 'utc')"), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'form_submission',
        _uuid_pk(),
        sa.Column('form_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('form.id', ondelete='CASCADE'), nullable=False),
        _jsonb('data', default="'{}'::jsonb"),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text("(NOW() AT TIME ZONE 'utc')"), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_form_submission_form_id_created_at', 'form_submission', ['form_id', 'created_at'])

    op.create_table(
        'notification',
        _uuid_pk(),
        _tenant_fk(),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('user.id', ondelete='CASCADE'), nullable=True),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('is_read', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text("(NOW() AT TIME ZONE 'utc')"), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_notification_tenant_id_created_at', 'notification', ['tenant_id', 'created_at'])

    op.create_table(
        'data_breach',
        _uuid_pk(),
        _tenant_fk(),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('severity', sa.Text(), nullable=False),
        sa.Column('status', sa.Text(), server_default='DETECTED', nullable=False),
        sa.Column('affected_records', sa.Integer(), server_default='0', nullable=False),
        _jsonb('data_types'),
        sa.Column('detected_at', sa.DateTime(), server_default=sa.text("(NOW() AT TIME ZONE 'utc')"), nullable=False),
        sa.Column('authorities_notified', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('authorities_notified_at', sa.DateTime(), nullable=True),
        sa.Column('resolved_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint("severity IN ('LOW', 'MEDIUM', 'HIGH', 'CRITICAL')", name='ck_data_breach_severity'),
        sa.CheckConstraint(
            "status IN ('DETECTED', 'INVESTIGATING', 'CONTAINED', 'RESOLVED')",
            name='ck_data_breach_status'
        ),
    )
    op.create_index('ix_data_breach_tenant_id_detected_at', 'data_breach', ['tenant_id', 'detected_at'])

    op.create_table(
        'data_subject_request',
        _uuid_pk(),
        _tenant_fk(),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('user.id', ondelete='SET NULL'), nullable=True),
        sa.Column('request_type', sa.Text(), nullable=False),
        sa.Column('status', sa.Text(), server_default='PENDING', nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('requested_at', sa.DateTime(), server_default=sa.text("(NOW() AT TIME ZONE 'utc')"), nullable=False),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('processing_notes', sa.Text(), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint(
            "request_type IN ('ACCESS', 'RECTIFICATION', 'ERASURE', 'PORTABILITY', "
            "'RESTRICTION', 'OBJECTION', 'WITHDRAW_CONSENT')",
            name='ck_dsr_request_type'
        ),
        sa.CheckConstraint(
            "status IN ('PENDING', 'IN_PROGRESS', 'COMPLETED', 'REJECTED')",
            name='ck_dsr_status'
        ),
    )
    op.create_index('ix_data_subject_request_tenant_id_status', 'data_subject_request', ['tenant_id', 'status'])


def downgrade():
    # Reverse dependency order; FKs use RESTRICT
    for table in (
        'data_subject_request',
        'data_breach',
        'notification',
        'form_submission',
        'form',
        'retention_execution_lease',
        'data_retention_policy',
        'consent_key_head',
        'consent_record',
        'dpia_assessment',
        'processing_activity',
        'audit_log',
        'user_session',
        'employee',
        'user',
        'tenant',
    ):
        op.drop_table(table)
