"""Create users, join requests and admin audit log tables"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str | None = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Apply schema changes."""
    op.create_table(
        'users',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('subject_id', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('society_id', sa.String(length=64), nullable=True),
        sa.Column('wing', sa.String(length=32), nullable=True),
        sa.Column('flat_number', sa.String(length=32), nullable=True),
        sa.Column('admin_role', sa.String(length=32), nullable=True),
        sa.Column('assigned_wings', sa.JSON(), nullable=True),
        sa.Column('is_active', sa.Boolean(), server_default='true', nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_users')),
        sa.UniqueConstraint('subject_id', name=op.f('uq_users_subject_id')),
        sa.CheckConstraint(
            "admin_role IS NULL OR admin_role IN ('super_admin', 'admin', 'wing_chairman', 'moderator')",
            name='valid_admin_role',
        ),
    )
    op.create_index('ix_users_subject_id', 'users', ['subject_id'], unique=False)
    op.create_index('ix_users_email', 'users', ['email'], unique=False)
    op.create_index('ix_users_society_id', 'users', ['society_id'], unique=False)
    op.create_index('ix_users_admin_role', 'users', ['admin_role'], unique=False)

    op.create_table(
        'join_requests',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('society_id', sa.String(length=64), nullable=False),
        sa.Column('applicant_subject_id', sa.String(length=255), nullable=False),
        sa.Column('wing', sa.String(length=32), nullable=True),
        sa.Column('flat_number', sa.String(length=32), nullable=True),
        sa.Column('status', sa.String(length=16), server_default='pending', nullable=False),
        sa.Column('reviewed_by', sa.String(length=255), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_join_requests')),
        sa.CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name='valid_join_request_status',
        ),
    )
    op.create_index('ix_join_requests_society_id', 'join_requests', ['society_id'], unique=False)
    op.create_index('ix_join_requests_applicant_subject_id', 'join_requests', ['applicant_subject_id'], unique=False)
    op.create_index('ix_join_requests_status', 'join_requests', ['status'], unique=False)

    # Append-only: the application never issues UPDATE or DELETE on this table
    op.create_table(
        'admin_audit_logs',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('admin_id', sa.String(length=255), nullable=False),
        sa.Column('admin_name', sa.String(length=255), nullable=False),
        sa.Column('admin_role', sa.String(length=32), nullable=False),
        sa.Column('society_id', sa.String(length=64), nullable=False),
        sa.Column('action', sa.String(length=100), nullable=False),
        sa.Column('resource', sa.String(length=100), nullable=False),
        sa.Column('details', sa.JSON(), nullable=False),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.Column('user_agent', sa.Text(), nullable=True),
        sa.Column('timestamp', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_admin_audit_logs')),
    )
    op.create_index('ix_admin_audit_logs_admin_id', 'admin_audit_logs', ['admin_id'], unique=False)
    op.create_index('ix_admin_audit_logs_society_id', 'admin_audit_logs', ['society_id'], unique=False)
    op.create_index('ix_admin_audit_logs_action', 'admin_audit_logs', ['action'], unique=False)
    op.create_index('ix_admin_audit_logs_timestamp', 'admin_audit_logs', ['timestamp'], unique=False)


def downgrade() -> None:
    """Revert schema changes."""
    op.drop_index('ix_admin_audit_logs_timestamp', table_name='admin_audit_logs')
    op.drop_index('ix_admin_audit_logs_action', table_name='admin_audit_logs')
    op.drop_index('ix_admin_audit_logs_society_id', table_name='admin_audit_logs')
    op.drop_index('ix_admin_audit_logs_admin_id', table_name='admin_audit_logs')
    op.drop_table('admin_audit_logs')

    op.drop_index('ix_join_requests_status', table_name='join_requests')
    op.drop_index('ix_join_requests_applicant_subject_id', table_name='join_requests')
    op.drop_index('ix_join_requests_society_id', table_name='join_requests')
    op.drop_table('join_requests')

    op.drop_index('ix_users_admin_role', table_name='users')
    op.drop_index('ix_users_society_id', table_name='users')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_index('ix_users_subject_id', table_name='users')
    op.drop_table('users')
