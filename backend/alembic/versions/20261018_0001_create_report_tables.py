"""Create report job, transition and template tables

Revision ID: 20261018_0001_report_tables
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261018_0001_report_tables'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'report_jobs',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('report_type', sa.String(100), nullable=False),
        sa.Column('report_name', sa.String(255), nullable=False),
        sa.Column('configuration', sa.JSON(), nullable=False),
        sa.Column('format', sa.String(16), nullable=False, server_default='excel'),
        sa.Column('status', sa.String(32), nullable=False, server_default='pending'),
        sa.Column('file_reference', sa.String(2048), nullable=True),
        sa.Column('file_size', sa.Integer(), nullable=True),
        sa.Column('total_records', sa.Integer(), nullable=True),
        sa.Column('error_message', sa.String(2000), nullable=True),
        sa.Column('cancel_reason', sa.String(255), nullable=True),
        sa.Column('requested_by', sa.String(64), nullable=False),
        sa.Column('institution_id', sa.String(64), nullable=True),
        sa.Column('queue_entry_id', sa.String(36), nullable=True),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_report_jobs_report_type', 'report_jobs', ['report_type'])
    op.create_index('ix_report_jobs_requested_by', 'report_jobs', ['requested_by'])
    op.create_index('ix_report_jobs_institution_id', 'report_jobs', ['institution_id'])
    op.create_index('ix_report_jobs_expires_at', 'report_jobs', ['expires_at'])
    op.create_index('ix_report_jobs_requested_by_created', 'report_jobs', ['requested_by', 'created_at'])
    op.create_index('ix_report_jobs_status_started', 'report_jobs', ['status', 'started_at'])

    op.create_table(
        'report_job_transitions',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('job_id', sa.String(36), nullable=False),
        sa.Column('from_status', sa.String(32), nullable=True),
        sa.Column('to_status', sa.String(32), nullable=False),
        sa.Column('reason', sa.String(2000), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['job_id'], ['report_jobs.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_report_job_transitions_job_id', 'report_job_transitions', ['job_id'])

    op.create_table(
        'report_templates',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('description', sa.String(1000), nullable=True),
        sa.Column('report_type', sa.String(100), nullable=False),
        sa.Column('columns', sa.JSON(), nullable=False),
        sa.Column('filters', sa.JSON(), nullable=False),
        sa.Column('group_by', sa.String(100), nullable=True),
        sa.Column('sort_by', sa.String(100), nullable=True),
        sa.Column('sort_order', sa.String(4), nullable=True),
        sa.Column('is_public', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_by', sa.String(64), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_report_templates_report_type', 'report_templates', ['report_type'])
    op.create_index('ix_report_templates_created_by', 'report_templates', ['created_by'])
    op.create_index('ix_report_templates_owner_type', 'report_templates', ['created_by', 'report_type'])


def downgrade() -> None:
    op.drop_table('report_templates')
    op.drop_table('report_job_transitions')
    op.drop_table('report_jobs')
