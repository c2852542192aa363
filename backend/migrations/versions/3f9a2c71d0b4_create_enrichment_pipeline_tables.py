"""Create enrichment pipeline tables

Revision ID: 3f9a2c71d0b4
Revises:
Create Date: 2026-10-18

This migration adds:
- job_logs: One row per pipeline run
- lead_enrichments: Leads and their lifecycle state, with claim lease columns
- file_uploads: Source files handed to ingestion
- client_config: Per-tenant API key prefixes and folders
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = '3f9a2c71d0b4'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'job_logs',
        sa.Column('id', sa.BigInteger(), primary_key=True),

        # Job configuration
        sa.Column('client', sa.Text(), nullable=False),
        sa.Column('job_type', sa.Text(), nullable=True),
        sa.Column('file_upload_id', sa.BigInteger(), nullable=True),

        # Job status
        sa.Column('status', sa.Text(), nullable=False, server_default='pending'),
        sa.Column('progress', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('current_phase', sa.Text(), nullable=True),

        # Progress tracking
        sa.Column('total_leads', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('processed_leads', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('failed_leads', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('metrics', postgresql.JSONB(), nullable=True),

        # Error tracking
        sa.Column('error_message', sa.Text(), nullable=True),

        # Timestamps
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),

        sa.CheckConstraint('progress BETWEEN 0 AND 100', name='ck_job_logs_progress_range'),
    )
    op.create_index('idx_job_logs_client_status', 'job_logs', ['client', 'status'])
    op.create_index('idx_job_logs_created', 'job_logs', ['created_at'])

    op.create_table(
        'lead_enrichments',
        sa.Column('id', sa.BigInteger(), primary_key=True),

        # Ownership
        sa.Column('client', sa.Text(), nullable=False),
        sa.Column('job_id', sa.BigInteger(), sa.ForeignKey('job_logs.id'), nullable=False),

        # Ingested lead data
        sa.Column('email', sa.Text(), nullable=True),
        sa.Column('first_name', sa.Text(), nullable=True),
        sa.Column('last_name', sa.Text(), nullable=True),
        sa.Column('company_name', sa.Text(), nullable=True),
        sa.Column('company_domain', sa.Text(), nullable=True),
        sa.Column('linkedin_url', sa.Text(), nullable=True),
        sa.Column('raw_data', postgresql.JSONB(), nullable=True),

        # Enrichment results
        sa.Column('enriched_email', sa.Text(), nullable=True),
        sa.Column('enrichment_data', postgresql.JSONB(), nullable=True),

        # Lifecycle state
        sa.Column('status', sa.Text(), nullable=False, server_default='pending'),
        sa.Column('current_phase', sa.Text(), nullable=False, server_default='pending'),
        sa.Column('retry_count', sa.Integer(), nullable=False, server_default='0'),

        # Error tracking
        sa.Column('error_stage', sa.Text(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),

        # Claim lease
        sa.Column('claimed_by', sa.Text(), nullable=True),
        sa.Column('claimed_at', sa.DateTime(timezone=True), nullable=True),

        # Phase completion timestamps
        sa.Column('findymail_enriched_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('ai_enriched_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('uploaded_at', sa.DateTime(timezone=True), nullable=True),

        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),

        sa.CheckConstraint('retry_count >= 0', name='ck_lead_enrichments_retry_count'),
    )
    # Claim query: WHERE client = ? AND status = ? ORDER BY created_at
    op.create_index('idx_lead_enrichments_claim', 'lead_enrichments', ['client', 'status', 'created_at'])
    op.create_index('idx_lead_enrichments_phase', 'lead_enrichments', ['client', 'current_phase'])
    op.create_index('idx_lead_enrichments_job', 'lead_enrichments', ['job_id'])

    op.create_table(
        'file_uploads',
        sa.Column('id', sa.BigInteger(), primary_key=True),
        sa.Column('client', sa.Text(), nullable=False),
        sa.Column('job_id', sa.BigInteger(), nullable=True),
        sa.Column('file_name', sa.Text(), nullable=False),
        sa.Column('storage_path', sa.Text(), nullable=True),
        sa.Column('status', sa.Text(), nullable=False, server_default='uploaded'),
        sa.Column('row_count', sa.Integer(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('idx_file_uploads_client', 'file_uploads', ['client'])

    op.create_table(
        'client_config',
        sa.Column('id', sa.BigInteger(), primary_key=True),
        sa.Column('client', sa.Text(), nullable=False, unique=True),

        # Environment variable prefixes, never the keys themselves
        sa.Column('findymail_api_key', sa.Text(), nullable=True),
        sa.Column('ai_api_key', sa.Text(), nullable=True),
        sa.Column('upload_api_key', sa.Text(), nullable=True),

        sa.Column('folder_incoming', sa.Text(), nullable=True),
        sa.Column('folder_processed', sa.Text(), nullable=True),
        sa.Column('folder_failed', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )


def downgrade() -> None:
    op.drop_table('client_config')

    op.drop_index('idx_file_uploads_client', table_name='file_uploads')
    op.drop_table('file_uploads')

    op.drop_index('idx_lead_enrichments_job', table_name='lead_enrichments')
    op.drop_index('idx_lead_enrichments_phase', table_name='lead_enrichments')
    op.drop_index('idx_lead_enrichments_claim', table_name='lead_enrichments')
    op.drop_table('lead_enrichments')

    op.drop_index('idx_job_logs_created', table_name='job_logs')
    op.drop_index('idx_job_logs_client_status', table_name='job_logs')
    op.drop_table('job_logs')
