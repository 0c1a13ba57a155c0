"""Geofence auto clock-out core tables

Revision ID: 001_geofence_core
Revises: None
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa

revision = '001_geofence_core'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'workers',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('email', sa.String(), nullable=True),
        sa.Column('shift_start', sa.String(), nullable=True),
        sa.Column('shift_end', sa.String(), nullable=True),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True)),
    )
    op.create_index('ix_workers_email', 'workers', ['email'])

    op.create_table(
        'jobs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('latitude', sa.Float(), nullable=True),
        sa.Column('longitude', sa.Float(), nullable=True),
        sa.Column('geofence_radius', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True)),
    )

    op.create_table(
        'clock_entries',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('worker_id', sa.Integer(), sa.ForeignKey('workers.id'), nullable=False),
        sa.Column('job_id', sa.Integer(), sa.ForeignKey('jobs.id'), nullable=False),
        sa.Column('work_date', sa.Date(), nullable=False),
        sa.Column('clock_in', sa.DateTime(timezone=True), nullable=False),
        sa.Column('clock_out', sa.DateTime(timezone=True), nullable=True),
        sa.Column('clock_in_lat', sa.Float()),
        sa.Column('clock_in_lng', sa.Float()),
        sa.Column('clock_out_lat', sa.Float()),
        sa.Column('clock_out_lng', sa.Float()),
        sa.Column('is_overtime', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('auto_clocked_out', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('auto_clockout_type', sa.String(), nullable=False, server_default='none'),
        sa.Column('geofence_exit_data', sa.JSON()),
        sa.Column('total_hours', sa.Float()),
        sa.Column('source', sa.String(), server_default='manual'),
        sa.Column('notes', sa.String()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True)),
    )
    op.create_index('ix_clock_entries_worker_id', 'clock_entries', ['worker_id'])
    op.create_index('ix_clock_entries_job_id', 'clock_entries', ['job_id'])
    op.create_index('ix_clock_entries_work_date', 'clock_entries', ['work_date'])
    op.create_index('ix_clock_entries_clock_out', 'clock_entries', ['clock_out'])

    # One open regular session per worker; one open OT session per worker per day
    op.execute("""
        CREATE UNIQUE INDEX IF NOT EXISTS uq_clock_entries_open_regular
        ON clock_entries (worker_id) WHERE clock_out IS NULL AND is_overtime = false
    """)
    op.execute("""
        CREATE UNIQUE INDEX IF NOT EXISTS uq_clock_entries_open_overtime
        ON clock_entries (worker_id, work_date) WHERE clock_out IS NULL AND is_overtime = true
    """)

    op.create_table(
        'geofence_events',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('worker_id', sa.Integer(), sa.ForeignKey('workers.id'), nullable=False),
        sa.Column('clock_entry_id', sa.Integer(), sa.ForeignKey('clock_entries.id'), nullable=False),
        sa.Column('shift_date', sa.Date(), nullable=False),
        sa.Column('event_type', sa.String(), nullable=False),
        sa.Column('latitude', sa.Float()),
        sa.Column('longitude', sa.Float()),
        sa.Column('accuracy', sa.Float()),
        sa.Column('distance_from_center', sa.Float()),
        sa.Column('job_radius', sa.Integer()),
        sa.Column('safe_out_threshold', sa.Float()),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_geofence_events_worker_id', 'geofence_events', ['worker_id'])
    op.create_index('ix_geofence_events_event_type', 'geofence_events', ['event_type'])
    op.create_index('ix_geofence_events_entry_ts', 'geofence_events', ['clock_entry_id', 'timestamp'])

    op.create_table(
        'auto_clockout_audit',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('worker_id', sa.Integer(), sa.ForeignKey('workers.id'), nullable=False),
        sa.Column('clock_entry_id', sa.Integer(), sa.ForeignKey('clock_entries.id'), nullable=True),
        sa.Column('shift_date', sa.Date(), nullable=False),
        sa.Column('reason', sa.String(), nullable=False),
        sa.Column('performed', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('decided_by', sa.String(), nullable=False, server_default='system'),
        sa.Column('notes', sa.Text()),
        sa.Column('decided_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_auto_clockout_audit_worker_id', 'auto_clockout_audit', ['worker_id'])

    op.create_table(
        'notifications',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('worker_id', sa.Integer(), sa.ForeignKey('workers.id'), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('body', sa.Text(), nullable=False),
        sa.Column('type', sa.String(), nullable=False),
        sa.Column('dedupe_key', sa.String(), unique=True, nullable=True),
        sa.Column('is_read', sa.Boolean(), server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_notifications_worker_id', 'notifications', ['worker_id'])


def downgrade():
    op.drop_table('notifications')
    op.drop_table('auto_clockout_audit')
    op.drop_table('geofence_events')
    op.execute("DROP INDEX IF EXISTS uq_clock_entries_open_overtime")
    op.execute("DROP INDEX IF EXISTS uq_clock_entries_open_regular")
    op.drop_table('clock_entries')
    op.drop_table('jobs')
    op.drop_table('workers')
