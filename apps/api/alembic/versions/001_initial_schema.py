"""Initial schema: tenants, API keys, students, attendance and mark sheets, sheet audit trail.

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'tenants',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('label', sa.String(length=255), nullable=False),
        sa.Column('status', sa.String(length=50), nullable=False),
        sa.Column('subscription_status', sa.String(length=20), nullable=False),
        sa.Column('entitlements_json', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_tenants_id', 'tenants', ['id'])
    op.create_index('ix_tenants_label', 'tenants', ['label'], unique=True)

    op.create_table(
        'api_keys',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('prefix', sa.String(length=16), nullable=False),
        sa.Column('digest', sa.String(length=255), nullable=False),
        sa.Column('label', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('last_used_at', sa.DateTime(), nullable=True),
        sa.Column('revoked_at', sa.DateTime(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('digest')
    )
    op.create_index('ix_api_keys_id', 'api_keys', ['id'])
    op.create_index('ix_api_keys_tenant_id', 'api_keys', ['tenant_id'])
    op.create_index('ix_api_keys_prefix', 'api_keys', ['prefix'])

    op.create_table(
        'students',
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('class_id', sa.String(length=64), nullable=True),
        sa.Column('admission_no', sa.String(length=64), nullable=False),
        sa.Column('first_name', sa.String(length=120), nullable=False),
        sa.Column('last_name', sa.String(length=120), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ),
        sa.PrimaryKeyConstraint('tenant_id', 'id')
    )
    op.create_index('ix_students_tenant_id', 'students', ['tenant_id'])
    op.create_index('ix_students_class_id', 'students', ['class_id'])
    op.create_index('ix_students_tenant_class_active', 'students', ['tenant_id', 'class_id', 'is_active'])

    op.create_table(
        'attendance_sessions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('class_id', sa.String(length=64), nullable=False),
        sa.Column('sheet_date', sa.Date(), nullable=False),
        sa.Column('year', sa.Integer(), nullable=True),
        sa.Column('term', sa.String(length=10), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('unlock_reason', sa.Text(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('submitted_at', sa.DateTime(), nullable=True),
        sa.Column('locked_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'class_id', 'sheet_date', name='uq_attendance_session_scope')
    )
    op.create_index('ix_attendance_sessions_id', 'attendance_sessions', ['id'])
    op.create_index('ix_attendance_sessions_tenant_id', 'attendance_sessions', ['tenant_id'])
    op.create_index('ix_attendance_sessions_tenant_date', 'attendance_sessions', ['tenant_id', 'sheet_date'])
    op.create_index('ix_attendance_sessions_tenant_status', 'attendance_sessions', ['tenant_id', 'status'])

    op.create_table(
        'attendance_records',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('sheet_id', sa.Integer(), nullable=False),
        sa.Column('entity_id', sa.String(length=64), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('minutes_late', sa.Integer(), nullable=True),
        sa.Column('comment', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ),
        sa.ForeignKeyConstraint(['sheet_id'], ['attendance_sessions.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'sheet_id', 'entity_id', name='uq_attendance_record_entity')
    )
    op.create_index('ix_attendance_records_id', 'attendance_records', ['id'])
    op.create_index('ix_attendance_records_sheet_id', 'attendance_records', ['sheet_id'])
    op.create_index('ix_attendance_records_tenant_entity', 'attendance_records', ['tenant_id', 'entity_id'])
    op.create_index('ix_attendance_records_tenant_status', 'attendance_records', ['tenant_id', 'status'])

    op.create_table(
        'mark_sheets',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('exam_session_id', sa.String(length=64), nullable=False),
        sa.Column('subject_id', sa.String(length=64), nullable=False),
        sa.Column('class_id', sa.String(length=64), nullable=False),
        sa.Column('sheet_date', sa.Date(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('unlock_reason', sa.Text(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('submitted_at', sa.DateTime(), nullable=True),
        sa.Column('locked_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'exam_session_id', 'subject_id', name='uq_mark_sheet_scope')
    )
    op.create_index('ix_mark_sheets_id', 'mark_sheets', ['id'])
    op.create_index('ix_mark_sheets_tenant_id', 'mark_sheets', ['tenant_id'])
    op.create_index('ix_mark_sheets_tenant_class', 'mark_sheets', ['tenant_id', 'class_id'])
    op.create_index('ix_mark_sheets_tenant_status', 'mark_sheets', ['tenant_id', 'status'])

    op.create_table(
        'marks',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('sheet_id', sa.Integer(), nullable=False),
        sa.Column('entity_id', sa.String(length=64), nullable=False),
        sa.Column('score', sa.Float(), nullable=True),
        sa.Column('is_missing', sa.Boolean(), nullable=False),
        sa.Column('comment', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ),
        sa.ForeignKeyConstraint(['sheet_id'], ['mark_sheets.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'sheet_id', 'entity_id', name='uq_mark_entity')
    )
    op.create_index('ix_marks_id', 'marks', ['id'])
    op.create_index('ix_marks_sheet_id', 'marks', ['sheet_id'])
    op.create_index('ix_marks_tenant_entity', 'marks', ['tenant_id', 'entity_id'])

    op.create_table(
        'sheet_audit_entries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('sheet_kind', sa.String(length=32), nullable=False),
        sa.Column('sheet_id', sa.Integer(), nullable=False),
        sa.Column('record_id', sa.Integer(), nullable=True),
        sa.Column('actor_id', sa.String(length=64), nullable=False),
        sa.Column('action', sa.String(length=32), nullable=False),
        sa.Column('before_json', sa.JSON(), nullable=True),
        sa.Column('after_json', sa.JSON(), nullable=True),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column('entry_hash', sa.String(length=64), nullable=False),
        sa.Column('previous_entry_hash', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('entry_hash'),
        sa.UniqueConstraint('sheet_kind', 'sheet_id', 'sequence', name='uq_sheet_audit_sequence')
    )
    op.create_index('ix_sheet_audit_entries_id', 'sheet_audit_entries', ['id'])
    op.create_index('ix_sheet_audit_entries_action', 'sheet_audit_entries', ['action'])
    op.create_index('ix_sheet_audit_entries_created_at', 'sheet_audit_entries', ['created_at'])
    op.create_index('ix_sheet_audit_tenant_sheet', 'sheet_audit_entries', ['tenant_id', 'sheet_kind', 'sheet_id'])
    op.create_index('ix_sheet_audit_tenant_actor', 'sheet_audit_entries', ['tenant_id', 'actor_id'])


def downgrade() -> None:
    op.drop_table('sheet_audit_entries')
    op.drop_table('marks')
    op.drop_table('mark_sheets')
    op.drop_table('attendance_records')
    op.drop_table('attendance_sessions')
    op.drop_table('students')
    op.drop_table('api_keys')
    op.drop_table('tenants')
