"""auth users, batches, students and attendance records

Revision ID: 20261017_0001
Revises: 
Create Date: 2026-10-17 00:01:00
"""

from alembic import op
import sqlalchemy as sa


revision = '20261017_0001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'auth_users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=120), nullable=False, server_default=''),
        sa.Column('phone', sa.String(length=20), nullable=False),
        sa.Column('role', sa.String(length=20), nullable=False, server_default='teacher'),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_auth_users_id', 'auth_users', ['id'])
    op.create_index('ix_auth_users_phone', 'auth_users', ['phone'], unique=True)
    op.create_index('ix_auth_users_role', 'auth_users', ['role'])
    op.create_index('ix_auth_users_active', 'auth_users', ['active'])

    op.create_table(
        'batches',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('section', sa.String(length=40), nullable=False, server_default=''),
        sa.Column('academic_year', sa.String(length=20), nullable=False, server_default=''),
        sa.Column('timing', sa.String(length=20), nullable=False),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('auth_users.id'), nullable=True),
        sa.Column('is_archived', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_batches_id', 'batches', ['id'])
    op.create_index('ix_batches_timing', 'batches', ['timing'])
    op.create_index('ix_batches_created_by', 'batches', ['created_by'])
    op.create_index('ix_batches_is_archived', 'batches', ['is_archived'])

    op.create_table(
        'students',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('roll_no', sa.String(length=40), nullable=False, server_default=''),
        sa.Column('batch_id', sa.Integer(), sa.ForeignKey('batches.id'), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_students_id', 'students', ['id'])
    op.create_index('ix_students_name', 'students', ['name'])
    op.create_index('ix_students_batch_id', 'students', ['batch_id'])

    op.create_table(
        'attendance_records',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('student_id', sa.Integer(), sa.ForeignKey('students.id'), nullable=False),
        sa.Column('batch_id', sa.Integer(), sa.ForeignKey('batches.id'), nullable=False),
        sa.Column('attendance_date', sa.Date(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('remarks', sa.Text(), nullable=False, server_default=''),
        sa.Column('marked_by', sa.Integer(), sa.ForeignKey('auth_users.id'), nullable=True),
        sa.Column('marked_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('student_id', 'attendance_date', name='uq_attendance_records_student_date'),
    )
    op.create_index('ix_attendance_records_id', 'attendance_records', ['id'])
    op.create_index('ix_attendance_records_student_id', 'attendance_records', ['student_id'])
    op.create_index('ix_attendance_records_batch_id', 'attendance_records', ['batch_id'])
    op.create_index('ix_attendance_records_attendance_date', 'attendance_records', ['attendance_date'])


def downgrade() -> None:
    op.drop_table('attendance_records')
    op.drop_table('students')
    op.drop_table('batches')
    op.drop_table('auth_users')
