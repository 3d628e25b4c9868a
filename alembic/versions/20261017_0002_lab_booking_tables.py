"""lab PCs and bookings with confirmed-only uniqueness

Revision ID: 20261017_0002
Revises: 20261017_0001
Create Date: 2026-10-17 00:02:00
"""

from alembic import op
import sqlalchemy as sa


revision = '20261017_0002'
down_revision = '20261017_0001'
branch_labels = None
depends_on = None


CONFIRMED_ONLY = sa.text("status = 'confirmed'")
CONFIRMED_NAMED = sa.text("status = 'confirmed' AND student_name != ''")


def upgrade() -> None:
    op.create_table(
        'lab_pcs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('pc_number', sa.String(length=10), nullable=False),
        sa.Column('row_number', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='active'),
        sa.Column('processor', sa.String(length=120), nullable=True),
        sa.Column('ram', sa.String(length=60), nullable=True),
        sa.Column('storage', sa.String(length=60), nullable=True),
        sa.Column('graphics', sa.String(length=120), nullable=True),
        sa.Column('monitor', sa.String(length=120), nullable=True),
        sa.Column('last_maintenance', sa.Date(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=False, server_default=''),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('auth_users.id'), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_lab_pcs_id', 'lab_pcs', ['id'])
    op.create_index('ix_lab_pcs_pc_number', 'lab_pcs', ['pc_number'], unique=True)
    op.create_index('ix_lab_pcs_status', 'lab_pcs', ['status'])
    op.create_index('ix_lab_pcs_row_number_pc_number', 'lab_pcs', ['row_number', 'pc_number'])

    op.create_table(
        'lab_bookings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('pc_id', sa.Integer(), sa.ForeignKey('lab_pcs.id', ondelete='SET NULL'), nullable=True),
        sa.Column('booking_date', sa.Date(), nullable=False),
        sa.Column('time_slot', sa.String(length=20), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='confirmed'),
        sa.Column('booked_for', sa.String(length=160), nullable=False),
        sa.Column('student_name', sa.String(length=120), nullable=False, server_default=''),
        sa.Column('teacher_name', sa.String(length=120), nullable=False, server_default=''),
        sa.Column('purpose', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('batch_id', sa.Integer(), sa.ForeignKey('batches.id'), nullable=True),
        sa.Column('student_id', sa.Integer(), sa.ForeignKey('students.id'), nullable=True),
        sa.Column('teacher_id', sa.Integer(), sa.ForeignKey('auth_users.id'), nullable=True),
        sa.Column('student_count', sa.Integer(), nullable=True),
        sa.Column('priority', sa.String(length=10), nullable=False, server_default='normal'),
        sa.Column('notes', sa.Text(), nullable=False, server_default=''),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('booked_by', sa.Integer(), sa.ForeignKey('auth_users.id'), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_lab_bookings_id', 'lab_bookings', ['id'])
    op.create_index('ix_lab_bookings_status', 'lab_bookings', ['status'])
    op.create_index('ix_lab_bookings_is_active', 'lab_bookings', ['is_active'])
    op.create_index('ix_lab_bookings_batch_id', 'lab_bookings', ['batch_id'])
    op.create_index('ix_lab_bookings_student_id', 'lab_bookings', ['student_id'])
    op.create_index('ix_lab_bookings_date_slot', 'lab_bookings', ['booking_date', 'time_slot'])
    op.create_index('ix_lab_bookings_booked_by', 'lab_bookings', ['booked_by'])
    op.create_index(
        'uq_lab_bookings_pc_date_slot_confirmed',
        'lab_bookings',
        ['pc_id', 'booking_date', 'time_slot'],
        unique=True,
        sqlite_where=CONFIRMED_ONLY,
        postgresql_where=CONFIRMED_ONLY,
    )
    op.create_index(
        'uq_lab_bookings_student_date_slot_confirmed',
        'lab_bookings',
        ['student_name', 'booking_date', 'time_slot'],
        unique=True,
        sqlite_where=CONFIRMED_NAMED,
        postgresql_where=CONFIRMED_NAMED,
    )


def downgrade() -> None:
    op.drop_index('uq_lab_bookings_student_date_slot_confirmed', table_name='lab_bookings')
    op.drop_index('uq_lab_bookings_pc_date_slot_confirmed', table_name='lab_bookings')
    op.drop_table('lab_bookings')
    op.drop_table('lab_pcs')
