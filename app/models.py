from datetime import date, datetime
from enum import Enum

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db import Base


class Role(str, Enum):
    ADMIN = 'admin'
    TEACHER = 'teacher'


class PCStatus(str, Enum):
    ACTIVE = 'active'
    MAINTENANCE = 'maintenance'
    INACTIVE = 'inactive'


class BookingStatus(str, Enum):
    CONFIRMED = 'confirmed'
    CANCELLED = 'cancelled'
    COMPLETED = 'completed'


class BookingPriority(str, Enum):
    NORMAL = 'normal'
    HIGH = 'high'
    URGENT = 'urgent'


class AttendanceStatus(str, Enum):
    PRESENT = 'present'
    ABSENT = 'absent'
    LATE = 'late'


RESOURCE_UNIQUE_INDEX = 'uq_lab_bookings_pc_date_slot_confirmed'
PERSON_UNIQUE_INDEX = 'uq_lab_bookings_student_date_slot_confirmed'

_CONFIRMED_ONLY = text("status = 'confirmed'")
_CONFIRMED_NAMED = text("status = 'confirmed' AND student_name != ''")


class AuthUser(Base):
    __tablename__ = 'auth_users'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(120), default='')
    phone: Mapped[str] = mapped_column(String(20), unique=True, index=True)
    role: Mapped[str] = mapped_column(String(20), default=Role.TEACHER.value, index=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class Batch(Base):
    __tablename__ = 'batches'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(120))
    section: Mapped[str] = mapped_column(String(40), default='')
    academic_year: Mapped[str] = mapped_column(String(20), default='')
    timing: Mapped[str] = mapped_column(String(20), index=True)
    created_by: Mapped[int | None] = mapped_column(ForeignKey('auth_users.id'), nullable=True, index=True)
    is_archived: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    students: Mapped[list['Student']] = relationship('Student', back_populates='batch')


class Student(Base):
    __tablename__ = 'students'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(120), index=True)
    roll_no: Mapped[str] = mapped_column(String(40), default='')
    batch_id: Mapped[int] = mapped_column(ForeignKey('batches.id'), index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    batch: Mapped['Batch'] = relationship('Batch', back_populates='students')
    attendances: Mapped[list['AttendanceRecord']] = relationship('AttendanceRecord', back_populates='student')


class AttendanceRecord(Base):
    __tablename__ = 'attendance_records'
    __table_args__ = (
        UniqueConstraint('student_id', 'attendance_date', name='uq_attendance_records_student_date'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    student_id: Mapped[int] = mapped_column(ForeignKey('students.id'), index=True)
    batch_id: Mapped[int] = mapped_column(ForeignKey('batches.id'), index=True)
    attendance_date: Mapped[date] = mapped_column(Date, index=True)
    status: Mapped[str] = mapped_column(String(20))
    remarks: Mapped[str] = mapped_column(Text, default='')
    marked_by: Mapped[int | None] = mapped_column(ForeignKey('auth_users.id'), nullable=True)
    marked_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    student: Mapped['Student'] = relationship('Student', back_populates='attendances')


class LabPC(Base):
    __tablename__ = 'lab_pcs'
    __table_args__ = (
        Index('ix_lab_pcs_row_number_pc_number', 'row_number', 'pc_number'),
        # Ids are never handed out again after a PC is deleted.
        {'sqlite_autoincrement': True},
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    pc_number: Mapped[str] = mapped_column(String(10), unique=True, index=True)
    row_number: Mapped[int] = mapped_column(Integer)
    status: Mapped[str] = mapped_column(String(20), default=PCStatus.ACTIVE.value, index=True)
    processor: Mapped[str | None] = mapped_column(String(120), nullable=True)
    ram: Mapped[str | None] = mapped_column(String(60), nullable=True)
    storage: Mapped[str | None] = mapped_column(String(60), nullable=True)
    graphics: Mapped[str | None] = mapped_column(String(120), nullable=True)
    monitor: Mapped[str | None] = mapped_column(String(120), nullable=True)
    last_maintenance: Mapped[date | None] = mapped_column(Date, nullable=True)
    notes: Mapped[str] = mapped_column(Text, default='')
    created_by: Mapped[int | None] = mapped_column(ForeignKey('auth_users.id'), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class LabBooking(Base):
    __tablename__ = 'lab_bookings'
    __table_args__ = (
        Index(
            RESOURCE_UNIQUE_INDEX,
            'pc_id',
            'booking_date',
            'time_slot',
            unique=True,
            sqlite_where=_CONFIRMED_ONLY,
            postgresql_where=_CONFIRMED_ONLY,
        ),
        Index(
            PERSON_UNIQUE_INDEX,
            'student_name',
            'booking_date',
            'time_slot',
            unique=True,
            sqlite_where=_CONFIRMED_NAMED,
            postgresql_where=_CONFIRMED_NAMED,
        ),
        Index('ix_lab_bookings_date_slot', 'booking_date', 'time_slot'),
        Index('ix_lab_bookings_booked_by', 'booked_by'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    # No cascade: a deleted PC leaves its bookings pointing at nothing.
    pc_id: Mapped[int | None] = mapped_column(ForeignKey('lab_pcs.id', ondelete='SET NULL'), nullable=True)
    booking_date: Mapped[date] = mapped_column(Date)
    time_slot: Mapped[str] = mapped_column(String(20))
    status: Mapped[str] = mapped_column(String(20), default=BookingStatus.CONFIRMED.value, index=True)
    booked_for: Mapped[str] = mapped_column(String(160))
    student_name: Mapped[str] = mapped_column(String(120), default='')
    teacher_name: Mapped[str] = mapped_column(String(120), default='')
    purpose: Mapped[str] = mapped_column(String(255), default='')
    batch_id: Mapped[int | None] = mapped_column(ForeignKey('batches.id'), nullable=True, index=True)
    student_id: Mapped[int | None] = mapped_column(ForeignKey('students.id'), nullable=True, index=True)
    teacher_id: Mapped[int | None] = mapped_column(ForeignKey('auth_users.id'), nullable=True)
    student_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    priority: Mapped[str] = mapped_column(String(10), default=BookingPriority.NORMAL.value)
    notes: Mapped[str] = mapped_column(Text, default='')
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    booked_by: Mapped[int | None] = mapped_column(ForeignKey('auth_users.id'), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    pc: Mapped['LabPC | None'] = relationship('LabPC', foreign_keys=[pc_id])
    booker: Mapped['AuthUser | None'] = relationship('AuthUser', foreign_keys=[booked_by])
