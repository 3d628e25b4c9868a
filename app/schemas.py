from datetime import date
from typing import Literal

from pydantic import BaseModel, Field


class PCSpecifications(BaseModel):
    processor: str | None = None
    ram: str | None = None
    storage: str | None = None
    graphics: str | None = None
    monitor: str | None = None


class PCCreateRequest(BaseModel):
    pc_number: str = Field(min_length=1, max_length=10)
    row_number: int
    specifications: PCSpecifications = Field(default_factory=PCSpecifications)
    notes: str = ''


class PCUpdateRequest(BaseModel):
    pc_number: str | None = None
    row_number: int | None = None
    status: Literal['active', 'maintenance', 'inactive'] | None = None
    specifications: PCSpecifications | None = None
    last_maintenance: date | None = None
    notes: str | None = None


class BookingCreateRequest(BaseModel):
    pc_id: int
    booking_date: date
    time_slot: str
    booked_for: str
    purpose: str = ''
    student_name: str = ''
    teacher_name: str = ''
    batch_id: int | None = None
    student_id: int | None = None
    teacher_id: int | None = None
    student_count: int | None = Field(default=None, ge=1)
    priority: Literal['normal', 'high', 'urgent'] = 'normal'
    notes: str = ''


class BookingUpdateRequest(BaseModel):
    pc_id: int | None = None
    booking_date: date | None = None
    time_slot: str | None = None
    booked_for: str | None = None
    purpose: str | None = None
    student_name: str | None = None
    batch_id: int | None = None
    student_count: int | None = Field(default=None, ge=1)
    status: Literal['confirmed', 'cancelled', 'completed'] | None = None
    priority: Literal['normal', 'high', 'urgent'] | None = None
    notes: str | None = None


class ApplyPreviousRequest(BaseModel):
    target_date: date
    source_date: date | None = None


class AttendanceMarkRequest(BaseModel):
    student_id: int
    batch_id: int
    attendance_date: date
    status: Literal['present', 'absent', 'late', 'Present', 'Absent', 'Late']
    remarks: str = ''


class AttendanceBulkItem(BaseModel):
    student_id: int
    status: Literal['present', 'absent', 'late', 'Present', 'Absent', 'Late']
    remarks: str = ''


class AttendanceBulkRequest(BaseModel):
    batch_id: int
    attendance_date: date
    records: list[AttendanceBulkItem] = Field(min_length=1)
