from __future__ import annotations

from datetime import date
import logging

from sqlalchemy.orm import Session

from app.core.lab_errors import LabValidationError, NotFoundError
from app.core.time_provider import TimeProvider, default_time_provider
from app.models import AttendanceRecord, AttendanceStatus, Batch, Student
from app.services.attendance_booking_sync_service import on_attendance_marked

logger = logging.getLogger(__name__)

VALID_STATUSES = {status.value for status in AttendanceStatus}


def _normalize_status(value: str) -> str:
    status = (value or '').strip().lower()
    if status not in VALID_STATUSES:
        raise LabValidationError(
            f'Invalid attendance status: {value}',
            details={'field': 'status', 'allowed': sorted(VALID_STATUSES)},
        )
    return status


def _get_batch(db: Session, batch_id: int) -> Batch:
    batch = db.query(Batch).filter(Batch.id == int(batch_id)).first()
    if not batch:
        raise NotFoundError('Batch not found', details={'batch_id': batch_id})
    return batch


def _get_student_in_batch(db: Session, student_id: int, batch: Batch) -> Student:
    student = db.query(Student).filter(Student.id == int(student_id)).first()
    if not student:
        raise NotFoundError('Student not found', details={'student_id': student_id})
    if student.batch_id != batch.id:
        raise LabValidationError(
            'Student does not belong to this batch',
            details={'student_id': student.id, 'batch_id': batch.id},
        )
    return student


def _upsert_record(
    db: Session,
    *,
    student: Student,
    batch: Batch,
    attendance_date: date,
    status: str,
    remarks: str,
    marked_by: int | None,
) -> AttendanceRecord:
    record = (
        db.query(AttendanceRecord)
        .filter(AttendanceRecord.student_id == student.id, AttendanceRecord.attendance_date == attendance_date)
        .first()
    )
    if record:
        record.status = status
        record.batch_id = batch.id
        record.remarks = remarks or ''
        record.marked_by = marked_by
    else:
        record = AttendanceRecord(
            student_id=student.id,
            batch_id=batch.id,
            attendance_date=attendance_date,
            status=status,
            remarks=remarks or '',
            marked_by=marked_by,
        )
        db.add(record)
    return record


def serialize_attendance(record: AttendanceRecord) -> dict:
    return {
        'id': record.id,
        'student_id': record.student_id,
        'batch_id': record.batch_id,
        'attendance_date': record.attendance_date.isoformat(),
        'status': record.status,
        'remarks': record.remarks or '',
        'marked_by': record.marked_by,
    }


def mark_attendance(
    db: Session,
    *,
    student_id: int,
    batch_id: int,
    attendance_date: date,
    status: str,
    remarks: str = '',
    marked_by: int | None = None,
    time_provider: TimeProvider = default_time_provider,
) -> dict:
    normalized = _normalize_status(status)
    batch = _get_batch(db, batch_id)
    student = _get_student_in_batch(db, student_id, batch)
    record = _upsert_record(
        db,
        student=student,
        batch=batch,
        attendance_date=attendance_date,
        status=normalized,
        remarks=remarks,
        marked_by=marked_by,
    )
    db.commit()
    db.refresh(record)
    logger.info(
        'attendance_marked',
        extra={'student_id': student.id, 'batch_id': batch.id, 'status': normalized},
    )

    lab_update = on_attendance_marked(
        db,
        student_id=student.id,
        status=normalized,
        attendance_date=attendance_date,
        time_slot=batch.timing,
        time_provider=time_provider,
    )
    return {'attendance': serialize_attendance(record), 'lab_booking_update': lab_update}


def mark_bulk_attendance(
    db: Session,
    *,
    batch_id: int,
    attendance_date: date,
    records: list[dict],
    marked_by: int | None = None,
    time_provider: TimeProvider = default_time_provider,
) -> dict:
    batch = _get_batch(db, batch_id)
    # One record per student and date: a repeated student keeps its last entry.
    latest: dict[int, dict] = {}
    for item in records:
        latest[item['student_id']] = item

    saved: list[tuple[Student, AttendanceRecord]] = []
    for item in latest.values():
        normalized = _normalize_status(item.get('status', ''))
        student = _get_student_in_batch(db, item['student_id'], batch)
        record = _upsert_record(
            db,
            student=student,
            batch=batch,
            attendance_date=attendance_date,
            status=normalized,
            remarks=item.get('remarks', ''),
            marked_by=marked_by,
        )
        saved.append((student, record))
    db.commit()
    logger.info('attendance_bulk_marked', extra={'batch_id': batch.id, 'count': len(saved)})

    results = []
    lab_bookings_updated = 0
    for student, record in saved:
        lab_update = on_attendance_marked(
            db,
            student_id=student.id,
            status=record.status,
            attendance_date=attendance_date,
            time_slot=batch.timing,
            time_provider=time_provider,
        )
        lab_bookings_updated += int(lab_update.get('updated_count') or 0)
        results.append(
            {
                'student_id': student.id,
                'attendance': serialize_attendance(record),
                'lab_booking_update': lab_update,
            }
        )
    return {
        'batch_id': batch.id,
        'attendance_date': attendance_date.isoformat(),
        'marked_count': len(results),
        'lab_bookings_updated': lab_bookings_updated,
        'results': results,
    }
