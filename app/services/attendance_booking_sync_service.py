from __future__ import annotations

import logging
from datetime import date

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from app.core.time_provider import TimeProvider, default_time_provider
from app.metrics import record_lab_event
from app.models import AttendanceStatus, BookingStatus, LabBooking, Student
from app.services.lab_availability_service import invalidate_availability_cache


logger = logging.getLogger(__name__)

ABSENT_NOTE = 'Student marked absent in attendance at {clock}'
RESTORED_NOTE = 'Booking restored (student marked present/late) at {clock}'


def _append_note(existing: str | None, note: str) -> str:
    current = (existing or '').strip()
    return f'{current} - {note}' if current else note


def _summary(booking: LabBooking) -> dict:
    return {
        'booking_id': booking.id,
        'pc_number': booking.pc.pc_number if booking.pc else None,
        'time_slot': booking.time_slot,
        'booking_date': booking.booking_date.isoformat(),
        'student_name': booking.student_name,
        'status': booking.status,
    }


def _bookings_for(db: Session, *, student_name: str, attendance_date: date, time_slot: str, status: str) -> list[LabBooking]:
    return (
        db.query(LabBooking)
        .options(joinedload(LabBooking.pc))
        .filter(
            LabBooking.student_name == student_name,
            LabBooking.booking_date == attendance_date,
            LabBooking.time_slot == time_slot,
            LabBooking.status == status,
            LabBooking.is_active.is_(True),
        )
        .order_by(LabBooking.id.asc())
        .all()
    )


def _release_for_absence(
    db: Session,
    *,
    student: Student,
    attendance_date: date,
    time_slot: str,
    time_provider: TimeProvider,
) -> dict:
    bookings = _bookings_for(
        db,
        student_name=(student.name or '').strip(),
        attendance_date=attendance_date,
        time_slot=time_slot,
        status=BookingStatus.CONFIRMED.value,
    )
    affected = []
    for booking in bookings:
        booking.status = BookingStatus.COMPLETED.value
        booking.notes = _append_note(booking.notes, ABSENT_NOTE.format(clock=time_provider.audit_clock()))
        affected.append(_summary(booking))
    db.commit()

    count = len(affected)
    if count:
        message = f'Updated {count} lab booking(s) for {student.name} (marked absent)'
    else:
        message = 'No matching lab bookings found'
    return {'updated_count': count, 'affected_bookings': affected, 'message': message}


def _slot_reclaimed(db: Session, booking: LabBooking) -> bool:
    if booking.pc_id is None:
        return True
    return (
        db.query(LabBooking.id)
        .filter(
            LabBooking.pc_id == booking.pc_id,
            LabBooking.booking_date == booking.booking_date,
            LabBooking.time_slot == booking.time_slot,
            LabBooking.status == BookingStatus.CONFIRMED.value,
            LabBooking.id != booking.id,
        )
        .first()
        is not None
    )


def _restore_for_presence(
    db: Session,
    *,
    student: Student,
    attendance_date: date,
    time_slot: str,
    time_provider: TimeProvider,
) -> dict:
    bookings = _bookings_for(
        db,
        student_name=(student.name or '').strip(),
        attendance_date=attendance_date,
        time_slot=time_slot,
        status=BookingStatus.COMPLETED.value,
    )
    affected = []
    for booking in bookings:
        if _slot_reclaimed(db, booking):
            logger.info('lab_booking_restore_skipped booking_id=%s reason=slot_reclaimed', booking.id)
            continue
        booking_id = booking.id
        booking.status = BookingStatus.CONFIRMED.value
        booking.notes = _append_note(booking.notes, RESTORED_NOTE.format(clock=time_provider.audit_clock()))
        try:
            db.commit()
        except IntegrityError:
            # The person index still guards the student being confirmed elsewhere in this slot.
            db.rollback()
            logger.info('lab_booking_restore_skipped booking_id=%s reason=student_conflict', booking_id)
            continue
        affected.append(_summary(booking))

    count = len(affected)
    if count:
        message = f'Restored {count} lab booking(s) for {student.name}'
    else:
        message = 'No bookings to restore or slots already taken'
    return {'updated_count': count, 'affected_bookings': affected, 'message': message}


def on_attendance_marked(
    db: Session,
    *,
    student_id: int,
    status: str,
    attendance_date: date,
    time_slot: str,
    time_provider: TimeProvider = default_time_provider,
) -> dict:
    """Move a student's lab bookings between confirmed and completed.

    ``absent`` releases the student's confirmed bookings in ``time_slot``;
    ``present`` and ``late`` restore released ones unless the PC has been
    booked again in the meantime. Re-sending the same status finds nothing
    left to transition.

    Never raises: failures are rolled back and reported with
    ``updated_count == 0`` so the attendance write that triggered the call
    stands on its own.
    """
    normalized_status = (status or '').strip().lower()
    try:
        student = db.query(Student).filter(Student.id == int(student_id)).first()
        if not student:
            logger.warning('lab_sync_student_missing student_id=%s', student_id)
            return {'updated_count': 0, 'affected_bookings': [], 'message': 'Student not found'}

        if normalized_status == AttendanceStatus.ABSENT.value:
            result = _release_for_absence(
                db,
                student=student,
                attendance_date=attendance_date,
                time_slot=time_slot,
                time_provider=time_provider,
            )
            record_lab_event('sync_released', result['updated_count'])
        elif normalized_status in (AttendanceStatus.PRESENT.value, AttendanceStatus.LATE.value):
            result = _restore_for_presence(
                db,
                student=student,
                attendance_date=attendance_date,
                time_slot=time_slot,
                time_provider=time_provider,
            )
            record_lab_event('sync_restored', result['updated_count'])
        else:
            return {
                'updated_count': 0,
                'affected_bookings': [],
                'message': f"No lab booking updates for status '{status}'",
            }
    except Exception as exc:
        db.rollback()
        record_lab_event('sync_failed')
        logger.error(
            'lab_sync_failed',
            extra={'student_id': student_id, 'status': normalized_status, 'error': str(exc)},
        )
        return {'updated_count': 0, 'affected_bookings': [], 'message': 'Error updating lab bookings', 'error': str(exc)}

    if result['updated_count']:
        invalidate_availability_cache()
    logger.info(
        'lab_sync_completed student_id=%s status=%s date=%s slot=%s updated=%s',
        student_id,
        normalized_status,
        attendance_date,
        time_slot,
        result['updated_count'],
    )
    return result
