from __future__ import annotations

import logging
from datetime import date

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from app.core.lab_errors import BookingConflictError, LabValidationError, NotFoundError, ResourceInactiveError
from app.core.time_slots import normalize_slot
from app.metrics import record_lab_event, timed_service
from app.models import PERSON_UNIQUE_INDEX, BookingPriority, BookingStatus, LabBooking, LabPC, PCStatus
from app.services.booking_conflict_service import BookingCandidate, ConflictReport, check_conflict, normalize_person_name
from app.services.lab_availability_service import invalidate_availability_cache


logger = logging.getLogger(__name__)

_BOOKING_STATUSES = {status.value for status in BookingStatus}
_PRIORITIES = {priority.value for priority in BookingPriority}


def _validate_slot(time_slot: str) -> str:
    try:
        return normalize_slot(time_slot)
    except ValueError as exc:
        raise LabValidationError(str(exc), details={'field': 'time_slot', 'value': time_slot}) from exc


def _validate_status(status: str) -> str:
    value = (status or '').strip().lower()
    if value not in _BOOKING_STATUSES:
        raise LabValidationError(f"Invalid booking status '{status}'", details={'field': 'status', 'value': status})
    return value


def _validate_priority(priority: str | None) -> str:
    value = (priority or BookingPriority.NORMAL.value).strip().lower()
    if value not in _PRIORITIES:
        raise LabValidationError(f"Invalid priority '{priority}'", details={'field': 'priority', 'value': priority})
    return value


def _require_booked_for(booked_for: str | None) -> str:
    value = (booked_for or '').strip()
    if not value:
        raise LabValidationError('Please specify who the booking is for', details={'field': 'booked_for'})
    return value


def _require_active_pc(db: Session, pc_id: int) -> LabPC:
    pc = db.query(LabPC).filter(LabPC.id == int(pc_id)).first()
    if not pc:
        raise NotFoundError('PC not found', details={'pc_id': int(pc_id)})
    if pc.status != PCStatus.ACTIVE.value:
        raise ResourceInactiveError(
            'PC not found or not active',
            details={'pc_id': pc.id, 'pc_number': pc.pc_number, 'pc_status': pc.status},
        )
    return pc


def _blocking_details(booking: LabBooking) -> dict:
    return {
        'booking_id': booking.id,
        'pc_number': booking.pc.pc_number if booking.pc else None,
        'time_slot': booking.time_slot,
        'booking_date': booking.booking_date.isoformat(),
        'student_name': booking.student_name or '',
        'booked_for': booking.booked_for,
    }


def conflict_error_from_report(report: ConflictReport, candidate: BookingCandidate) -> BookingConflictError:
    if report.resource_conflict is not None:
        return BookingConflictError(
            'This time slot is already booked for this PC',
            conflict_type='resource',
            details={'existing_booking': _blocking_details(report.resource_conflict)},
        )
    return BookingConflictError(
        f'Student "{candidate.person_key}" is already booked for this time slot on this date',
        conflict_type='person',
        details={'existing_booking': _blocking_details(report.person_conflict)},
    )


def conflict_type_from_integrity_error(exc: IntegrityError) -> str:
    message = str(getattr(exc, 'orig', exc)).lower()
    if PERSON_UNIQUE_INDEX in message or 'student_name' in message:
        return 'person'
    return 'resource'


def _storage_conflict(exc: IntegrityError, candidate: BookingCandidate) -> BookingConflictError:
    conflict_type = conflict_type_from_integrity_error(exc)
    logger.warning(
        'lab_booking_storage_conflict conflict_type=%s pc_id=%s date=%s slot=%s',
        conflict_type,
        candidate.pc_id,
        candidate.booking_date,
        candidate.time_slot,
    )
    if conflict_type == 'person':
        message = f'Student "{candidate.person_key}" is already booked for this time slot on this date'
    else:
        message = 'This time slot is already booked for this PC'
    return BookingConflictError(
        message,
        conflict_type=conflict_type,
        details={
            'pc_id': candidate.pc_id,
            'time_slot': candidate.time_slot,
            'booking_date': candidate.booking_date.isoformat(),
            'student_name': candidate.person_key,
        },
    )


def serialize_booking(booking: LabBooking) -> dict:
    pc = booking.pc
    return {
        'id': booking.id,
        'pc_id': booking.pc_id,
        'pc': {'id': pc.id, 'pc_number': pc.pc_number, 'row_number': pc.row_number, 'status': pc.status} if pc else None,
        'booking_date': booking.booking_date.isoformat(),
        'time_slot': booking.time_slot,
        'status': booking.status,
        'booked_for': booking.booked_for,
        'student_name': booking.student_name or '',
        'teacher_name': booking.teacher_name or '',
        'purpose': booking.purpose or '',
        'batch_id': booking.batch_id,
        'student_id': booking.student_id,
        'teacher_id': booking.teacher_id,
        'student_count': booking.student_count,
        'priority': booking.priority,
        'notes': booking.notes or '',
        'is_active': bool(booking.is_active),
        'booked_by': booking.booked_by,
        'created_at': booking.created_at.isoformat() if booking.created_at else None,
        'updated_at': booking.updated_at.isoformat() if booking.updated_at else None,
    }


def get_booking(db: Session, booking_id: int) -> LabBooking:
    booking = (
        db.query(LabBooking)
        .options(joinedload(LabBooking.pc))
        .filter(LabBooking.id == int(booking_id))
        .first()
    )
    if not booking:
        raise NotFoundError('Booking not found', details={'booking_id': int(booking_id)})
    return booking


@timed_service('lab_booking_create')
def create_booking(
    db: Session,
    *,
    pc_id: int,
    booking_date: date,
    time_slot: str,
    booked_for: str,
    purpose: str = '',
    student_name: str = '',
    teacher_name: str = '',
    batch_id: int | None = None,
    student_id: int | None = None,
    teacher_id: int | None = None,
    student_count: int | None = None,
    notes: str = '',
    priority: str | None = None,
    is_active: bool = True,
    booked_by: int | None = None,
) -> LabBooking:
    slot = _validate_slot(time_slot)
    clean_booked_for = _require_booked_for(booked_for)
    clean_priority = _validate_priority(priority)
    pc = _require_active_pc(db, pc_id)

    candidate = BookingCandidate(
        pc_id=pc.id,
        booking_date=booking_date,
        time_slot=slot,
        student_name=normalize_person_name(student_name),
    )
    report = check_conflict(db, candidate)
    if report.has_conflict:
        record_lab_event('booking_conflict')
        raise conflict_error_from_report(report, candidate)

    booking = LabBooking(
        pc_id=pc.id,
        booking_date=booking_date,
        time_slot=slot,
        status=BookingStatus.CONFIRMED.value,
        booked_for=clean_booked_for,
        student_name=candidate.person_key,
        teacher_name=(teacher_name or '').strip(),
        purpose=(purpose or '').strip(),
        batch_id=batch_id,
        student_id=student_id,
        teacher_id=teacher_id,
        student_count=student_count,
        priority=clean_priority,
        notes=(notes or '').strip(),
        is_active=is_active,
        booked_by=booked_by,
    )
    db.add(booking)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        record_lab_event('booking_conflict')
        raise _storage_conflict(exc, candidate) from exc
    db.refresh(booking)
    invalidate_availability_cache()
    record_lab_event('booking_created')
    logger.info(
        'lab_booking_created booking_id=%s pc=%s date=%s slot=%s booked_by=%s',
        booking.id,
        pc.pc_number,
        booking.booking_date,
        booking.time_slot,
        booked_by,
    )
    return booking


def list_bookings(
    db: Session,
    *,
    booking_date: date | None = None,
    time_slot: str | None = None,
    pc_id: int | None = None,
    status: str | None = None,
) -> list[LabBooking]:
    query = db.query(LabBooking).options(joinedload(LabBooking.pc)).filter(LabBooking.is_active.is_(True))
    if booking_date is not None:
        query = query.filter(LabBooking.booking_date == booking_date)
    if time_slot:
        query = query.filter(LabBooking.time_slot == time_slot)
    if pc_id is not None:
        query = query.filter(LabBooking.pc_id == int(pc_id))
    if status:
        query = query.filter(LabBooking.status == _validate_status(status))
    return query.order_by(LabBooking.booking_date.asc(), LabBooking.time_slot.asc(), LabBooking.id.asc()).all()


@timed_service('lab_booking_update')
def update_booking(
    db: Session,
    booking_id: int,
    *,
    pc_id: int | None = None,
    booking_date: date | None = None,
    time_slot: str | None = None,
    booked_for: str | None = None,
    purpose: str | None = None,
    student_name: str | None = None,
    batch_id: int | None = None,
    student_count: int | None = None,
    status: str | None = None,
    priority: str | None = None,
    notes: str | None = None,
) -> LabBooking:
    booking = get_booking(db, booking_id)

    new_pc_id = int(pc_id) if pc_id is not None else booking.pc_id
    new_date = booking_date or booking.booking_date
    new_slot = _validate_slot(time_slot) if time_slot else booking.time_slot
    new_person = normalize_person_name(student_name) if student_name is not None else booking.student_name
    new_status = _validate_status(status) if status else booking.status

    pc_changed = new_pc_id != booking.pc_id
    placement_changed = pc_changed or new_date != booking.booking_date or new_slot != booking.time_slot
    person_changed = new_person != (booking.student_name or '')
    becomes_confirmed = new_status == BookingStatus.CONFIRMED.value and booking.status != BookingStatus.CONFIRMED.value

    if pc_changed and new_pc_id is not None:
        _require_active_pc(db, new_pc_id)

    candidate = BookingCandidate(
        pc_id=new_pc_id,
        booking_date=new_date,
        time_slot=new_slot,
        student_name=new_person,
    )
    if new_status == BookingStatus.CONFIRMED.value and (placement_changed or person_changed or becomes_confirmed):
        report = check_conflict(db, candidate, exclude_booking_id=booking.id)
        if report.has_conflict:
            record_lab_event('booking_conflict')
            raise conflict_error_from_report(report, candidate)

    booking.pc_id = new_pc_id
    booking.booking_date = new_date
    booking.time_slot = new_slot
    booking.student_name = new_person
    booking.status = new_status
    if booked_for is not None:
        booking.booked_for = _require_booked_for(booked_for)
    if purpose is not None:
        booking.purpose = purpose.strip()
    if batch_id is not None:
        booking.batch_id = batch_id
    if student_count is not None:
        booking.student_count = student_count
    if priority is not None:
        booking.priority = _validate_priority(priority)
    if notes is not None:
        booking.notes = notes.strip()

    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        record_lab_event('booking_conflict')
        raise _storage_conflict(exc, candidate) from exc
    db.refresh(booking)
    invalidate_availability_cache()
    logger.info('lab_booking_updated booking_id=%s status=%s', booking.id, booking.status)
    return booking


def delete_booking(db: Session, booking_id: int) -> dict:
    booking = get_booking(db, booking_id)
    snapshot = serialize_booking(booking)
    db.delete(booking)
    db.commit()
    invalidate_availability_cache()
    logger.info('lab_booking_deleted booking_id=%s', booking_id)
    return snapshot
