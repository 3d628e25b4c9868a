from __future__ import annotations

import logging
from datetime import date, timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from app.core.lab_errors import BookingConflictError
from app.core.time_provider import TimeProvider, default_time_provider
from app.metrics import record_lab_event, timed_service
from app.models import BookingPriority, BookingStatus, LabBooking, PCStatus
from app.services.booking_conflict_service import ConflictIndex
from app.services.lab_availability_service import invalidate_availability_cache
from app.services.lab_booking_service import conflict_type_from_integrity_error, serialize_booking


logger = logging.getLogger(__name__)


def previous_day(value: date) -> date:
    return value - timedelta(days=1)


def _confirmed_on(db: Session, day: date, *, active_only: bool = True) -> list[LabBooking]:
    query = (
        db.query(LabBooking)
        .options(joinedload(LabBooking.pc))
        .filter(LabBooking.booking_date == day, LabBooking.status == BookingStatus.CONFIRMED.value)
    )
    if active_only:
        query = query.filter(LabBooking.is_active.is_(True))
    return query.order_by(LabBooking.time_slot.asc(), LabBooking.id.asc()).all()


def get_previous_bookings(
    db: Session,
    target_date: date | None = None,
    *,
    time_provider: TimeProvider = default_time_provider,
) -> dict:
    source_date = previous_day(target_date or time_provider.utc_today())
    bookings = (
        db.query(LabBooking)
        .options(joinedload(LabBooking.pc))
        .filter(LabBooking.booking_date == source_date, LabBooking.is_active.is_(True))
        .order_by(LabBooking.time_slot.asc(), LabBooking.id.asc())
        .all()
    )
    return {
        'source_date': source_date.isoformat(),
        'bookings': [serialize_booking(row) for row in bookings],
        'total_bookings': len(bookings),
    }


def _exclusion(booking: LabBooking, existing: LabBooking, conflict_type: str) -> dict:
    return {
        'source_booking_id': booking.id,
        'pc_number': booking.pc.pc_number if booking.pc else 'Unknown',
        'time_slot': booking.time_slot,
        'student_name': booking.student_name or '',
        'existing_booking': {
            'id': existing.id,
            'pc_id': existing.pc_id,
            'booked_for': existing.booked_for,
            'student_name': existing.student_name or '',
        },
        'conflict_type': conflict_type,
    }


def _replication_note(source_date: date, notes: str | None) -> str:
    return f'Applied from {source_date.isoformat()} - {notes or ""}'.strip()


@timed_service('lab_apply_previous_bookings')
def apply_previous_bookings(
    db: Session,
    *,
    target_date: date,
    source_date: date | None = None,
    booked_by: int | None = None,
) -> dict:
    """Copy the confirmed bookings of ``source_date`` onto ``target_date``.

    Each source booking is either staged, or reported under one of
    ``conflicts`` (PC already taken on the target day), ``student_conflicts``
    (student already booked in that slot) or ``unavailable_pcs`` (PC missing
    or not active). Staged rows are inserted in a single transaction; if the
    database rejects any of them none are kept and ``BookingConflictError`` is
    raised. Source-day bookings are only read.
    """
    effective_source = source_date or previous_day(target_date)
    source_bookings = _confirmed_on(db, effective_source)
    # Inactive rows still hold the unique indexes, so they count as occupants here.
    index = ConflictIndex(_confirmed_on(db, target_date, active_only=False))

    staged: list[LabBooking] = []
    conflicts: list[dict] = []
    student_conflicts: list[dict] = []
    unavailable_pcs: list[dict] = []

    for booking in source_bookings:
        pc = booking.pc
        if pc is None or pc.status != PCStatus.ACTIVE.value:
            unavailable_pcs.append(
                {
                    'source_booking_id': booking.id,
                    'pc_number': pc.pc_number if pc else 'Unknown',
                    'time_slot': booking.time_slot,
                    'student_name': booking.student_name or '',
                    'reason': 'PC not active or not found',
                }
            )
            continue

        existing = index.resource_conflict(pc.id, booking.time_slot)
        if existing is not None:
            conflicts.append(_exclusion(booking, existing, 'PC'))
            continue

        existing = index.person_conflict(booking.student_name, booking.time_slot)
        if existing is not None:
            student_conflicts.append(_exclusion(booking, existing, 'Student'))
            continue

        clone = LabBooking(
            pc_id=pc.id,
            booking_date=target_date,
            time_slot=booking.time_slot,
            status=BookingStatus.CONFIRMED.value,
            booked_for=booking.booked_for,
            student_name=booking.student_name or '',
            teacher_name=booking.teacher_name or '',
            purpose=booking.purpose or 'Applied from previous day',
            batch_id=booking.batch_id,
            student_id=booking.student_id,
            teacher_id=booking.teacher_id,
            student_count=booking.student_count,
            priority=booking.priority or BookingPriority.NORMAL.value,
            notes=_replication_note(effective_source, booking.notes),
            is_active=True,
            booked_by=booked_by,
        )
        index.add(clone)
        staged.append(clone)

    if staged:
        db.add_all(staged)
        try:
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            record_lab_event('replication_failed')
            logger.error(
                'lab_apply_previous_failed source=%s target=%s staged=%s',
                effective_source,
                target_date,
                len(staged),
            )
            raise BookingConflictError(
                'Target date changed while applying previous bookings; nothing was applied',
                conflict_type=conflict_type_from_integrity_error(exc),
                details={'source_date': effective_source.isoformat(), 'target_date': target_date.isoformat()},
            ) from exc
        for row in staged:
            db.refresh(row)
        invalidate_availability_cache()

    record_lab_event('replication_applied', len(staged))
    logger.info(
        'lab_apply_previous source=%s target=%s found=%s applied=%s conflicts=%s student_conflicts=%s unavailable=%s',
        effective_source,
        target_date,
        len(source_bookings),
        len(staged),
        len(conflicts),
        len(student_conflicts),
        len(unavailable_pcs),
    )

    if source_bookings:
        message = f'Applied {len(staged)} bookings from {effective_source.isoformat()} to {target_date.isoformat()}'
    else:
        message = 'No previous bookings found to apply'
    return {
        'message': message,
        'source_date': effective_source.isoformat(),
        'target_date': target_date.isoformat(),
        'summary': {
            'total_previous_bookings': len(source_bookings),
            'applied_bookings': len(staged),
            'conflicts': len(conflicts),
            'student_conflicts': len(student_conflicts),
            'unavailable_pcs': len(unavailable_pcs),
        },
        'created_bookings': [serialize_booking(row) for row in staged],
        'conflicts': conflicts,
        'student_conflicts': student_conflicts,
        'unavailable_pcs': unavailable_pcs,
    }
