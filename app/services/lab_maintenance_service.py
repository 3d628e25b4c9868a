from __future__ import annotations

import logging
from datetime import date

from sqlalchemy.orm import Session, joinedload

from app.core.lab_errors import ConfirmationRequiredError, LabValidationError
from app.core.time_slots import normalize_slot
from app.metrics import record_lab_event
from app.models import BookingStatus, LabBooking
from app.services.lab_availability_service import invalidate_availability_cache


logger = logging.getLogger(__name__)

ALL_SLOTS = 'all'


def clear_booked_slots(
    db: Session,
    *,
    booking_date: date | None = None,
    time_slot: str | None = None,
    pc_ids: list[int] | None = None,
    confirm: bool = False,
) -> dict:
    if not confirm:
        raise ConfirmationRequiredError('Confirmation required to clear bookings')

    query = db.query(LabBooking).filter(
        LabBooking.is_active.is_(True),
        LabBooking.status == BookingStatus.CONFIRMED.value,
    )
    if booking_date is not None:
        query = query.filter(LabBooking.booking_date == booking_date)
    slot_filter = (time_slot or '').strip()
    if slot_filter and slot_filter != ALL_SLOTS:
        try:
            slot_filter = normalize_slot(slot_filter)
        except ValueError as exc:
            raise LabValidationError(str(exc), details={'field': 'time_slot', 'value': time_slot}) from exc
        query = query.filter(LabBooking.time_slot == slot_filter)
    if pc_ids:
        query = query.filter(LabBooking.pc_id.in_([int(pc_id) for pc_id in pc_ids]))

    doomed = query.options(joinedload(LabBooking.pc)).order_by(LabBooking.time_slot.asc(), LabBooking.id.asc()).all()
    cleared = [
        {
            'id': booking.id,
            'pc_number': booking.pc.pc_number if booking.pc else None,
            'time_slot': booking.time_slot,
            'student_name': booking.student_name or booking.booked_for,
            'date': booking.booking_date.isoformat(),
            'booked_by': booking.booked_by,
        }
        for booking in doomed
    ]
    for booking in doomed:
        db.delete(booking)
    db.commit()

    if cleared:
        invalidate_availability_cache()
    record_lab_event('bookings_cleared', len(cleared))
    logger.warning(
        'lab_bookings_cleared count=%s date=%s slot=%s pc_count=%s',
        len(cleared),
        booking_date,
        slot_filter or ALL_SLOTS,
        len(pc_ids or []),
    )
    return {
        'cleared_count': len(cleared),
        'criteria': {
            'date': booking_date.isoformat() if booking_date else 'All dates',
            'time_slot': slot_filter if slot_filter and slot_filter != ALL_SLOTS else 'All time slots',
            'pc_count': len(pc_ids) if pc_ids else 'All PCs',
        },
        'cleared_bookings': cleared,
    }
