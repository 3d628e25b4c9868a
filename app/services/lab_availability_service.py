from __future__ import annotations

import logging
from datetime import date

from sqlalchemy.orm import Session, joinedload

from app.cache import cache, cache_key
from app.config import settings
from app.core.time_slots import slot_universe
from app.metrics import timed_service
from app.models import BookingStatus, LabBooking, LabPC, PCStatus


LAB_AVAILABILITY_CACHE_PREFIX = 'lab_availability'
logger = logging.getLogger(__name__)


def invalidate_availability_cache() -> None:
    cache.invalidate_prefix(LAB_AVAILABILITY_CACHE_PREFIX)


def _bookings_for_day(db: Session, target_date: date, status: str) -> list[LabBooking]:
    return (
        db.query(LabBooking)
        .options(joinedload(LabBooking.pc), joinedload(LabBooking.booker))
        .filter(
            LabBooking.booking_date == target_date,
            LabBooking.status == status,
            LabBooking.is_active.is_(True),
        )
        .order_by(LabBooking.id.asc())
        .all()
    )


def _booker_name(booking: LabBooking) -> str:
    if booking.booker and booking.booker.name:
        return booking.booker.name
    return 'Unknown'


@timed_service('lab_availability_build')
def build_availability_grid(db: Session, target_date: date) -> dict:
    pcs = (
        db.query(LabPC)
        .filter(LabPC.status == PCStatus.ACTIVE.value)
        .order_by(LabPC.row_number.asc(), LabPC.pc_number.asc())
        .all()
    )
    confirmed = _bookings_for_day(db, target_date, BookingStatus.CONFIRMED.value)
    completed = _bookings_for_day(db, target_date, BookingStatus.COMPLETED.value)
    time_slots = slot_universe(booking.time_slot for booking in [*confirmed, *completed])

    grid: dict[int, dict] = {}
    for pc in pcs:
        grid[pc.id] = {
            'pc': {
                'id': pc.id,
                'pc_number': pc.pc_number,
                'row_number': pc.row_number,
                'status': pc.status,
            },
            'slots': {slot: {'available': True, 'booking': None} for slot in time_slots},
        }

    booked_slots = 0
    for booking in confirmed:
        row = grid.get(booking.pc_id) if booking.pc_id is not None else None
        if row is None:
            # Orphaned or pointing at a PC that is no longer active.
            continue
        booked_slots += 1
        row['slots'][booking.time_slot] = {
            'available': False,
            'booking': {
                'id': booking.id,
                'booked_for': booking.booked_for,
                'student_name': booking.student_name or '',
                'purpose': booking.purpose or '',
                'booked_by': _booker_name(booking),
                'status': BookingStatus.CONFIRMED.value,
            },
        }

    for booking in completed:
        row = grid.get(booking.pc_id) if booking.pc_id is not None else None
        if row is None:
            continue
        cell = row['slots'][booking.time_slot]
        # Confirmed bookings keep display priority over released ones.
        if not cell['available']:
            continue
        row['slots'][booking.time_slot] = {
            'available': True,
            'booking': None,
            'recently_freed': True,
            'last_booking': {
                'id': booking.id,
                'booked_for': booking.booked_for,
                'student_name': booking.student_name or '',
                'completed_at': booking.updated_at.isoformat() if booking.updated_at else None,
                'status': BookingStatus.COMPLETED.value,
            },
        }

    return {
        'date': target_date.isoformat(),
        'time_slots': time_slots,
        'availability': list(grid.values()),
        'total_pcs': len(pcs),
        'booked_slots': booked_slots,
        'completed_slots': len(completed),
    }


def get_lab_availability(db: Session, target_date: date, *, bypass_cache: bool = False) -> dict:
    # A per-process cache would hide writes made by other workers.
    if not cache.shared:
        return build_availability_grid(db, target_date)
    key = cache_key(LAB_AVAILABILITY_CACHE_PREFIX, target_date.isoformat())
    if not bypass_cache:
        cached = cache.get_cached(key)
        if cached is not None:
            return cached
    payload = build_availability_grid(db, target_date)
    cache.set_cached(key, payload, settings.lab_availability_ttl_seconds)
    logger.debug('lab_availability_built date=%s pcs=%s', target_date, payload['total_pcs'])
    return payload
