from __future__ import annotations

from datetime import date, timedelta

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.time_provider import TimeProvider, default_time_provider
from app.models import BookingStatus, LabBooking, LabPC, PCStatus


def week_start(value: date) -> date:
    # Weeks start on Sunday.
    return value - timedelta(days=(value.weekday() + 1) % 7)


def _confirmed_between(db: Session, start: date, end: date) -> int:
    return (
        db.query(func.count(LabBooking.id))
        .filter(
            LabBooking.booking_date >= start,
            LabBooking.booking_date <= end,
            LabBooking.status == BookingStatus.CONFIRMED.value,
            LabBooking.is_active.is_(True),
        )
        .scalar()
        or 0
    )


def get_lab_stats(
    db: Session,
    *,
    today: date | None = None,
    time_provider: TimeProvider = default_time_provider,
) -> dict:
    today = today or time_provider.today()
    counts = dict(db.query(LabPC.status, func.count(LabPC.id)).group_by(LabPC.status).all())
    total = sum(counts.values())
    active = int(counts.get(PCStatus.ACTIVE.value, 0))
    start = week_start(today)
    return {
        'date': today.isoformat(),
        'pcs': {
            'total': total,
            'active': active,
            'maintenance': int(counts.get(PCStatus.MAINTENANCE.value, 0)),
            'inactive': int(counts.get(PCStatus.INACTIVE.value, 0)),
        },
        'bookings': {
            'today': _confirmed_between(db, today, today),
            'this_week': _confirmed_between(db, start, start + timedelta(days=6)),
            'week_start': start.isoformat(),
        },
        'utilization_rate': round(active / total * 100) if total else 0,
    }
