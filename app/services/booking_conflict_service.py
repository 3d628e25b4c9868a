from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Iterable

from sqlalchemy.orm import Session

from app.models import BookingStatus, LabBooking


@dataclass(frozen=True)
class BookingCandidate:
    pc_id: int | None
    booking_date: date
    time_slot: str
    student_name: str = ''

    @property
    def person_key(self) -> str:
        return normalize_person_name(self.student_name)


@dataclass(frozen=True)
class ConflictReport:
    resource_conflict: LabBooking | None = None
    person_conflict: LabBooking | None = None

    @property
    def has_conflict(self) -> bool:
        return self.resource_conflict is not None or self.person_conflict is not None


def normalize_person_name(value: str | None) -> str:
    # Trimmed but case-preserved; "alice" and "Alice" are different people.
    return (value or '').strip()


def _confirmed_in_slot(db: Session, *, booking_date: date, time_slot: str, exclude_booking_id: int | None):
    query = db.query(LabBooking).filter(
        LabBooking.booking_date == booking_date,
        LabBooking.time_slot == time_slot,
        LabBooking.status == BookingStatus.CONFIRMED.value,
    )
    if exclude_booking_id is not None:
        query = query.filter(LabBooking.id != int(exclude_booking_id))
    return query


def find_resource_conflict(
    db: Session,
    candidate: BookingCandidate,
    exclude_booking_id: int | None = None,
) -> LabBooking | None:
    if candidate.pc_id is None:
        return None
    return (
        _confirmed_in_slot(
            db,
            booking_date=candidate.booking_date,
            time_slot=candidate.time_slot,
            exclude_booking_id=exclude_booking_id,
        )
        .filter(LabBooking.pc_id == int(candidate.pc_id))
        .order_by(LabBooking.id.asc())
        .first()
    )


def find_person_conflict(
    db: Session,
    candidate: BookingCandidate,
    exclude_booking_id: int | None = None,
) -> LabBooking | None:
    person = candidate.person_key
    if not person:
        return None
    return (
        _confirmed_in_slot(
            db,
            booking_date=candidate.booking_date,
            time_slot=candidate.time_slot,
            exclude_booking_id=exclude_booking_id,
        )
        .filter(LabBooking.student_name == person)
        .order_by(LabBooking.id.asc())
        .first()
    )


def check_conflict(
    db: Session,
    candidate: BookingCandidate,
    exclude_booking_id: int | None = None,
) -> ConflictReport:
    """Report confirmed bookings that would collide with ``candidate``.

    Only ``confirmed`` bookings block; ``completed`` and ``cancelled`` rows
    never do. The two dimensions are evaluated independently and nothing is
    written. Priority plays no part: whichever booking was confirmed first
    keeps the slot.
    """
    return ConflictReport(
        resource_conflict=find_resource_conflict(db, candidate, exclude_booking_id),
        person_conflict=find_person_conflict(db, candidate, exclude_booking_id),
    )


class ConflictIndex:
    """In-memory view of the confirmed bookings of a single day.

    Answers the same two questions as :func:`check_conflict` by dict lookup
    so that a batch of candidates can be screened without a query each.
    """

    def __init__(self, bookings: Iterable[LabBooking] = ()) -> None:
        self._by_resource: dict[tuple[int, str], LabBooking] = {}
        self._by_person: dict[tuple[str, str], LabBooking] = {}
        for booking in bookings:
            self.add(booking)

    def add(self, booking: LabBooking) -> None:
        if booking.pc_id is not None:
            self._by_resource.setdefault((int(booking.pc_id), booking.time_slot), booking)
        person = normalize_person_name(booking.student_name)
        if person:
            self._by_person.setdefault((person, booking.time_slot), booking)

    def resource_conflict(self, pc_id: int | None, time_slot: str) -> LabBooking | None:
        if pc_id is None:
            return None
        return self._by_resource.get((int(pc_id), time_slot))

    def person_conflict(self, student_name: str | None, time_slot: str) -> LabBooking | None:
        person = normalize_person_name(student_name)
        if not person:
            return None
        return self._by_person.get((person, time_slot))
