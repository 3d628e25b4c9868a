from __future__ import annotations

import logging
import re
from datetime import date

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config import settings
from app.core.lab_errors import BookingConflictError, ConfirmationRequiredError, LabValidationError, NotFoundError
from app.models import LabBooking, LabPC, PCStatus
from app.services.lab_availability_service import invalidate_availability_cache


logger = logging.getLogger(__name__)

PC_NUMBER_PATTERN = re.compile(r'^[A-Z]{1,3}-\d{1,3}$')
SPEC_FIELDS = ('processor', 'ram', 'storage', 'graphics', 'monitor')
_PC_STATUSES = {status.value for status in PCStatus}


def _validate_pc_number(pc_number: str) -> str:
    value = (pc_number or '').strip()
    if not PC_NUMBER_PATTERN.match(value):
        raise LabValidationError(
            'PC number must be in format XX-XX (e.g., CS-01, SS-05, MS-67)',
            details={'field': 'pc_number', 'value': value},
        )
    return value


def _validate_row_number(row_number: int) -> int:
    row = int(row_number)
    if row < settings.pc_row_min or row > settings.pc_row_max:
        raise LabValidationError(
            f'row_number must be between {settings.pc_row_min} and {settings.pc_row_max}',
            details={'field': 'row_number', 'value': row},
        )
    return row


def _validate_status(status: str) -> str:
    value = (status or '').strip().lower()
    if value not in _PC_STATUSES:
        raise LabValidationError(
            f"Invalid PC status '{status}'",
            details={'field': 'status', 'value': status},
        )
    return value


def _pc_number_taken(db: Session, pc_number: str) -> bool:
    return db.query(LabPC.id).filter(LabPC.pc_number == pc_number).first() is not None


def _duplicate_pc_number(pc_number: str) -> BookingConflictError:
    return BookingConflictError(
        'PC number already exists',
        conflict_type='pc_number',
        details={'pc_number': pc_number},
    )


def serialize_pc(pc: LabPC) -> dict:
    return {
        'id': pc.id,
        'pc_number': pc.pc_number,
        'row_number': pc.row_number,
        'status': pc.status,
        'specifications': {field: getattr(pc, field) for field in SPEC_FIELDS},
        'last_maintenance': pc.last_maintenance.isoformat() if pc.last_maintenance else None,
        'notes': pc.notes or '',
        'created_by': pc.created_by,
        'created_at': pc.created_at.isoformat() if pc.created_at else None,
        'updated_at': pc.updated_at.isoformat() if pc.updated_at else None,
    }


def get_pc(db: Session, pc_id: int) -> LabPC:
    pc = db.query(LabPC).filter(LabPC.id == int(pc_id)).first()
    if not pc:
        raise NotFoundError('PC not found', details={'pc_id': int(pc_id)})
    return pc


def create_pc(
    db: Session,
    *,
    pc_number: str,
    row_number: int,
    specifications: dict | None = None,
    notes: str = '',
    created_by: int | None = None,
) -> LabPC:
    clean_number = _validate_pc_number(pc_number)
    row = _validate_row_number(row_number)
    if _pc_number_taken(db, clean_number):
        raise _duplicate_pc_number(clean_number)

    specs = specifications or {}
    pc = LabPC(
        pc_number=clean_number,
        row_number=row,
        status=PCStatus.ACTIVE.value,
        notes=(notes or '').strip(),
        created_by=created_by,
        **{field: specs.get(field) for field in SPEC_FIELDS},
    )
    db.add(pc)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise _duplicate_pc_number(clean_number) from exc
    db.refresh(pc)
    invalidate_availability_cache()
    logger.info('lab_pc_created pc_id=%s pc_number=%s row=%s', pc.id, pc.pc_number, pc.row_number)
    return pc


def list_pcs(db: Session, *, row_number: int | None = None, status: str | None = None) -> list[LabPC]:
    query = db.query(LabPC)
    if row_number is not None:
        query = query.filter(LabPC.row_number == int(row_number))
    if status:
        query = query.filter(LabPC.status == _validate_status(status))
    return query.order_by(LabPC.row_number.asc(), LabPC.pc_number.asc()).all()


def update_pc(
    db: Session,
    pc_id: int,
    *,
    pc_number: str | None = None,
    row_number: int | None = None,
    status: str | None = None,
    specifications: dict | None = None,
    last_maintenance: date | None = None,
    notes: str | None = None,
) -> LabPC:
    pc = get_pc(db, pc_id)

    if pc_number and pc_number.strip() != pc.pc_number:
        clean_number = _validate_pc_number(pc_number)
        if _pc_number_taken(db, clean_number):
            raise _duplicate_pc_number(clean_number)
        pc.pc_number = clean_number
    if row_number is not None:
        pc.row_number = _validate_row_number(row_number)
    if status:
        previous_status = pc.status
        pc.status = _validate_status(status)
        if previous_status != pc.status:
            logger.info('lab_pc_status_changed pc_id=%s from=%s to=%s', pc.id, previous_status, pc.status)
    if specifications:
        # Partial hardware updates merge into the existing attributes.
        for field in SPEC_FIELDS:
            if field in specifications:
                setattr(pc, field, specifications[field])
    if last_maintenance is not None:
        pc.last_maintenance = last_maintenance
    if notes is not None:
        pc.notes = notes.strip()

    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise _duplicate_pc_number(pc_number or '') from exc
    db.refresh(pc)
    invalidate_availability_cache()
    return pc


def _detach_bookings(db: Session, pc_ids: list[int] | None = None) -> int:
    # Bookings outlive their PC but must never follow its id to a new PC.
    query = db.query(LabBooking).filter(LabBooking.pc_id.is_not(None))
    if pc_ids is not None:
        query = query.filter(LabBooking.pc_id.in_(pc_ids))
    return int(query.update({LabBooking.pc_id: None}, synchronize_session=False) or 0)


def delete_pc(db: Session, pc_id: int) -> None:
    pc = get_pc(db, pc_id)
    pc_number = pc.pc_number
    detached = _detach_bookings(db, [pc.id])
    db.delete(pc)
    db.commit()
    invalidate_availability_cache()
    logger.info('lab_pc_deleted pc_id=%s pc_number=%s detached_bookings=%s', pc_id, pc_number, detached)


def get_pcs_by_row(db: Session) -> dict[int, list[dict]]:
    pcs = (
        db.query(LabPC)
        .filter(LabPC.status != PCStatus.INACTIVE.value)
        .order_by(LabPC.row_number.asc(), LabPC.pc_number.asc())
        .all()
    )
    grouped: dict[int, list[dict]] = {}
    for pc in pcs:
        grouped.setdefault(int(pc.row_number), []).append(serialize_pc(pc))
    return grouped


def clear_all_pcs(db: Session, *, confirm: bool = False) -> int:
    if not confirm:
        raise ConfirmationRequiredError('Confirmation required to clear all PCs')
    detached = _detach_bookings(db)
    deleted = db.query(LabPC).delete(synchronize_session=False)
    db.commit()
    invalidate_availability_cache()
    logger.warning('lab_pcs_cleared count=%s detached_bookings=%s', deleted, detached)
    return int(deleted or 0)
