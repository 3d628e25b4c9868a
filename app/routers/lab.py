from __future__ import annotations

import logging
from datetime import date

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from app.cache import normalize_bool
from app.core.lab_errors import LabError
from app.core.router_guard import assert_booking_owner_or_staff, lab_http_error, require_auth_user, require_lab_access
from app.db import get_db
from app.route_logging import EndpointNameRoute
from app.schemas import (
    ApplyPreviousRequest,
    BookingCreateRequest,
    BookingUpdateRequest,
    PCCreateRequest,
    PCUpdateRequest,
)
from app.services.lab_availability_service import get_lab_availability
from app.services.lab_booking_service import (
    create_booking,
    delete_booking,
    get_booking,
    list_bookings,
    serialize_booking,
    update_booking,
)
from app.services.lab_maintenance_service import clear_booked_slots
from app.services.lab_stats_service import get_lab_stats
from app.services.pc_service import (
    clear_all_pcs,
    create_pc,
    delete_pc,
    get_pc,
    get_pcs_by_row,
    list_pcs,
    serialize_pc,
    update_pc,
)
from app.services.schedule_replication_service import apply_previous_bookings, get_previous_bookings


router = APIRouter(prefix='/api/lab', tags=['Lab'], route_class=EndpointNameRoute)
logger = logging.getLogger(__name__)


@router.post('/pcs', status_code=201)
def create_pc_endpoint(payload: PCCreateRequest, request: Request, db: Session = Depends(get_db)):
    user = require_lab_access(request)
    try:
        pc = create_pc(
            db,
            pc_number=payload.pc_number,
            row_number=payload.row_number,
            specifications=payload.specifications.model_dump(),
            notes=payload.notes,
            created_by=user['user_id'],
        )
    except LabError as exc:
        raise lab_http_error(exc) from exc
    return {'message': 'PC created successfully', 'data': serialize_pc(pc)}


@router.get('/pcs')
def list_pcs_endpoint(
    request: Request,
    row: int | None = Query(default=None),
    status: str | None = Query(default=None),
    db: Session = Depends(get_db),
):
    require_lab_access(request)
    try:
        rows = list_pcs(db, row_number=row, status=status)
    except LabError as exc:
        raise lab_http_error(exc) from exc
    return {'data': [serialize_pc(pc) for pc in rows], 'count': len(rows)}


@router.get('/pcs/by-row')
def pcs_by_row_endpoint(request: Request, db: Session = Depends(get_db)):
    require_lab_access(request)
    return {'data': get_pcs_by_row(db)}


@router.delete('/pcs/clear-all')
def clear_all_pcs_endpoint(request: Request, confirm: str | None = Query(default=None), db: Session = Depends(get_db)):
    user = require_lab_access(request)
    try:
        deleted = clear_all_pcs(db, confirm=normalize_bool(confirm))
    except LabError as exc:
        raise lab_http_error(exc) from exc
    logger.warning('lab_pcs_clear_all_requested user_id=%s deleted=%s', user['user_id'], deleted)
    return {'message': f'Cleared {deleted} PCs', 'deleted_count': deleted}


@router.get('/pcs/{pc_id}')
def get_pc_endpoint(pc_id: int, request: Request, db: Session = Depends(get_db)):
    require_lab_access(request)
    try:
        pc = get_pc(db, pc_id)
    except LabError as exc:
        raise lab_http_error(exc) from exc
    return {'data': serialize_pc(pc)}


@router.put('/pcs/{pc_id}')
def update_pc_endpoint(pc_id: int, payload: PCUpdateRequest, request: Request, db: Session = Depends(get_db)):
    require_lab_access(request)
    try:
        pc = update_pc(
            db,
            pc_id,
            pc_number=payload.pc_number,
            row_number=payload.row_number,
            status=payload.status,
            specifications=payload.specifications.model_dump(exclude_unset=True) if payload.specifications else None,
            last_maintenance=payload.last_maintenance,
            notes=payload.notes,
        )
    except LabError as exc:
        raise lab_http_error(exc) from exc
    return {'message': 'PC updated successfully', 'data': serialize_pc(pc)}


@router.delete('/pcs/{pc_id}')
def delete_pc_endpoint(pc_id: int, request: Request, db: Session = Depends(get_db)):
    require_lab_access(request)
    try:
        delete_pc(db, pc_id)
    except LabError as exc:
        raise lab_http_error(exc) from exc
    return {'message': 'PC deleted successfully'}


@router.post('/bookings', status_code=201)
def create_booking_endpoint(payload: BookingCreateRequest, request: Request, db: Session = Depends(get_db)):
    user = require_lab_access(request)
    try:
        booking = create_booking(db, **payload.model_dump(), booked_by=user['user_id'])
    except LabError as exc:
        raise lab_http_error(exc) from exc
    return {'message': 'Lab booking created successfully', 'data': serialize_booking(booking)}


@router.get('/bookings')
def list_bookings_endpoint(
    request: Request,
    booking_date: date | None = Query(default=None, alias='date'),
    time_slot: str | None = Query(default=None),
    pc_id: int | None = Query(default=None),
    status: str | None = Query(default=None),
    db: Session = Depends(get_db),
):
    require_lab_access(request)
    try:
        rows = list_bookings(db, booking_date=booking_date, time_slot=time_slot, pc_id=pc_id, status=status)
    except LabError as exc:
        raise lab_http_error(exc) from exc
    return {'data': [serialize_booking(row) for row in rows], 'count': len(rows)}


@router.get('/bookings/previous')
def previous_bookings_endpoint(
    request: Request,
    target_date: date | None = Query(default=None, alias='date'),
    db: Session = Depends(get_db),
):
    require_lab_access(request)
    return {'data': get_previous_bookings(db, target_date)}


@router.post('/bookings/apply-previous')
def apply_previous_endpoint(payload: ApplyPreviousRequest, request: Request, db: Session = Depends(get_db)):
    user = require_lab_access(request)
    try:
        result = apply_previous_bookings(
            db,
            target_date=payload.target_date,
            source_date=payload.source_date,
            booked_by=user['user_id'],
        )
    except LabError as exc:
        raise lab_http_error(exc) from exc
    return {'message': result['message'], 'data': result}


@router.delete('/bookings/clear-bulk')
def clear_bulk_endpoint(
    request: Request,
    booking_date: date | None = Query(default=None, alias='date'),
    time_slot: str | None = Query(default=None),
    pc_ids: list[int] | None = Query(default=None),
    confirm: str | None = Query(default=None),
    db: Session = Depends(get_db),
):
    user = require_lab_access(request)
    try:
        result = clear_booked_slots(
            db,
            booking_date=booking_date,
            time_slot=time_slot,
            pc_ids=pc_ids,
            confirm=normalize_bool(confirm),
        )
    except LabError as exc:
        raise lab_http_error(exc) from exc
    logger.warning('lab_bookings_clear_bulk_requested user_id=%s cleared=%s', user['user_id'], result['cleared_count'])
    return {'message': f"Successfully cleared {result['cleared_count']} booking(s)", 'data': result}


@router.get('/bookings/{booking_id}')
def get_booking_endpoint(booking_id: int, request: Request, db: Session = Depends(get_db)):
    require_lab_access(request)
    try:
        booking = get_booking(db, booking_id)
    except LabError as exc:
        raise lab_http_error(exc) from exc
    return {'data': serialize_booking(booking)}


@router.put('/bookings/{booking_id}')
def update_booking_endpoint(
    booking_id: int,
    payload: BookingUpdateRequest,
    request: Request,
    db: Session = Depends(get_db),
):
    user = require_auth_user(request)
    try:
        existing = get_booking(db, booking_id)
        assert_booking_owner_or_staff(user, existing.booked_by)
        booking = update_booking(db, booking_id, **payload.model_dump(exclude_unset=True))
    except LabError as exc:
        raise lab_http_error(exc) from exc
    return {'message': 'Lab booking updated successfully', 'data': serialize_booking(booking)}


@router.delete('/bookings/{booking_id}')
def delete_booking_endpoint(booking_id: int, request: Request, db: Session = Depends(get_db)):
    user = require_auth_user(request)
    try:
        existing = get_booking(db, booking_id)
        assert_booking_owner_or_staff(user, existing.booked_by)
        snapshot = delete_booking(db, booking_id)
    except LabError as exc:
        raise lab_http_error(exc) from exc
    return {'message': 'Lab booking deleted successfully', 'data': snapshot}


@router.get('/availability/{target_date}')
def availability_endpoint(
    target_date: date,
    request: Request,
    bypass_cache: str | None = Query(default=None),
    db: Session = Depends(get_db),
):
    require_lab_access(request)
    return {'data': get_lab_availability(db, target_date, bypass_cache=normalize_bool(bypass_cache))}


@router.get('/stats/overview')
def stats_endpoint(request: Request, db: Session = Depends(get_db)):
    require_lab_access(request)
    return {'data': get_lab_stats(db)}
