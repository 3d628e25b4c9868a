import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.core.lab_errors import LabError
from app.core.router_guard import lab_http_error, require_lab_access
from app.db import get_db
from app.route_logging import EndpointNameRoute
from app.schemas import AttendanceBulkRequest, AttendanceMarkRequest
from app.services.attendance_service import mark_attendance, mark_bulk_attendance


router = APIRouter(prefix='/api/attendance', tags=['Attendance'], route_class=EndpointNameRoute)
logger = logging.getLogger(__name__)


@router.post('/')
def mark(payload: AttendanceMarkRequest, request: Request, db: Session = Depends(get_db)):
    user = require_lab_access(request)
    try:
        result = mark_attendance(
            db,
            student_id=payload.student_id,
            batch_id=payload.batch_id,
            attendance_date=payload.attendance_date,
            status=payload.status,
            remarks=payload.remarks,
            marked_by=user['user_id'],
        )
    except LabError as exc:
        raise lab_http_error(exc) from exc
    return {'message': 'Attendance marked successfully', 'data': result}


@router.post('/bulk')
def mark_bulk(payload: AttendanceBulkRequest, request: Request, db: Session = Depends(get_db)):
    user = require_lab_access(request)
    try:
        result = mark_bulk_attendance(
            db,
            batch_id=payload.batch_id,
            attendance_date=payload.attendance_date,
            records=[item.model_dump() for item in payload.records],
            marked_by=user['user_id'],
        )
    except LabError as exc:
        raise lab_http_error(exc) from exc
    if result['lab_bookings_updated']:
        logger.info(
            'attendance_bulk_lab_sync batch_id=%s updated=%s',
            payload.batch_id,
            result['lab_bookings_updated'],
        )
    return {'message': f"Marked attendance for {result['marked_count']} student(s)", 'data': result}
