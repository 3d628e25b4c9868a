from __future__ import annotations

from typing import Iterable

from fastapi import HTTPException, Request

from app.core.lab_errors import (
    BookingConflictError,
    ConfirmationRequiredError,
    LabError,
    LabValidationError,
    NotFoundError,
    ResourceInactiveError,
)
from app.services.auth_service import LAB_ROLES, validate_session_token


def _resolve_token(request: Request) -> str | None:
    token = request.cookies.get('auth_session')
    if token:
        return token
    authorization = request.headers.get('authorization', '')
    if authorization.lower().startswith('bearer '):
        return authorization[7:].strip()
    return None


def require_auth_user(request: Request) -> dict:
    token = _resolve_token(request)
    session = validate_session_token(token)
    if not session:
        raise HTTPException(status_code=401, detail='Unauthorized')
    user_id = int(session.get('user_id') or 0)
    if user_id <= 0:
        raise HTTPException(status_code=401, detail='Unauthorized')
    return {
        'user_id': user_id,
        'role': str(session.get('role') or '').strip().lower(),
        'name': str(session.get('name') or ''),
    }


def require_role(user: dict, allowed_roles: set[str] | Iterable[str]) -> None:
    normalized = {str(role).strip().lower() for role in allowed_roles}
    if str(user.get('role') or '').strip().lower() not in normalized:
        raise HTTPException(status_code=403, detail='Forbidden')


def require_lab_access(request: Request) -> dict:
    user = require_auth_user(request)
    require_role(user, LAB_ROLES)
    return user


def assert_booking_owner_or_staff(user: dict, booked_by: int | None) -> None:
    if str(user.get('role') or '').lower() in LAB_ROLES:
        return
    if booked_by is not None and int(booked_by) == int(user.get('user_id') or 0):
        return
    raise HTTPException(status_code=403, detail='Not authorized to modify this booking')


_LAB_ERROR_STATUS = (
    (NotFoundError, 404),
    (ResourceInactiveError, 409),
    (BookingConflictError, 409),
    (ConfirmationRequiredError, 400),
    (LabValidationError, 422),
)


def lab_http_error(exc: LabError) -> HTTPException:
    for error_type, status_code in _LAB_ERROR_STATUS:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=exc.to_dict())
    return HTTPException(status_code=400, detail=exc.to_dict())
