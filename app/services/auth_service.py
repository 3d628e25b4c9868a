from __future__ import annotations

import base64
import hashlib
import hmac
import json
import logging
import threading

from sqlalchemy.orm import Session

from app.config import settings
from app.core.time_provider import TimeProvider, default_time_provider
from app.models import AuthUser, Role


_REVOKED_TOKENS: set[str] = set()
_TOKENS_LOCK = threading.RLock()
logger = logging.getLogger(__name__)

LAB_ROLES = {Role.ADMIN.value, Role.TEACHER.value}


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode('ascii').rstrip('=')


def _b64url_decode(value: str) -> bytes:
    padding = '=' * (-len(value) % 4)
    return base64.urlsafe_b64decode((value + padding).encode('ascii'))


def _sign(signing_input: bytes) -> bytes:
    return hmac.new(settings.auth_secret.encode('utf-8'), signing_input, hashlib.sha256).digest()


def _encode_jwt(payload: dict) -> str:
    header = {'alg': 'HS256', 'typ': 'JWT'}
    header_part = _b64url_encode(json.dumps(header, separators=(',', ':')).encode('utf-8'))
    payload_part = _b64url_encode(json.dumps(payload, separators=(',', ':')).encode('utf-8'))
    signing_input = f'{header_part}.{payload_part}'.encode('ascii')
    return f'{header_part}.{payload_part}.{_b64url_encode(_sign(signing_input))}'


def _decode_jwt(token: str) -> dict | None:
    try:
        header_part, payload_part, signature_part = token.split('.')
        provided_signature = _b64url_decode(signature_part)
    except ValueError:
        return None

    expected_signature = _sign(f'{header_part}.{payload_part}'.encode('ascii'))
    if not hmac.compare_digest(provided_signature, expected_signature):
        return None

    try:
        payload = json.loads(_b64url_decode(payload_part).decode('utf-8'))
    except (ValueError, UnicodeDecodeError):
        return None
    if not isinstance(payload, dict):
        return None
    return payload


def create_session_token(
    db: Session,
    user_id: int,
    *,
    time_provider: TimeProvider = default_time_provider,
) -> dict:
    user = db.query(AuthUser).filter(AuthUser.id == int(user_id)).first()
    if not user or not user.active:
        raise ValueError('User not found or inactive')
    token = _encode_jwt(
        {
            'sub': user.id,
            'role': user.role,
            'name': user.name,
            'iat': int(time_provider.now().timestamp()),
        }
    )
    with _TOKENS_LOCK:
        _REVOKED_TOKENS.discard(token)
    logger.info('auth_session_issued user_id=%s role=%s', user.id, user.role)
    return {'token': token, 'user_id': user.id, 'role': user.role, 'name': user.name}


def validate_session_token(token: str | None) -> dict | None:
    if not token:
        return None
    with _TOKENS_LOCK:
        if token in _REVOKED_TOKENS:
            return None

    payload = _decode_jwt(token)
    if not payload:
        return None
    role = str(payload.get('role') or '').strip().lower()
    user_id = payload.get('sub')
    if not role or user_id is None:
        return None
    return {'user_id': user_id, 'role': role, 'name': str(payload.get('name') or '')}


def clear_session_token(token: str | None) -> None:
    if not token:
        return
    with _TOKENS_LOCK:
        _REVOKED_TOKENS.add(token)
