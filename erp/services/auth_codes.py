from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from erp.core.config import RESET_CODE_TTL_MINUTES, VERIFICATION_CODE_TTL_MINUTES
from erp.core.errors import InvalidRequest, NotFound
from erp.models.user import User
from erp.services.auth import MIN_PASSWORD_LENGTH, hash_password, normalize_email

logger = logging.getLogger(__name__)


def generate_code() -> str:
    return str(100000 + secrets.randbelow(900000))


def _store_code(user: User, ttl_minutes: int, now: Optional[datetime]) -> str:
    code = generate_code()
    user.verification_code = code
    user.verification_code_expiry = (now or datetime.utcnow()) + timedelta(minutes=ttl_minutes)
    return code


def _clear_code(user: User) -> None:
    user.verification_code = None
    user.verification_code_expiry = None


def issue_verification_code(user: User, now: Optional[datetime] = None) -> str:
    user.email_verified = False
    return _store_code(user, VERIFICATION_CODE_TTL_MINUTES, now)


def issue_reset_code(user: User, now: Optional[datetime] = None) -> str:
    return _store_code(user, RESET_CODE_TTL_MINUTES, now)


def verify_email(db: Session, user_id: int, code: str, now: Optional[datetime] = None) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFound("Usuario no encontrado")
    if user.email_verified:
        raise InvalidRequest("El email ya ha sido verificado")
    if not user.verification_code or user.verification_code != code:
        raise InvalidRequest("Código de verificación inválido")
    if not user.verification_code_expiry or user.verification_code_expiry < (now or datetime.utcnow()):
        raise InvalidRequest("El código de verificación ha expirado")

    user.email_verified = True
    _clear_code(user)
    db.flush()
    logger.info("email verified user_id=%s", user.id)
    return user


def reset_password(
    db: Session,
    email: str,
    code: str,
    new_password: str,
    now: Optional[datetime] = None,
) -> User:
    if len(new_password or "") < MIN_PASSWORD_LENGTH:
        raise InvalidRequest("La contraseña debe tener al menos 6 caracteres")

    user = (
        db.query(User)
        .filter(
            User.email == normalize_email(email),
            User.verification_code == code,
            User.verification_code_expiry >= (now or datetime.utcnow()),
        )
        .first()
    )
    if not user:
        raise InvalidRequest("Código inválido o expirado")

    user.password_hash = hash_password(new_password)
    _clear_code(user)
    db.flush()
    logger.info("password reset user_id=%s", user.id)
    return user
