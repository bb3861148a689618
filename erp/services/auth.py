from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import bcrypt
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from erp.core import config
from erp.core.errors import Forbidden, Unauthorized
from erp.models.user import User

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
# bcrypt ignora lo que pasa de 72 bytes
_BCRYPT_MAX_BYTES = 72


def _password_bytes(password: str) -> bytes:
    return (password or "").encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password(password: str) -> str:
    return bcrypt.hashpw(_password_bytes(password), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain_password: str, password_hash: Optional[str]) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(_password_bytes(plain_password), password_hash.encode("utf-8"))
    except ValueError:
        return False


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def create_access_token(
    user_id: int | str,
    extra: Optional[Dict[str, Any]] = None,
    expires_minutes: Optional[int] = None,
) -> str:
    now = datetime.now(timezone.utc)
    payload: Dict[str, Any] = {
        # python-jose exige "sub" como string
        "sub": str(user_id),
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=expires_minutes or config.JWT_EXPIRE_MINUTES)).timestamp()),
    }
    if extra:
        payload.update(extra)
    return jwt.encode(payload, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)


def decode_access_token(token: str) -> Dict[str, Any]:
    """Devuelve el payload del JWT o levanta ValueError si es inválido."""
    try:
        return jwt.decode(token, config.JWT_SECRET_KEY, algorithms=[config.JWT_ALGORITHM])
    except JWTError as e:
        raise ValueError("Token inválido o expirado") from e


def user_summary(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "role": user.role,
        "default_company_id": user.default_company_id,
    }


def token_response(user: User) -> dict:
    token = create_access_token(user.id, extra={"email": user.email, "role": user.role})
    return {"access_token": token, "token_type": "bearer", "user": user_summary(user)}


def authenticate(db: Session, email: str, password: str) -> User:
    """Credenciales de login; con verificación activa exige el email confirmado."""
    user = db.query(User).filter(User.email == normalize_email(email)).first()
    if not user or not verify_password(password, user.password_hash):
        logger.warning("login rejected email=%s", normalize_email(email))
        raise Unauthorized("Credenciales inválidas")
    if not user.active:
        raise Unauthorized("Usuario desactivado")
    if config.REQUIRE_EMAIL_VERIFICATION and not user.email_verified:
        raise Forbidden("Debes verificar tu email antes de iniciar sesión")
    return user
