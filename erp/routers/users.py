from __future__ import annotations

import logging
import secrets
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.orm import Session

from erp.core import config
from erp.core.database import get_db
from erp.core.errors import InvalidRequest, NotFound
from erp.deps import get_tenant_context, require_admin
from erp.models.user import User
from erp.services.auth import hash_password, normalize_email
from erp.services.tenant_context import TenantContext
from erp.services.tenant_resolver import resolve_shared_ids

router = APIRouter(prefix="/api/users", tags=["users"])
logger = logging.getLogger(__name__)

USER_ROLES = ("ADMIN", "USER")


class UserCreate(BaseModel):
    name: str = Field(..., min_length=2)
    email: EmailStr
    password: str = Field(..., min_length=6)
    role: str = "USER"
    hourly_rate: Optional[float] = Field(default=None, ge=0)


class UserUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=2)
    role: Optional[str] = None
    hourly_rate: Optional[float] = Field(default=None, ge=0)
    active: Optional[bool] = None


def _normalize_role(role: str) -> str:
    normalized = (role or "").strip().upper()
    if normalized not in USER_ROLES:
        raise InvalidRequest("Rol inválido")
    return normalized


def _user_to_dict(user: User) -> dict:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "role": user.role,
        "active": user.active,
        "hourly_rate": user.hourly_rate,
        "created_by_id": user.created_by_id,
        "default_company_id": user.default_company_id,
        "has_attendance_token": bool(user.attendance_token),
        "created_at": user.created_at,
    }


def _tenant_user(db: Session, ctx: TenantContext, user_id: int) -> User:
    if user_id not in resolve_shared_ids(db, ctx.user_id):
        raise NotFound("Usuario no encontrado")
    return db.query(User).filter(User.id == user_id).one()


def _token_response(token: str) -> dict:
    return {"token": token, "url": f"{config.APP_URL}/attendance/{token}"}


@router.get("")
def list_users(
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    shared_ids = resolve_shared_ids(db, ctx.user_id)
    users = db.query(User).filter(User.id.in_(shared_ids)).order_by(User.id.asc()).all()
    return [_user_to_dict(user) for user in users]


@router.post("", status_code=201)
def create_user(
    payload: UserCreate,
    ctx: TenantContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    email = normalize_email(payload.email)
    if db.query(User).filter(User.email == email).first():
        raise InvalidRequest("El email ya está registrado")

    # los miembros nunca son dueños: se cuelgan del dueño efectivo
    user = User(
        name=payload.name.strip(),
        email=email,
        password_hash=hash_password(payload.password),
        role=_normalize_role(payload.role),
        hourly_rate=payload.hourly_rate,
        created_by_id=ctx.owner_id,
        default_company_id=ctx.company_id,
        email_verified=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("member provisioned user_id=%s owner_id=%s", user.id, ctx.owner_id)
    return _user_to_dict(user)


@router.put("/{user_id}")
def update_user(
    user_id: int,
    payload: UserUpdate,
    ctx: TenantContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    user = _tenant_user(db, ctx, user_id)
    changes = payload.model_dump(exclude_unset=True)
    if "role" in changes and changes["role"] is not None:
        changes["role"] = _normalize_role(changes["role"])
    if user.id == ctx.owner_id and changes.get("active") is False:
        raise InvalidRequest("No se puede desactivar al dueño de la cuenta")

    for field, value in changes.items():
        if value is not None:
            setattr(user, field, value)
    db.commit()
    db.refresh(user)
    return _user_to_dict(user)


@router.post("/{user_id}/attendance-token")
def generate_attendance_token(
    user_id: int,
    ctx: TenantContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    user = _tenant_user(db, ctx, user_id)
    user.attendance_token = secrets.token_hex(32)
    db.commit()
    logger.info("attendance token issued user_id=%s", user.id)
    return _token_response(user.attendance_token)


@router.get("/{user_id}/attendance-token")
def get_attendance_token(
    user_id: int,
    ctx: TenantContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    user = _tenant_user(db, ctx, user_id)
    if not user.attendance_token:
        raise NotFound("Token no generado")
    return _token_response(user.attendance_token)
