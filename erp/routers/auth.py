# erp/routers/auth.py
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.security import OAuth2PasswordRequestForm
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.orm import Session

from erp.core import config
from erp.core.database import get_db
from erp.core.errors import Forbidden, InvalidRequest, NotFound
from erp.deps import get_current_user, get_tenant_context
from erp.models.company import Company
from erp.models.user import User
from erp.services import auth_codes, mailer
from erp.services.auth import (
    MIN_PASSWORD_LENGTH,
    authenticate,
    hash_password,
    normalize_email,
    token_response,
    user_summary,
)
from erp.services.tenant_context import TenantContext

router = APIRouter(prefix="/api/auth", tags=["auth"])
logger = logging.getLogger(__name__)

FORGOT_PASSWORD_MESSAGE = "Si el correo existe, recibirás un código de recuperación"


class RegisterPayload(BaseModel):
    name: str = Field(..., min_length=2)
    email: EmailStr
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH)


class LoginPayload(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class VerifyEmailPayload(BaseModel):
    user_id: int
    code: str = Field(..., min_length=6, max_length=6)


class ResendVerificationPayload(BaseModel):
    user_id: int


class ForgotPasswordPayload(BaseModel):
    email: EmailStr


class ResetPasswordPayload(BaseModel):
    email: EmailStr
    code: str = Field(..., min_length=1)
    new_password: str


@router.post("/register", status_code=201)
def register(payload: RegisterPayload, db: Session = Depends(get_db)):
    if not config.ALLOW_REGISTRATION:
        raise Forbidden("El registro de nuevos usuarios está deshabilitado")

    email = normalize_email(payload.email)
    if db.query(User).filter(User.email == email).first():
        raise InvalidRequest("El email ya está registrado")

    user = User(
        name=payload.name.strip(),
        email=email,
        password_hash=hash_password(payload.password),
        role="ADMIN",
        email_verified=True,
    )
    db.add(user)
    db.flush()

    # empresa por defecto con el nombre del usuario
    company = Company(name=user.name, user_id=user.id, email=email, currency="USD", active=True)
    db.add(company)
    db.flush()
    user.default_company_id = company.id

    code: Optional[str] = None
    if config.REQUIRE_EMAIL_VERIFICATION:
        code = auth_codes.issue_verification_code(user)
    db.commit()
    db.refresh(user)
    logger.info("user registered user_id=%s company_id=%s", user.id, company.id)

    if code:
        mailer.send_verification_email(user.email, user.name, code)
        return {
            "success": True,
            "requires_verification": True,
            "user_id": user.id,
            "message": "Usuario registrado. Verifica tu email con el código enviado.",
        }
    return {"success": True, "requires_verification": False, **token_response(user)}


@router.post("/verify-email")
def verify_email(payload: VerifyEmailPayload, db: Session = Depends(get_db)):
    user = auth_codes.verify_email(db, payload.user_id, payload.code)
    db.commit()
    db.refresh(user)
    return {"success": True, **token_response(user)}


@router.post("/resend-verification")
def resend_verification(payload: ResendVerificationPayload, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.id == payload.user_id).first()
    if not user:
        raise NotFound("Usuario no encontrado")
    if user.email_verified:
        raise InvalidRequest("El email ya ha sido verificado")

    code = auth_codes.issue_verification_code(user)
    db.commit()
    mailer.send_verification_email(user.email, user.name, code)
    return {"success": True, "message": "Código reenviado"}


@router.post("/login")
def login(payload: LoginPayload, db: Session = Depends(get_db)):
    user = authenticate(db, payload.email, payload.password)
    return token_response(user)


@router.post("/token")
def token(form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)):
    """Login con form-data (``username``/``password``) para el botón Authorize de Swagger."""
    user = authenticate(db, form_data.username, form_data.password)
    return token_response(user)


@router.post("/forgot-password")
def forgot_password(payload: ForgotPasswordPayload, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == normalize_email(payload.email)).first()
    # misma respuesta exista o no el usuario
    if not user:
        return {"message": FORGOT_PASSWORD_MESSAGE}

    code = auth_codes.issue_reset_code(user)
    db.commit()
    mailer.send_recovery_email(user.email, user.name, code)
    return {"message": FORGOT_PASSWORD_MESSAGE}


@router.post("/reset-password")
def reset_password(payload: ResetPasswordPayload, db: Session = Depends(get_db)):
    auth_codes.reset_password(db, payload.email, payload.code, payload.new_password)
    db.commit()
    return {"message": "Contraseña restablecida exitosamente"}


@router.get("/me")
def me(
    user: User = Depends(get_current_user),
    ctx: TenantContext = Depends(get_tenant_context),
):
    return {
        **user_summary(user),
        "hourly_rate": user.hourly_rate,
        "owner_id": ctx.owner_id,
        "company_id": ctx.company_id,
    }
