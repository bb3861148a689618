# erp/deps.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import Depends, Header, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from erp.core.database import get_db
from erp.core.errors import Forbidden, Unauthorized
from erp.core.request_context import set_request_context
from erp.models.company import Company
from erp.models.user import User
from erp.services.auth import decode_access_token
from erp.services.gateway import authenticate_api_key
from erp.services.tenant_context import TenantContext
from erp.services.tenant_resolver import build_tenant_context

# Swagger "Authorize" usa el login con form-data
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token")

logger = logging.getLogger(__name__)


def _extract_user_id(payload: Dict[str, Any]) -> Optional[int]:
    """Lee el id de usuario del claim ``sub`` (o ``user_id`` por compatibilidad)."""
    raw = payload.get("sub", payload.get("user_id"))
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str) and raw.strip().isdigit():
        return int(raw.strip())
    return None


def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> User:
    try:
        payload = decode_access_token(token)
    except ValueError as exc:
        raise Unauthorized("Token inválido o expirado") from exc

    user_id = _extract_user_id(payload)
    if user_id is None:
        raise Unauthorized("Token inválido (sin user_id)")

    user = db.query(User).filter(User.id == user_id).first()
    if not user or not user.active:
        raise Unauthorized("Usuario no encontrado o inactivo")
    return user


def get_tenant_context(
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> TenantContext:
    ctx = build_tenant_context(db, user)
    request.state.tenant_context = ctx
    set_request_context(company_id=ctx.company_id, user_id=ctx.user_id)
    return ctx


def require_admin(
    request: Request,
    user: User = Depends(get_current_user),
    ctx: TenantContext = Depends(get_tenant_context),
) -> TenantContext:
    if str(user.role or "").upper() != "ADMIN" and not ctx.is_owner:
        logger.warning(
            "Access denied (role_denied): user_id=%s role=%s endpoint=%s %s",
            user.id,
            user.role,
            request.method,
            request.url.path,
        )
        raise Forbidden("Permiso insuficiente")
    return ctx


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, value = authorization.partition(" ")
    if scheme.lower() != "bearer":
        return None
    return value.strip() or None


def get_bearer_api_company(
    request: Request,
    authorization: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
) -> Company:
    """API key de empresa en ``Authorization: Bearer <key>`` (API genérica)."""
    company = authenticate_api_key(db, _bearer_token(authorization))
    request.state.tenant_context = TenantContext(user_id=company.user_id, owner_id=company.user_id, company_id=company.id)
    set_request_context(company_id=company.id)
    return company


def get_header_api_company(
    request: Request,
    x_api_key: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
) -> Company:
    """API key de empresa en ``X-API-Key`` (listado público de facturas)."""
    if not x_api_key:
        raise Unauthorized("API Key requerida. Incluye el header X-API-Key en tu solicitud.")
    company = authenticate_api_key(db, x_api_key)
    request.state.tenant_context = TenantContext(user_id=company.user_id, owner_id=company.user_id, company_id=company.id)
    set_request_context(company_id=company.id)
    return company


def get_now() -> datetime:
    """Reloj de la petición; los tests lo reemplazan con dependency_overrides."""
    return datetime.now()
