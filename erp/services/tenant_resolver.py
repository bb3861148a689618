from __future__ import annotations

import logging
from typing import List

from sqlalchemy import or_
from sqlalchemy.orm import Session

from erp.core.errors import NotFound
from erp.models.company import Company
from erp.models.user import User
from erp.services.tenant_context import TenantContext

logger = logging.getLogger(__name__)


def _get_user(db: Session, principal_id: int) -> User:
    user = db.query(User).filter(User.id == principal_id).first()
    if not user:
        raise NotFound("Usuario no encontrado")
    return user


def owner_id_for(user: User) -> int:
    return int(user.created_by_id) if user.created_by_id else int(user.id)


def resolve_owner(db: Session, principal_id: int) -> int:
    """Devuelve el id del dueño cuyos datos ve y modifica ``principal_id``.

    Un usuario creado por otro (``created_by_id``) comparte los datos de su
    creador; un dueño raíz se resuelve a sí mismo.
    """
    return owner_id_for(_get_user(db, principal_id))


def resolve_shared_ids(db: Session, principal_id: int) -> List[int]:
    """Ids de todos los usuarios del tenant: el dueño más los que él creó."""
    owner_id = resolve_owner(db, principal_id)
    rows = (
        db.query(User.id)
        .filter(or_(User.id == owner_id, User.created_by_id == owner_id))
        .all()
    )
    shared_ids = {int(row[0]) for row in rows}
    shared_ids.add(owner_id)
    return sorted(shared_ids)


def _select_company_id(db: Session, user: User, owner_id: int) -> int | None:
    active_company = (
        db.query(Company)
        .filter(Company.user_id == owner_id, Company.active.is_(True))
        .order_by(Company.id.asc())
        .first()
    )
    if active_company:
        return int(active_company.id)

    if user.default_company_id:
        default_company = (
            db.query(Company)
            .filter(Company.id == user.default_company_id, Company.user_id == owner_id)
            .first()
        )
        if default_company:
            return int(default_company.id)

    first_company = (
        db.query(Company)
        .filter(Company.user_id == owner_id)
        .order_by(Company.id.asc())
        .first()
    )
    return int(first_company.id) if first_company else None


def build_tenant_context(db: Session, user: User) -> TenantContext:
    owner_id = owner_id_for(user)
    company_id = _select_company_id(db, user, owner_id)
    logger.debug(
        "tenant context resolved user_id=%s owner_id=%s company_id=%s",
        user.id,
        owner_id,
        company_id,
    )
    return TenantContext(user_id=int(user.id), owner_id=owner_id, company_id=company_id)


def require_company(db: Session, ctx: TenantContext, company_id: int) -> Company:
    company = (
        db.query(Company)
        .filter(Company.id == company_id, Company.user_id == ctx.owner_id)
        .first()
    )
    if not company:
        raise NotFound("Empresa no encontrada")
    return company
