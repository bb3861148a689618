from __future__ import annotations

import logging
import secrets
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.orm import Session

from erp.core.database import get_db
from erp.core.errors import InvalidRequest
from erp.deps import get_tenant_context, require_admin
from erp.models.company import Company
from erp.services.tenant_context import TenantContext
from erp.services.tenant_resolver import require_company

router = APIRouter(prefix="/api/companies", tags=["companies"])
logger = logging.getLogger(__name__)

API_KEY_PREFIX = "fc_"


class CompanyCreate(BaseModel):
    name: str = Field(..., min_length=1)
    email: Optional[EmailStr] = None
    currency: str = Field(default="USD", min_length=3, max_length=8)


class NumberingUpdate(BaseModel):
    payment_entrada_prefix: Optional[str] = Field(default=None, min_length=1, max_length=16)
    payment_entrada_next_number: Optional[int] = Field(default=None, ge=1)
    payment_salida_prefix: Optional[str] = Field(default=None, min_length=1, max_length=16)
    payment_salida_next_number: Optional[int] = Field(default=None, ge=1)


def _company_to_dict(company: Company) -> dict:
    return {
        "id": company.id,
        "name": company.name,
        "email": company.email,
        "currency": company.currency,
        "active": company.active,
        "payment_entrada_prefix": company.payment_entrada_prefix,
        "payment_entrada_next_number": company.payment_entrada_next_number,
        "payment_salida_prefix": company.payment_salida_prefix,
        "payment_salida_next_number": company.payment_salida_next_number,
        "api_enabled": company.api_enabled,
        "created_at": company.created_at,
    }


@router.get("")
def list_companies(
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    companies = db.query(Company).filter(Company.user_id == ctx.owner_id).order_by(Company.id.asc()).all()
    return [_company_to_dict(company) for company in companies]


@router.post("", status_code=201)
def create_company(
    payload: CompanyCreate,
    ctx: TenantContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    company = Company(
        user_id=ctx.owner_id,
        name=payload.name.strip(),
        email=payload.email,
        currency=payload.currency.strip().upper(),
        active=ctx.company_id is None,
    )
    db.add(company)
    db.commit()
    db.refresh(company)
    logger.info("company created company_id=%s owner_id=%s", company.id, ctx.owner_id)
    return _company_to_dict(company)


@router.post("/{company_id}/activate")
def activate_company(
    company_id: int,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    company = require_company(db, ctx, company_id)
    db.query(Company).filter(Company.user_id == ctx.owner_id, Company.id != company.id).update(
        {Company.active: False}, synchronize_session=False
    )
    company.active = True
    db.commit()
    db.refresh(company)
    return _company_to_dict(company)


@router.post("/{company_id}/api-key")
def generate_api_key(
    company_id: int,
    ctx: TenantContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    company = require_company(db, ctx, company_id)
    company.api_key = f"{API_KEY_PREFIX}{secrets.token_hex(32)}"
    company.api_enabled = True
    db.commit()
    logger.info("api key issued company_id=%s", company.id)
    return {"api_key": company.api_key, "api_enabled": company.api_enabled}


@router.put("/{company_id}/numbering")
def update_numbering(
    company_id: int,
    payload: NumberingUpdate,
    ctx: TenantContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    company = require_company(db, ctx, company_id)
    changes = payload.model_dump(exclude_unset=True)

    for field in ("payment_entrada_next_number", "payment_salida_next_number"):
        value = changes.get(field)
        if value is not None and value < getattr(company, field):
            raise InvalidRequest("El contador solo puede avanzar")

    for field, value in changes.items():
        if value is None:
            continue
        setattr(company, field, value.strip().upper() if isinstance(value, str) else value)
    db.commit()
    db.refresh(company)
    return _company_to_dict(company)
