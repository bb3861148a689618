from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from erp.core.database import get_db
from erp.deps import get_tenant_context
from erp.services import payments as payment_service
from erp.services.tenant_context import TenantContext

router = APIRouter(prefix="/api/payments", tags=["payments"])


class PaymentCreate(BaseModel):
    company_id: Optional[int] = None
    type: str
    amount: float = Field(..., gt=0)
    date: datetime
    estado: Optional[str] = None
    contact_id: Optional[int] = None
    project_id: Optional[int] = None
    journal_id: Optional[int] = None
    budget_item_id: Optional[int] = None
    property_id: Optional[int] = None
    description: Optional[str] = None
    concepto: Optional[str] = None


class PaymentUpdate(BaseModel):
    type: Optional[str] = None
    amount: Optional[float] = Field(default=None, gt=0)
    date: Optional[datetime] = None
    estado: Optional[str] = None
    contact_id: Optional[int] = None
    project_id: Optional[int] = None
    journal_id: Optional[int] = None
    budget_item_id: Optional[int] = None
    property_id: Optional[int] = None
    description: Optional[str] = None
    concepto: Optional[str] = None


@router.get("")
def list_payments(
    company_id: Optional[int] = Query(default=None),
    type: Optional[str] = Query(default=None),
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    payments = payment_service.list_payments(
        db,
        ctx,
        company_id=company_id or ctx.require_company_id(),
        payment_type=type,
    )
    return [payment_service.payment_to_dict(payment) for payment in payments]


@router.get("/{payment_id}")
def get_payment(
    payment_id: int,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    return payment_service.payment_to_dict(payment_service.get_payment(db, ctx, payment_id))


@router.post("", status_code=201)
def create_payment(
    payload: PaymentCreate,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    data = payload.model_dump(exclude={"company_id", "type", "amount", "date", "estado"})
    try:
        payment = payment_service.create_payment(
            db,
            ctx,
            company_id=payload.company_id or ctx.require_company_id(),
            payment_type=payload.type,
            amount=payload.amount,
            date=payload.date,
            estado=payload.estado,
            **data,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(payment)
    return payment_service.payment_to_dict(payment)


@router.put("/{payment_id}")
def update_payment(
    payment_id: int,
    payload: PaymentUpdate,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    payment = payment_service.update_payment(db, ctx, payment_id, payload.model_dump(exclude_unset=True))
    db.commit()
    db.refresh(payment)
    return payment_service.payment_to_dict(payment)


@router.delete("/{payment_id}")
def delete_payment(
    payment_id: int,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    payment_service.delete_payment(db, ctx, payment_id)
    db.commit()
    return {"success": True}
