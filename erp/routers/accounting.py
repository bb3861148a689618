from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from erp.core.database import get_db
from erp.deps import get_tenant_context, require_admin
from erp.models.accounting import BudgetItem, Journal
from erp.services import accounting as accounting_service
from erp.services.tenant_context import TenantContext

router = APIRouter(prefix="/api/accounting", tags=["accounting"])


class JournalCreate(BaseModel):
    company_id: Optional[int] = None
    code: str = Field(..., min_length=1, max_length=16)
    name: str = Field(..., min_length=1)
    type: Optional[str] = None


class JournalUpdate(BaseModel):
    code: Optional[str] = Field(default=None, min_length=1, max_length=16)
    name: Optional[str] = Field(default=None, min_length=1)
    type: Optional[str] = None
    active: Optional[bool] = None


class BudgetItemCreate(BaseModel):
    company_id: Optional[int] = None
    code: str = Field(..., min_length=1, max_length=32)
    name: str = Field(..., min_length=1)
    amount: float = Field(default=0, ge=0)


class BudgetItemUpdate(BaseModel):
    code: Optional[str] = Field(default=None, min_length=1, max_length=32)
    name: Optional[str] = Field(default=None, min_length=1)
    amount: Optional[float] = Field(default=None, ge=0)
    active: Optional[bool] = None


# Diarios


@router.get("/journals")
def list_journals(
    company_id: Optional[int] = Query(default=None),
    include_inactive: bool = Query(default=False),
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    journals = accounting_service.list_entries(
        db,
        ctx,
        Journal,
        company_id=company_id or ctx.require_company_id(),
        include_inactive=include_inactive,
    )
    return [accounting_service.journal_to_dict(journal) for journal in journals]


@router.post("/journals", status_code=201)
def create_journal(
    payload: JournalCreate,
    ctx: TenantContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    journal = accounting_service.create_entry(
        db,
        ctx,
        Journal,
        company_id=payload.company_id or ctx.require_company_id(),
        values=payload.model_dump(exclude={"company_id"}),
    )
    db.commit()
    db.refresh(journal)
    return accounting_service.journal_to_dict(journal)


@router.get("/journals/{journal_id}")
def get_journal(
    journal_id: int,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    return accounting_service.journal_to_dict(accounting_service.get_entry(db, ctx, Journal, journal_id))


@router.put("/journals/{journal_id}")
def update_journal(
    journal_id: int,
    payload: JournalUpdate,
    ctx: TenantContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    journal = accounting_service.update_entry(db, ctx, Journal, journal_id, payload.model_dump(exclude_unset=True))
    db.commit()
    db.refresh(journal)
    return accounting_service.journal_to_dict(journal)


@router.delete("/journals/{journal_id}")
def delete_journal(
    journal_id: int,
    ctx: TenantContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    accounting_service.delete_entry(db, ctx, Journal, journal_id)
    db.commit()
    return {"success": True}


# Partidas presupuestarias


@router.get("/budget-items")
def list_budget_items(
    company_id: Optional[int] = Query(default=None),
    include_inactive: bool = Query(default=False),
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    items = accounting_service.list_entries(
        db,
        ctx,
        BudgetItem,
        company_id=company_id or ctx.require_company_id(),
        include_inactive=include_inactive,
    )
    return [accounting_service.budget_item_to_dict(item) for item in items]


@router.post("/budget-items", status_code=201)
def create_budget_item(
    payload: BudgetItemCreate,
    ctx: TenantContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    item = accounting_service.create_entry(
        db,
        ctx,
        BudgetItem,
        company_id=payload.company_id or ctx.require_company_id(),
        values=payload.model_dump(exclude={"company_id"}),
    )
    db.commit()
    db.refresh(item)
    return accounting_service.budget_item_to_dict(item)


@router.get("/budget-items/{item_id}")
def get_budget_item(
    item_id: int,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    return accounting_service.budget_item_to_dict(accounting_service.get_entry(db, ctx, BudgetItem, item_id))


@router.put("/budget-items/{item_id}")
def update_budget_item(
    item_id: int,
    payload: BudgetItemUpdate,
    ctx: TenantContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    item = accounting_service.update_entry(db, ctx, BudgetItem, item_id, payload.model_dump(exclude_unset=True))
    db.commit()
    db.refresh(item)
    return accounting_service.budget_item_to_dict(item)


@router.delete("/budget-items/{item_id}")
def delete_budget_item(
    item_id: int,
    ctx: TenantContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    accounting_service.delete_entry(db, ctx, BudgetItem, item_id)
    db.commit()
    return {"success": True}
