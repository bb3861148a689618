from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from erp.core.database import get_db
from erp.deps import get_header_api_company
from erp.models.company import Company
from erp.services.invoices import MAX_PUBLIC_LIMIT, list_public_invoices

router = APIRouter(prefix="/api/public/invoices", tags=["public-invoices"])


@router.get("")
def public_invoices(
    status: Optional[str] = Query(default=None),
    payment_status: Optional[str] = Query(default=None),
    start_date: Optional[datetime] = Query(default=None),
    end_date: Optional[datetime] = Query(default=None),
    limit: int = Query(default=MAX_PUBLIC_LIMIT, ge=0),
    offset: int = Query(default=0, ge=0),
    company: Company = Depends(get_header_api_company),
    db: Session = Depends(get_db),
):
    return list_public_invoices(
        db,
        company,
        status=status,
        payment_status=payment_status,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
        offset=offset,
    )
