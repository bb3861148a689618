from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session, selectinload

from erp.models.company import Company
from erp.models.invoice import Invoice, InvoiceItem

MAX_PUBLIC_LIMIT = 100


def invoice_totals(items) -> dict:
    subtotal = 0.0
    total_tax = 0.0
    for item in items:
        item_subtotal = float(item.quantity or 0) * float(item.price or 0)
        subtotal += item_subtotal
        total_tax += item_subtotal * (float(item.tax or 0) / 100)
    return {
        "subtotal": round(subtotal, 2),
        "total_tax": round(total_tax, 2),
        "total": round(subtotal + total_tax, 2),
    }


def _item_to_dict(item: InvoiceItem) -> dict:
    product = item.product
    return {
        "id": item.id,
        "description": item.description,
        "quantity": item.quantity,
        "price": item.price,
        "tax": item.tax,
        "product": {"id": product.id, "code": product.code, "name": product.name} if product else None,
    }


def _public_invoice(invoice: Invoice) -> dict:
    contact = invoice.contact
    data = {
        "id": invoice.id,
        "number": invoice.number,
        "date": invoice.date,
        "due_date": invoice.due_date,
        "status": invoice.status,
        "payment_status": invoice.payment_status,
        "currency": invoice.currency,
        "notes": invoice.notes,
        "created_at": invoice.created_at,
        "updated_at": invoice.updated_at,
        "contact": None,
        "items": [_item_to_dict(item) for item in invoice.items],
    }
    if contact:
        data["contact"] = {
            "id": contact.id,
            "name": contact.name,
            "nif": contact.nif,
            "email": contact.email,
            "phone": contact.phone,
            "address": contact.address,
            "city": contact.city,
            "postal_code": contact.postal_code,
            "country": contact.country,
        }
    data.update(invoice_totals(invoice.items))
    return data


def list_public_invoices(
    db: Session,
    company: Company,
    *,
    status: Optional[str] = None,
    payment_status: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    limit: int = MAX_PUBLIC_LIMIT,
    offset: int = 0,
) -> dict:
    """Facturas de venta de la empresa de la API key, con totales calculados."""
    limit = min(max(limit, 0), MAX_PUBLIC_LIMIT)
    offset = max(offset, 0)

    query = db.query(Invoice).filter(Invoice.company_id == company.id, Invoice.type == "invoice_out")
    if status:
        query = query.filter(Invoice.status == status)
    if payment_status:
        query = query.filter(Invoice.payment_status == payment_status)
    if start_date:
        query = query.filter(Invoice.date >= start_date)
    if end_date:
        query = query.filter(Invoice.date <= end_date)

    total = query.count()
    invoices = (
        query.options(selectinload(Invoice.items).selectinload(InvoiceItem.product), selectinload(Invoice.contact))
        .order_by(Invoice.date.desc(), Invoice.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )

    return {
        "success": True,
        "company": {"id": company.id, "name": company.name},
        "pagination": {
            "total": total,
            "limit": limit,
            "offset": offset,
            "has_more": offset + len(invoices) < total,
        },
        "invoices": [_public_invoice(invoice) for invoice in invoices],
    }
