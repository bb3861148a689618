from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Mapping

from sqlalchemy.orm import Session

from erp.core.errors import InvalidReference, InvalidRequest, NotFound
from erp.models.accounting import BudgetItem, Journal
from erp.models.company import Company
from erp.models.contact import Contact
from erp.models.payment import PAYMENT_STATES, Payment
from erp.models.project import Project, Property
from erp.services.sequence import allocate_number, normalize_payment_type
from erp.services.tenant_context import TenantContext
from erp.services.tenant_resolver import require_company

logger = logging.getLogger(__name__)

# campo -> (modelo, mensaje) para validar que la referencia es de la misma empresa
_REFERENCES = {
    "contact_id": (Contact, "Contacto no válido"),
    "project_id": (Project, "Proyecto no válido"),
    "journal_id": (Journal, "Diario no válido"),
    "budget_item_id": (BudgetItem, "Partida presupuestaria no válida"),
    "property_id": (Property, "Propiedad no válida"),
}
_OPTIONAL_TEXT_FIELDS = ("description", "concepto")


def normalize_estado(estado: str | None) -> str:
    normalized = (estado or "BORRADOR").strip().upper()
    if normalized not in PAYMENT_STATES:
        raise InvalidRequest("Estado de pago inválido")
    return normalized


def _ensure_references(db: Session, company_id: int, values: Mapping[str, Any]) -> None:
    for field, (model, message) in _REFERENCES.items():
        ref_id = values.get(field)
        if not ref_id:
            continue
        exists = (
            db.query(model.id)
            .filter(model.id == ref_id, model.company_id == company_id)
            .first()
        )
        if not exists:
            raise InvalidReference(message)


def payment_to_dict(payment: Payment) -> dict:
    data = {
        "id": payment.id,
        "company_id": payment.company_id,
        "number": payment.number,
        "type": payment.type,
        "estado": payment.estado,
        "amount": payment.amount,
        "currency": payment.currency,
        "date": payment.date,
        "contact_id": payment.contact_id,
        "project_id": payment.project_id,
        "journal_id": payment.journal_id,
        "budget_item_id": payment.budget_item_id,
        "property_id": payment.property_id,
        "description": payment.description,
        "concepto": payment.concepto,
        "created_at": payment.created_at,
        "updated_at": payment.updated_at,
    }
    data["contact"] = {"id": payment.contact.id, "name": payment.contact.name} if payment.contact else None
    data["project"] = {"id": payment.project.id, "name": payment.project.name} if payment.project else None
    data["journal"] = (
        {"id": payment.journal.id, "code": payment.journal.code, "name": payment.journal.name}
        if payment.journal
        else None
    )
    data["budget_item"] = (
        {"id": payment.budget_item.id, "code": payment.budget_item.code, "name": payment.budget_item.name}
        if payment.budget_item
        else None
    )
    data["property"] = (
        {"id": payment.property.id, "code": payment.property.code, "address": payment.property.address}
        if payment.property
        else None
    )
    return data


def create_payment(
    db: Session,
    ctx: TenantContext,
    *,
    company_id: int,
    payment_type: str,
    amount: float,
    date: datetime,
    estado: str | None = None,
    **links: Any,
) -> Payment:
    """Crea un pago numerado. El llamador hace el commit."""
    company: Company = require_company(db, ctx, company_id)
    normalized_type = normalize_payment_type(payment_type)
    normalized_estado = normalize_estado(estado)
    _ensure_references(db, company.id, links)

    number = allocate_number(db, company.id, normalized_type)
    payment = Payment(
        company_id=company.id,
        number=number,
        type=normalized_type,
        estado=normalized_estado,
        amount=float(amount),
        currency=company.currency,
        date=date,
        **{field: links.get(field) or None for field in _REFERENCES},
        **{field: links.get(field) or None for field in _OPTIONAL_TEXT_FIELDS},
    )
    db.add(payment)
    db.flush()
    logger.info("payment created id=%s number=%s company_id=%s", payment.id, number, company.id)
    return payment


def list_payments(
    db: Session,
    ctx: TenantContext,
    *,
    company_id: int,
    payment_type: str | None = None,
) -> list[Payment]:
    require_company(db, ctx, company_id)
    query = db.query(Payment).filter(Payment.company_id == company_id)
    if payment_type:
        query = query.filter(Payment.type == normalize_payment_type(payment_type))
    return query.order_by(Payment.date.desc(), Payment.id.desc()).all()


def get_payment(db: Session, ctx: TenantContext, payment_id: int) -> Payment:
    payment = (
        db.query(Payment)
        .join(Company, Company.id == Payment.company_id)
        .filter(Payment.id == payment_id, Company.user_id == ctx.owner_id)
        .first()
    )
    if not payment:
        raise NotFound("Pago no encontrado")
    return payment


def update_payment(db: Session, ctx: TenantContext, payment_id: int, changes: Mapping[str, Any]) -> Payment:
    """Actualiza campos editables. El número y el tipo ya emitidos no cambian."""
    payment = get_payment(db, ctx, payment_id)

    if "type" in changes and changes["type"] and normalize_payment_type(changes["type"]) != payment.type:
        raise InvalidRequest("No se puede cambiar el tipo de un pago numerado")

    link_changes = {field: changes[field] for field in _REFERENCES if field in changes}
    _ensure_references(db, payment.company_id, link_changes)

    if changes.get("amount") is not None:
        payment.amount = float(changes["amount"])
    if changes.get("date") is not None:
        payment.date = changes["date"]
    if changes.get("estado"):
        payment.estado = normalize_estado(changes["estado"])
    for field, value in link_changes.items():
        setattr(payment, field, value or None)
    for field in _OPTIONAL_TEXT_FIELDS:
        if field in changes:
            setattr(payment, field, changes[field] or None)

    db.flush()
    return payment


def delete_payment(db: Session, ctx: TenantContext, payment_id: int) -> None:
    # El número no vuelve al contador: los huecos son aceptados.
    payment = get_payment(db, ctx, payment_id)
    db.delete(payment)
    db.flush()
    logger.info("payment deleted id=%s number=%s", payment.id, payment.number)
