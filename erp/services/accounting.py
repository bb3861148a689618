from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional, Type, Union

from sqlalchemy.orm import Session

from erp.core.errors import InvalidRequest, NotFound
from erp.models.accounting import BudgetItem, Journal
from erp.models.company import Company
from erp.models.payment import Payment
from erp.services.tenant_context import TenantContext
from erp.services.tenant_resolver import require_company

logger = logging.getLogger(__name__)

JOURNAL_TYPES = ("BANK", "CASH", "GENERAL")

Entry = Union[Journal, BudgetItem]

# modelo -> (no encontrado, código duplicado, en uso, columna en Payment)
_MESSAGES = {
    Journal: (
        "Diario no encontrado",
        "Ya existe un diario con este código",
        "No se puede eliminar un diario con pagos asociados",
        Payment.journal_id,
    ),
    BudgetItem: (
        "Partida no encontrada",
        "Ya existe una partida con este código",
        "No se puede eliminar una partida con pagos asociados",
        Payment.budget_item_id,
    ),
}


def journal_to_dict(journal: Journal) -> dict:
    return {
        "id": journal.id,
        "company_id": journal.company_id,
        "code": journal.code,
        "name": journal.name,
        "type": journal.type,
        "active": journal.active,
        "created_at": journal.created_at,
    }


def budget_item_to_dict(item: BudgetItem) -> dict:
    return {
        "id": item.id,
        "company_id": item.company_id,
        "code": item.code,
        "name": item.name,
        "amount": item.amount,
        "active": item.active,
        "created_at": item.created_at,
    }


def normalize_journal_type(journal_type: Optional[str]) -> str:
    normalized = (journal_type or "BANK").strip().upper()
    if normalized not in JOURNAL_TYPES:
        raise InvalidRequest("Tipo de diario inválido")
    return normalized


def _ensure_unique_code(db: Session, model: Type[Entry], company_id: int, code: str, exclude_id: Optional[int] = None) -> None:
    query = db.query(model.id).filter(model.company_id == company_id, model.code == code)
    if exclude_id is not None:
        query = query.filter(model.id != exclude_id)
    if query.first():
        raise InvalidRequest(_MESSAGES[model][1])


def list_entries(
    db: Session, ctx: TenantContext, model: Type[Entry], *, company_id: int, include_inactive: bool = False
) -> List[Entry]:
    require_company(db, ctx, company_id)
    query = db.query(model).filter(model.company_id == company_id)
    if not include_inactive:
        query = query.filter(model.active.is_(True))
    return query.order_by(model.code.asc()).all()


def get_entry(db: Session, ctx: TenantContext, model: Type[Entry], entry_id: int) -> Entry:
    entry = (
        db.query(model)
        .join(Company, Company.id == model.company_id)
        .filter(model.id == entry_id, Company.user_id == ctx.owner_id)
        .first()
    )
    if not entry:
        raise NotFound(_MESSAGES[model][0])
    return entry


def create_entry(
    db: Session, ctx: TenantContext, model: Type[Entry], *, company_id: int, values: Mapping[str, Any]
) -> Entry:
    """Alta de un diario o una partida; el código es único por empresa."""
    company = require_company(db, ctx, company_id)
    data = dict(values)
    data["code"] = data["code"].strip().upper()
    data["name"] = data["name"].strip()
    if model is Journal:
        data["type"] = normalize_journal_type(data.get("type"))
    _ensure_unique_code(db, model, company.id, data["code"])

    entry = model(company_id=company.id, **{key: value for key, value in data.items() if value is not None})
    db.add(entry)
    db.flush()
    logger.info("%s created id=%s company_id=%s", model.__tablename__, entry.id, company.id)
    return entry


def update_entry(
    db: Session, ctx: TenantContext, model: Type[Entry], entry_id: int, changes: Mapping[str, Any]
) -> Entry:
    entry = get_entry(db, ctx, model, entry_id)
    data = {key: value for key, value in changes.items() if value is not None}
    if "code" in data:
        data["code"] = data["code"].strip().upper()
        _ensure_unique_code(db, model, entry.company_id, data["code"], exclude_id=entry.id)
    if "name" in data:
        data["name"] = data["name"].strip()
    if "type" in data:
        data["type"] = normalize_journal_type(data["type"])
    for field, value in data.items():
        setattr(entry, field, value)
    db.flush()
    return entry


def delete_entry(db: Session, ctx: TenantContext, model: Type[Entry], entry_id: int) -> None:
    entry = get_entry(db, ctx, model, entry_id)
    in_use_message, payment_column = _MESSAGES[model][2], _MESSAGES[model][3]
    if db.query(Payment.id).filter(payment_column == entry.id).first():
        raise InvalidRequest(in_use_message)
    db.delete(entry)
    db.flush()
