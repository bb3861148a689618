from __future__ import annotations

import logging
from datetime import datetime
from typing import List

from sqlalchemy import func
from sqlalchemy.orm import Session

from erp.core.errors import InvalidRequest, NotFound
from erp.models.company import Company
from erp.models.invoice import Invoice, InvoiceItem
from erp.models.payment import Payment
from erp.models.project import Project, Property
from erp.services.sequence import allocate_numbers
from erp.services.tenant_context import TenantContext

logger = logging.getLogger(__name__)


def _project_cost(db: Session, project_id: int, start_date: datetime, end_date: datetime) -> float:
    total = (
        db.query(func.coalesce(func.sum(InvoiceItem.total), 0.0))
        .select_from(InvoiceItem)
        .join(Invoice, Invoice.id == InvoiceItem.invoice_id)
        .filter(
            InvoiceItem.project_id == project_id,
            Invoice.status == "VALIDATED",
            Invoice.date >= start_date,
            Invoice.date <= end_date,
        )
        .scalar()
    )
    return float(total or 0.0)


def distribute_costs(
    db: Session,
    ctx: TenantContext,
    project_id: int,
    *,
    start_date: datetime,
    end_date: datetime,
) -> dict:
    """Reparte el coste del proyecto en pagos SALIDA en borrador, uno por propiedad.

    Todos los números salen de una única reserva; el llamador hace el commit.
    """
    if end_date < start_date:
        raise InvalidRequest("La fecha de fin debe ser posterior a la de inicio")

    project = (
        db.query(Project)
        .filter(Project.id == project_id, Project.user_id == ctx.owner_id, Project.active.is_(True))
        .first()
    )
    if not project:
        raise NotFound("Proyecto no encontrado")

    properties: List[Property] = (
        db.query(Property)
        .filter(
            Property.project_id == project.id,
            Property.active.is_(True),
            Property.responsable_id.isnot(None),
        )
        .order_by(Property.id.asc())
        .all()
    )
    if not properties:
        raise InvalidRequest("No hay propiedades con responsable asociadas a este proyecto")

    total_amount = _project_cost(db, project.id, start_date, end_date)
    if total_amount == 0:
        raise InvalidRequest("No hay facturas validadas en el rango de fechas seleccionado")

    currency = db.query(Company.currency).filter(Company.id == project.company_id).scalar()
    if currency is None:
        raise NotFound("Empresa no encontrada")

    amount_per_property = total_amount / len(properties)
    numbers = allocate_numbers(db, project.company_id, "SALIDA", count=len(properties))
    today = datetime.utcnow()
    period = f"{start_date.date().isoformat()} - {end_date.date().isoformat()}"

    payments = []
    for property_, number in zip(properties, numbers):
        payment = Payment(
            company_id=project.company_id,
            number=number,
            type="SALIDA",
            estado="BORRADOR",
            amount=amount_per_property,
            currency=currency,
            contact_id=property_.responsable_id,
            project_id=project.id,
            property_id=property_.id,
            date=today,
            description=f"Distribución de costes del proyecto {project.name} ({period})",
            concepto=f"Distribución costes - Propiedad {property_.code}",
        )
        db.add(payment)
        payments.append(payment)
    db.flush()

    logger.info(
        "project costs distributed project_id=%s total=%s properties=%s",
        project.id,
        total_amount,
        len(properties),
    )
    return {
        "total_amount": total_amount,
        "amount_per_property": amount_per_property,
        "properties_count": len(properties),
        "payments": payments,
    }
