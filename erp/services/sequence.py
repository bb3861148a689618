from __future__ import annotations

import logging
from typing import List

from sqlalchemy import update
from sqlalchemy.orm import Session

from erp.core.errors import InvalidRequest, NotFound
from erp.models.company import Company
from erp.models.payment import PAYMENT_TYPES

logger = logging.getLogger(__name__)

COUNTER_COLUMNS = {
    "ENTRADA": Company.payment_entrada_next_number,
    "SALIDA": Company.payment_salida_next_number,
}


def format_number(prefix: str, number: int) -> str:
    return f"{prefix}-{int(number):04d}"


def normalize_payment_type(payment_type: str | None) -> str:
    normalized = (payment_type or "").strip().upper()
    if normalized not in PAYMENT_TYPES:
        raise InvalidRequest("Tipo de pago inválido")
    return normalized


def allocate_numbers(db: Session, company_id: int, payment_type: str, count: int = 1) -> List[str]:
    """Reserva ``count`` números consecutivos para la empresa y el tipo.

    El contador se incrementa con un único UPDATE (``n = n + count``); el lock
    de fila que toma ese UPDATE serializa a los asignadores concurrentes hasta
    el commit del llamador. El documento numerado se debe crear en la misma
    transacción: si falla, el rollback devuelve también el contador.
    """
    if count < 1:
        raise InvalidRequest("Cantidad de números inválida")

    normalized_type = normalize_payment_type(payment_type)
    counter_column = COUNTER_COLUMNS[normalized_type]

    result = db.execute(
        update(Company)
        .where(Company.id == company_id)
        .values({counter_column: counter_column + count})
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise NotFound("Empresa no encontrada")

    # populate_existing refresca una instancia de Company ya cargada en la sesión
    company = db.query(Company).populate_existing().filter(Company.id == company_id).one()
    if normalized_type == "ENTRADA":
        prefix, next_number = company.payment_entrada_prefix, company.payment_entrada_next_number
    else:
        prefix, next_number = company.payment_salida_prefix, company.payment_salida_next_number

    first_number = int(next_number) - count
    numbers = [format_number(prefix, value) for value in range(first_number, int(next_number))]
    logger.info(
        "payment numbers allocated company_id=%s type=%s first=%s count=%s",
        company_id,
        normalized_type,
        numbers[0],
        count,
    )
    return numbers


def allocate_number(db: Session, company_id: int, payment_type: str) -> str:
    return allocate_numbers(db, company_id, payment_type, count=1)[0]
