from __future__ import annotations

import logging
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from erp.core.database import Base
from erp.core.errors import InternalError, InvalidRequest, NotFound, Unauthorized
from erp.models.attendance import Attendance
from erp.models.company import Company
from erp.models.contact import Contact
from erp.models.invoice import Invoice, InvoiceItem
from erp.models.product import Product
from erp.models.user import User

logger = logging.getLogger(__name__)

RESERVED_QUERY_KEYS = ("id", "limit", "skip")
HIDDEN_FIELDS = {"password_hash", "verification_code", "smtp_password", "odoo_api_key", "api_key"}
_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


class ModelKind(str, Enum):
    USER = "user"
    COMPANY = "company"
    CONTACT = "contact"
    PRODUCT = "product"
    INVOICE = "invoice"
    INVOICE_ITEM = "invoiceItem"
    ATTENDANCE = "attendance"

    @classmethod
    def parse(cls, raw: str) -> "ModelKind":
        lowered = (raw or "").strip().lower()
        for kind in cls:
            if kind.value.lower() == lowered:
                return kind
        raise InvalidRequest(f"Modelo '{raw}' no permitido")


MODEL_REGISTRY: Dict[ModelKind, type] = {
    ModelKind.USER: User,
    ModelKind.COMPANY: Company,
    ModelKind.CONTACT: Contact,
    ModelKind.PRODUCT: Product,
    ModelKind.INVOICE: Invoice,
    ModelKind.INVOICE_ITEM: InvoiceItem,
    ModelKind.ATTENDANCE: Attendance,
}


def authenticate_api_key(db: Session, token: Optional[str]) -> Company:
    if not token:
        raise Unauthorized("No autorizado. Token inválido.")
    company = (
        db.query(Company)
        .filter(Company.api_key == token, Company.api_enabled.is_(True))
        .first()
    )
    if not company:
        raise Unauthorized("No autorizado. Token inválido o API deshabilitada.")
    return company


def _python_type(column) -> Optional[type]:
    try:
        return column.type.python_type
    except NotImplementedError:
        return None


def coerce_value(column, value: Any) -> Any:
    """Convierte texto de query/JSON al tipo Python de la columna."""
    if value is None:
        return None
    py_type = _python_type(column)
    if py_type is None or isinstance(value, py_type):
        return value
    try:
        if py_type is bool:
            lowered = str(value).strip().lower()
            if lowered in _TRUTHY:
                return True
            if lowered in _FALSY:
                return False
            raise ValueError(value)
        if py_type is datetime:
            return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        if py_type is date:
            return date.fromisoformat(str(value))
        return py_type(value)
    except (TypeError, ValueError) as e:
        raise InvalidRequest(f"Valor inválido para '{column.key}': {value}") from e


def _parse_optional_int(raw: Optional[str], name: str) -> Optional[int]:
    if raw is None or raw == "":
        return None
    try:
        value = int(raw)
    except ValueError as e:
        raise InvalidRequest(f"Parámetro '{name}' inválido") from e
    if value < 0:
        raise InvalidRequest(f"Parámetro '{name}' inválido")
    return value


def serialize(record: Base) -> dict:
    return {
        column.key: getattr(record, column.key)
        for column in record.__table__.columns
        if column.key not in HIDDEN_FIELDS
    }


class ModelRepository:
    """CRUD sin lógica de dominio sobre un modelo de la lista permitida."""

    def __init__(self, db: Session, kind: ModelKind):
        self.db = db
        self.kind = kind
        self.model = MODEL_REGISTRY[kind]
        self.columns = {column.key: column for column in self.model.__table__.columns}

    def _coerce_record(self, data: Mapping[str, Any]) -> dict:
        # lo que no se puede convertir pasa tal cual y lo rechaza la capa de datos
        values = {}
        for key, value in data.items():
            column = self.columns.get(key)
            try:
                values[key] = coerce_value(column, value) if column is not None else value
            except InvalidRequest:
                values[key] = value
        return values

    def _parse_id(self, raw: Any) -> int:
        return coerce_value(self.columns["id"], raw)

    def _storage_error(self, action: str, error: Exception) -> InternalError:
        self.db.rollback()
        logger.error("generic %s on %s failed: %s", action, self.kind.value, error)
        return InternalError(str(error))

    def list(self, params: Mapping[str, str]) -> dict:
        limit = _parse_optional_int(params.get("limit"), "limit")
        skip = _parse_optional_int(params.get("skip"), "skip")

        query = self.db.query(self.model)
        for key, value in params.items():
            if key in RESERVED_QUERY_KEYS:
                continue
            column = self.columns.get(key)
            if column is None:
                raise InvalidRequest(f"Campo '{key}' no existe en '{self.kind.value}'")
            query = query.filter(getattr(self.model, key) == coerce_value(column, value))

        total = query.count()
        ordered = query.order_by(self.model.created_at.desc(), self.model.id.desc())
        if skip:
            ordered = ordered.offset(skip)
        if limit is not None:
            ordered = ordered.limit(limit)

        return {
            "data": [serialize(record) for record in ordered.all()],
            "total": total,
            "limit": limit,
            "skip": skip,
        }

    def get(self, record_id: Any) -> Base:
        record = self.db.get(self.model, self._parse_id(record_id))
        if not record:
            raise NotFound("Registro no encontrado")
        return record

    def create(self, data: Mapping[str, Any]) -> Base:
        values = self._coerce_record(data)
        try:
            record = self.model(**values)
            self.db.add(record)
            self.db.commit()
        except (TypeError, SQLAlchemyError) as e:
            raise self._storage_error("create", e) from e
        self.db.refresh(record)
        logger.info("generic create model=%s id=%s", self.kind.value, record.id)
        return record

    def update(self, data: Mapping[str, Any]) -> Base:
        changes = dict(data)
        raw_id = changes.pop("id", None)
        if raw_id in (None, ""):
            raise InvalidRequest("ID requerido para actualizar")

        record = self.get(raw_id)
        values = self._coerce_record(changes)
        try:
            for key, value in values.items():
                if key not in self.columns:
                    raise TypeError(f"'{key}' is an invalid keyword argument for {self.model.__name__}")
                setattr(record, key, value)
            self.db.commit()
        except (TypeError, SQLAlchemyError) as e:
            raise self._storage_error("update", e) from e
        self.db.refresh(record)
        logger.info("generic update model=%s id=%s", self.kind.value, record.id)
        return record

    def delete(self, raw_id: Optional[str]) -> None:
        if raw_id in (None, ""):
            raise InvalidRequest("ID requerido para eliminar")

        record = self.get(raw_id)
        try:
            self.db.delete(record)
            self.db.commit()
        except SQLAlchemyError as e:
            raise self._storage_error("delete", e) from e
        logger.info("generic delete model=%s id=%s", self.kind.value, raw_id)
