from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from erp.core.database import Base
from erp.core.errors import InvalidRequest, NotFound
from erp.models.company import Company
from erp.models.contact import Contact
from erp.models.invoice import Invoice, InvoiceItem
from erp.models.payment import Payment
from erp.models.project import Project, Property
from erp.models.user import User
from erp.services.cost_distribution import distribute_costs
from erp.services.tenant_context import TenantContext
from tests.fixtures_data import COMPANY, OTHER_OWNER, OWNER

CTX = TenantContext(user_id=1, owner_id=1, company_id=1)
START = datetime(2026, 1, 1)
END = datetime(2026, 1, 31, 23, 59)


def _build_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    db = TestingSessionLocal()
    db.add(User(**OWNER))
    db.add(User(**OTHER_OWNER))
    db.flush()
    db.add(Company(**COMPANY))
    db.flush()
    db.add(Contact(id=1, company_id=1, name="Vecino A"))
    db.add(Contact(id=2, company_id=1, name="Vecino B"))
    db.add(Project(id=1, user_id=1, company_id=1, name="Comunidad"))
    db.add(Project(id=2, user_id=1, company_id=1, name="Sin propiedades"))
    db.flush()
    db.add(Property(id=1, company_id=1, project_id=1, responsable_id=1, code="1A"))
    db.add(Property(id=2, company_id=1, project_id=1, responsable_id=2, code="1B"))
    db.add(Property(id=3, company_id=1, project_id=1, responsable_id=None, code="1C"))
    db.add(Property(id=4, company_id=1, project_id=1, responsable_id=1, code="1D", active=False))
    db.add(Invoice(id=1, company_id=1, number="F-1", status="VALIDATED", date=datetime(2026, 1, 15)))
    db.add(Invoice(id=2, company_id=1, number="F-2", status="DRAFT", date=datetime(2026, 1, 16)))
    db.add(Invoice(id=3, company_id=1, number="F-3", status="VALIDATED", date=datetime(2026, 3, 1)))
    db.flush()
    db.add(InvoiceItem(invoice_id=1, project_id=1, description="Limpieza", total=60.0))
    db.add(InvoiceItem(invoice_id=1, project_id=1, description="Luz", total=30.0))
    db.add(InvoiceItem(invoice_id=1, project_id=None, description="Otro", total=500.0))
    db.add(InvoiceItem(invoice_id=2, project_id=1, description="Borrador", total=1000.0))
    db.add(InvoiceItem(invoice_id=3, project_id=1, description="Fuera de rango", total=1000.0))
    db.commit()
    return db


def test_costs_split_evenly_across_active_properties_with_responsable():
    db = _build_session()

    result = distribute_costs(db, CTX, 1, start_date=START, end_date=END)
    db.commit()

    assert result["total_amount"] == 90.0
    assert result["amount_per_property"] == 45.0
    assert result["properties_count"] == 2
    payments = db.query(Payment).order_by(Payment.id.asc()).all()
    assert [payment.number for payment in payments] == ["SAL-0001", "SAL-0002"]
    assert [payment.contact_id for payment in payments] == [1, 2]
    assert all(payment.type == "SALIDA" and payment.estado == "BORRADOR" for payment in payments)
    assert db.query(Company).filter(Company.id == 1).one().payment_salida_next_number == 3


def test_project_without_recipients_is_invalid():
    db = _build_session()

    with pytest.raises(InvalidRequest, match="No hay propiedades"):
        distribute_costs(db, CTX, 2, start_date=START, end_date=END)


def test_range_without_validated_invoices_is_invalid():
    db = _build_session()

    with pytest.raises(InvalidRequest, match="No hay facturas validadas"):
        distribute_costs(db, CTX, 1, start_date=datetime(2025, 1, 1), end_date=datetime(2025, 1, 31))
    assert db.query(Payment).count() == 0


def test_project_of_another_owner_is_not_found():
    db = _build_session()
    other = TenantContext(user_id=9, owner_id=9, company_id=None)

    with pytest.raises(NotFound):
        distribute_costs(db, other, 1, start_date=START, end_date=END)
