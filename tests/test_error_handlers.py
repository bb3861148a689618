from datetime import datetime

from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from erp.core.database import Base
from erp.core.errors import NotFound, register_exception_handlers
from erp.models.company import Company
from erp.models.payment import Payment
from erp.models.user import User
from tests.fixtures_data import COMPANY, OWNER


def _payment(**overrides) -> Payment:
    values = {
        "company_id": 1,
        "number": "SAL-0001",
        "type": "SALIDA",
        "amount": 10.0,
        "currency": "EUR",
        "date": datetime(2026, 3, 2),
    }
    values.update(overrides)
    return Payment(**values)


def _build_client():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    db = TestingSessionLocal()
    db.add(User(**OWNER))
    db.flush()
    db.add(Company(**COMPANY))
    db.add(_payment(id=1))
    db.commit()

    app = FastAPI()
    register_exception_handlers(app)

    @app.post("/payments/duplicate")
    def duplicate_payment():
        db.add(_payment())
        db.commit()

    @app.get("/missing")
    def missing():
        raise NotFound("Pago no encontrado")

    return TestClient(app), db


def test_storage_failure_is_structured_internal_error():
    client, db = _build_client()

    response = client.post("/payments/duplicate")
    db.rollback()

    assert response.status_code == 500
    assert response.json()["code"] == "internal_error"
    assert "UNIQUE constraint failed" in response.json()["detail"]
    assert "INSERT" not in response.json()["detail"]
    assert db.query(Payment).count() == 1


def test_domain_errors_keep_their_status_and_code():
    client, _ = _build_client()

    response = client.get("/missing")

    assert response.status_code == 404
    assert response.json() == {"detail": "Pago no encontrado", "code": "not_found"}
