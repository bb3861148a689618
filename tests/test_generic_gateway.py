from datetime import datetime, timedelta

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from erp.core.database import Base, get_db
from erp.core.errors import InvalidRequest, Unauthorized
from erp.core.errors import register_exception_handlers
from erp.models.company import Company
from erp.models.contact import Contact
from erp.models.user import User
from erp.routers.generic import router as generic_router
from erp.services.gateway import MODEL_REGISTRY, ModelKind, authenticate_api_key
from tests.fixtures_data import API_KEY, COMPANY, OWNER

AUTH = {"Authorization": f"Bearer {API_KEY}"}


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
    db.add(Company(**COMPANY, api_key=API_KEY, api_enabled=True))
    db.add(Company(id=5, user_id=1, name="Disabled", api_key="fc_disabled", api_enabled=False))
    base = datetime(2026, 1, 1)
    for index, name in enumerate(["Ana", "Bruno", "Carla"]):
        db.add(
            Contact(
                id=index + 1,
                company_id=1,
                name=name,
                city="Madrid" if index < 2 else "Sevilla",
                is_supplier=index == 2,
                created_at=base + timedelta(days=index),
            )
        )
    db.commit()

    app = FastAPI()
    register_exception_handlers(app)
    app.include_router(generic_router)
    app.dependency_overrides[get_db] = lambda: db

    return TestClient(app), db


def test_model_kind_parse_is_case_insensitive():
    assert ModelKind.parse("Contact") is ModelKind.CONTACT
    assert ModelKind.parse("invoiceitem") is ModelKind.INVOICE_ITEM
    assert set(MODEL_REGISTRY) == set(ModelKind)
    with pytest.raises(InvalidRequest, match="Modelo 'secretTable' no permitido"):
        ModelKind.parse("secretTable")


def test_authenticate_api_key_requires_enabled_company():
    _, db = _build_client()

    assert authenticate_api_key(db, API_KEY).id == 1
    with pytest.raises(Unauthorized):
        authenticate_api_key(db, None)
    with pytest.raises(Unauthorized):
        authenticate_api_key(db, "fc_disabled")


def test_unknown_model_is_rejected_even_with_valid_key():
    client, _ = _build_client()

    response = client.get("/api/generic/secretTable", headers=AUTH)

    assert response.status_code == 400
    assert response.json()["detail"] == "Modelo 'secretTable' no permitido"


@pytest.mark.parametrize("method", ["get", "delete"])
def test_missing_or_invalid_key_is_unauthorized_for_every_verb(method):
    client, _ = _build_client()

    missing = getattr(client, method)("/api/generic/contact")
    invalid = getattr(client, method)("/api/generic/contact", headers={"Authorization": "Bearer nope"})

    assert missing.status_code == 401
    assert invalid.status_code == 401


def test_disabled_api_is_unauthorized():
    client, _ = _build_client()

    response = client.get("/api/generic/contact", headers={"Authorization": "Bearer fc_disabled"})

    assert response.status_code == 401


def test_list_orders_by_created_at_desc_with_pagination():
    client, _ = _build_client()

    response = client.get("/api/generic/contact?limit=2&skip=0", headers=AUTH)

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 3
    assert body["limit"] == 2
    assert body["skip"] == 0
    assert [item["name"] for item in body["data"]] == ["Carla", "Bruno"]


def test_list_filters_are_coerced_to_column_types():
    client, _ = _build_client()

    by_city = client.get("/api/generic/contact?city=Madrid", headers=AUTH).json()
    suppliers = client.get("/api/generic/contact?is_supplier=true", headers=AUTH).json()

    assert by_city["total"] == 2
    assert by_city["limit"] is None
    assert [item["name"] for item in suppliers["data"]] == ["Carla"]


def test_unknown_filter_field_is_invalid():
    client, _ = _build_client()

    response = client.get("/api/generic/contact?colour=blue", headers=AUTH)

    assert response.status_code == 400


def test_get_by_id_and_missing_record():
    client, _ = _build_client()

    found = client.get("/api/generic/contact?id=2", headers=AUTH)
    missing = client.get("/api/generic/contact?id=99", headers=AUTH)

    assert found.json()["name"] == "Bruno"
    assert missing.status_code == 404
    assert missing.json()["detail"] == "Registro no encontrado"


def test_user_serialization_hides_credentials():
    client, _ = _build_client()

    response = client.get("/api/generic/user?id=1", headers=AUTH)

    assert response.status_code == 200
    assert "password_hash" not in response.json()
    assert "verification_code" not in response.json()


def test_create_update_delete_roundtrip():
    client, db = _build_client()

    created = client.post(
        "/api/generic/contact",
        json={"company_id": 1, "name": "Diego", "created_at": "2026-02-01T08:00:00"},
        headers=AUTH,
    )
    assert created.status_code == 201
    record_id = created.json()["id"]

    updated = client.put("/api/generic/contact", json={"id": record_id, "city": "Bilbao"}, headers=AUTH)
    assert updated.json()["city"] == "Bilbao"

    deleted = client.delete(f"/api/generic/contact?id={record_id}", headers=AUTH)
    assert deleted.status_code == 200
    assert db.query(Contact).filter(Contact.id == record_id).first() is None


def test_update_and_delete_require_id():
    client, _ = _build_client()

    update = client.put("/api/generic/contact", json={"city": "Bilbao"}, headers=AUTH)
    delete = client.delete("/api/generic/contact", headers=AUTH)

    assert update.status_code == 400
    assert delete.status_code == 400


def test_storage_failure_is_internal_error():
    client, _ = _build_client()

    unknown_field = client.post("/api/generic/contact", json={"company_id": 1, "name": "X", "colour": "blue"}, headers=AUTH)
    missing_required = client.post("/api/generic/contact", json={"company_id": 1}, headers=AUTH)

    assert unknown_field.status_code == 500
    assert unknown_field.json()["code"] == "internal_error"
    assert missing_required.status_code == 500


def test_malformed_body_value_fails_in_storage_layer():
    client, db = _build_client()

    response = client.post(
        "/api/generic/contact",
        json={"company_id": 1, "name": "Elena", "created_at": "ayer"},
        headers=AUTH,
    )
    after = client.get("/api/generic/contact", headers=AUTH)

    assert response.status_code == 500
    assert response.json()["code"] == "internal_error"
    assert after.json()["total"] == 3
    assert db.query(Contact).filter(Contact.name == "Elena").first() is None
