from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from erp.core.database import Base, get_db
from erp.core.errors import register_exception_handlers
from erp.models.company import Company
from erp.models.user import User
from erp.routers.companies import router as companies_router
from erp.routers.users import router as users_router
from erp.services.auth import create_access_token
from tests.fixtures_data import COMPANY, MEMBERS, OTHER_COMPANY, OTHER_OWNER, OWNER


def _auth(user_id: int) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


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
    db.add(User(**OTHER_OWNER))
    db.flush()
    for member in MEMBERS:
        db.add(User(**member))
    db.add(Company(**COMPANY))
    db.add(Company(id=3, user_id=1, name="Acme Norte", active=False))
    db.add(Company(**OTHER_COMPANY))
    db.commit()

    app = FastAPI()
    register_exception_handlers(app)
    app.include_router(users_router)
    app.include_router(companies_router)
    app.dependency_overrides[get_db] = lambda: db

    return TestClient(app), db


def test_owner_provisions_member_in_shared_tenant():
    client, db = _build_client()

    response = client.post(
        "/api/users",
        json={"name": "Nuevo", "email": "nuevo@example.com", "password": "secreto1", "hourly_rate": 12.5},
        headers=_auth(1),
    )

    assert response.status_code == 201
    created = response.json()
    assert created["created_by_id"] == 1
    assert created["default_company_id"] == 1
    listed = client.get("/api/users", headers=_auth(2)).json()
    assert [user["id"] for user in listed] == [1, 2, 3, created["id"]]


def test_plain_member_cannot_provision_users():
    client, _ = _build_client()

    response = client.post(
        "/api/users",
        json={"name": "Nuevo", "email": "nuevo@example.com", "password": "secreto1"},
        headers=_auth(2),
    )

    assert response.status_code == 403


def test_attendance_token_issue_and_read():
    client, _ = _build_client()

    missing = client.get("/api/users/2/attendance-token", headers=_auth(1))
    issued = client.post("/api/users/2/attendance-token", headers=_auth(1))
    current = client.get("/api/users/2/attendance-token", headers=_auth(1))

    assert missing.status_code == 404
    assert missing.json()["detail"] == "Token no generado"
    token = issued.json()["token"]
    assert len(token) == 64
    assert issued.json()["url"].endswith(f"/attendance/{token}")
    assert current.json()["token"] == token


def test_attendance_token_for_user_outside_tenant_is_not_found():
    client, _ = _build_client()

    response = client.post("/api/users/9/attendance-token", headers=_auth(1))

    assert response.status_code == 404


def test_update_member_rate_and_role():
    client, _ = _build_client()

    response = client.put("/api/users/2", json={"hourly_rate": 15.0, "role": "admin"}, headers=_auth(1))

    assert response.status_code == 200
    assert response.json()["hourly_rate"] == 15.0
    assert response.json()["role"] == "ADMIN"


def test_activate_company_deactivates_the_others():
    client, db = _build_client()

    response = client.post("/api/companies/3/activate", headers=_auth(1))

    assert response.status_code == 200
    db.expire_all()
    active = {company.id: company.active for company in db.query(Company).all()}
    assert active == {1: False, 3: True, 2: True}


def test_api_key_issue_enables_api():
    client, _ = _build_client()

    response = client.post("/api/companies/1/api-key", headers=_auth(1))
    foreign = client.post("/api/companies/2/api-key", headers=_auth(1))

    assert response.json()["api_key"].startswith("fc_")
    assert len(response.json()["api_key"]) == 67
    assert response.json()["api_enabled"] is True
    assert foreign.status_code == 404


def test_numbering_counters_only_move_forward():
    client, _ = _build_client()

    forward = client.put(
        "/api/companies/1/numbering",
        json={"payment_salida_prefix": "pag", "payment_salida_next_number": 10},
        headers=_auth(1),
    )
    backward = client.put("/api/companies/1/numbering", json={"payment_salida_next_number": 2}, headers=_auth(1))

    assert forward.status_code == 200
    assert forward.json()["payment_salida_prefix"] == "PAG"
    assert forward.json()["payment_salida_next_number"] == 10
    assert backward.status_code == 400


def test_list_companies_of_the_owner_from_a_member():
    client, _ = _build_client()

    response = client.get("/api/companies", headers=_auth(3))

    assert [company["id"] for company in response.json()] == [1, 3]
