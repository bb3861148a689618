from datetime import datetime, timedelta

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from erp.core import config
from erp.core.database import Base, get_db
from erp.core.errors import InvalidRequest, register_exception_handlers
from erp.models.company import Company
from erp.models.user import User
from erp.routers.auth import router as auth_router
from erp.services import auth_codes, mailer
from erp.services.auth import decode_access_token, hash_password, verify_password

REGISTER_PAYLOAD = {"name": "Nora Nueva", "email": "Nora@Example.com", "password": "secreto1"}


def _build_client(monkeypatch, *, allow_registration=True, require_verification=False):
    monkeypatch.setattr(config, "ALLOW_REGISTRATION", allow_registration)
    monkeypatch.setattr(config, "REQUIRE_EMAIL_VERIFICATION", require_verification)
    sent = []
    monkeypatch.setattr(mailer, "send_verification_email", lambda to, name, code: sent.append(("verify", to, code)))
    monkeypatch.setattr(mailer, "send_recovery_email", lambda to, name, code: sent.append(("recover", to, code)))

    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()

    app = FastAPI()
    register_exception_handlers(app)
    app.include_router(auth_router)
    app.dependency_overrides[get_db] = lambda: db

    return TestClient(app), db, sent


def test_register_creates_user_with_default_company_and_token(monkeypatch):
    client, db, _ = _build_client(monkeypatch)

    response = client.post("/api/auth/register", json=REGISTER_PAYLOAD)

    assert response.status_code == 201
    body = response.json()
    user = db.query(User).one()
    company = db.query(Company).one()
    assert user.email == "nora@example.com"
    assert company.user_id == user.id
    assert company.active is True
    assert user.default_company_id == company.id
    assert decode_access_token(body["access_token"])["sub"] == str(user.id)

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {body['access_token']}"})
    assert me.json()["company_id"] == company.id
    assert me.json()["owner_id"] == user.id


def test_register_disabled_is_forbidden(monkeypatch):
    client, _, _ = _build_client(monkeypatch, allow_registration=False)

    response = client.post("/api/auth/register", json=REGISTER_PAYLOAD)

    assert response.status_code == 403


def test_duplicate_email_is_invalid(monkeypatch):
    client, _, _ = _build_client(monkeypatch)
    client.post("/api/auth/register", json=REGISTER_PAYLOAD)

    response = client.post("/api/auth/register", json={**REGISTER_PAYLOAD, "email": "nora@example.com"})

    assert response.status_code == 400


def test_verification_flow_blocks_login_until_code_is_confirmed(monkeypatch):
    client, _, sent = _build_client(monkeypatch, require_verification=True)

    registered = client.post("/api/auth/register", json=REGISTER_PAYLOAD).json()
    assert registered["requires_verification"] is True
    _, to, code = sent[-1]
    assert to == "nora@example.com"
    assert len(code) == 6

    blocked = client.post("/api/auth/login", json={"email": "nora@example.com", "password": "secreto1"})
    assert blocked.status_code == 403

    wrong = client.post("/api/auth/verify-email", json={"user_id": registered["user_id"], "code": "000000" if code != "000000" else "111111"})
    assert wrong.status_code == 400

    verified = client.post("/api/auth/verify-email", json={"user_id": registered["user_id"], "code": code})
    assert verified.status_code == 200

    login = client.post("/api/auth/login", json={"email": "nora@example.com", "password": "secreto1"})
    assert login.status_code == 200
    assert "access_token" in login.json()


def test_login_rejects_bad_password_and_inactive_user(monkeypatch):
    client, db, _ = _build_client(monkeypatch)
    db.add(User(id=1, name="Ina", email="ina@example.com", password_hash=hash_password("secreto1"), active=False))
    db.commit()

    bad_password = client.post("/api/auth/login", json={"email": "ina@example.com", "password": "otra"})
    inactive = client.post("/api/auth/login", json={"email": "ina@example.com", "password": "secreto1"})

    assert bad_password.status_code == 401
    assert inactive.status_code == 401
    assert bad_password.headers["WWW-Authenticate"] == "Bearer"


def test_password_reset_flow(monkeypatch):
    client, db, sent = _build_client(monkeypatch)
    db.add(User(id=1, name="Rita", email="rita@example.com", password_hash=hash_password("vieja123")))
    db.commit()

    unknown = client.post("/api/auth/forgot-password", json={"email": "nadie@example.com"})
    known = client.post("/api/auth/forgot-password", json={"email": "rita@example.com"})
    assert unknown.json() == known.json()
    _, _, code = sent[-1]

    short = client.post("/api/auth/reset-password", json={"email": "rita@example.com", "code": code, "new_password": "123"})
    assert short.status_code == 400

    reset = client.post(
        "/api/auth/reset-password",
        json={"email": "rita@example.com", "code": code, "new_password": "nueva123"},
    )
    assert reset.status_code == 200

    user = db.query(User).filter(User.id == 1).one()
    assert verify_password("nueva123", user.password_hash)
    assert user.verification_code is None

    reused = client.post(
        "/api/auth/reset-password",
        json={"email": "rita@example.com", "code": code, "new_password": "otra1234"},
    )
    assert reused.status_code == 400
    assert reused.json()["detail"] == "Código inválido o expirado"


def test_expired_reset_code_is_rejected(monkeypatch):
    _, db, _ = _build_client(monkeypatch)
    user = User(id=1, name="Eva", email="eva@example.com", password_hash=hash_password("vieja123"))
    db.add(user)
    db.flush()
    code = auth_codes.issue_reset_code(user, now=datetime.utcnow() - timedelta(hours=2))
    db.commit()

    with pytest.raises(InvalidRequest, match="Código inválido o expirado"):
        auth_codes.reset_password(db, "eva@example.com", code, "nueva123")


def test_generated_codes_have_six_digits():
    codes = {auth_codes.generate_code() for _ in range(50)}

    assert all(len(code) == 6 and code.isdigit() for code in codes)
