from datetime import datetime

from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from erp.core.database import Base, get_db
from erp.core.errors import register_exception_handlers
from erp.models.attendance import Attendance
from erp.models.company import Company
from erp.models.user import User
from erp.routers.attendance import router as attendance_router
from erp.services.auth import create_access_token
from tests.fixtures_data import COMPANY, MEMBERS, OWNER


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
    db.flush()
    db.add(Company(**COMPANY))
    for member in MEMBERS:
        db.add(User(**member))
    db.flush()
    db.add(
        Attendance(
            id=1,
            user_id=2,
            company_id=1,
            date=datetime(2026, 3, 2),
            check_in=datetime(2026, 3, 2, 9, 0),
            check_out=datetime(2026, 3, 2, 13, 0),
            hourly_rate=10.0,
        )
    )
    db.add(
        Attendance(
            id=2,
            user_id=2,
            company_id=1,
            date=datetime(2026, 3, 2),
            check_in=datetime(2026, 3, 2, 14, 0),
            check_out=datetime(2026, 3, 2, 15, 30),
            hourly_rate=10.0,
        )
    )
    db.commit()

    app = FastAPI()
    register_exception_handlers(app)
    app.include_router(attendance_router)
    app.dependency_overrides[get_db] = lambda: db

    return TestClient(app), db


def test_admin_lists_sessions_with_total_cost():
    client, _ = _build_client()

    response = client.get("/api/attendance?user_id=2", headers=_auth(1))

    assert response.status_code == 200
    body = response.json()
    assert [item["id"] for item in body["attendances"]] == [2, 1]
    assert body["attendances"][0]["hours"] == 1.5
    assert body["total_cost"] == 55.0


def test_plain_member_cannot_read_attendance():
    client, _ = _build_client()

    response = client.get("/api/attendance", headers=_auth(3))

    assert response.status_code == 403
    assert response.json()["code"] == "forbidden"


def test_admin_corrects_and_deletes_session():
    client, db = _build_client()

    updated = client.put(
        "/api/attendance/1",
        json={"check_out": "2026-03-02T12:00:00", "notes": "Corregido"},
        headers=_auth(1),
    )
    deleted = client.delete("/api/attendance/2", headers=_auth(1))
    missing = client.get("/api/attendance/2", headers=_auth(1))

    assert updated.status_code == 200
    assert updated.json()["hours"] == 3.0
    assert updated.json()["cost"] == 30.0
    assert deleted.json() == {"success": True}
    assert missing.status_code == 404
    assert db.query(Attendance).count() == 1


def test_null_check_in_is_rejected_before_storage():
    client, db = _build_client()

    response = client.put("/api/attendance/1", json={"check_in": None}, headers=_auth(1))

    assert response.status_code == 422
    db.expire_all()
    assert db.query(Attendance).filter(Attendance.id == 1).one().check_in == datetime(2026, 3, 2, 9, 0)
