from datetime import datetime

from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from erp.core.database import Base, get_db
from erp.core.errors import register_exception_handlers
from erp.deps import get_now
from erp.models.attendance import Attendance
from erp.models.company import Company
from erp.models.user import User
from erp.routers.public_attendance import router as public_attendance_router
from tests.fixtures_data import ATTENDANCE_TOKEN, COMPANY, MEMBERS, OWNER


class _Clock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


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
    db.add(User(**MEMBERS[0], attendance_token=ATTENDANCE_TOKEN, default_company_id=1))
    db.add(User(**MEMBERS[1], attendance_token="c" * 64))
    db.commit()

    clock = _Clock(datetime(2026, 3, 2, 9, 0))
    app = FastAPI()
    register_exception_handlers(app)
    app.include_router(public_attendance_router)
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_now] = clock

    return TestClient(app), db, clock


def test_member_day_with_two_sessions():
    client, db, clock = _build_client()
    url = f"/api/public/attendance/{ATTENDANCE_TOKEN}"

    first = client.post(url, json={"action": "check-in"})
    assert first.status_code == 200

    clock.now = datetime(2026, 3, 2, 9, 30)
    duplicate = client.post(url, json={"action": "check-in"})
    assert duplicate.status_code == 409
    assert duplicate.json()["code"] == "conflict"

    clock.now = datetime(2026, 3, 2, 17, 0)
    out = client.post(url, json={"action": "check-out", "notes": "Fin de jornada"})
    assert out.status_code == 200
    assert out.json()["attendance"]["notes"] == "Fin de jornada"

    clock.now = datetime(2026, 3, 2, 17, 5)
    second = client.post(url, json={"action": "check-in"})
    assert second.status_code == 200

    rows = db.query(Attendance).order_by(Attendance.id.asc()).all()
    assert len(rows) == 2
    assert rows[0].check_out == datetime(2026, 3, 2, 17, 0)
    assert rows[1].check_in == datetime(2026, 3, 2, 17, 5)
    assert rows[1].check_out is None


def test_status_returns_open_session_and_all_of_today():
    client, _, clock = _build_client()
    url = f"/api/public/attendance/{ATTENDANCE_TOKEN}"
    client.post(url, json={"action": "check-in"})
    clock.now = datetime(2026, 3, 2, 12, 0)
    client.post(url, json={"action": "check-out"})
    clock.now = datetime(2026, 3, 2, 13, 0)
    client.post(url, json={"action": "check-in"})

    response = client.get(url)

    assert response.status_code == 200
    body = response.json()
    assert body["user"]["id"] == 2
    assert body["company"]["id"] == 1
    assert body["today_attendance"]["check_out"] is None
    assert len(body["all_today_attendances"]) == 2


def test_unknown_token_is_not_found():
    client, _, _ = _build_client()

    response = client.post("/api/public/attendance/nope", json={"action": "check-in"})

    assert response.status_code == 404
    assert response.json()["detail"] == "Token inválido"


def test_user_without_company_is_rejected():
    client, _, _ = _build_client()

    response = client.get(f"/api/public/attendance/{'c' * 64}")

    assert response.status_code == 400
    assert response.json()["detail"] == "Usuario sin empresa asignada"


def test_check_out_without_check_in_is_not_found():
    client, _, _ = _build_client()

    response = client.post(f"/api/public/attendance/{ATTENDANCE_TOKEN}", json={"action": "check-out"})

    assert response.status_code == 404


def test_unknown_action_is_rejected():
    client, _, _ = _build_client()

    response = client.post(f"/api/public/attendance/{ATTENDANCE_TOKEN}", json={"action": "lunch"})

    assert response.status_code == 400
    assert response.json()["code"] == "invalid_request"
