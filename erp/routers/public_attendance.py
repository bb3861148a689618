from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from erp.core.database import get_db
from erp.core.errors import InvalidRequest, NotFound
from erp.core.request_context import set_request_context
from erp.deps import get_now
from erp.models.company import Company
from erp.models.user import User
from erp.services import attendance as attendance_service

router = APIRouter(prefix="/api/public/attendance", tags=["public-attendance"])
logger = logging.getLogger(__name__)


class AttendanceAction(BaseModel):
    action: str
    notes: Optional[str] = None
    project_id: Optional[int] = None
    task_id: Optional[int] = None


def _user_for_token(db: Session, token: str) -> tuple[User, int]:
    user = db.query(User).filter(User.attendance_token == token).first()
    if not user or not user.active:
        raise NotFound("Token inválido")
    if not user.default_company_id:
        raise InvalidRequest("Usuario sin empresa asignada")
    set_request_context(company_id=user.default_company_id, user_id=user.id)
    return user, int(user.default_company_id)


def _session_summary(attendance) -> Optional[dict]:
    if attendance is None:
        return None
    return {
        "id": attendance.id,
        "check_in": attendance.check_in,
        "check_out": attendance.check_out,
        "notes": attendance.notes,
        "project_id": attendance.project_id,
        "task_id": attendance.task_id,
    }


@router.get("/{token}")
def attendance_status(
    token: str,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
):
    user, company_id = _user_for_token(db, token)
    sessions = attendance_service.today_sessions(db, user, company_id, now)
    open_session = next((item for item in sessions if item.check_out is None), None)
    company = db.query(Company).filter(Company.id == company_id).first()

    return {
        "user": {"id": user.id, "name": user.name, "email": user.email},
        "company": {"id": company.id, "name": company.name} if company else None,
        "today_attendance": _session_summary(open_session or (sessions[0] if sessions else None)),
        "all_today_attendances": [_session_summary(item) for item in sessions],
    }


@router.post("/{token}")
def register_attendance(
    token: str,
    payload: AttendanceAction,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
):
    action = attendance_service.normalize_action(payload.action)
    user, company_id = _user_for_token(db, token)

    if action == "check-in":
        attendance = attendance_service.check_in(
            db,
            user,
            company_id,
            project_id=payload.project_id,
            task_id=payload.task_id,
            notes=payload.notes,
            now=now,
        )
        message = "Entrada registrada correctamente"
    else:
        attendance = attendance_service.check_out(db, user, company_id, notes=payload.notes, now=now)
        message = "Salida registrada correctamente"

    db.commit()
    db.refresh(attendance)
    return {"success": True, "message": message, "attendance": _session_summary(attendance)}
