from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Iterable, List, Mapping, Optional, Tuple

from sqlalchemy import update
from sqlalchemy.orm import Session

from erp.core.errors import Conflict, InvalidReference, InvalidRequest, NotFound
from erp.models.attendance import Attendance
from erp.models.project import Project, Task
from erp.models.user import User

logger = logging.getLogger(__name__)

ACTIONS = ("check-in", "check-out")
OPEN_SESSION_MESSAGE = "Debes registrar tu salida antes de hacer una nueva entrada"
_EDITABLE_FIELDS = ("check_in", "check_out", "hourly_rate", "notes", "project_id", "task_id")


def _now(now: Optional[datetime]) -> datetime:
    return now or datetime.now()


def day_bounds(now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    start = _now(now).replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + timedelta(days=1)


def normalize_action(action: str | None) -> str:
    normalized = (action or "").strip().lower()
    if normalized not in ACTIONS:
        raise InvalidRequest("Acción inválida")
    return normalized


def _today_query(db: Session, user: User, company_id: int, now: Optional[datetime]):
    start, end = day_bounds(now)
    return db.query(Attendance).filter(
        Attendance.user_id == user.id,
        Attendance.company_id == company_id,
        Attendance.date >= start,
        Attendance.date < end,
    )


def today_sessions(db: Session, user: User, company_id: int, now: Optional[datetime] = None) -> List[Attendance]:
    return (
        _today_query(db, user, company_id, now)
        .order_by(Attendance.check_in.desc(), Attendance.id.desc())
        .all()
    )


def find_open_session(
    db: Session, user: User, company_id: int, now: Optional[datetime] = None
) -> Optional[Attendance]:
    return (
        _today_query(db, user, company_id, now)
        .filter(Attendance.check_out.is_(None))
        .order_by(Attendance.check_in.desc())
        .first()
    )


def _ensure_project_and_task(
    db: Session, company_id: int, project_id: Optional[int], task_id: Optional[int]
) -> Tuple[Optional[int], Optional[int]]:
    if not project_id:
        # una tarea sin proyecto no se registra
        return None, None

    project = (
        db.query(Project)
        .filter(Project.id == project_id, Project.company_id == company_id)
        .first()
    )
    if not project:
        raise InvalidReference("Proyecto no válido")

    if task_id:
        task = db.query(Task).filter(Task.id == task_id, Task.project_id == project.id).first()
        if not task:
            raise InvalidReference("Tarea no válida")
        return project.id, task.id
    return project.id, None


def _lock_user(db: Session, user: User) -> None:
    # UPDATE sin cambios: el lock de fila serializa las entradas del mismo usuario hasta el commit
    db.execute(
        update(User)
        .where(User.id == user.id)
        .values({User.updated_at: User.updated_at})
        .execution_options(synchronize_session=False)
    )


def check_in(
    db: Session,
    user: User,
    company_id: int,
    *,
    project_id: Optional[int] = None,
    task_id: Optional[int] = None,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Attendance:
    """Abre una sesión de fichaje. Como mucho una abierta por usuario, empresa y día.

    La comprobación de sesión abierta se hace con el usuario bloqueado, así
    que dos entradas simultáneas no pueden pasarla a la vez.
    """
    current = _now(now)
    _lock_user(db, user)
    if find_open_session(db, user, company_id, current):
        raise Conflict(OPEN_SESSION_MESSAGE)

    project_id, task_id = _ensure_project_and_task(db, company_id, project_id, task_id)
    start, _ = day_bounds(current)
    attendance = Attendance(
        user_id=user.id,
        company_id=company_id,
        date=start,
        check_in=current,
        check_out=None,
        hourly_rate=user.hourly_rate,
        notes=notes or None,
        project_id=project_id,
        task_id=task_id,
    )
    db.add(attendance)
    db.flush()
    logger.info("attendance check-in user_id=%s company_id=%s id=%s", user.id, company_id, attendance.id)
    return attendance


def _append_notes(current: Optional[str], extra: Optional[str]) -> Optional[str]:
    if not extra:
        return current
    return "\n".join([current or "", extra]).strip()


def check_out(
    db: Session,
    user: User,
    company_id: int,
    *,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Attendance:
    current = _now(now)
    attendance = find_open_session(db, user, company_id, current)
    if not attendance:
        raise NotFound("No existe un registro de entrada pendiente para hoy")

    attendance.check_out = current
    attendance.notes = _append_notes(attendance.notes, notes)
    db.flush()
    logger.info("attendance check-out user_id=%s company_id=%s id=%s", user.id, company_id, attendance.id)
    return attendance


def get_attendance(db: Session, company_id: int, attendance_id: int) -> Attendance:
    attendance = (
        db.query(Attendance)
        .filter(Attendance.id == attendance_id, Attendance.company_id == company_id)
        .first()
    )
    if not attendance:
        raise NotFound("Registro de asistencia no encontrado")
    return attendance


def list_attendances(
    db: Session,
    company_id: int,
    *,
    user_id: Optional[int] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
) -> List[Attendance]:
    query = db.query(Attendance).filter(Attendance.company_id == company_id)
    if user_id:
        query = query.filter(Attendance.user_id == user_id)
    if start_date:
        query = query.filter(Attendance.date >= start_date)
    if end_date:
        query = query.filter(Attendance.date <= end_date)
    return query.order_by(Attendance.check_in.desc()).all()


def update_attendance(db: Session, attendance: Attendance, changes: Mapping[str, Any]) -> Attendance:
    # Corrección manual del administrador: no pasa por la regla de sesión única
    for field in _EDITABLE_FIELDS:
        if field in changes:
            setattr(attendance, field, changes[field])
    if attendance.check_in:
        attendance.date, _ = day_bounds(attendance.check_in)
    db.flush()
    return attendance


def delete_attendance(db: Session, attendance: Attendance) -> None:
    db.delete(attendance)
    db.flush()


def session_hours(attendance: Attendance) -> float:
    if not attendance.check_in or not attendance.check_out:
        return 0.0
    return (attendance.check_out - attendance.check_in).total_seconds() / 3600


def session_cost(attendance: Attendance) -> float:
    if not attendance.hourly_rate:
        return 0.0
    return session_hours(attendance) * float(attendance.hourly_rate)


def total_cost(sessions: Iterable[Attendance]) -> float:
    return sum(session_cost(session) for session in sessions)


def attendance_to_dict(attendance: Attendance) -> dict:
    return {
        "id": attendance.id,
        "user_id": attendance.user_id,
        "company_id": attendance.company_id,
        "date": attendance.date,
        "check_in": attendance.check_in,
        "check_out": attendance.check_out,
        "hourly_rate": attendance.hourly_rate,
        "hours": round(session_hours(attendance), 2),
        "cost": round(session_cost(attendance), 2),
        "notes": attendance.notes,
        "project_id": attendance.project_id,
        "task_id": attendance.task_id,
        "created_at": attendance.created_at,
        "updated_at": attendance.updated_at,
    }
