from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional

from sqlalchemy.orm import Session

from erp.core.errors import InvalidReference, InvalidRequest, NotFound
from erp.models.attendance import Attendance
from erp.models.contact import Contact
from erp.models.invoice import InvoiceItem
from erp.models.payment import Payment
from erp.models.project import Project, ProjectStaff, Property, Task
from erp.models.user import User
from erp.services.tenant_context import TenantContext
from erp.services.tenant_resolver import require_company, resolve_shared_ids

logger = logging.getLogger(__name__)

TASK_STATUSES = ("TODO", "IN_PROGRESS", "DONE")
_PROJECT_FIELDS = ("name", "description", "active")
_PROPERTY_FIELDS = ("code", "address", "active")


def project_to_dict(project: Project) -> dict:
    return {
        "id": project.id,
        "company_id": project.company_id,
        "name": project.name,
        "description": project.description,
        "active": project.active,
        "created_at": project.created_at,
        "updated_at": project.updated_at,
    }


def task_to_dict(task: Task) -> dict:
    return {
        "id": task.id,
        "project_id": task.project_id,
        "title": task.title,
        "status": task.status,
        "created_at": task.created_at,
    }


def property_to_dict(property_: Property) -> dict:
    return {
        "id": property_.id,
        "company_id": property_.company_id,
        "project_id": property_.project_id,
        "responsable_id": property_.responsable_id,
        "code": property_.code,
        "address": property_.address,
        "active": property_.active,
        "created_at": property_.created_at,
    }


def staff_to_dict(staff: ProjectStaff) -> dict:
    user = staff.user
    return {
        "id": staff.id,
        "project_id": staff.project_id,
        "user_id": staff.user_id,
        "hourly_rate": staff.hourly_rate,
        "role": staff.role,
        "created_at": staff.created_at,
        "user": {"id": user.id, "name": user.name, "email": user.email, "hourly_rate": user.hourly_rate}
        if user
        else None,
    }


# Proyectos


def list_projects(
    db: Session, ctx: TenantContext, *, company_id: int, include_inactive: bool = False
) -> List[Project]:
    require_company(db, ctx, company_id)
    query = db.query(Project).filter(Project.user_id == ctx.owner_id, Project.company_id == company_id)
    if not include_inactive:
        query = query.filter(Project.active.is_(True))
    return query.order_by(Project.name.asc(), Project.id.asc()).all()


def get_project(db: Session, ctx: TenantContext, project_id: int) -> Project:
    project = (
        db.query(Project)
        .filter(Project.id == project_id, Project.user_id == ctx.owner_id)
        .first()
    )
    if not project:
        raise NotFound("Proyecto no encontrado")
    return project


def create_project(
    db: Session, ctx: TenantContext, *, company_id: int, name: str, description: Optional[str] = None
) -> Project:
    company = require_company(db, ctx, company_id)
    project = Project(
        user_id=ctx.owner_id,
        company_id=company.id,
        name=name.strip(),
        description=description or None,
    )
    db.add(project)
    db.flush()
    logger.info("project created id=%s company_id=%s", project.id, company.id)
    return project


def update_project(db: Session, ctx: TenantContext, project_id: int, changes: Mapping[str, Any]) -> Project:
    project = get_project(db, ctx, project_id)
    for field in _PROJECT_FIELDS:
        if field in changes and changes[field] is not None:
            value = changes[field]
            setattr(project, field, value.strip() if isinstance(value, str) else value)
    db.flush()
    return project


def delete_project(db: Session, ctx: TenantContext, project_id: int) -> None:
    """Borra el proyecto con sus tareas, propiedades y personal si no tiene movimientos."""
    project = get_project(db, ctx, project_id)
    in_use = (
        db.query(Payment.id).filter(Payment.project_id == project.id).first()
        or db.query(Attendance.id).filter(Attendance.project_id == project.id).first()
        or db.query(InvoiceItem.id).filter(InvoiceItem.project_id == project.id).first()
    )
    if in_use:
        raise InvalidRequest("No se puede eliminar un proyecto con movimientos asociados")

    db.query(ProjectStaff).filter(ProjectStaff.project_id == project.id).delete(synchronize_session=False)
    db.query(Task).filter(Task.project_id == project.id).delete(synchronize_session=False)
    db.query(Property).filter(Property.project_id == project.id).delete(synchronize_session=False)
    db.delete(project)
    db.flush()
    logger.info("project deleted id=%s", project_id)


# Tareas


def normalize_task_status(status: Optional[str]) -> str:
    normalized = (status or "TODO").strip().upper()
    if normalized not in TASK_STATUSES:
        raise InvalidRequest("Estado de tarea inválido")
    return normalized


def list_tasks(db: Session, ctx: TenantContext, project_id: int) -> List[Task]:
    project = get_project(db, ctx, project_id)
    return db.query(Task).filter(Task.project_id == project.id).order_by(Task.id.asc()).all()


def get_task(db: Session, ctx: TenantContext, project_id: int, task_id: int) -> Task:
    project = get_project(db, ctx, project_id)
    task = db.query(Task).filter(Task.id == task_id, Task.project_id == project.id).first()
    if not task:
        raise NotFound("Tarea no encontrada")
    return task


def create_task(db: Session, ctx: TenantContext, project_id: int, *, title: str, status: Optional[str] = None) -> Task:
    project = get_project(db, ctx, project_id)
    task = Task(project_id=project.id, title=title.strip(), status=normalize_task_status(status))
    db.add(task)
    db.flush()
    return task


def update_task(
    db: Session, ctx: TenantContext, project_id: int, task_id: int, changes: Mapping[str, Any]
) -> Task:
    task = get_task(db, ctx, project_id, task_id)
    if changes.get("title"):
        task.title = changes["title"].strip()
    if changes.get("status"):
        task.status = normalize_task_status(changes["status"])
    db.flush()
    return task


def delete_task(db: Session, ctx: TenantContext, project_id: int, task_id: int) -> None:
    task = get_task(db, ctx, project_id, task_id)
    if db.query(Attendance.id).filter(Attendance.task_id == task.id).first():
        raise InvalidRequest("No se puede eliminar una tarea con fichajes asociados")
    db.delete(task)
    db.flush()


# Propiedades


def _ensure_responsable(db: Session, company_id: int, responsable_id: Optional[int]) -> Optional[int]:
    if not responsable_id:
        return None
    contact = (
        db.query(Contact.id)
        .filter(Contact.id == responsable_id, Contact.company_id == company_id)
        .first()
    )
    if not contact:
        raise InvalidReference("Contacto no válido")
    return responsable_id


def list_properties(db: Session, ctx: TenantContext, project_id: int) -> List[Property]:
    project = get_project(db, ctx, project_id)
    return (
        db.query(Property)
        .filter(Property.project_id == project.id)
        .order_by(Property.code.asc(), Property.id.asc())
        .all()
    )


def get_property(db: Session, ctx: TenantContext, project_id: int, property_id: int) -> Property:
    project = get_project(db, ctx, project_id)
    property_ = (
        db.query(Property)
        .filter(Property.id == property_id, Property.project_id == project.id)
        .first()
    )
    if not property_:
        raise NotFound("Propiedad no encontrada")
    return property_


def create_property(
    db: Session,
    ctx: TenantContext,
    project_id: int,
    *,
    code: str,
    address: Optional[str] = None,
    responsable_id: Optional[int] = None,
) -> Property:
    project = get_project(db, ctx, project_id)
    property_ = Property(
        company_id=project.company_id,
        project_id=project.id,
        responsable_id=_ensure_responsable(db, project.company_id, responsable_id),
        code=code.strip(),
        address=address or None,
    )
    db.add(property_)
    db.flush()
    return property_


def update_property(
    db: Session, ctx: TenantContext, project_id: int, property_id: int, changes: Mapping[str, Any]
) -> Property:
    property_ = get_property(db, ctx, project_id, property_id)
    if "responsable_id" in changes:
        property_.responsable_id = _ensure_responsable(db, property_.company_id, changes["responsable_id"])
    for field in _PROPERTY_FIELDS:
        if field in changes and changes[field] is not None:
            value = changes[field]
            setattr(property_, field, value.strip() if isinstance(value, str) else value)
    db.flush()
    return property_


def delete_property(db: Session, ctx: TenantContext, project_id: int, property_id: int) -> None:
    property_ = get_property(db, ctx, project_id, property_id)
    if db.query(Payment.id).filter(Payment.property_id == property_.id).first():
        raise InvalidRequest("No se puede eliminar una propiedad con pagos asociados")
    db.delete(property_)
    db.flush()


# Personal asignado


def list_staff(db: Session, ctx: TenantContext, project_id: int) -> List[ProjectStaff]:
    project = get_project(db, ctx, project_id)
    return (
        db.query(ProjectStaff)
        .filter(ProjectStaff.project_id == project.id)
        .order_by(ProjectStaff.created_at.asc(), ProjectStaff.id.asc())
        .all()
    )


def get_staff(db: Session, ctx: TenantContext, project_id: int, staff_id: int) -> ProjectStaff:
    project = get_project(db, ctx, project_id)
    staff = (
        db.query(ProjectStaff)
        .filter(ProjectStaff.id == staff_id, ProjectStaff.project_id == project.id)
        .first()
    )
    if not staff:
        raise NotFound("Personal no encontrado")
    return staff


def add_staff(
    db: Session,
    ctx: TenantContext,
    project_id: int,
    *,
    user_id: int,
    hourly_rate: float,
    role: Optional[str] = None,
) -> ProjectStaff:
    project = get_project(db, ctx, project_id)
    # solo usuarios del mismo grupo de tenant
    if user_id not in resolve_shared_ids(db, ctx.user_id):
        raise NotFound("Usuario no encontrado")
    user = db.query(User).filter(User.id == user_id).one()

    existing = (
        db.query(ProjectStaff.id)
        .filter(ProjectStaff.project_id == project.id, ProjectStaff.user_id == user.id)
        .first()
    )
    if existing:
        raise InvalidRequest("El usuario ya está asignado a este proyecto")

    staff = ProjectStaff(project_id=project.id, user_id=user.id, hourly_rate=float(hourly_rate), role=role or None)
    db.add(staff)
    db.flush()
    logger.info("project staff added project_id=%s user_id=%s", project.id, user.id)
    return staff


def update_staff(
    db: Session, ctx: TenantContext, project_id: int, staff_id: int, changes: Mapping[str, Any]
) -> ProjectStaff:
    staff = get_staff(db, ctx, project_id, staff_id)
    if changes.get("hourly_rate") is not None:
        staff.hourly_rate = float(changes["hourly_rate"])
    if "role" in changes:
        staff.role = changes["role"] or None
    db.flush()
    return staff


def remove_staff(db: Session, ctx: TenantContext, project_id: int, staff_id: int) -> None:
    staff = get_staff(db, ctx, project_id, staff_id)
    db.delete(staff)
    db.flush()
