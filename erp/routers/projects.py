from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from erp.core.database import get_db
from erp.deps import get_tenant_context, require_admin
from erp.services import projects as project_service
from erp.services.cost_distribution import distribute_costs
from erp.services.payments import payment_to_dict
from erp.services.tenant_context import TenantContext

router = APIRouter(prefix="/api/projects", tags=["projects"])


class ProjectCreate(BaseModel):
    company_id: Optional[int] = None
    name: str = Field(..., min_length=1)
    description: Optional[str] = None


class ProjectUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    active: Optional[bool] = None


class TaskCreate(BaseModel):
    title: str = Field(..., min_length=1)
    status: Optional[str] = None


class TaskUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1)
    status: Optional[str] = None


class PropertyCreate(BaseModel):
    code: str = Field(..., min_length=1)
    address: Optional[str] = None
    responsable_id: Optional[int] = None


class PropertyUpdate(BaseModel):
    code: Optional[str] = Field(default=None, min_length=1)
    address: Optional[str] = None
    responsable_id: Optional[int] = None
    active: Optional[bool] = None


class StaffCreate(BaseModel):
    user_id: int
    hourly_rate: float = Field(..., gt=0)
    role: Optional[str] = None


class StaffUpdate(BaseModel):
    hourly_rate: Optional[float] = Field(default=None, gt=0)
    role: Optional[str] = None


class DistributeCostsPayload(BaseModel):
    start_date: datetime
    end_date: datetime


@router.get("")
def list_projects(
    company_id: Optional[int] = Query(default=None),
    include_inactive: bool = Query(default=False),
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    projects = project_service.list_projects(
        db,
        ctx,
        company_id=company_id or ctx.require_company_id(),
        include_inactive=include_inactive,
    )
    return [project_service.project_to_dict(project) for project in projects]


@router.post("", status_code=201)
def create_project(
    payload: ProjectCreate,
    ctx: TenantContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    project = project_service.create_project(
        db,
        ctx,
        company_id=payload.company_id or ctx.require_company_id(),
        name=payload.name,
        description=payload.description,
    )
    db.commit()
    db.refresh(project)
    return project_service.project_to_dict(project)


@router.get("/{project_id}")
def get_project(
    project_id: int,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    project = project_service.get_project(db, ctx, project_id)
    return {
        **project_service.project_to_dict(project),
        "tasks": [project_service.task_to_dict(task) for task in project_service.list_tasks(db, ctx, project.id)],
        "properties": [
            project_service.property_to_dict(item) for item in project_service.list_properties(db, ctx, project.id)
        ],
    }


@router.put("/{project_id}")
def update_project(
    project_id: int,
    payload: ProjectUpdate,
    ctx: TenantContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    project = project_service.update_project(db, ctx, project_id, payload.model_dump(exclude_unset=True))
    db.commit()
    db.refresh(project)
    return project_service.project_to_dict(project)


@router.delete("/{project_id}")
def delete_project(
    project_id: int,
    ctx: TenantContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    project_service.delete_project(db, ctx, project_id)
    db.commit()
    return {"success": True}


# Tareas


@router.get("/{project_id}/tasks")
def list_tasks(
    project_id: int,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    return [project_service.task_to_dict(task) for task in project_service.list_tasks(db, ctx, project_id)]


@router.post("/{project_id}/tasks", status_code=201)
def create_task(
    project_id: int,
    payload: TaskCreate,
    ctx: TenantContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    task = project_service.create_task(db, ctx, project_id, title=payload.title, status=payload.status)
    db.commit()
    db.refresh(task)
    return project_service.task_to_dict(task)


@router.put("/{project_id}/tasks/{task_id}")
def update_task(
    project_id: int,
    task_id: int,
    payload: TaskUpdate,
    ctx: TenantContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    task = project_service.update_task(db, ctx, project_id, task_id, payload.model_dump(exclude_unset=True))
    db.commit()
    db.refresh(task)
    return project_service.task_to_dict(task)


@router.delete("/{project_id}/tasks/{task_id}")
def delete_task(
    project_id: int,
    task_id: int,
    ctx: TenantContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    project_service.delete_task(db, ctx, project_id, task_id)
    db.commit()
    return {"success": True}


# Propiedades


@router.get("/{project_id}/properties")
def list_properties(
    project_id: int,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    return [project_service.property_to_dict(item) for item in project_service.list_properties(db, ctx, project_id)]


@router.post("/{project_id}/properties", status_code=201)
def create_property(
    project_id: int,
    payload: PropertyCreate,
    ctx: TenantContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    property_ = project_service.create_property(db, ctx, project_id, **payload.model_dump())
    db.commit()
    db.refresh(property_)
    return project_service.property_to_dict(property_)


@router.put("/{project_id}/properties/{property_id}")
def update_property(
    project_id: int,
    property_id: int,
    payload: PropertyUpdate,
    ctx: TenantContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    property_ = project_service.update_property(
        db, ctx, project_id, property_id, payload.model_dump(exclude_unset=True)
    )
    db.commit()
    db.refresh(property_)
    return project_service.property_to_dict(property_)


@router.delete("/{project_id}/properties/{property_id}")
def delete_property(
    project_id: int,
    property_id: int,
    ctx: TenantContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    project_service.delete_property(db, ctx, project_id, property_id)
    db.commit()
    return {"success": True}


# Personal


@router.get("/{project_id}/staff")
def list_staff(
    project_id: int,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    return [project_service.staff_to_dict(staff) for staff in project_service.list_staff(db, ctx, project_id)]


@router.post("/{project_id}/staff", status_code=201)
def add_staff(
    project_id: int,
    payload: StaffCreate,
    ctx: TenantContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    staff = project_service.add_staff(db, ctx, project_id, **payload.model_dump())
    db.commit()
    db.refresh(staff)
    return project_service.staff_to_dict(staff)


@router.put("/{project_id}/staff/{staff_id}")
def update_staff(
    project_id: int,
    staff_id: int,
    payload: StaffUpdate,
    ctx: TenantContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    staff = project_service.update_staff(db, ctx, project_id, staff_id, payload.model_dump(exclude_unset=True))
    db.commit()
    db.refresh(staff)
    return project_service.staff_to_dict(staff)


@router.delete("/{project_id}/staff/{staff_id}")
def remove_staff(
    project_id: int,
    staff_id: int,
    ctx: TenantContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    project_service.remove_staff(db, ctx, project_id, staff_id)
    db.commit()
    return {"success": True}


@router.post("/{project_id}/distribute-costs")
def distribute_project_costs(
    project_id: int,
    payload: DistributeCostsPayload,
    ctx: TenantContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    try:
        result = distribute_costs(
            db,
            ctx,
            project_id,
            start_date=payload.start_date,
            end_date=payload.end_date,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    payments = result.pop("payments")
    for payment in payments:
        db.refresh(payment)
    return {"success": True, **result, "payments": [payment_to_dict(payment) for payment in payments]}
