from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from erp.core.database import get_db
from erp.deps import require_admin
from erp.services import attendance as attendance_service
from erp.services.tenant_context import TenantContext

router = APIRouter(prefix="/api/attendance", tags=["attendance"])


class AttendanceUpdate(BaseModel):
    check_in: Optional[datetime] = None
    check_out: Optional[datetime] = None
    hourly_rate: Optional[float] = None
    notes: Optional[str] = None
    project_id: Optional[int] = None
    task_id: Optional[int] = None

    @field_validator("check_in")
    @classmethod
    def _check_in_required(cls, value: Optional[datetime]) -> datetime:
        if value is None:
            raise ValueError("check_in no puede ser nulo")
        return value


@router.get("")
def list_attendance(
    user_id: Optional[int] = Query(default=None),
    start_date: Optional[datetime] = Query(default=None),
    end_date: Optional[datetime] = Query(default=None),
    ctx: TenantContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    sessions = attendance_service.list_attendances(
        db,
        ctx.require_company_id(),
        user_id=user_id,
        start_date=start_date,
        end_date=end_date,
    )
    return {
        "attendances": [attendance_service.attendance_to_dict(item) for item in sessions],
        "total_cost": round(attendance_service.total_cost(sessions), 2),
    }


@router.get("/{attendance_id}")
def get_attendance(
    attendance_id: int,
    ctx: TenantContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    attendance = attendance_service.get_attendance(db, ctx.require_company_id(), attendance_id)
    return attendance_service.attendance_to_dict(attendance)


@router.put("/{attendance_id}")
def update_attendance(
    attendance_id: int,
    payload: AttendanceUpdate,
    ctx: TenantContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    attendance = attendance_service.get_attendance(db, ctx.require_company_id(), attendance_id)
    attendance_service.update_attendance(db, attendance, payload.model_dump(exclude_unset=True))
    db.commit()
    db.refresh(attendance)
    return attendance_service.attendance_to_dict(attendance)


@router.delete("/{attendance_id}")
def delete_attendance(
    attendance_id: int,
    ctx: TenantContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    attendance = attendance_service.get_attendance(db, ctx.require_company_id(), attendance_id)
    attendance_service.delete_attendance(db, attendance)
    db.commit()
    return {"success": True}
