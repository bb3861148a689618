from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, Request
from sqlalchemy.orm import Session

from erp.core.database import get_db
from erp.deps import get_bearer_api_company
from erp.models.company import Company
from erp.services.gateway import ModelKind, ModelRepository, serialize

router = APIRouter(prefix="/api/generic", tags=["generic"])


def get_repository(model: str, db: Session = Depends(get_db)) -> ModelRepository:
    # el modelo se valida antes de cualquier acceso a datos
    return ModelRepository(db, ModelKind.parse(model))


@router.get("/{model}")
def read_records(
    request: Request,
    _: Company = Depends(get_bearer_api_company),
    repository: ModelRepository = Depends(get_repository),
):
    params = dict(request.query_params)
    record_id = params.get("id")
    if record_id:
        return serialize(repository.get(record_id))
    return repository.list(params)


@router.post("/{model}", status_code=201)
def create_record(
    data: Dict[str, Any] = Body(...),
    _: Company = Depends(get_bearer_api_company),
    repository: ModelRepository = Depends(get_repository),
):
    return serialize(repository.create(data))


@router.put("/{model}")
def update_record(
    data: Dict[str, Any] = Body(...),
    _: Company = Depends(get_bearer_api_company),
    repository: ModelRepository = Depends(get_repository),
):
    return serialize(repository.update(data))


@router.delete("/{model}")
def delete_record(
    request: Request,
    _: Company = Depends(get_bearer_api_company),
    repository: ModelRepository = Depends(get_repository),
):
    repository.delete(request.query_params.get("id"))
    return {"success": True, "message": "Registro eliminado"}
