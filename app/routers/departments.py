from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.db import get_db
from app.errors import success_payload
from app.pagination import PageParams, page_params
from app.schemas import DepartmentAssignmentRequest, DepartmentCreate, DepartmentUpdate
from app.security import require_admin, require_principal
from app.services import departments as department_service
from app.services import identity

router = APIRouter(prefix="/departments", tags=["departments"])


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
def create_department(payload: DepartmentCreate, db: Session = Depends(get_db)) -> dict[str, Any]:
    department = department_service.create_department(db, payload)
    return success_payload(
        department_service.to_department_read(department).model_dump(mode="json"),
        message="Department created successfully",
        code=status.HTTP_201_CREATED,
    )


@router.get("", dependencies=[Depends(require_principal)])
def list_departments(
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    page = department_service.list_departments(db, params)
    return success_payload(
        [department_service.to_department_read(item).model_dump(mode="json") for item in page.items],
        message="Departments retrieved successfully",
        pagination=page.pagination(),
    )


@router.post("/assignment", dependencies=[Depends(require_admin)])
def assign_department(payload: DepartmentAssignmentRequest, db: Session = Depends(get_db)) -> dict[str, Any]:
    identity.assign_department(db, payload.user_id, payload.department_id)
    view = identity.build_user_view(db, payload.user_id)
    return success_payload(view.model_dump(mode="json"), message="Department assigned successfully")


@router.get("/{department_id}", dependencies=[Depends(require_principal)])
def get_department(department_id: UUID, db: Session = Depends(get_db)) -> dict[str, Any]:
    department = department_service.get_department_or_404(db, department_id)
    return success_payload(
        department_service.to_department_read(department).model_dump(mode="json"),
        message="Department retrieved successfully",
    )


@router.put("/{department_id}", dependencies=[Depends(require_admin)])
def update_department(
    department_id: UUID,
    payload: DepartmentUpdate,
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    department = department_service.update_department(db, department_id, payload)
    return success_payload(
        department_service.to_department_read(department).model_dump(mode="json"),
        message="Department updated successfully",
    )


@router.delete("/{department_id}", dependencies=[Depends(require_admin)])
def delete_department(department_id: UUID, db: Session = Depends(get_db)) -> dict[str, Any]:
    department_service.delete_department(db, department_id)
    return success_payload(None, message="Department deleted successfully")
