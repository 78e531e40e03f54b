from datetime import date
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from app.db import get_db
from app.errors import success_payload
from app.pagination import PageParams, page_params
from app.security import Principal, require_principal
from app.services import attendance as attendance_service
from app.services import reporting

router = APIRouter(prefix="/attendance", tags=["attendance"])


@router.post("/clock-in")
def clock_in(
    request: Request,
    principal: Principal = Depends(require_principal),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    attendance = attendance_service.clock_in(db, principal.user_id)
    request.state.attendance_id = attendance.attendance_id
    return success_payload(
        attendance_service.to_attendance_read(attendance).model_dump(mode="json"),
        message="Clock in successful",
    )


@router.put("/clock-out")
def clock_out(
    request: Request,
    principal: Principal = Depends(require_principal),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    attendance = attendance_service.clock_out(db, principal.user_id)
    request.state.attendance_id = attendance.attendance_id
    return success_payload(
        attendance_service.to_attendance_read(attendance).model_dump(mode="json"),
        message="Clock out successful",
    )


@router.get("/logs")
def attendance_logs(
    day: date | None = Query(default=None, alias="date"),
    department_id: UUID | None = Query(default=None),
    params: PageParams = Depends(page_params),
    principal: Principal = Depends(require_principal),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    page = reporting.get_attendance_logs(
        db,
        principal,
        reporting.LogFilter(day=day, department_id=department_id),
        params,
    )
    return success_payload(
        [item.model_dump(mode="json") for item in page.items],
        message="Attendance logs retrieved successfully",
        pagination=page.pagination(),
    )


@router.get("/history")
def attendance_history(
    user_id: UUID = Query(...),
    params: PageParams = Depends(page_params),
    principal: Principal = Depends(require_principal),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    page = reporting.get_attendance_history(db, principal, user_id, params)
    return success_payload(
        [item.model_dump(mode="json") for item in page.items],
        message="Attendance history retrieved successfully",
        pagination=page.pagination(),
    )


@router.get("/status")
def attendance_status(
    user_id: UUID | None = Query(default=None),
    principal: Principal = Depends(require_principal),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    current = reporting.check_current_status(db, principal, user_id)
    return success_payload(current.model_dump(mode="json"), message="Attendance status retrieved successfully")
