from datetime import date
from typing import Any

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.db import get_db
from app.errors import success_payload
from app.security import Principal, require_admin
from app.services import reporting

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/dashboard")
def admin_dashboard(
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    dashboard = reporting.get_admin_dashboard(db, principal, start_date=start_date, end_date=end_date)
    return success_payload(dashboard.model_dump(mode="json"), message="Dashboard retrieved successfully")
