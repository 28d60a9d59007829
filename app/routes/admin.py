from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.database.db import get_db
from app.models.workshops import Workshop
from app.schemas.admin import AdminOverviewOut
from app.schemas.checkin import AttendanceOut
from app.services.workshops import get_admin_overview, list_attendance

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/overview", response_model=AdminOverviewOut)
def overview(db: Session = Depends(get_db)):
    return get_admin_overview(db)


@router.get("/workshops/{workshop_id}/attendance", response_model=list[AttendanceOut])
def workshop_attendance(workshop_id: int, db: Session = Depends(get_db)):
    if db.get(Workshop, workshop_id) is None:
        raise HTTPException(status_code=404, detail="Workshop not found")
    return list_attendance(db, workshop_id)
