from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.database.db import get_db
from app.models.workshops import Workshop
from app.schemas.workshops import WorkshopCreate, WorkshopOut, WorkshopStatsOut
from app.services.workshops import create_workshop, get_workshop_stats, list_workshops

router = APIRouter(prefix="/workshops", tags=["workshops"])


@router.post("", response_model=WorkshopOut, status_code=201)
def add_workshop(payload: WorkshopCreate, db: Session = Depends(get_db)):
    return create_workshop(db, **payload.model_dump())


@router.get("", response_model=list[WorkshopOut])
def all_workshops(db: Session = Depends(get_db)):
    return list_workshops(db)


@router.get("/{workshop_id}", response_model=WorkshopOut)
def get_workshop(workshop_id: int, db: Session = Depends(get_db)):
    workshop = db.get(Workshop, workshop_id)
    if not workshop:
        raise HTTPException(status_code=404, detail="Workshop not found")
    return workshop


@router.get("/{workshop_id}/stats", response_model=WorkshopStatsOut)
def workshop_stats(workshop_id: int, db: Session = Depends(get_db)):
    stats = get_workshop_stats(db, workshop_id)
    if not stats:
        raise HTTPException(status_code=404, detail="Workshop not found")
    return stats
