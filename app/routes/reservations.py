from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.dependencies import get_checkin_service
from app.database.db import get_db
from app.schemas.reservations import ReservationOut, ReservationRequest, SeatChangeOut
from app.services.checkin import CheckinService
from app.services.workshops import list_reservations

router = APIRouter(prefix="/reservations", tags=["reservations"])


@router.post("", response_model=SeatChangeOut, status_code=201)
def reserve_seat(
    payload: ReservationRequest,
    db: Session = Depends(get_db),
    service: CheckinService = Depends(get_checkin_service),
):
    return service.reserve(db, payload.workshop_id, payload.user_id)


@router.delete("", response_model=SeatChangeOut)
def cancel_reservation(
    payload: ReservationRequest,
    db: Session = Depends(get_db),
    service: CheckinService = Depends(get_checkin_service),
):
    return service.cancel_reservation(db, payload.workshop_id, payload.user_id)


@router.get("", response_model=list[ReservationOut])
def user_reservations(user_id: int = Query(ge=1), db: Session = Depends(get_db)):
    return list_reservations(db, user_id)
