from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.core.dependencies import get_checkin_service
from app.database.db import get_db
from app.schemas.checkin import (
    AttendeeOut,
    CheckinOut,
    CheckinRequest,
    TokenOut,
    UserTokenRequest,
    WorkshopTokenOut,
    WorkshopTokenRequest,
)
from app.services.checkin import CheckinResult, CheckinService
from app.services.token_store import IssuedToken

router = APIRouter(prefix="/qr", tags=["checkin"])


def _token_out(issued: IssuedToken) -> dict:
    return {
        "token": issued.token,
        "workshop_id": issued.scope.workshop_id,
        "user_id": issued.scope.user_id,
        "expires_at": issued.expires_at_datetime,
        "expires_at_ms": issued.expires_at_ms,
    }


def _checkin_out(result: CheckinResult) -> CheckinOut:
    rotated = result.rotated_token
    return CheckinOut(
        user=AttendeeOut(id=result.attendee.id, name=result.attendee.name, email=result.attendee.email),
        workshop_id=result.workshop_id,
        checked_in_at=result.checked_in_at,
        new_token=rotated.token if rotated else None,
        new_expires_at_ms=rotated.expires_at_ms if rotated else None,
    )


@router.post("/generate", response_model=TokenOut)
def generate_user_token(
    payload: UserTokenRequest,
    db: Session = Depends(get_db),
    service: CheckinService = Depends(get_checkin_service),
):
    issued = service.issue_token(db, payload.workshop_id, payload.user_id)
    return _token_out(issued)


@router.post("/generate-workshop", response_model=WorkshopTokenOut)
def generate_workshop_token(
    payload: WorkshopTokenRequest,
    db: Session = Depends(get_db),
    service: CheckinService = Depends(get_checkin_service),
):
    issued = service.issue_token(db, payload.workshop_id)
    return {
        **_token_out(issued),
        "attendance_count": service.attendance_count(db, payload.workshop_id),
    }


@router.get("/workshop/{workshop_id}/current", response_model=TokenOut)
def current_workshop_token(
    workshop_id: int,
    service: CheckinService = Depends(get_checkin_service),
):
    issued = service.token_store.current_workshop_token(workshop_id)
    if issued is None:
        raise HTTPException(status_code=404, detail="No live token for this workshop")
    return _token_out(issued)


@router.post("/validate-workshop", response_model=CheckinOut)
def validate_workshop_token(
    payload: CheckinRequest,
    db: Session = Depends(get_db),
    service: CheckinService = Depends(get_checkin_service),
):
    """Scan of the rotating workshop QR code; a personal token is rejected."""
    result = service.check_in(
        db,
        token=payload.token,
        workshop_id=payload.workshop_id,
        user_id=payload.user_id,
        user_scoped=False,
    )
    return _checkin_out(result)


@router.post("/validate", response_model=CheckinOut)
def validate_user_token(
    payload: CheckinRequest,
    db: Session = Depends(get_db),
    service: CheckinService = Depends(get_checkin_service),
):
    """Admin scan of a user's personal QR code; a workshop token is rejected."""
    result = service.check_in(
        db,
        token=payload.token,
        workshop_id=payload.workshop_id,
        user_id=payload.user_id,
        user_scoped=True,
    )
    return _checkin_out(result)
