import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.clock import SystemClock
from app.core.locks import attendance_lock_key, redis_lock
from app.models.attendance import Attendance
from app.models.reservations import Reservation
from app.models.users import User
from app.models.workshops import Workshop
from app.services import seat_ledger
from app.services.broadcaster import (
    ATTENDANCE,
    RESERVATION,
    RESERVATION_CANCELLED,
    TOKEN_ROTATED,
    EventBroadcaster,
)
from app.services.errors import AlreadyCheckedInError, NoReservationError, NotFoundError
from app.services.seat_ledger import SeatChange
from app.services.token_store import IssuedToken, TokenScope, TokenStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Attendee:
    id: int
    name: str
    email: str


@dataclass(frozen=True)
class CheckinResult:
    attendee: Attendee
    workshop_id: int
    checked_in_at: datetime
    rotated_token: IssuedToken | None = None


class CheckinService:
    """
    Entry point for reservations, token issuance and check-in.

    Seat changes go through the seat ledger, tokens through the token store,
    and every successful state change is published on the broadcaster.
    """

    def __init__(self, token_store: TokenStore, broadcaster: EventBroadcaster, clock=None):
        self.token_store = token_store
        self.broadcaster = broadcaster
        self.clock = clock or SystemClock()

    def reserve(self, db: Session, workshop_id: int, user_id: int) -> SeatChange:
        change = seat_ledger.reserve_seat(
            db, workshop_id=workshop_id, user_id=user_id, today=self.clock.today()
        )
        self.broadcaster.publish(RESERVATION, _seat_payload(change))
        return change

    def cancel_reservation(self, db: Session, workshop_id: int, user_id: int) -> SeatChange:
        change = seat_ledger.cancel_reservation(db, workshop_id=workshop_id, user_id=user_id)
        self.broadcaster.publish(RESERVATION_CANCELLED, _seat_payload(change))
        return change

    def issue_token(self, db: Session, workshop_id: int, user_id: int | None = None) -> IssuedToken:
        """Issue a workshop token, or a personal token for a user holding a reservation."""
        if db.get(Workshop, workshop_id) is None:
            raise NotFoundError("Workshop not found")
        if user_id is not None and not _has_reservation(db, workshop_id, user_id):
            raise NoReservationError("No reservation found")

        return self.token_store.issue(TokenScope(workshop_id=workshop_id, user_id=user_id))

    def check_in(
        self,
        db: Session,
        *,
        token: str,
        workshop_id: int,
        user_id: int,
        user_scoped: bool | None = None,
    ) -> CheckinResult:
        """
        Check a user in with a scanned token.

        ``user_scoped`` restricts which kind of token is accepted (None accepts
        both). A workshop token is rotated only after a successful check-in;
        one burned by an already-checked-in user stays used until the next
        ``issue_token`` call.
        """
        user = db.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found")
        if not _has_reservation(db, workshop_id, user_id):
            raise NoReservationError("No reservation found for this workshop")

        # The token is spent even if the attendance check below fails.
        scope = self.token_store.consume(token, workshop_id, user_id, user_scoped=user_scoped)

        checked_in_at = self.clock.now()
        with redis_lock(self.token_store.redis, attendance_lock_key(workshop_id, user_id)):
            try:
                record = _record_attendance(db, workshop_id, user_id, checked_in_at)
                db.commit()
            except Exception:
                db.rollback()
                raise

        attendee = Attendee(id=user.id, name=user.name, email=user.email)
        logger.info(f"Checked in: workshop_id={workshop_id}, user_id={user_id}")
        self.broadcaster.publish(
            ATTENDANCE,
            {
                "id": record.id,
                "user_id": attendee.id,
                "user_name": attendee.name,
                "user_email": attendee.email,
                "workshop_id": workshop_id,
                "checked_in_at": checked_in_at.isoformat(),
            },
        )

        rotated = None
        if scope.is_workshop_scoped:
            rotated = self.token_store.issue(TokenScope(workshop_id=workshop_id))
            self.broadcaster.publish(
                TOKEN_ROTATED,
                {
                    "workshop_id": workshop_id,
                    "user_name": attendee.name,
                    "token": rotated.token,
                    "expires_at": rotated.expires_at_ms,
                },
            )

        return CheckinResult(
            attendee=attendee,
            workshop_id=workshop_id,
            checked_in_at=checked_in_at,
            rotated_token=rotated,
        )

    def attendance_count(self, db: Session, workshop_id: int) -> int:
        count = db.scalar(
            select(func.count(Attendance.id)).where(Attendance.workshop_id == workshop_id)
        )
        return int(count or 0)


def _has_reservation(db: Session, workshop_id: int, user_id: int) -> bool:
    reservation_id = db.scalar(
        select(Reservation.id).where(
            Reservation.workshop_id == workshop_id,
            Reservation.user_id == user_id,
        )
    )
    return reservation_id is not None


def _record_attendance(db: Session, workshop_id: int, user_id: int, now: datetime) -> Attendance:
    # cancel_reservation holds the same pair lock, so this read stays valid until commit
    if not _has_reservation(db, workshop_id, user_id):
        raise NoReservationError("No reservation found for this workshop")

    existing = db.scalar(
        select(Attendance.id).where(
            Attendance.workshop_id == workshop_id,
            Attendance.user_id == user_id,
        )
    )
    if existing is not None:
        raise AlreadyCheckedInError("Already checked in for this workshop")

    record = Attendance(workshop_id=workshop_id, user_id=user_id, checked_in_at=now)
    db.add(record)
    try:
        db.flush()
    except IntegrityError:
        raise AlreadyCheckedInError("Already checked in for this workshop")
    return record


def _seat_payload(change: SeatChange) -> dict:
    return {
        "workshop_id": change.workshop_id,
        "user_id": change.user_id,
        "available_seats": change.available_seats,
        "total_seats": change.total_seats,
    }
