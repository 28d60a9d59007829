import logging
from dataclasses import dataclass
from datetime import date

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.locks import attendance_lock_key, redis_lock, workshop_lock_key
from app.core.redis_client import get_redis_client
from app.models.reservations import Reservation
from app.models.users import User
from app.models.workshops import Workshop
from app.services.errors import (
    AlreadyReservedError,
    NotFoundError,
    SeatsFullError,
    WorkshopExpiredError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SeatChange:
    workshop_id: int
    user_id: int
    available_seats: int
    total_seats: int


def apply_delta(db: Session, workshop_id: int, delta: int, precondition=None) -> bool:
    """
    Shift a workshop's available seats by ``delta`` in a single UPDATE.

    The row only changes if the new value stays within [0, total_seats] and
    the optional ``precondition`` clause holds. Returns True if it changed.
    """
    new_value = Workshop.available_seats + delta
    stmt = (
        update(Workshop)
        .where(Workshop.id == workshop_id)
        .where(new_value >= 0)
        .where(new_value <= Workshop.total_seats)
        .values(available_seats=new_value)
        .execution_options(synchronize_session=False)
    )
    if precondition is not None:
        stmt = stmt.where(precondition)
    res = db.execute(stmt)
    return res.rowcount == 1  # type: ignore


def reserve_seat(db: Session, *, workshop_id: int, user_id: int, today: date) -> SeatChange:
    """
    Reserve a seat with a per-workshop Redis lock so the capacity check and
    the decrement can't interleave with another reserve or cancel.
    """
    redis_client = get_redis_client()
    with redis_lock(redis_client, workshop_lock_key(workshop_id)):
        try:
            change = _reserve_in_transaction(db, workshop_id, user_id, today)
            db.commit()
        except Exception:
            db.rollback()
            raise

    logger.info(
        f"Seat reserved: workshop_id={workshop_id}, user_id={user_id}, "
        f"available={change.available_seats}/{change.total_seats}"
    )
    return change


def _reserve_in_transaction(db: Session, workshop_id: int, user_id: int, today: date) -> SeatChange:
    user = db.get(User, user_id)
    workshop = db.get(Workshop, workshop_id, populate_existing=True)
    if not user or not workshop:
        raise NotFoundError("User or workshop not found")
    if workshop.date < today:
        raise WorkshopExpiredError("Workshop expired")
    if workshop.available_seats <= 0:
        raise SeatsFullError("Workshop full")

    existing = db.scalar(
        select(Reservation.id).where(
            Reservation.workshop_id == workshop_id,
            Reservation.user_id == user_id,
        )
    )
    if existing is not None:
        raise AlreadyReservedError("Already reserved")

    db.add(Reservation(workshop_id=workshop_id, user_id=user_id))
    try:
        db.flush()
    except IntegrityError:
        raise AlreadyReservedError("Already reserved")

    # Check capacity and decrement atomically
    if not apply_delta(db, workshop_id, -1, precondition=Workshop.date >= today):
        raise SeatsFullError("Workshop full")

    db.refresh(workshop)
    return SeatChange(
        workshop_id=workshop_id,
        user_id=user_id,
        available_seats=workshop.available_seats,
        total_seats=workshop.total_seats,
    )


def cancel_reservation(db: Session, *, workshop_id: int, user_id: int) -> SeatChange:
    """
    Release a seat. Also holds the pair's attendance lock so a check-in
    can't record attendance against a reservation being removed.
    """
    redis_client = get_redis_client()
    with redis_lock(redis_client, workshop_lock_key(workshop_id)), redis_lock(
        redis_client, attendance_lock_key(workshop_id, user_id)
    ):
        try:
            change = _cancel_in_transaction(db, workshop_id, user_id)
            db.commit()
        except Exception:
            db.rollback()
            raise

    logger.info(
        f"Reservation cancelled: workshop_id={workshop_id}, user_id={user_id}, "
        f"available={change.available_seats}/{change.total_seats}"
    )
    return change


def _cancel_in_transaction(db: Session, workshop_id: int, user_id: int) -> SeatChange:
    reservation = db.scalar(
        select(Reservation).where(
            Reservation.workshop_id == workshop_id,
            Reservation.user_id == user_id,
        )
    )
    if reservation is None:
        raise NotFoundError("Reservation not found")

    db.delete(reservation)
    db.flush()

    if not apply_delta(db, workshop_id, 1):
        # available was already at total_seats
        logger.warning(f"Seat release capped at total_seats for workshop_id={workshop_id}")

    workshop = db.get(Workshop, workshop_id, populate_existing=True)
    return SeatChange(
        workshop_id=workshop_id,
        user_id=user_id,
        available_seats=workshop.available_seats,  # type: ignore
        total_seats=workshop.total_seats,  # type: ignore
    )
