import logging
from datetime import date

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.attendance import Attendance
from app.models.reservations import Reservation
from app.models.users import User, UserRole
from app.models.workshops import Workshop
from app.services.errors import DuplicateEmailError

logger = logging.getLogger(__name__)


def create_user(db: Session, *, name: str, email: str, role: str = UserRole.USER.value) -> User:
    user = User(name=name, email=email, role=role)
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise DuplicateEmailError("Email already registered")
    db.refresh(user)
    return user


def create_workshop(
    db: Session,
    *,
    title: str,
    trainer: str,
    date: date,
    time: str,
    duration: str,
    location: str,
    category: str,
    total_seats: int,
    description: str = "",
) -> Workshop:
    workshop = Workshop(
        title=title,
        description=description,
        trainer=trainer,
        date=date,
        time=time,
        duration=duration,
        location=location,
        category=category,
        total_seats=total_seats,
        available_seats=total_seats,
    )
    db.add(workshop)
    db.commit()
    db.refresh(workshop)
    logger.info(f"Workshop created: id={workshop.id}, total_seats={total_seats}")
    return workshop


def list_workshops(db: Session) -> list[Workshop]:
    return list(db.scalars(select(Workshop).order_by(Workshop.date, Workshop.id)))


def list_reservations(db: Session, user_id: int) -> list[Reservation]:
    return list(
        db.scalars(
            select(Reservation).where(Reservation.user_id == user_id).order_by(Reservation.id)
        )
    )


def list_attendance(db: Session, workshop_id: int) -> list[Attendance]:
    return list(
        db.scalars(
            select(Attendance)
            .where(Attendance.workshop_id == workshop_id)
            .order_by(Attendance.checked_in_at)
        )
    )


def get_workshop_stats(db: Session, workshop_id: int) -> dict:
    workshop = db.get(Workshop, workshop_id)
    if not workshop:
        return {}

    reserved_count = db.scalar(
        select(func.count(Reservation.id)).where(Reservation.workshop_id == workshop_id)
    )
    attended_count = db.scalar(
        select(func.count(Attendance.id)).where(Attendance.workshop_id == workshop_id)
    )

    return {
        "workshop_id": workshop.id,
        "total_seats": workshop.total_seats,
        "available_seats": workshop.available_seats,
        "reserved_count": int(reserved_count or 0),
        "attended_count": int(attended_count or 0),
    }


def get_admin_overview(db: Session) -> dict:
    """Everything the admin dashboard shows in one payload."""
    return {
        "users": list(db.scalars(select(User).order_by(User.id))),
        "workshops": list_workshops(db),
        "reservations": list(db.scalars(select(Reservation).order_by(Reservation.id))),
        "attendance": list(db.scalars(select(Attendance).order_by(Attendance.id))),
    }


def seed_defaults(db: Session) -> None:
    """Create the default admin and a sample workshop on an empty database."""
    if db.scalar(select(User.id).where(User.email == "admin@admin.com")) is None:
        db.add(User(name="Admin", email="admin@admin.com", role=UserRole.ADMIN.value))
    if db.scalar(select(Workshop.id).limit(1)) is None:
        db.add(
            Workshop(
                title="Advanced Leadership Skills",
                description="Master leadership with strategies and hands-on exercises.",
                trainer="Sarah Johnson",
                date=date(2026, 12, 15),
                time="09:00",
                duration="4 hours",
                location="Conference Room A",
                category="Leadership",
                total_seats=15,
                available_seats=15,
            )
        )
    db.commit()
