from pydantic import BaseModel

from app.schemas.checkin import AttendanceOut
from app.schemas.reservations import ReservationOut
from app.schemas.users import UserOut
from app.schemas.workshops import WorkshopOut


class AdminOverviewOut(BaseModel):
    users: list[UserOut]
    workshops: list[WorkshopOut]
    reservations: list[ReservationOut]
    attendance: list[AttendanceOut]

    class Config:
        from_attributes = True
