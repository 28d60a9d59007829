from datetime import datetime

from pydantic import BaseModel, Field


class ReservationRequest(BaseModel):
    user_id: int = Field(ge=1)
    workshop_id: int = Field(ge=1)


class ReservationOut(BaseModel):
    id: int
    user_id: int
    workshop_id: int
    created_at: datetime | None = None

    class Config:
        from_attributes = True


class SeatChangeOut(BaseModel):
    workshop_id: int
    user_id: int
    available_seats: int
    total_seats: int

    class Config:
        from_attributes = True
