import datetime

from pydantic import BaseModel, Field


# ---------- Workshop ----------
class WorkshopCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: str = ""
    trainer: str = Field(min_length=1, max_length=200)
    date: datetime.date
    time: str = Field(min_length=1, max_length=16)
    duration: str = Field(min_length=1, max_length=64)
    location: str = Field(min_length=1, max_length=200)
    category: str = Field(min_length=1, max_length=100)
    total_seats: int = Field(ge=1)


class WorkshopOut(BaseModel):
    id: int
    title: str
    description: str
    trainer: str
    date: datetime.date
    time: str
    duration: str
    location: str
    category: str
    total_seats: int
    available_seats: int

    class Config:
        from_attributes = True


class WorkshopStatsOut(BaseModel):
    workshop_id: int
    total_seats: int
    available_seats: int
    reserved_count: int
    attended_count: int
