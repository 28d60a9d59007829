from datetime import datetime

from pydantic import BaseModel, Field


class UserTokenRequest(BaseModel):
    user_id: int = Field(ge=1)
    workshop_id: int = Field(ge=1)


class WorkshopTokenRequest(BaseModel):
    workshop_id: int = Field(ge=1)


class TokenOut(BaseModel):
    token: str
    workshop_id: int
    user_id: int | None = None
    expires_at: datetime
    expires_at_ms: int


class WorkshopTokenOut(TokenOut):
    attendance_count: int


class CheckinRequest(BaseModel):
    token: str = Field(min_length=1)
    workshop_id: int = Field(ge=1)
    user_id: int = Field(ge=1)


class AttendeeOut(BaseModel):
    id: int
    name: str
    email: str


class CheckinOut(BaseModel):
    success: bool = True
    user: AttendeeOut
    workshop_id: int
    checked_in_at: datetime
    new_token: str | None = None
    new_expires_at_ms: int | None = None


class AttendanceOut(BaseModel):
    id: int
    user_id: int
    workshop_id: int
    checked_in_at: datetime

    class Config:
        from_attributes = True
