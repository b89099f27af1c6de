from __future__ import annotations

from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator

from pubquiz.models import as_naive_utc


EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

EventStatus = Literal["scheduled", "completed", "cancelled"]


class RegisterRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=8)


class LoginRequest(BaseModel):
    email: str
    password: str


class SeasonCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    slug: Optional[str] = Field(default=None, max_length=255)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    is_active: bool = False
    description: Optional[str] = None

    @model_validator(mode="after")
    def check_dates(self):
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must be on or after start_date")
        return self


class SeasonUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    # Empty string asks for a slug regenerated from the new name.
    slug: Optional[str] = Field(default=None, max_length=255)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    is_active: Optional[bool] = None
    description: Optional[str] = None

    @model_validator(mode="after")
    def check_dates(self):
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must be on or after start_date")
        return self


class EventCreate(BaseModel):
    season_id: int
    title: str = Field(min_length=1, max_length=255)
    location: Optional[str] = Field(default=None, max_length=255)
    starts_at: datetime
    ends_at: Optional[datetime] = None
    status: EventStatus = "scheduled"
    scores_finalized: bool = False

    @model_validator(mode="after")
    def check_times(self):
        if self.ends_at and as_naive_utc(self.ends_at) < as_naive_utc(self.starts_at):
            raise ValueError("ends_at must be on or after starts_at")
        return self


class EventUpdate(BaseModel):
    season_id: Optional[int] = None
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    location: Optional[str] = Field(default=None, max_length=255)
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    status: Optional[EventStatus] = None
    scores_finalized: Optional[bool] = None

    @model_validator(mode="after")
    def check_times(self):
        if self.starts_at and self.ends_at and as_naive_utc(self.ends_at) < as_naive_utc(self.starts_at):
            raise ValueError("ends_at must be on or after starts_at")
        return self


class ParticipationCreate(BaseModel):
    event_id: int
    user_id: Optional[int] = None


class ParticipationUpdate(BaseModel):
    total_points: Optional[int] = Field(default=None, ge=0)
    rank: Optional[int] = Field(default=None, ge=1)


class BoardRowOut(BaseModel):
    team: Optional[str] = None
    points: int
    rank: Optional[int] = None


class EventBoardOut(BaseModel):
    board: list[BoardRowOut]
