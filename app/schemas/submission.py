"""Module F: Submission schemas."""
from datetime import datetime
from pydantic import BaseModel, ConfigDict


class SubmittedGuestOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    room_number: int | None = None
    gender: str | None = None
    age: int | None = None
    status: str | None = None
    nationality: str | None = None
    is_check_in: bool = False


class SubmissionDay(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    day: int
    check_ins: int = 0
    overnight: int = 0
    occupied: int = 0
    guests: list[SubmittedGuestOut] = []


class SubmissionCreate(BaseModel):
    month: int
    year: int


class SubmissionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    month: int
    year: int
    deadline: datetime
    submitted_at: datetime
    is_late: bool
    penalty_amount: float
    penalty_paid: bool
    receipt_number: str | None = None
    average_guest_nights: float
    average_room_occupancy_rate: float
    average_guests_per_room: float
    number_of_rooms: int


class SubmissionDetails(SubmissionResponse):
    company_name: str | None = None
    accommodation_type: str | None = None
    days: list[SubmissionDay] = []
    nationality_counts: dict[str, int] = {}


class SubmissionCheck(BaseModel):
    has_submitted: bool


class PenaltyUpdate(BaseModel):
    penalty_paid: bool
    receipt_number: str | None = None
    access_code: str
