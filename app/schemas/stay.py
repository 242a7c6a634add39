"""Module C: Stay schemas."""
from pydantic import BaseModel, ConfigDict, field_validator


class GuestIn(BaseModel):
    gender: str
    age: int
    status: str = ""
    nationality: str = ""

    @field_validator("gender", "status", "nationality", mode="before")
    @classmethod
    def strip_text(cls, v: str | None) -> str:
        return (v or "").strip()


class GuestOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    gender: str
    age: int
    status: str
    nationality: str


class StayCreate(BaseModel):
    room: int
    start_day: int
    start_month: int
    start_year: int
    length_of_stay: int
    is_check_in: bool = True
    guests: list[GuestIn]


class StayUpdate(BaseModel):
    """Fields editable from the start-day record; omitted fields keep their value."""
    guests: list[GuestIn] | None = None
    length_of_stay: int | None = None
    is_check_in: bool | None = None


class StayResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    stay_id: str
    room: int
    start_day: int
    start_month: int
    start_year: int
    length_of_stay: int
    is_check_in: bool
    guests: list[GuestOut]


class MonthRef(BaseModel):
    year: int
    month: int


class StayChangeResponse(BaseModel):
    stay: StayResponse | None = None
    months: list[MonthRef] = []
    removed_records: int = 0
    # Months that only exist in storage are cleaned up in the background
    pending_purge: bool = False


class ConflictCheck(BaseModel):
    room: int
    start_day: int
    start_month: int
    start_year: int
    length_of_stay: int
    exclude_stay_id: str | None = None


class ConflictResponse(BaseModel):
    conflict: bool
    day: int | None = None
    month: int | None = None
    year: int | None = None
    stay_id: str | None = None
    message: str | None = None
