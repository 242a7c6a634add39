"""Module D: Draft (month bucket) schemas. Record field names follow the stored wire format."""
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field


class GuestRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    gender: str
    age: int
    status: str
    nationality: str
    is_check_in: bool = Field(alias="isCheckIn")


class OccupancyRecordOut(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    day: int
    room: int
    guests: list[GuestRecord]
    length_of_stay: int = Field(alias="lengthOfStay")
    is_check_in: bool = Field(alias="isCheckIn")
    stay_id: str = Field(alias="stayId")
    start_day: int = Field(alias="startDay")
    start_month: int = Field(alias="startMonth")
    start_year: int = Field(alias="startYear")
    is_start_day: bool = Field(alias="isStartDay")


class DayTotalsOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    day: int
    check_ins: int
    overnight: int
    occupied: int


class MonthlyAveragesOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_check_ins: int
    total_overnight: int
    total_occupied: int
    rooms_occupied: int
    average_guest_nights: float
    average_room_occupancy_rate: float
    average_guests_per_room: float


class SyncStatusOut(BaseModel):
    kind: str
    month: int | None = None
    year: int | None = None
    stay_id: str | None = None
    state: str
    attempts: int = 0
    consecutive_failures: int = 0
    last_error: str | None = None
    last_synced_at: datetime | None = None


class MonthDraftResponse(BaseModel):
    month: int
    year: int
    number_of_rooms: int
    is_finalized: bool = False
    is_draft: bool = False
    version: int | None = None
    unsaved_changes: bool = False
    sync_state: str | None = None
    days: list[OccupancyRecordOut] = []
    totals: list[DayTotalsOut] = []
    averages: MonthlyAveragesOut | None = None


class DraftMonth(BaseModel):
    year: int
    month: int
    loaded: bool = False


class SyncRequest(BaseModel):
    force: bool = False


class DraftSummary(BaseModel):
    draft_id: int
    user_id: int
    month: int
    year: int
    last_updated: datetime | None = None
    company_name: str | None = None


class DraftDetails(BaseModel):
    draft_id: int
    month: int
    year: int
    company_name: str | None = None
    number_of_rooms: int
    days: list[OccupancyRecordOut] = []
    totals: list[DayTotalsOut] = []
    averages: MonthlyAveragesOut
