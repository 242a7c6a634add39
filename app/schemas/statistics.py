"""Module G: Per-establishment statistics over finalized submissions."""
from pydantic import BaseModel


class MonthlyMetric(BaseModel):
    month: int
    year: int
    total_check_ins: int
    total_overnight: int
    total_occupied: int
    average_guest_nights: float
    average_room_occupancy_rate: float
    average_guests_per_room: float
    total_rooms: int


class DemographicRow(BaseModel):
    gender: str
    age_group: str
    status: str
    count: int


class NationalityRow(BaseModel):
    nationality: str
    count: int
    male_count: int
    female_count: int
