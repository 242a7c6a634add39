"""Module A2: Room grid schemas."""
from pydantic import BaseModel, field_validator


class RoomOut(BaseModel):
    number: int
    name: str


class RoomsResponse(BaseModel):
    number_of_rooms: int
    rooms: list[RoomOut]


class RoomNamesUpdate(BaseModel):
    room_names: list[str]

    @field_validator("room_names")
    @classmethod
    def strip_names(cls, v: list[str]) -> list[str]:
        return [(name or "").strip() for name in v]
