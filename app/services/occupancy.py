"""Module C2: Ledger value objects - stays, occupancy records and month buckets.

An OccupancyRecord is the per-night materialization of a Stay. Every record carries
the stay's authoritative start date, length and id, so a record can always be traced
back to its stay without scanning other months.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Iterable

from app.services.calendar import days_in_month, next_month


@dataclass(frozen=True, order=True)
class MonthKey:
    year: int
    month: int

    def __post_init__(self):
        if not 1 <= self.month <= 12:
            raise ValueError(f"Month must be 1..12, got {self.month}")

    @property
    def days(self) -> int:
        return days_in_month(self.month, self.year)

    def next(self) -> MonthKey:
        month, year = next_month(self.month, self.year)
        return MonthKey(year, month)

    def __str__(self) -> str:
        return f"{self.year}-{self.month:02d}"


@dataclass(frozen=True)
class Guest:
    gender: str
    age: int
    status: str = ""
    nationality: str = ""
    is_check_in: bool = False

    def to_wire(self) -> dict[str, Any]:
        return {
            "gender": self.gender,
            "age": self.age,
            "status": self.status,
            "nationality": self.nationality,
            "isCheckIn": self.is_check_in,
        }

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> Guest:
        return cls(
            gender=str(data.get("gender") or ""),
            age=_int(data.get("age")),
            status=str(data.get("status") or ""),
            nationality=str(data.get("nationality") or ""),
            is_check_in=bool(data.get("isCheckIn")),
        )


@dataclass(frozen=True)
class Stay:
    stay_id: str
    room: int
    start_day: int
    start_month: int
    start_year: int
    length_of_stay: int
    is_check_in: bool
    guests: tuple[Guest, ...]

    @property
    def start_key(self) -> MonthKey:
        return MonthKey(self.start_year, self.start_month)

    @property
    def start_date(self) -> tuple[int, int, int]:
        return self.start_day, self.start_month, self.start_year

    @classmethod
    def from_record(cls, record: OccupancyRecord) -> Stay:
        """Rebuild a stay from its start-day record (the only one carrying the check-in flag)."""
        if not record.is_start_day:
            raise ValueError("Only a start-day record describes its stay completely")
        return cls(
            stay_id=record.stay_id,
            room=record.room,
            start_day=record.start_day,
            start_month=record.start_month,
            start_year=record.start_year,
            length_of_stay=record.length_of_stay,
            is_check_in=record.is_check_in,
            guests=tuple(replace(g, is_check_in=False) for g in record.guests),
        )


@dataclass(frozen=True)
class OccupancyRecord:
    day: int
    room: int
    stay_id: str
    length_of_stay: int
    start_day: int
    start_month: int
    start_year: int
    is_start_day: bool
    is_check_in: bool
    guests: tuple[Guest, ...] = ()

    @property
    def start_key(self) -> MonthKey:
        return MonthKey(self.start_year, self.start_month)

    @property
    def start_date(self) -> tuple[int, int, int]:
        return self.start_day, self.start_month, self.start_year

    def to_wire(self) -> dict[str, Any]:
        return {
            "day": self.day,
            "room": self.room,
            "guests": [g.to_wire() for g in self.guests],
            "lengthOfStay": self.length_of_stay,
            "isCheckIn": self.is_check_in,
            "stayId": self.stay_id,
            "startDay": self.start_day,
            "startMonth": self.start_month,
            "startYear": self.start_year,
            "isStartDay": self.is_start_day,
        }

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> OccupancyRecord:
        """Parse a stored record. Legacy per-guest keys (_stayId, _isStartDay, ...) are ignored."""
        guests = data.get("guests") or []
        return cls(
            day=_int(data.get("day")),
            room=_int(data.get("room")),
            stay_id=str(data.get("stayId") or ""),
            length_of_stay=_int(data.get("lengthOfStay")),
            start_day=_int(data.get("startDay")),
            start_month=_int(data.get("startMonth")),
            start_year=_int(data.get("startYear")),
            is_start_day=bool(data.get("isStartDay")),
            is_check_in=bool(data.get("isCheckIn")),
            guests=tuple(Guest.from_wire(g) for g in guests if isinstance(g, dict)),
        )


@dataclass
class MonthBucket:
    """Records of one (year, month), kept ordered by (day, room)."""
    key: MonthKey
    records: list[OccupancyRecord] = field(default_factory=list)
    # Persisted version last read or written (None: never persisted)
    version: int | None = None
    # Bumped on every local mutation; lets sync tell whether a snapshot is still current
    revision: int = 0
    # Revision that was last written to the store
    synced_revision: int = 0

    @property
    def dirty(self) -> bool:
        return self.revision != self.synced_revision

    def at(self, day: int, room: int | None = None) -> list[OccupancyRecord]:
        return [r for r in self.records if r.day == day and (room is None or r.room == room)]

    def for_stay(self, stay_id: str) -> list[OccupancyRecord]:
        return [r for r in self.records if r.stay_id == stay_id]

    def stay_ids(self) -> set[str]:
        return {r.stay_id for r in self.records}

    def add(self, records: Iterable[OccupancyRecord]) -> None:
        self.records.extend(records)
        self.records.sort(key=lambda r: (r.day, r.room, r.stay_id))
        self.revision += 1

    def remove_stay(self, stay_id: str) -> int:
        kept = [r for r in self.records if r.stay_id != stay_id]
        removed = len(self.records) - len(kept)
        if removed:
            self.records = kept
            self.revision += 1
        return removed

    def to_wire(self) -> list[dict[str, Any]]:
        return [r.to_wire() for r in self.records]

    @classmethod
    def from_wire(cls, key: MonthKey, data: Iterable[dict[str, Any]], version: int | None = None) -> MonthBucket:
        bucket = cls(key=key, version=version)
        bucket.records = sorted(
            (OccupancyRecord.from_wire(d) for d in data or [] if isinstance(d, dict)),
            key=lambda r: (r.day, r.room, r.stay_id),
        )
        return bucket


def _int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0
