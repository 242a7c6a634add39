"""Module E: Daily and monthly occupancy aggregates derived from occupancy records."""
from dataclasses import dataclass
from typing import Iterable

from app.services.calendar import days_in_month
from app.services.occupancy import Guest, OccupancyRecord


@dataclass(frozen=True)
class DayTotals:
    day: int
    check_ins: int = 0
    overnight: int = 0
    occupied: int = 0


@dataclass(frozen=True)
class MonthlyAverages:
    total_check_ins: int
    total_overnight: int
    total_occupied: int
    rooms_occupied: int
    average_guest_nights: float
    average_room_occupancy_rate: float
    average_guests_per_room: float


def _ratio(numerator: float, denominator: float) -> float:
    if not denominator:
        return 0.0
    return round(numerator / denominator, 2)


def day_totals(records: Iterable[OccupancyRecord], day: int) -> DayTotals:
    check_ins = overnight = 0
    rooms = set()
    for r in records:
        if r.day != day:
            continue
        overnight += len(r.guests)
        if r.is_start_day:
            check_ins += sum(1 for g in r.guests if g.is_check_in)
        rooms.add(r.room)
    return DayTotals(day=day, check_ins=check_ins, overnight=overnight, occupied=len(rooms))


def month_day_totals(records: Iterable[OccupancyRecord], month: int, year: int) -> list[DayTotals]:
    """One DayTotals per calendar day of the month, including empty days."""
    by_day: dict[int, list[OccupancyRecord]] = {}
    for r in records:
        by_day.setdefault(r.day, []).append(r)
    return [day_totals(by_day.get(day, ()), day) for day in range(1, days_in_month(month, year) + 1)]


def rooms_occupied(records: Iterable[OccupancyRecord]) -> int:
    """Distinct rooms occupied at least once."""
    return len({r.room for r in records})


def monthly_averages(totals: Iterable[DayTotals], number_of_rooms: int, rooms_used: int) -> MonthlyAverages:
    """Month averages from the per-day totals.

    `rooms_used` is the number of distinct rooms occupied at least once in the month;
    guests per room divides the overnight total by it.
    """
    totals = list(totals)
    total_check_ins = sum(t.check_ins for t in totals)
    total_overnight = sum(t.overnight for t in totals)
    total_occupied = sum(t.occupied for t in totals)
    room_nights = number_of_rooms * len(totals)
    return MonthlyAverages(
        total_check_ins=total_check_ins,
        total_overnight=total_overnight,
        total_occupied=total_occupied,
        rooms_occupied=rooms_used,
        average_guest_nights=_ratio(total_overnight, total_check_ins),
        average_room_occupancy_rate=round(total_occupied / room_nights * 100, 2) if room_nights else 0.0,
        average_guests_per_room=_ratio(total_overnight, rooms_used),
    )


AGE_GROUPS = (
    ("Children", 0, 12),
    ("Teens", 13, 17),
    ("Young Adults", 18, 24),
    ("Adults", 25, 44),
    ("Middle-Aged", 45, 59),
    ("Seniors", 60, None),
)


def age_group(age: int | None) -> str:
    if age is None or age < 0:
        return "Unknown"
    for label, low, high in AGE_GROUPS:
        if age >= low and (high is None or age <= high):
            return label
    return "Unknown"


def guest_demographics(guests: Iterable[Guest]) -> list[dict]:
    """Check-in guests counted by (gender, age group, status)."""
    counts: dict[tuple[str, str, str], int] = {}
    for g in guests:
        if not g.is_check_in:
            continue
        key = (g.gender, age_group(g.age), g.status)
        counts[key] = counts.get(key, 0) + 1
    return [
        {"gender": gender, "age_group": group, "status": status, "count": n}
        for (gender, group, status), n in sorted(counts.items())
    ]


def nationality_counts(guests: Iterable[Guest]) -> list[dict]:
    """Check-in guests per nationality, most frequent first."""
    counts: dict[str, dict] = {}
    for g in guests:
        if not g.is_check_in:
            continue
        row = counts.setdefault(g.nationality, {"nationality": g.nationality, "count": 0, "male_count": 0, "female_count": 0})
        row["count"] += 1
        if g.gender == "Male":
            row["male_count"] += 1
        elif g.gender == "Female":
            row["female_count"] += 1
    return sorted(counts.values(), key=lambda r: (-r["count"], r["nationality"]))


def checked_in_guests(records: Iterable[OccupancyRecord]) -> list[Guest]:
    return [g for r in records if r.is_start_day for g in r.guests if g.is_check_in]
