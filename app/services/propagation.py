"""Module C4: Expand a stay into one occupancy record per night, grouped by month."""
from dataclasses import replace

from app.services.calendar import iter_stay_days
from app.services.occupancy import MonthKey, OccupancyRecord, Stay


def materialize(stay: Stay) -> dict[MonthKey, list[OccupancyRecord]]:
    """Month deltas for `stay`. Only the first night is the start day / check-in night."""
    deltas: dict[MonthKey, list[OccupancyRecord]] = {}
    first = True
    for day, month, year in iter_stay_days(stay.start_day, stay.start_month, stay.start_year, stay.length_of_stay):
        check_in = first and stay.is_check_in
        deltas.setdefault(MonthKey(year, month), []).append(
            OccupancyRecord(
                day=day,
                room=stay.room,
                stay_id=stay.stay_id,
                length_of_stay=stay.length_of_stay,
                start_day=stay.start_day,
                start_month=stay.start_month,
                start_year=stay.start_year,
                is_start_day=first,
                is_check_in=check_in,
                guests=tuple(replace(g, is_check_in=check_in) for g in stay.guests),
            )
        )
        first = False
    return deltas


def months_spanned(stay: Stay) -> list[MonthKey]:
    """Month keys the stay touches, in calendar order."""
    return span_months(stay.start_day, stay.start_month, stay.start_year, stay.length_of_stay)


def span_months(start_day: int, start_month: int, start_year: int, length: int) -> list[MonthKey]:
    keys: list[MonthKey] = []
    for _, month, year in iter_stay_days(start_day, start_month, start_year, length):
        key = MonthKey(year, month)
        if not keys or keys[-1] != key:
            keys.append(key)
    return keys
