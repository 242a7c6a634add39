"""Module C1: Calendar arithmetic shared by the ledger (proleptic Gregorian)."""
from typing import Iterator

_DAYS = (31, 28, 31, 30, 31, 30, 31, 31, 30, 31, 30, 31)


def _check_month(month: int) -> None:
    if not 1 <= month <= 12:
        raise ValueError(f"Month must be 1..12, got {month}")


def is_leap_year(year: int) -> bool:
    return year % 4 == 0 and (year % 100 != 0 or year % 400 == 0)


def days_in_month(month: int, year: int) -> int:
    _check_month(month)
    if month == 2 and is_leap_year(year):
        return 29
    return _DAYS[month - 1]


def next_month(month: int, year: int) -> tuple[int, int]:
    """(month, year) following the given one; December rolls into January of the next year."""
    _check_month(month)
    if month == 12:
        return 1, year + 1
    return month + 1, year


def previous_month(month: int, year: int) -> tuple[int, int]:
    _check_month(month)
    if month == 1:
        return 12, year - 1
    return month - 1, year


def check_date(day: int, month: int, year: int) -> None:
    """Raise ValueError unless (day, month, year) is a real calendar date."""
    _check_month(month)
    if not 1 <= day <= days_in_month(month, year):
        raise ValueError(f"Day {day} is not valid for {month:02d}/{year}")


def add_days(day: int, month: int, year: int, n: int) -> tuple[int, int, int]:
    """Shift a date by n days (n may be negative). Returns (day, month, year)."""
    check_date(day, month, year)
    while n > 0:
        remaining = days_in_month(month, year) - day
        if n <= remaining:
            return day + n, month, year
        n -= remaining + 1
        month, year = next_month(month, year)
        day = 1
    while n < 0:
        if -n < day:
            return day + n, month, year
        n += day
        month, year = previous_month(month, year)
        day = days_in_month(month, year)
    return day, month, year


def iter_stay_days(day: int, month: int, year: int, length: int) -> Iterator[tuple[int, int, int]]:
    """Yield (day, month, year) for each of `length` consecutive nights starting at the given date."""
    check_date(day, month, year)
    remaining = length
    while remaining > 0:
        last = days_in_month(month, year)
        while day <= last and remaining > 0:
            yield day, month, year
            day += 1
            remaining -= 1
        month, year = next_month(month, year)
        day = 1
