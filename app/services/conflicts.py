"""Module C3: Double-booking detection for a candidate stay."""
from dataclasses import dataclass
from typing import Callable

from app.services.calendar import iter_stay_days
from app.services.occupancy import MonthBucket, MonthKey

# Returns the bucket for a month; the ledger's version loads it from the store on demand
BucketLookup = Callable[[MonthKey], MonthBucket]


@dataclass(frozen=True)
class ConflictResult:
    conflict: bool
    day: int | None = None
    month: int | None = None
    year: int | None = None
    stay_id: str | None = None

    def __bool__(self) -> bool:
        return self.conflict


NO_CONFLICT = ConflictResult(conflict=False)


def find_conflict(
    lookup: BucketLookup,
    room: int,
    start_day: int,
    start_month: int,
    start_year: int,
    length: int,
    exclude_stay_id: str | None = None,
) -> ConflictResult:
    """Walk the candidate nights and return the first one already held by another stay in `room`."""
    bucket = None
    for day, month, year in iter_stay_days(start_day, start_month, start_year, length):
        key = MonthKey(year, month)
        if bucket is None or bucket.key != key:
            bucket = lookup(key)
        for record in bucket.at(day, room):
            if record.stay_id != exclude_stay_id:
                return ConflictResult(True, day, month, year, record.stay_id)
    return NO_CONFLICT
