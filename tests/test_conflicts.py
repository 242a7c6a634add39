from app.services.conflicts import find_conflict
from app.services.occupancy import MonthBucket, MonthKey, Stay
from app.services.propagation import materialize

from tests.helpers import guest


def _lookup_with(*stays):
    buckets: dict[MonthKey, MonthBucket] = {}
    for stay in stays:
        for key, records in materialize(stay).items():
            buckets.setdefault(key, MonthBucket(key=key)).add(records)

    def lookup(key):
        return buckets.setdefault(key, MonthBucket(key=key))
    return lookup


def _stay(stay_id, room, day, month, year, length):
    return Stay(stay_id, room, day, month, year, length, True, (guest(),))


def test_no_conflict_in_empty_room():
    lookup = _lookup_with(_stay("A", 1, 5, 3, 2025, 3))
    assert not find_conflict(lookup, 2, 5, 3, 2025, 3)


def test_conflict_reports_first_overlapping_night():
    lookup = _lookup_with(_stay("A", 1, 5, 3, 2025, 3))
    result = find_conflict(lookup, 1, 3, 3, 2025, 4)
    assert result
    assert (result.day, result.month, result.year, result.stay_id) == (5, 3, 2025, "A")


def test_back_to_back_stays_do_not_conflict():
    lookup = _lookup_with(_stay("A", 1, 5, 3, 2025, 3))
    assert not find_conflict(lookup, 1, 8, 3, 2025, 2)
    assert not find_conflict(lookup, 1, 1, 3, 2025, 4)


def test_conflict_found_in_following_month():
    lookup = _lookup_with(_stay("A", 3, 2, 5, 2025, 2))
    result = find_conflict(lookup, 3, 29, 4, 2025, 5)
    assert (result.day, result.month) == (2, 5)


def test_excluded_stay_is_ignored():
    lookup = _lookup_with(_stay("A", 1, 5, 3, 2025, 3))
    assert not find_conflict(lookup, 1, 5, 3, 2025, 5, exclude_stay_id="A")
