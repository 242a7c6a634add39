from app.services.aggregator import (
    DayTotals,
    age_group,
    day_totals,
    guest_demographics,
    month_day_totals,
    monthly_averages,
    nationality_counts,
    rooms_occupied,
)
from app.services.ledger import OccupancyLedger
from app.services.occupancy import Guest, MonthKey

from tests.helpers import guest

MARCH = MonthKey(2025, 3)


def _one_stay_ledger():
    ledger = OccupancyLedger(1, 10)
    ledger.create_stay(1, 5, 3, 2025, 3, [guest("Male", 35, "Single", "Filipino")])
    return ledger


def test_day_totals_for_a_three_night_stay():
    records = _one_stay_ledger().bucket(MARCH).records
    assert day_totals(records, 5) == DayTotals(5, check_ins=1, overnight=1, occupied=1)
    assert day_totals(records, 6) == DayTotals(6, check_ins=0, overnight=1, occupied=1)
    assert day_totals(records, 7) == DayTotals(7, check_ins=0, overnight=1, occupied=1)
    assert day_totals(records, 8) == DayTotals(8, check_ins=0, overnight=0, occupied=0)


def test_monthly_average_guest_nights():
    records = _one_stay_ledger().bucket(MARCH).records
    totals = month_day_totals(records, 3, 2025)
    assert len(totals) == 31

    averages = monthly_averages(totals, 10, rooms_occupied(records))

    assert averages.total_check_ins == 1
    assert averages.total_overnight == 3
    assert averages.average_guest_nights == 3.0
    assert averages.rooms_occupied == 1
    assert averages.average_guests_per_room == 3.0
    assert averages.average_room_occupancy_rate == round(3 / 310 * 100, 2)


def test_guests_per_room_divides_by_distinct_rooms():
    ledger = OccupancyLedger(1, 10)
    ledger.create_stay(1, 1, 3, 2025, 4, [guest(), guest("Female", 29)])
    ledger.create_stay(2, 10, 3, 2025, 2, [guest("Female", 52)])
    records = ledger.bucket(MARCH).records
    totals = month_day_totals(records, 3, 2025)

    averages = monthly_averages(totals, 10, rooms_occupied(records))

    # 8 + 2 guest-nights over rooms 1 and 2; room-nights would be 6
    assert averages.total_overnight == 10
    assert averages.total_occupied == 6
    assert averages.rooms_occupied == 2
    assert averages.average_guests_per_room == 5.0


def test_empty_month_has_zero_averages():
    averages = monthly_averages(month_day_totals([], 2, 2025), 10, rooms_occupied([]))
    assert averages.average_guest_nights == 0.0
    assert averages.average_guests_per_room == 0.0
    assert averages.average_room_occupancy_rate == 0.0


def test_zero_rooms_does_not_divide_by_zero():
    assert monthly_averages([DayTotals(1, 1, 2, 1)], 0, 1).average_room_occupancy_rate == 0.0


def test_stay_without_check_in_counts_nights_only():
    ledger = OccupancyLedger(1, 10)
    ledger.create_stay(2, 1, 3, 2025, 2, [guest(), guest("Female")], is_check_in=False)
    totals = month_day_totals(ledger.bucket(MARCH).records, 3, 2025)
    assert totals[0] == DayTotals(1, check_ins=0, overnight=2, occupied=1)


def test_age_groups():
    assert age_group(8) == "Children"
    assert age_group(17) == "Teens"
    assert age_group(18) == "Young Adults"
    assert age_group(44) == "Adults"
    assert age_group(59) == "Middle-Aged"
    assert age_group(60) == "Seniors"
    assert age_group(None) == "Unknown"


def test_demographics_and_nationalities_count_check_ins_only():
    guests = [
        Guest("Male", 30, "Single", "Filipino", is_check_in=True),
        Guest("Female", 31, "Single", "Filipino", is_check_in=True),
        Guest("Female", 62, "Married", "Korean", is_check_in=True),
        Guest("Male", 30, "Single", "Korean", is_check_in=False),
    ]
    assert nationality_counts(guests) == [
        {"nationality": "Filipino", "count": 2, "male_count": 1, "female_count": 1},
        {"nationality": "Korean", "count": 1, "male_count": 0, "female_count": 1},
    ]
    rows = {(r["gender"], r["age_group"], r["status"]): r["count"] for r in guest_demographics(guests)}
    assert rows == {
        ("Male", "Adults", "Single"): 1,
        ("Female", "Adults", "Single"): 1,
        ("Female", "Seniors", "Married"): 1,
    }
