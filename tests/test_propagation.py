from app.services.occupancy import MonthKey, Stay
from app.services.propagation import materialize, months_spanned, span_months

from tests.helpers import guest


def _stay(**kw):
    fields = dict(
        stay_id="G-20250430-R01-M-30-S-ABC123",
        room=1,
        start_day=30,
        start_month=4,
        start_year=2025,
        length_of_stay=3,
        is_check_in=True,
        guests=(guest(),),
    )
    fields.update(kw)
    return Stay(**fields)


def test_cross_month_stay_splits_into_month_deltas():
    deltas = materialize(_stay())
    april, may = MonthKey(2025, 4), MonthKey(2025, 5)
    assert sorted(deltas) == [april, may]
    assert [(r.day, r.is_start_day) for r in deltas[april]] == [(30, True)]
    assert [(r.day, r.is_start_day) for r in deltas[may]] == [(1, False), (2, False)]


def test_every_record_carries_the_authoritative_start():
    for records in materialize(_stay()).values():
        for r in records:
            assert r.start_date == (30, 4, 2025)
            assert r.length_of_stay == 3
            assert r.stay_id == "G-20250430-R01-M-30-S-ABC123"


def test_check_in_only_on_the_start_night():
    records = [r for rs in materialize(_stay()).values() for r in rs]
    assert records[0].is_check_in and all(g.is_check_in for g in records[0].guests)
    for r in records[1:]:
        assert not r.is_check_in
        assert not any(g.is_check_in for g in r.guests)


def test_stay_without_check_in_flags_nothing():
    records = [r for rs in materialize(_stay(is_check_in=False)).values() for r in rs]
    assert not any(r.is_check_in for r in records)
    assert records[0].is_start_day


def test_months_spanned():
    assert months_spanned(_stay(length_of_stay=1)) == [MonthKey(2025, 4)]
    assert span_months(15, 12, 2024, 60) == [MonthKey(2024, 12), MonthKey(2025, 1), MonthKey(2025, 2)]
