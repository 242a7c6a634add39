import re

import pytest

from app.services.draft_sync import DraftSyncService
from app.services.ledger import (
    FinalizedPeriodError,
    LedgerInvariantError,
    NotStartDayError,
    OccupancyLedger,
    StayConflictError,
    StayNotFoundError,
    StayValidationError,
)
from app.services.occupancy import MonthKey, Stay
from app.services.propagation import materialize

from tests.helpers import guest

APRIL, MAY, JUNE = MonthKey(2025, 4), MonthKey(2025, 5), MonthKey(2025, 6)


def _persist(store, owner_id, stay):
    for key, records in materialize(stay).items():
        existing = store.get_draft(owner_id, key.month, key.year)
        store.save_draft(owner_id, key.month, key.year, existing + [r.to_wire() for r in records])


def _stored_stay(stay_id="G-20250430-R02-F-41-M-STORED", room=2, day=30, month=4, year=2025, length=3):
    return Stay(stay_id, room, day, month, year, length, True, (guest("Female", 41, "Married"),))


def test_cross_month_stay_in_thirty_day_month():
    ledger = OccupancyLedger(1, 5)
    change = ledger.create_stay(1, 30, 4, 2025, 3, [guest()])

    assert change.affected == {APRIL, MAY}
    april, may = ledger.bucket(APRIL).records, ledger.bucket(MAY).records
    assert [(r.day, r.is_start_day) for r in april] == [(30, True)]
    assert [(r.day, r.is_start_day) for r in may] == [(1, False), (2, False)]
    assert {r.stay_id for r in april + may} == {change.stay.stay_id}


def test_stay_id_format():
    ledger = OccupancyLedger(1, 5)
    stay = ledger.create_stay(1, 30, 4, 2025, 3, [guest()]).stay
    assert re.fullmatch(r"G-20250430-R01-M-30-S-[A-Z0-9]{6}", stay.stay_id)


def test_materialization_is_complete_for_long_stays():
    ledger = OccupancyLedger(1, 3)
    stay = ledger.create_stay(3, 20, 12, 2024, 45, [guest(), guest("Female", 28)]).stay
    nights = [r for key in (MonthKey(2024, 12), MonthKey(2025, 1), MonthKey(2025, 2)) for r in ledger.bucket(key).for_stay(stay.stay_id)]
    assert len(nights) == 45
    assert sum(r.is_start_day for r in nights) == 1
    ledger.check_invariants()


def test_double_booking_is_rejected_without_partial_writes():
    ledger = OccupancyLedger(1, 5)
    first = ledger.create_stay(1, 5, 3, 2025, 3, [guest()]).stay

    with pytest.raises(StayConflictError) as exc:
        ledger.create_stay(1, 3, 3, 2025, 4, [guest()])
    assert exc.value.result.day == 5
    assert exc.value.result.stay_id == first.stay_id
    assert len(ledger.bucket(MonthKey(2025, 3)).records) == 3
    assert [s.stay_id for s in ledger.stays()] == [first.stay_id]


def test_other_rooms_and_adjacent_nights_are_free():
    ledger = OccupancyLedger(1, 5)
    ledger.create_stay(1, 5, 3, 2025, 3, [guest()])
    ledger.create_stay(2, 5, 3, 2025, 3, [guest()])
    ledger.create_stay(1, 8, 3, 2025, 2, [guest()])
    ledger.check_invariants()


@pytest.mark.parametrize("room,day,month,length,guests", [
    (0, 5, 3, 2, [guest()]),
    (6, 5, 3, 2, [guest()]),
    (1, 31, 4, 2, [guest()]),
    (1, 5, 3, 0, [guest()]),
    (1, 5, 3, 31, [guest()]),
    (1, 5, 3, 2, []),
    (1, 5, 3, 2, [guest(age=0)]),
])
def test_invalid_stays_are_rejected(room, day, month, length, guests):
    ledger = OccupancyLedger(1, 5, max_length_of_stay=30)
    with pytest.raises(StayValidationError):
        ledger.create_stay(room, day, month, 2025, length, guests)
    assert ledger.stays() == []


def test_edit_with_same_values_is_idempotent():
    ledger = OccupancyLedger(1, 5)
    stay = ledger.create_stay(2, 29, 4, 2025, 4, [guest()]).stay
    before = {k: ledger.bucket(k).to_wire() for k in (APRIL, MAY)}

    ledger.update_stay(stay.stay_id, guests=list(stay.guests), length_of_stay=4, is_check_in=True)

    assert {k: ledger.bucket(k).to_wire() for k in (APRIL, MAY)} == before


def test_shortening_a_stay_drops_tail_records_in_later_months():
    ledger = OccupancyLedger(1, 5)
    stay = ledger.create_stay(1, 28, 4, 2025, 6, [guest()]).stay
    assert len(ledger.bucket(MAY).records) == 3

    change = ledger.update_stay(stay.stay_id, length_of_stay=2)

    assert MAY in change.affected
    assert ledger.bucket(MAY).records == []
    assert [r.day for r in ledger.bucket(APRIL).records] == [28, 29]
    assert all(r.length_of_stay == 2 for r in ledger.bucket(APRIL).records)


def test_extension_into_an_occupied_night_keeps_the_original():
    ledger = OccupancyLedger(1, 5)
    stay = ledger.create_stay(1, 1, 5, 2025, 2, [guest()]).stay
    ledger.create_stay(1, 5, 5, 2025, 2, [guest()])

    with pytest.raises(StayConflictError):
        ledger.update_stay(stay.stay_id, length_of_stay=6)
    assert len(ledger.bucket(MAY).for_stay(stay.stay_id)) == 2


def test_editing_guests_updates_every_night():
    ledger = OccupancyLedger(1, 5)
    stay = ledger.create_stay(1, 30, 4, 2025, 3, [guest()]).stay
    ledger.update_stay(stay.stay_id, guests=[guest(), guest("Female", 25, nationality="Japanese")])

    nights = ledger.bucket(APRIL).for_stay(stay.stay_id) + ledger.bucket(MAY).for_stay(stay.stay_id)
    assert all(len(r.guests) == 2 for r in nights)
    assert [g.is_check_in for g in nights[0].guests] == [True, True]
    assert not any(g.is_check_in for r in nights[1:] for g in r.guests)


def test_edit_from_a_tail_record_points_at_the_start_day():
    ledger = OccupancyLedger(1, 5)
    stay = ledger.create_stay(1, 30, 4, 2025, 3, [guest()]).stay

    with pytest.raises(NotStartDayError) as exc:
        ledger.update_stay_at(MAY, 2, 1, length_of_stay=1)
    assert (exc.value.start_day, exc.value.start_month, exc.value.start_year) == (30, 4, 2025)
    assert exc.value.stay_id == stay.stay_id

    ledger.update_stay_at(APRIL, 30, 1, length_of_stay=1)
    assert ledger.bucket(MAY).records == []


def test_edit_of_an_empty_cell_is_not_found():
    ledger = OccupancyLedger(1, 5)
    with pytest.raises(StayNotFoundError):
        ledger.update_stay_at(APRIL, 3, 1, length_of_stay=1)


def test_removal_cascades_across_loaded_months():
    ledger = OccupancyLedger(1, 5)
    stay = ledger.create_stay(4, 25, 5, 2025, 10, [guest()]).stay

    change = ledger.remove_stay(stay.stay_id)

    assert change.removed_records == 10
    assert change.affected == {MAY, JUNE}
    assert ledger.bucket(MAY).records == [] and ledger.bucket(JUNE).records == []
    with pytest.raises(StayNotFoundError):
        ledger.get_stay(stay.stay_id)


def test_removing_an_unknown_stay_is_not_found():
    with pytest.raises(StayNotFoundError):
        OccupancyLedger(1, 5).remove_stay("G-NOPE")


def test_removal_reaches_months_that_were_never_loaded(operator, store):
    stay = _stored_stay()
    _persist(store, operator.id, stay)

    ledger = OccupancyLedger(operator.id, 5, store)
    ledger.load_month(APRIL)
    assert not ledger.is_loaded(MAY)
    change = ledger.remove_stay(stay.stay_id)
    assert change.purged_stay_ids == {stay.stay_id}

    sync = DraftSyncService(store)
    sync.apply(ledger, change)
    sync.flush(operator.id)
    assert store.get_draft(operator.id, 4, 2025) == []
    assert store.get_draft(operator.id, 5, 2025) == []
    assert ledger.tombstones() == set()
    assert not ledger.is_loaded(MAY)


def test_removed_stay_is_not_resurrected_by_a_later_load(operator, store):
    stay = _stored_stay()
    _persist(store, operator.id, stay)
    ledger = OccupancyLedger(operator.id, 5, store)
    ledger.load_month(APRIL)
    ledger.remove_stay(stay.stay_id)

    assert ledger.load_month(MAY).for_stay(stay.stay_id) == []
    assert MAY in ledger.dirty_months()


def test_tail_lookup_loads_the_start_month(operator, store):
    stay = _stored_stay()
    _persist(store, operator.id, stay)
    ledger = OccupancyLedger(operator.id, 5, store)
    ledger.load_month(MAY)

    found = ledger.get_stay(stay.stay_id)

    assert found.start_date == (30, 4, 2025)
    assert found.length_of_stay == 3
    assert ledger.is_loaded(APRIL)


def test_duplicate_start_records_abort_the_removal(operator, store):
    stay = _stored_stay(length=2, day=10)
    records = [r.to_wire() for r in materialize(stay)[APRIL]]
    clone = dict(records[0], day=20, startDay=20)
    store.save_draft(operator.id, 4, 2025, records + [clone])
    ledger = OccupancyLedger(operator.id, 5, store)
    ledger.load_month(APRIL)

    with pytest.raises(LedgerInvariantError):
        ledger.remove_stay(stay.stay_id)
    assert len(ledger.bucket(APRIL).for_stay(stay.stay_id)) == 3


def test_finalized_months_are_read_only():
    ledger = OccupancyLedger(1, 5, finalized=[APRIL])
    with pytest.raises(FinalizedPeriodError):
        ledger.create_stay(1, 10, 4, 2025, 1, [guest()])
    with pytest.raises(FinalizedPeriodError):
        ledger.create_stay(1, 30, 3, 2025, 3, [guest()])
    ledger.create_stay(1, 1, 5, 2025, 3, [guest()])


def test_finalizing_locks_stays_that_reach_into_the_month():
    ledger = OccupancyLedger(1, 5)
    stay = ledger.create_stay(1, 30, 4, 2025, 3, [guest()]).stay
    ledger.finalize_month(APRIL)

    with pytest.raises(FinalizedPeriodError):
        ledger.update_stay(stay.stay_id, length_of_stay=1)
    with pytest.raises(FinalizedPeriodError):
        ledger.remove_stay(stay.stay_id)


def test_stored_stay_can_be_removed_from_a_fresh_session(operator, store):
    stay = _stored_stay()
    _persist(store, operator.id, stay)
    ledger = OccupancyLedger(operator.id, 5, store)

    change = ledger.remove_stay(stay.stay_id)

    assert change.removed_records == 1
    assert change.purged_stay_ids == {stay.stay_id}
    assert ledger.bucket(APRIL).for_stay(stay.stay_id) == []
    sync = DraftSyncService(store)
    sync.apply(ledger, change)
    sync.flush(operator.id)
    assert store.get_draft(operator.id, 4, 2025) == []
    assert store.get_draft(operator.id, 5, 2025) == []


def test_stored_stay_can_be_edited_from_a_fresh_session(operator, store):
    stay = _stored_stay()
    _persist(store, operator.id, stay)
    ledger = OccupancyLedger(operator.id, 5, store)

    assert ledger.get_stay(stay.stay_id).length_of_stay == 3
    change = ledger.update_stay(stay.stay_id, length_of_stay=1)

    assert change.affected == {APRIL, MAY}
    assert ledger.bucket(MAY).for_stay(stay.stay_id) == []
    ledger.check_invariants()


def test_conflict_check_validates_its_input():
    ledger = OccupancyLedger(1, 5, max_length_of_stay=30)
    for room, length in ((1, 0), (1, -4), (9, 2), (1, 31)):
        with pytest.raises(StayValidationError):
            ledger.check_conflict(room, 5, 3, 2025, length)
    assert ledger.loaded_months() == []


def test_conflict_check_does_not_keep_empty_months_loaded():
    ledger = OccupancyLedger(1, 5)
    assert not ledger.check_conflict(1, 20, 12, 2024, 60)
    assert ledger.loaded_months() == []


def test_reloading_a_start_month_also_reloads_the_tail_months(operator, store):
    ledger = OccupancyLedger(operator.id, 5, store)
    sync = DraftSyncService(store)
    stay = ledger.create_stay(1, 30, 4, 2025, 3, [guest()]).stay
    sync.apply(ledger, ledger.create_stay(3, 10, 5, 2025, 1, [guest()]))
    sync.flush(operator.id)
    ledger.update_stay(stay.stay_id, length_of_stay=5)
    ledger.create_stay(4, 20, 5, 2025, 1, [guest()])

    reloaded = ledger.reload(APRIL)

    assert reloaded == [APRIL, MAY]
    ledger.check_invariants()
    assert len(ledger.bucket(MAY).for_stay(stay.stay_id)) == 2
    assert sorted(r.room for r in ledger.bucket(MAY).records) == [1, 1, 3]
    assert ledger.dirty_months() == []
    ledger.update_stay(stay.stay_id, length_of_stay=2)
    ledger.check_invariants()
