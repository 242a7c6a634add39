import pytest

from app.services.draft_store import UNCHECKED, StaleDraftError, clean_records
from app.services.occupancy import MonthKey


def _record(day, stay_id="S1", start=True):
    return {
        "day": day, "room": 1, "guests": [{"gender": "Male", "age": 30, "status": "", "nationality": "", "isCheckIn": start}],
        "lengthOfStay": 1, "isCheckIn": start, "stayId": stay_id,
        "startDay": day, "startMonth": 4, "startYear": 2025, "isStartDay": start,
    }


def test_missing_draft_is_empty(operator, store):
    assert store.get_draft(operator.id, 4, 2025) == []
    assert store.get_draft_versioned(operator.id, 4, 2025) == ([], None)


def test_save_replaces_wholesale_and_bumps_version(operator, store):
    assert store.save_draft(operator.id, 4, 2025, [_record(1), _record(2, "S2")]) == 1
    assert store.save_draft(operator.id, 4, 2025, [_record(3)], expected_version=1) == 2

    data, version = store.get_draft_versioned(operator.id, 4, 2025)
    assert version == 2
    assert [r["day"] for r in data] == [3]


def test_stale_version_is_rejected(operator, store):
    store.save_draft(operator.id, 4, 2025, [_record(1)])
    store.save_draft(operator.id, 4, 2025, [_record(2)], expected_version=1)

    with pytest.raises(StaleDraftError) as exc:
        store.save_draft(operator.id, 4, 2025, [_record(9)], expected_version=1)
    assert (exc.value.expected, exc.value.actual) == (1, 2)
    assert store.get_draft(operator.id, 4, 2025)[0]["day"] == 2


def test_creating_over_an_existing_draft_is_stale(operator, store):
    store.save_draft(operator.id, 4, 2025, [_record(1)])
    with pytest.raises(StaleDraftError):
        store.save_draft(operator.id, 4, 2025, [], expected_version=None)
    assert store.save_draft(operator.id, 4, 2025, [], expected_version=UNCHECKED) == 2


def test_records_are_cleaned_on_save(operator, store):
    store.save_draft(operator.id, 4, 2025, [{"day": "7", "room": "2", "guests": [{"age": "40"}], "stayId": "S9"}, "junk"])
    [record] = store.get_draft(operator.id, 4, 2025)
    assert record["day"] == 7 and record["room"] == 2
    assert record["guests"] == [{"gender": "", "age": 40, "status": "", "nationality": "", "isCheckIn": False}]
    assert record["isStartDay"] is False
    assert clean_records(None) == []


def test_list_and_delete(operator, other_operator, store):
    store.save_draft(operator.id, 5, 2025, [])
    store.save_draft(operator.id, 4, 2025, [])
    store.save_draft(other_operator.id, 6, 2025, [])

    assert store.list_months(operator.id) == [MonthKey(2025, 4), MonthKey(2025, 5)]
    assert store.delete_draft(operator.id, 4, 2025) is True
    assert store.delete_draft(operator.id, 4, 2025) is False
    assert store.list_months(operator.id) == [MonthKey(2025, 5)]


def test_delete_stay_records_skips_kept_months(operator, store):
    store.save_draft(operator.id, 4, 2025, [_record(30), _record(29, "OTHER")])
    store.save_draft(operator.id, 5, 2025, [_record(1, start=False), _record(2, start=False)])
    store.save_draft(operator.id, 6, 2025, [_record(1, start=False)])

    removed = store.delete_stay_records(operator.id, "S1", keep=[MonthKey(2025, 6)])

    assert removed == {MonthKey(2025, 4): 1, MonthKey(2025, 5): 2}
    assert [r["stayId"] for r in store.get_draft(operator.id, 4, 2025)] == ["OTHER"]
    assert store.get_draft(operator.id, 5, 2025) == []
    assert len(store.get_draft(operator.id, 6, 2025)) == 1
    assert store.get_draft_versioned(operator.id, 5, 2025)[1] == 2


def test_admin_listing(operator, store):
    store.save_draft(operator.id, 4, 2025, [_record(1)])
    [row] = store.list_all_drafts()
    assert (row["user_id"], row["month"], row["year"], row["company_name"]) == (operator.id, 4, 2025, "Seaside Inn")
    details = store.get_draft_by_id(row["draft_id"])
    assert details["number_of_rooms"] == 10
    assert len(details["data"]) == 1
    assert store.get_draft_by_id(9999) is None
