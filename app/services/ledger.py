"""Module C5: Occupancy ledger - stay registry, create/edit and cascading removal.

One ledger per establishment session. It owns the month buckets that are loaded in
memory and is the single source of truth that edits and removals run against.
Buckets missing from memory are fetched lazily from the draft store. Local state is
authoritative: persistence happens afterwards through DraftSyncService.
"""
from __future__ import annotations

import logging
import secrets
import string
import threading
from dataclasses import dataclass, field, replace
from typing import Iterable

from app.services.calendar import check_date
from app.services.conflicts import ConflictResult, find_conflict
from app.services.draft_store import DraftStore
from app.services.occupancy import Guest, MonthBucket, MonthKey, OccupancyRecord, Stay
from app.services.propagation import materialize as expand_stay, months_spanned, span_months

log = logging.getLogger("uvicorn.error")

DEFAULT_MAX_LENGTH_OF_STAY = 365


class LedgerError(Exception):
    pass


class StayValidationError(LedgerError):
    pass


class StayNotFoundError(LedgerError):
    pass


class StayConflictError(LedgerError):
    def __init__(self, room: int, result: ConflictResult):
        self.room = room
        self.result = result
        super().__init__(
            f"Room {room} is already occupied on {result.month:02d}/{result.day:02d}/{result.year} "
            f"(stay {result.stay_id})."
        )


class NotStartDayError(LedgerError):
    """Only the start-day record of a stay can be edited."""

    def __init__(self, stay_id: str, start_day: int, start_month: int, start_year: int):
        self.stay_id = stay_id
        self.start_day = start_day
        self.start_month = start_month
        self.start_year = start_year
        super().__init__(
            f"This night belongs to stay {stay_id}. Edit it from its start day "
            f"{start_month:02d}/{start_day:02d}/{start_year}."
        )


class FinalizedPeriodError(LedgerError):
    def __init__(self, key: MonthKey):
        self.key = key
        super().__init__(f"{key} has already been submitted and can no longer be changed.")


class LedgerInvariantError(LedgerError):
    """Stored data contradicts the ledger invariants; the operation is aborted."""


@dataclass
class LedgerChange:
    """What a mutation touched, for the sync layer and the response."""
    affected: set[MonthKey] = field(default_factory=set)
    purged_stay_ids: set[str] = field(default_factory=set)
    removed_records: int = 0
    stay: Stay | None = None


_ID_ALPHABET = string.ascii_uppercase + string.digits


def generate_stay_id(room: int, start_day: int, start_month: int, start_year: int, guest: Guest | None) -> str:
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(6))
    gender = (guest.gender[:1].upper() if guest and guest.gender else "U")
    age = guest.age if guest and guest.age else "NA"
    status = (guest.status[:1].upper() if guest and guest.status else "U")
    return f"G-{start_year}{start_month:02d}{start_day:02d}-R{room:02d}-{gender}-{age}-{status}-{suffix}"


class OccupancyLedger:
    def __init__(
        self,
        owner_id: int,
        number_of_rooms: int,
        store: DraftStore | None = None,
        *,
        max_length_of_stay: int = DEFAULT_MAX_LENGTH_OF_STAY,
        finalized: Iterable[MonthKey] = (),
    ):
        self.owner_id = owner_id
        self.number_of_rooms = number_of_rooms
        self.max_length_of_stay = max_length_of_stay
        self._store = store
        self._buckets: dict[MonthKey, MonthBucket] = {}
        self._stays: dict[str, Stay] = {}
        self._finalized: set[MonthKey] = set(finalized)
        # Removed stays whose persisted copies may still exist in unloaded months
        self._tombstones: set[str] = set()
        self.lock = threading.RLock()

    # ------------------------------------------------------------------ buckets

    def is_loaded(self, key: MonthKey) -> bool:
        return key in self._buckets

    def loaded_months(self) -> list[MonthKey]:
        with self.lock:
            return sorted(self._buckets)

    def is_finalized(self, key: MonthKey) -> bool:
        return key in self._finalized

    def load_month(self, key: MonthKey) -> MonthBucket:
        """Bucket for `key`, fetched from the store the first time it is needed."""
        with self.lock:
            bucket = self._buckets.get(key)
            if bucket is not None:
                return bucket
            if key in self._finalized:
                # Finalized months live in submissions; never cached as drafts
                return MonthBucket(key=key)
            if self._store is not None:
                data, version = self._store.get_draft_versioned(self.owner_id, key.month, key.year)
                bucket = MonthBucket.from_wire(key, data, version)
            else:
                bucket = MonthBucket(key=key)
            for stay_id in self._tombstones & bucket.stay_ids():
                bucket.remove_stay(stay_id)
            self._buckets[key] = bucket
            self._index(bucket)
            return bucket

    bucket = load_month

    def view_month(self, key: MonthKey) -> MonthBucket:
        """Read-only access: a month with no records and no stored draft is not kept loaded."""
        with self.lock:
            bucket = self.load_month(key)
            if not bucket.records and bucket.version is None and not bucket.dirty:
                self._buckets.pop(key, None)
            return bucket

    def reload(self, key: MonthKey) -> list[MonthKey]:
        """Drop local changes for `key` and read it again from the store.

        Stays cross month boundaries, so every other loaded month holding a night of a
        stay in the reloaded month (local or stored version) is reloaded with it.
        Returns the reloaded months.
        """
        with self.lock:
            pending, reloaded = {key}, set()
            while pending:
                current = pending.pop()
                reloaded.add(current)
                old = self._buckets.pop(current, None)
                for stay_id in [s for s, stay in self._stays.items() if stay.start_key == current]:
                    del self._stays[stay_id]
                records = list(old.records) if old is not None else []
                records += self.load_month(current).records
                for r in records:
                    for linked in span_months(*r.start_date, r.length_of_stay):
                        if linked in self._buckets and linked not in reloaded:
                            pending.add(linked)
            if len(reloaded) > 1:
                log.info(
                    "Ledger owner=%s: reloaded %s with %s",
                    self.owner_id, key, ", ".join(str(k) for k in sorted(reloaded - {key})),
                )
            return sorted(reloaded)

    def reload_month(self, key: MonthKey) -> MonthBucket:
        with self.lock:
            self.reload(key)
            return self.load_month(key)

    def finalize_month(self, key: MonthKey) -> None:
        """Lock a month once it has been turned into a submission."""
        with self.lock:
            self._buckets.pop(key, None)
            self._finalized.add(key)

    def dirty_months(self) -> list[MonthKey]:
        with self.lock:
            return sorted(k for k, b in self._buckets.items() if b.dirty)

    def snapshot(self, key: MonthKey) -> tuple[list[dict], int | None, int]:
        """(wire records, persisted version, local revision) of a loaded bucket."""
        with self.lock:
            bucket = self._buckets[key]
            return bucket.to_wire(), bucket.version, bucket.revision

    def mark_synced(self, key: MonthKey, version: int, revision: int) -> None:
        with self.lock:
            bucket = self._buckets.get(key)
            if bucket is None:
                return
            bucket.version = version
            bucket.synced_revision = max(bucket.synced_revision, revision)

    def tombstones(self) -> set[str]:
        with self.lock:
            return set(self._tombstones)

    def confirm_purged(self, stay_id: str) -> None:
        with self.lock:
            self._tombstones.discard(stay_id)

    def _index(self, bucket: MonthBucket) -> None:
        for record in bucket.records:
            if not record.is_start_day:
                continue
            if record.stay_id in self._stays and self._stays[record.stay_id].start_date != record.start_date:
                log.warning("Ledger owner=%s: stay %s has more than one start day", self.owner_id, record.stay_id)
                continue
            self._stays[record.stay_id] = Stay.from_record(record)

    # ----------------------------------------------------------------- registry

    def stays(self) -> list[Stay]:
        with self.lock:
            return sorted(self._stays.values(), key=lambda s: (s.start_year, s.start_month, s.start_day, s.room))

    def record_at(self, key: MonthKey, day: int, room: int) -> OccupancyRecord | None:
        with self.lock:
            records = self.view_month(key).at(day, room)
            return records[0] if records else None

    def get_stay(self, stay_id: str) -> Stay:
        with self.lock:
            stay = self._stays.get(stay_id)
            if stay is not None:
                return stay
            record = self._any_record(stay_id) or self._find_stored(stay_id)
            if record is None:
                raise StayNotFoundError(f"Stay {stay_id} not found")
            # A tail record points at the month holding the authoritative start record
            if record.start_key in self._finalized:
                raise FinalizedPeriodError(record.start_key)
            self.load_month(record.start_key)
            stay = self._stays.get(stay_id)
            if stay is None:
                raise LedgerInvariantError(f"Stay {stay_id} has no start-day record on {record.start_key}")
            return stay

    def _any_record(self, stay_id: str) -> OccupancyRecord | None:
        for bucket in self._buckets.values():
            found = bucket.for_stay(stay_id)
            if found:
                return found[0]
        return None

    def _find_stored(self, stay_id: str) -> OccupancyRecord | None:
        """Any persisted record of `stay_id` in a month that is not loaded."""
        if self._store is None or stay_id in self._tombstones:
            return None
        for key in self._store.list_months(self.owner_id):
            if key in self._buckets or key in self._finalized:
                continue
            for data in self._store.get_draft(self.owner_id, key.month, key.year):
                if isinstance(data, dict) and data.get("stayId") == stay_id:
                    return OccupancyRecord.from_wire(data)
        return None

    def _start_records(self, stay_id: str) -> list[tuple[MonthKey, OccupancyRecord]]:
        return [
            (key, r)
            for key, bucket in self._buckets.items()
            for r in bucket.for_stay(stay_id)
            if r.is_start_day
        ]

    def _new_stay_id(self, room: int, start_day: int, start_month: int, start_year: int, guests: tuple[Guest, ...]) -> str:
        taken = set(self._stays) | self._tombstones
        for bucket in self._buckets.values():
            taken |= bucket.stay_ids()
        while True:
            stay_id = generate_stay_id(room, start_day, start_month, start_year, guests[0] if guests else None)
            if stay_id not in taken:
                return stay_id

    # --------------------------------------------------------------- validation

    def _validate(self, room: int, start_day: int, start_month: int, start_year: int, length: int, guests: tuple[Guest, ...]) -> None:
        self._validate_span(room, start_day, start_month, start_year, length)
        if not guests:
            raise StayValidationError("A stay needs at least one guest.")
        for guest in guests:
            if not isinstance(guest.age, int) or guest.age <= 0:
                raise StayValidationError("Please enter a valid age for all guests.")

    def _validate_span(self, room: int, start_day: int, start_month: int, start_year: int, length: int) -> None:
        if not isinstance(room, int) or not 1 <= room <= self.number_of_rooms:
            raise StayValidationError(f"Room {room} is invalid. Please enter a room number between 1 and {self.number_of_rooms}.")
        try:
            check_date(start_day, start_month, start_year)
        except ValueError as e:
            raise StayValidationError(str(e)) from e
        if not isinstance(length, int) or length <= 0:
            raise StayValidationError("Please enter a valid length of stay for all guests.")
        if length > self.max_length_of_stay:
            raise StayValidationError(f"Length of stay cannot exceed {self.max_length_of_stay} nights.")

    def _check_open(self, start_day: int, start_month: int, start_year: int, length: int) -> None:
        for key in span_months(start_day, start_month, start_year, length):
            if key in self._finalized:
                raise FinalizedPeriodError(key)

    def check_conflict(
        self,
        room: int,
        start_day: int,
        start_month: int,
        start_year: int,
        length: int,
        exclude_stay_id: str | None = None,
    ) -> ConflictResult:
        with self.lock:
            self._validate_span(room, start_day, start_month, start_year, length)
            self._check_open(start_day, start_month, start_year, length)
            return find_conflict(self.view_month, room, start_day, start_month, start_year, length, exclude_stay_id)

    def check_invariants(self) -> None:
        """Verify the ledger invariants over the loaded months; raises LedgerInvariantError."""
        with self.lock:
            nights: dict[tuple[MonthKey, int, int], str] = {}
            counts: dict[str, int] = {}
            starts: dict[str, int] = {}
            for key, bucket in self._buckets.items():
                for r in bucket.records:
                    slot = (key, r.day, r.room)
                    if nights.setdefault(slot, r.stay_id) != r.stay_id:
                        raise LedgerInvariantError(f"Room {r.room} double-booked on {key} day {r.day}")
                    counts[r.stay_id] = counts.get(r.stay_id, 0) + 1
                    if r.is_start_day:
                        starts[r.stay_id] = starts.get(r.stay_id, 0) + 1
                        if (r.day, key.month, key.year) != r.start_date:
                            raise LedgerInvariantError(f"Start record of {r.stay_id} is not on its start date")
                    elif r.is_check_in or any(g.is_check_in for g in r.guests):
                        raise LedgerInvariantError(f"Check-in flag outside the start day of {r.stay_id}")
            for stay_id, n in starts.items():
                if n != 1:
                    raise LedgerInvariantError(f"Stay {stay_id} has {n} start-day records")
            for stay in self._stays.values():
                span = months_spanned(stay)
                if all(k in self._buckets for k in span) and counts.get(stay.stay_id, 0) != stay.length_of_stay:
                    raise LedgerInvariantError(
                        f"Stay {stay.stay_id} has {counts.get(stay.stay_id, 0)} nights, expected {stay.length_of_stay}"
                    )

    # ---------------------------------------------------------------- mutations

    def materialize(self, stay: Stay) -> LedgerChange:
        """Write one record per night of `stay`, replacing any records it already has."""
        with self.lock:
            change = self._remove_local(stay.stay_id)
            for key, records in expand_stay(stay).items():
                self.load_month(key).add(records)
                change.affected.add(key)
            self._stays[stay.stay_id] = stay
            change.stay = stay
            return change

    def create_stay(
        self,
        room: int,
        start_day: int,
        start_month: int,
        start_year: int,
        length_of_stay: int,
        guests: Iterable[Guest],
        is_check_in: bool = True,
    ) -> LedgerChange:
        guests = tuple(guests)
        with self.lock:
            self._validate(room, start_day, start_month, start_year, length_of_stay, guests)
            self._check_open(start_day, start_month, start_year, length_of_stay)
            conflict = find_conflict(self.load_month, room, start_day, start_month, start_year, length_of_stay)
            if conflict:
                raise StayConflictError(room, conflict)
            stay = Stay(
                stay_id=self._new_stay_id(room, start_day, start_month, start_year, guests),
                room=room,
                start_day=start_day,
                start_month=start_month,
                start_year=start_year,
                length_of_stay=length_of_stay,
                is_check_in=bool(is_check_in),
                guests=tuple(replace(g, is_check_in=False) for g in guests),
            )
            change = self.materialize(stay)
            log.info(
                "Ledger owner=%s: created stay %s room=%s start=%s/%s/%s nights=%s",
                self.owner_id, stay.stay_id, room, start_month, start_day, start_year, length_of_stay,
            )
            return change

    def update_stay(
        self,
        stay_id: str,
        *,
        guests: Iterable[Guest] | None = None,
        length_of_stay: int | None = None,
        is_check_in: bool | None = None,
    ) -> LedgerChange:
        """Edit guests, length or check-in flag. Start date and room stay fixed."""
        with self.lock:
            current = self.get_stay(stay_id)
            self._check_open(*current.start_date, current.length_of_stay)
            updated = replace(
                current,
                guests=tuple(replace(g, is_check_in=False) for g in guests) if guests is not None else current.guests,
                length_of_stay=length_of_stay if length_of_stay is not None else current.length_of_stay,
                is_check_in=bool(is_check_in) if is_check_in is not None else current.is_check_in,
            )
            self._validate(updated.room, *updated.start_date, updated.length_of_stay, updated.guests)
            self._check_open(*updated.start_date, updated.length_of_stay)

            # Both the old and the new span must be in memory so removal and the conflict walk see everything
            for key in months_spanned(current) + months_spanned(updated):
                self.load_month(key)
            self._verify_stay(current)

            conflict = find_conflict(
                self.load_month, updated.room, *updated.start_date, updated.length_of_stay, exclude_stay_id=stay_id
            )
            if conflict:
                raise StayConflictError(updated.room, conflict)
            change = self.materialize(updated)
            log.info(
                "Ledger owner=%s: updated stay %s nights %s -> %s",
                self.owner_id, stay_id, current.length_of_stay, updated.length_of_stay,
            )
            return change

    def update_stay_at(self, key: MonthKey, day: int, room: int, **changes) -> LedgerChange:
        """Edit the stay occupying (key, day, room); only allowed from its start day."""
        with self.lock:
            record = self.record_at(key, day, room)
            if record is None:
                raise StayNotFoundError(f"No stay in room {room} on {key} day {day}")
            if not record.is_start_day:
                raise NotStartDayError(record.stay_id, *record.start_date)
            return self.update_stay(record.stay_id, **changes)

    def remove_stay(self, stay_id: str) -> LedgerChange:
        """Delete every record of `stay_id`.

        Loaded months are filtered now. Months that only exist in the store are purged
        by the sync layer (see LedgerChange.purged_stay_ids); until that succeeds the id
        is tombstoned so a later load never brings the stay back. An id no loaded month
        knows is looked up in the stored drafts first.
        """
        with self.lock:
            stay = self._stays.get(stay_id)
            record = self._any_record(stay_id)
            if record is None and stay is None:
                record = self._find_stored(stay_id)
                if record is None:
                    raise StayNotFoundError(f"Stay {stay_id} not found")
                if record.start_key not in self._finalized:
                    self.load_month(record.start_key)
                    stay = self._stays.get(stay_id)
            if stay is not None:
                self._check_open(*stay.start_date, stay.length_of_stay)
            else:
                self._check_open(*record.start_date, record.length_of_stay)
            if len(self._start_records(stay_id)) > 1:
                raise LedgerInvariantError(f"Stay {stay_id} has more than one start-day record")

            change = self._remove_local(stay_id)
            self._stays.pop(stay_id, None)
            self._tombstones.add(stay_id)
            change.purged_stay_ids.add(stay_id)
            change.stay = stay
            log.info(
                "Ledger owner=%s: removed stay %s (%d local records, months %s)",
                self.owner_id, stay_id, change.removed_records, ", ".join(str(k) for k in sorted(change.affected)),
            )
            return change

    def _remove_local(self, stay_id: str) -> LedgerChange:
        change = LedgerChange()
        for key, bucket in self._buckets.items():
            removed = bucket.remove_stay(stay_id)
            if removed:
                change.affected.add(key)
                change.removed_records += removed
        return change

    def _verify_stay(self, stay: Stay) -> None:
        starts = self._start_records(stay.stay_id)
        if len(starts) != 1:
            raise LedgerInvariantError(f"Stay {stay.stay_id} has {len(starts)} start-day records")
        key, record = starts[0]
        if (record.day, key.month, key.year) != stay.start_date:
            raise LedgerInvariantError(f"Start record of {stay.stay_id} is not on {stay.start_month}/{stay.start_day}/{stay.start_year}")
        total = sum(len(b.for_stay(stay.stay_id)) for b in self._buckets.values())
        if total != stay.length_of_stay:
            raise LedgerInvariantError(f"Stay {stay.stay_id} has {total} nights, expected {stay.length_of_stay}")
