"""Module D2: Debounced, best-effort persistence of ledger month buckets.

Each bucket save is an APScheduler `date` job with a stable id, re-armed on every
edit so rapid changes coalesce into one write. The job snapshots the bucket when it
runs, not when it was scheduled. Removals additionally queue a purge job that deletes
the stay from every stored month that is not loaded in memory.

Failures never touch the in-memory ledger: they are retried with exponential backoff,
reported as `stale` after repeated failures and kept as `failed` (never dropped) once
the attempts run out. A version mismatch is reported as `conflict` and waits for the
operator to reload the month or force the write.
"""
from __future__ import annotations

import enum
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from apscheduler.jobstores.base import JobLookupError

from app.services.draft_store import UNCHECKED, DraftStore, DraftStoreError, StaleDraftError
from app.services.ledger import LedgerChange, OccupancyLedger
from app.services.occupancy import MonthKey

log = logging.getLogger("uvicorn.error")

SAVE = "save"
PURGE = "purge"


class SyncState(str, enum.Enum):
    pending = "pending"
    synced = "synced"
    retrying = "retrying"
    stale = "stale"
    failed = "failed"
    conflict = "conflict"


@dataclass
class SyncStatus:
    job_id: str
    kind: str
    owner_id: int
    key: MonthKey | None = None
    stay_id: str | None = None
    state: SyncState = SyncState.pending
    attempts: int = 0
    consecutive_failures: int = 0
    last_error: str | None = None
    last_synced_at: datetime | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "month": self.key.month if self.key else None,
            "year": self.key.year if self.key else None,
            "stay_id": self.stay_id,
            "state": self.state.value,
            "attempts": self.attempts,
            "consecutive_failures": self.consecutive_failures,
            "last_error": self.last_error,
            "last_synced_at": self.last_synced_at,
        }


@dataclass
class _Op:
    kind: str
    ledger: OccupancyLedger
    key: MonthKey | None = None
    stay_id: str | None = None
    attempts: int = 0
    # Bumped whenever the op is re-scheduled; a run only retires the op it started with
    generation: int = 0
    blocked: bool = False
    force: bool = False


def save_job_id(owner_id: int, key: MonthKey) -> str:
    return f"draft-save:{owner_id}:{key}"


def purge_job_id(owner_id: int, stay_id: str) -> str:
    return f"draft-purge:{owner_id}:{stay_id}"


class DraftSyncService:
    def __init__(
        self,
        store: DraftStore,
        scheduler=None,
        *,
        debounce_seconds: float = 2.0,
        retry_base_seconds: float = 2.0,
        max_attempts: int = 5,
        stale_after: int = 3,
        on_event: Callable[[str, SyncStatus], None] | None = None,
    ):
        self.store = store
        self.scheduler = scheduler
        self.debounce_seconds = debounce_seconds
        self.retry_base_seconds = retry_base_seconds
        self.max_attempts = max_attempts
        self.stale_after = stale_after
        self.on_event = on_event
        self._ops: dict[str, _Op] = {}
        self._status: dict[str, SyncStatus] = {}
        self._lock = threading.Lock()
        self._job_locks: dict[str, threading.Lock] = {}

    # -------------------------------------------------------------- scheduling

    def apply(self, ledger: OccupancyLedger, change: LedgerChange) -> None:
        """Schedule persistence for everything a ledger mutation touched."""
        keys = set(change.affected) | set(ledger.dirty_months())
        for key in sorted(keys):
            if ledger.is_loaded(key):
                self.schedule_save(ledger, key)
        for stay_id in sorted(change.purged_stay_ids):
            self.schedule_purge(ledger, stay_id)

    def schedule_save(self, ledger: OccupancyLedger, key: MonthKey, force: bool = False) -> None:
        job_id = save_job_id(ledger.owner_id, key)
        self._schedule(job_id, _Op(SAVE, ledger, key=key), force=force)

    def schedule_purge(self, ledger: OccupancyLedger, stay_id: str) -> None:
        job_id = purge_job_id(ledger.owner_id, stay_id)
        self._schedule(job_id, _Op(PURGE, ledger, stay_id=stay_id))

    def _schedule(self, job_id: str, new_op: _Op, force: bool = False) -> None:
        with self._lock:
            op = self._ops.get(job_id)
            if op is None:
                op = self._ops[job_id] = new_op
            else:
                op.ledger = new_op.ledger
            op.generation += 1
            if force:
                op.force = True
                op.blocked = False
            status = self._status_for(job_id, op)
            if op.blocked:
                # Waiting for the operator to resolve a conflict
                return
            if status.state not in (SyncState.retrying, SyncState.stale):
                status.state = SyncState.pending
        self._arm(job_id, self.debounce_seconds)

    def _status_for(self, job_id: str, op: _Op) -> SyncStatus:
        status = self._status.get(job_id)
        if status is None:
            status = self._status[job_id] = SyncStatus(
                job_id=job_id, kind=op.kind, owner_id=op.ledger.owner_id, key=op.key, stay_id=op.stay_id
            )
        return status

    def _arm(self, job_id: str, delay: float) -> None:
        if self.scheduler is None:
            return
        self.scheduler.add_job(
            self._run,
            "date",
            run_date=datetime.now(timezone.utc) + timedelta(seconds=delay),
            args=[job_id],
            id=job_id,
            replace_existing=True,
            max_instances=10,
            misfire_grace_time=None,
        )

    def _disarm(self, job_id: str) -> None:
        if self.scheduler is None:
            return
        try:
            self.scheduler.remove_job(job_id)
        except JobLookupError:
            pass

    # --------------------------------------------------------------- execution

    def _run(self, job_id: str) -> SyncStatus | None:
        with self._lock:
            job_lock = self._job_locks.setdefault(job_id, threading.Lock())
        with job_lock:
            with self._lock:
                op = self._ops.get(job_id)
                if op is None or op.blocked:
                    return self._status.get(job_id)
                generation = op.generation
                op.attempts += 1
                status = self._status_for(job_id, op)
                status.attempts = op.attempts
            try:
                self._execute(op)
            except StaleDraftError as e:
                with self._lock:
                    op.blocked = True
                    status.state = SyncState.conflict
                    status.last_error = str(e)
                log.warning("Draft sync %s: conflict - %s", job_id, e)
                self._emit("conflict", status)
                return status
            except DraftStoreError as e:
                return self._failed(job_id, op, status, str(e))
            except Exception as e:
                log.exception("Draft sync %s: unexpected error", job_id)
                return self._failed(job_id, op, status, repr(e), retry=False)

            with self._lock:
                status.state = SyncState.synced
                status.consecutive_failures = 0
                status.last_error = None
                status.last_synced_at = datetime.now(timezone.utc)
                if op.generation == generation and self._ops.get(job_id) is op:
                    del self._ops[job_id]
                    if op.kind == PURGE:
                        # A purged stay id never comes back
                        self._status.pop(job_id, None)
                        self._job_locks.pop(job_id, None)
                else:
                    # Edited while we were writing; the re-armed job picks it up
                    op.attempts = 0
                    op.force = False
                    status.state = SyncState.pending
            return status

    def _execute(self, op: _Op) -> None:
        ledger = op.ledger
        if op.kind == SAVE:
            if not ledger.is_loaded(op.key):
                return
            records, version, revision = ledger.snapshot(op.key)
            expected = UNCHECKED if op.force else version
            new_version = self.store.save_draft(ledger.owner_id, op.key.month, op.key.year, records, expected_version=expected)
            ledger.mark_synced(op.key, new_version, revision)
            log.info("Draft sync: saved %s for owner %s (%d records, v%s)", op.key, ledger.owner_id, len(records), new_version)
        else:
            # Hold the ledger so no month gets loaded between choosing `keep` and the delete
            with ledger.lock:
                keep = ledger.loaded_months()
                removed = self.store.delete_stay_records(ledger.owner_id, op.stay_id, keep=keep)
                ledger.confirm_purged(op.stay_id)
            if removed:
                log.info(
                    "Draft sync: purged stay %s for owner %s from %s",
                    op.stay_id, ledger.owner_id, ", ".join(f"{k} ({n})" for k, n in sorted(removed.items())),
                )

    def _failed(self, job_id: str, op: _Op, status: SyncStatus, error: str, retry: bool = True) -> SyncStatus:
        with self._lock:
            status.consecutive_failures += 1
            status.last_error = error
            exhausted = not retry or op.attempts >= self.max_attempts
            if exhausted:
                status.state = SyncState.failed
            elif status.consecutive_failures >= self.stale_after:
                status.state = SyncState.stale
            else:
                status.state = SyncState.retrying
        if exhausted:
            log.warning("Draft sync %s: giving up after %d attempt(s), kept for manual retry: %s", job_id, op.attempts, error)
            self._emit("failed", status)
        else:
            delay = self.retry_base_seconds * (2 ** (op.attempts - 1))
            log.warning("Draft sync %s: attempt %d failed (%s); retrying in %.1fs", job_id, op.attempts, error, delay)
            if status.state == SyncState.stale:
                self._emit("stale", status)
            self._arm(job_id, delay)
        return status

    def _emit(self, event: str, status: SyncStatus) -> None:
        if self.on_event is None:
            return
        try:
            self.on_event(event, status)
        except Exception:
            log.exception("Draft sync: event handler failed for %s", status.job_id)

    # ------------------------------------------------------------------ control

    def flush(self, owner_id: int | None = None, force: bool = False) -> list[SyncStatus]:
        """Run pending work now (including failed ops; conflicts only with force=True)."""
        with self._lock:
            job_ids = [
                job_id
                for job_id, op in self._ops.items()
                if owner_id is None or op.ledger.owner_id == owner_id
            ]
            for job_id in job_ids:
                op = self._ops[job_id]
                op.attempts = 0
                if force and op.blocked:
                    op.blocked = False
                    op.force = True
        # Purges first so a reloaded month never sees a removed stay
        job_ids.sort(key=lambda j: (not j.startswith("draft-purge"), j))
        results = []
        for job_id in job_ids:
            self._disarm(job_id)
            status = self._run(job_id)
            if status is not None:
                results.append(status)
        return results

    def discard(self, owner_id: int, key: MonthKey) -> None:
        """Forget pending work for a month (after a reload or finalization)."""
        job_id = save_job_id(owner_id, key)
        self._disarm(job_id)
        with self._lock:
            self._ops.pop(job_id, None)
            self._status.pop(job_id, None)
            self._job_locks.pop(job_id, None)

    def pending(self, owner_id: int | None = None) -> list[str]:
        with self._lock:
            return sorted(
                job_id for job_id, op in self._ops.items()
                if owner_id is None or op.ledger.owner_id == owner_id
            )

    def status(self, owner_id: int) -> list[SyncStatus]:
        with self._lock:
            return sorted(
                (s for s in self._status.values() if s.owner_id == owner_id),
                key=lambda s: (s.kind, s.key or MonthKey(1, 1), s.stay_id or ""),
            )

    def state_of(self, owner_id: int, key: MonthKey) -> SyncState | None:
        with self._lock:
            status = self._status.get(save_job_id(owner_id, key))
            return status.state if status else None
