"""Module C6: Per-establishment ledger sessions and their background sync.

The service assumes one writer per establishment and month; each establishment gets
a single in-memory ledger shared by its requests, created on first use.
"""
from __future__ import annotations

import logging
import threading
from datetime import datetime
from functools import lru_cache

from sqlalchemy.orm import Session

from app.config import get_settings
from app.database import SessionLocal
from app.models.submission import Submission
from app.models.user import User
from app.services.audit_log import CATEGORY_DRAFT_SYNC, log_in_new_session
from app.services.draft_store import DraftStore, DraftStoreError
from app.services.draft_sync import DraftSyncService, SyncStatus
from app.services.ledger import FinalizedPeriodError, LedgerChange, OccupancyLedger
from app.services.occupancy import MonthKey
from app.services.propagation import span_months
from app.services.submissions import SubmissionExistsError, finalize_submission, submission_days, submitted_months

log = logging.getLogger("uvicorn.error")

_EVENT_TITLES = {
    "conflict": "Draft changed by another session",
    "stale": "Draft not saved (retrying)",
    "failed": "Draft save failed",
}


def audit_sync_event(event: str, status: SyncStatus) -> None:
    what = f"month {status.key}" if status.key else f"removal of stay {status.stay_id}"
    log_in_new_session(
        SessionLocal,
        CATEGORY_DRAFT_SYNC,
        _EVENT_TITLES.get(event, f"Draft sync {event}"),
        f"Background save of {what} is {status.state.value} after {status.attempts} attempt(s): {status.last_error or '-'}",
        owner_id=status.owner_id,
        stay_id=status.stay_id,
        meta={"event": event, "job_id": status.job_id, "attempts": status.attempts},
    )


class LedgerWorkspaces:
    def __init__(self, store: DraftStore, sync: DraftSyncService, max_length_of_stay: int):
        self.store = store
        self.sync = sync
        self.max_length_of_stay = max_length_of_stay
        self._ledgers: dict[int, OccupancyLedger] = {}
        self._lock = threading.Lock()

    def get(self, db: Session, user: User) -> OccupancyLedger:
        with self._lock:
            ledger = self._ledgers.get(user.id)
            if ledger is None:
                finalized = submitted_months(db, user.id)
                ledger = self._ledgers[user.id] = OccupancyLedger(
                    user.id,
                    user.number_of_rooms,
                    self.store,
                    max_length_of_stay=self.max_length_of_stay,
                    finalized=finalized,
                )
            else:
                ledger.number_of_rooms = user.number_of_rooms
            return ledger

    def commit(self, ledger: OccupancyLedger, change: LedgerChange) -> None:
        self.sync.apply(ledger, change)

    def finalize(self, db: Session, user: User, key: MonthKey, now: datetime | None = None) -> Submission:
        """Turn the month into a submission, then retire its draft and lock it in the ledger."""
        ledger = self.get(db, user)
        if ledger.is_finalized(key):
            raise SubmissionExistsError(key)
        # Pending saves of neighbouring months (tails of stays) go out first
        self.sync.flush(user.id)
        with ledger.lock:
            bucket = ledger.load_month(key)
            submission = finalize_submission(
                db, user, key.month, key.year, submission_days(bucket.records, key.month, key.year), now=now
            )
            db.commit()
            ledger.finalize_month(key)
        self.sync.discard(user.id, key)
        try:
            self.store.delete_draft(user.id, key.month, key.year)
        except DraftStoreError as e:
            log.warning("Submission %s: draft %s for owner %s not deleted: %s", submission.id, key, user.id, e)
        return submission

    def discard_month(self, db: Session, user: User, key: MonthKey) -> LedgerChange:
        """Remove every stay touching the month and delete its stored draft."""
        ledger = self.get(db, user)
        if ledger.is_finalized(key):
            raise FinalizedPeriodError(key)
        with ledger.lock:
            bucket = ledger.load_month(key)
            for record in bucket.records:
                for month in span_months(*record.start_date, record.length_of_stay):
                    if ledger.is_finalized(month):
                        raise FinalizedPeriodError(month)
            change = LedgerChange()
            for stay_id in sorted(bucket.stay_ids()):
                removed = ledger.remove_stay(stay_id)
                change.affected |= removed.affected
                change.purged_stay_ids |= removed.purged_stay_ids
                change.removed_records += removed.removed_records
            change.affected.discard(key)
            self.sync.apply(ledger, change)
            self.sync.discard(user.id, key)
            self.store.delete_draft(user.id, key.month, key.year)
            ledger.reload_month(key)
        log.info("Owner %s discarded draft %s (%d records)", user.id, key, change.removed_records)
        return change

    def drop(self, owner_id: int) -> None:
        with self._lock:
            self._ledgers.pop(owner_id, None)

    def shutdown(self) -> None:
        """Flush every pending save, then stop the scheduler."""
        self.sync.flush()
        scheduler = self.sync.scheduler
        if scheduler is not None and scheduler.running:
            scheduler.shutdown(wait=False)


@lru_cache
def get_workspaces() -> LedgerWorkspaces:
    settings = get_settings()
    scheduler = None
    if settings.draft_sync_enabled:
        from apscheduler.schedulers.background import BackgroundScheduler
        scheduler = BackgroundScheduler(timezone="UTC")
    store = DraftStore(SessionLocal)
    sync = DraftSyncService(
        store,
        scheduler,
        debounce_seconds=settings.draft_sync_debounce_seconds,
        retry_base_seconds=settings.draft_sync_retry_base_seconds,
        max_attempts=settings.draft_sync_max_attempts,
        stale_after=settings.draft_sync_stale_after,
        on_event=audit_sync_event,
    )
    return LedgerWorkspaces(store, sync, settings.max_length_of_stay)
