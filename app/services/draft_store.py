"""Module D: Draft store - persisted month buckets, one row per (owner, month, year).

Saves replace a bucket wholesale and are guarded by an optimistic version counter:
a writer passes the version it last read and a mismatch raises StaleDraftError.
"""
from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterable, Iterator

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.database import SessionLocal
from app.models.draft import DraftSubmission
from app.models.user import User
from app.services.occupancy import MonthKey

# Sentinel: save without comparing versions (last writer wins)
UNCHECKED = object()


class DraftStoreError(Exception):
    """The store could not be reached or the write failed."""


class StaleDraftError(DraftStoreError):
    """Someone else saved this bucket since we read it."""

    def __init__(self, owner_id: int, key: MonthKey, expected: int | None, actual: int | None):
        self.owner_id = owner_id
        self.key = key
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Draft {key} for owner {owner_id} changed remotely (expected version {expected}, found {actual})"
        )


def _num(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def clean_records(data: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
    """Coerce records to the wire shape before storing (missing fields get defaults)."""
    cleaned = []
    for item in data or []:
        if not isinstance(item, dict):
            continue
        guests = item.get("guests")
        cleaned.append({
            "day": _num(item.get("day")),
            "room": _num(item.get("room")),
            "guests": [
                {
                    "gender": str(g.get("gender") or ""),
                    "age": _num(g.get("age")),
                    "status": str(g.get("status") or ""),
                    "nationality": str(g.get("nationality") or ""),
                    "isCheckIn": bool(g.get("isCheckIn")),
                }
                for g in (guests if isinstance(guests, list) else [])
                if isinstance(g, dict)
            ],
            "lengthOfStay": _num(item.get("lengthOfStay")),
            "isCheckIn": bool(item.get("isCheckIn")),
            "stayId": str(item.get("stayId") or ""),
            "startDay": _num(item.get("startDay")),
            "startMonth": _num(item.get("startMonth")),
            "startYear": _num(item.get("startYear")),
            "isStartDay": bool(item.get("isStartDay")),
        })
    return cleaned


class DraftStore:
    def __init__(self, session_factory: sessionmaker = SessionLocal):
        self._session_factory = session_factory

    @contextmanager
    def _session(self) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
            db.commit()
        except DraftStoreError:
            db.rollback()
            raise
        except SQLAlchemyError as e:
            db.rollback()
            raise DraftStoreError(str(e)) from e
        finally:
            db.close()

    @staticmethod
    def _row(db: Session, owner_id: int, month: int, year: int, lock: bool = False) -> DraftSubmission | None:
        q = db.query(DraftSubmission).filter(
            DraftSubmission.user_id == owner_id,
            DraftSubmission.month == month,
            DraftSubmission.year == year,
        )
        if lock:
            q = q.with_for_update()
        return q.first()

    def get_draft_versioned(self, owner_id: int, month: int, year: int) -> tuple[list[dict[str, Any]], int | None]:
        with self._session() as db:
            row = self._row(db, owner_id, month, year)
            if not row:
                return [], None
            return list(row.data or []), row.version

    def get_draft(self, owner_id: int, month: int, year: int) -> list[dict[str, Any]]:
        records, _ = self.get_draft_versioned(owner_id, month, year)
        return records

    def save_draft(
        self,
        owner_id: int,
        month: int,
        year: int,
        records: Iterable[dict[str, Any]],
        expected_version: Any = UNCHECKED,
    ) -> int:
        """Replace the bucket wholesale. Returns the new version."""
        data = clean_records(records)
        key = MonthKey(year, month)
        try:
            with self._session() as db:
                row = self._row(db, owner_id, month, year, lock=True)
                current = row.version if row else None
                if expected_version is not UNCHECKED and expected_version != current:
                    raise StaleDraftError(owner_id, key, expected_version, current)
                if row is None:
                    row = DraftSubmission(user_id=owner_id, month=month, year=year, data=data, version=1)
                    db.add(row)
                else:
                    row.data = data
                    row.version = (row.version or 0) + 1
                db.flush()
                return row.version
        except DraftStoreError as e:
            if isinstance(e.__cause__, IntegrityError):
                # Lost a race to create the row
                raise StaleDraftError(owner_id, key, expected_version if expected_version is not UNCHECKED else None, None) from e
            raise

    def delete_draft(self, owner_id: int, month: int, year: int) -> bool:
        with self._session() as db:
            row = self._row(db, owner_id, month, year, lock=True)
            if not row:
                return False
            db.delete(row)
            return True

    def list_months(self, owner_id: int) -> list[MonthKey]:
        with self._session() as db:
            rows = (
                db.query(DraftSubmission.year, DraftSubmission.month)
                .filter(DraftSubmission.user_id == owner_id)
                .order_by(DraftSubmission.year, DraftSubmission.month)
                .all()
            )
            return [MonthKey(y, m) for y, m in rows]

    def delete_stay_records(
        self,
        owner_id: int,
        stay_id: str,
        keep: Iterable[MonthKey] = (),
    ) -> dict[MonthKey, int]:
        """Delete every stored record of `stay_id` in one transaction, skipping months in `keep`.

        Returns the number of records removed per month that changed.
        """
        skip = set(keep)
        removed: dict[MonthKey, int] = {}
        with self._session() as db:
            rows = (
                db.query(DraftSubmission)
                .filter(DraftSubmission.user_id == owner_id)
                .with_for_update()
                .all()
            )
            for row in rows:
                key = MonthKey(row.year, row.month)
                if key in skip:
                    continue
                data = list(row.data or [])
                kept = [r for r in data if not (isinstance(r, dict) and r.get("stayId") == stay_id)]
                if len(kept) != len(data):
                    row.data = kept
                    row.version = (row.version or 0) + 1
                    removed[key] = len(data) - len(kept)
        return removed

    def list_all_drafts(self) -> list[dict[str, Any]]:
        """Admin overview: every draft with its establishment, most recently updated first."""
        with self._session() as db:
            rows = (
                db.query(DraftSubmission, User)
                .join(User, User.id == DraftSubmission.user_id)
                .order_by(DraftSubmission.last_updated.desc())
                .all()
            )
            return [
                {
                    "draft_id": d.id,
                    "user_id": d.user_id,
                    "month": d.month,
                    "year": d.year,
                    "last_updated": d.last_updated,
                    "company_name": u.company_name,
                }
                for d, u in rows
            ]

    def get_draft_by_id(self, draft_id: int) -> dict[str, Any] | None:
        with self._session() as db:
            row = (
                db.query(DraftSubmission, User)
                .join(User, User.id == DraftSubmission.user_id)
                .filter(DraftSubmission.id == draft_id)
                .first()
            )
            if not row:
                return None
            d, u = row
            return {
                "draft_id": d.id,
                "user_id": d.user_id,
                "month": d.month,
                "year": d.year,
                "data": list(d.data or []),
                "version": d.version,
                "company_name": u.company_name,
                "number_of_rooms": u.number_of_rooms,
            }
