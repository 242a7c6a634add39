"""Module F: Finalize a month's occupancy into an immutable submission.

A submission freezes the per-day totals and the guests of every night, computes the
monthly averages and the deadline/penalty flags, and retires the month's draft.
Months with a submission are read-only for the ledger.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session, selectinload

from app.config import get_settings
from app.models.submission import DailyMetric, Submission, SubmittedGuest
from app.models.user import User
from app.services.aggregator import (
    DayTotals,
    guest_demographics,
    month_day_totals,
    monthly_averages,
    nationality_counts,
)
from app.services.calendar import check_date, next_month
from app.services.occupancy import Guest, MonthKey, OccupancyRecord

log = logging.getLogger("uvicorn.error")


class SubmissionError(Exception):
    pass


class SubmissionExistsError(SubmissionError):
    def __init__(self, key: MonthKey):
        self.key = key
        super().__init__(f"A submission for {key} already exists.")


class SubmissionNotFoundError(SubmissionError):
    pass


@dataclass(frozen=True)
class SubmittedDay:
    """Input to finalize_submission: one calendar day with its totals and guests."""
    totals: DayTotals
    guests: tuple[tuple[int, Guest], ...] = ()


def submission_days(records: Iterable[OccupancyRecord], month: int, year: int) -> list[SubmittedDay]:
    """Totals for every day of the month plus the (room, guest) pairs staying that night."""
    records = list(records)
    guests_by_day: dict[int, list[tuple[int, Guest]]] = {}
    for r in sorted(records, key=lambda r: (r.day, r.room)):
        guests_by_day.setdefault(r.day, []).extend((r.room, g) for g in r.guests)
    return [
        SubmittedDay(totals=t, guests=tuple(guests_by_day.get(t.day, ())))
        for t in month_day_totals(records, month, year)
    ]


def calculate_deadline(month: int, year: int) -> datetime:
    """Deadline for a month's report: the configured day of the next month, 23:59:59 local time."""
    settings = get_settings()
    due_month, due_year = next_month(month, year)
    tz = ZoneInfo(settings.submission_timezone)
    return datetime(due_year, due_month, settings.submission_deadline_day, 23, 59, 59, tzinfo=tz)


def penalty_for(submitted_at: datetime, deadline: datetime) -> tuple[bool, float]:
    if submitted_at > deadline:
        return True, float(get_settings().late_penalty_amount)
    return False, 0.0


def is_submitted(db: Session, owner_id: int, month: int, year: int) -> bool:
    return (
        db.query(Submission.id)
        .filter(Submission.user_id == owner_id, Submission.month == month, Submission.year == year)
        .first()
        is not None
    )


def finalize_submission(
    db: Session,
    user: User,
    month: int,
    year: int,
    days: list[SubmittedDay],
    now: datetime | None = None,
) -> Submission:
    """Persist the month as a submission. Raises SubmissionExistsError when already submitted.

    The caller commits; the draft is retired by the caller once the commit succeeded.
    """
    check_date(1, month, year)
    key = MonthKey(year, month)
    if is_submitted(db, user.id, month, year):
        raise SubmissionExistsError(key)

    submitted_at = now or datetime.now(timezone.utc)
    deadline = calculate_deadline(month, year)
    is_late, penalty = penalty_for(submitted_at, deadline)
    rooms_used = len({room for d in days for room, _ in d.guests})
    averages = monthly_averages([d.totals for d in days], user.number_of_rooms, rooms_used)

    submission = Submission(
        user_id=user.id,
        month=month,
        year=year,
        deadline=deadline,
        submitted_at=submitted_at,
        is_late=is_late,
        penalty_amount=penalty,
        penalty_paid=False,
        average_guest_nights=averages.average_guest_nights,
        average_room_occupancy_rate=averages.average_room_occupancy_rate,
        average_guests_per_room=averages.average_guests_per_room,
        number_of_rooms=user.number_of_rooms,
    )
    for d in days:
        metric = DailyMetric(
            day=d.totals.day,
            check_ins=d.totals.check_ins,
            overnight=d.totals.overnight,
            occupied=d.totals.occupied,
        )
        metric.guests = [
            SubmittedGuest(
                room_number=room,
                gender=g.gender,
                age=g.age,
                status=g.status,
                nationality=g.nationality,
                is_check_in=g.is_check_in,
            )
            for room, g in d.guests
        ]
        submission.days.append(metric)
    db.add(submission)
    db.flush()
    log.info(
        "Submission %s: owner=%s %s late=%s penalty=%.2f avg_nights=%.2f",
        submission.id, user.id, key, is_late, penalty, averages.average_guest_nights,
    )
    return submission


# ----------------------------------------------------------------- queries


def submission_history(db: Session, owner_id: int) -> list[Submission]:
    return (
        db.query(Submission)
        .filter(Submission.user_id == owner_id)
        .order_by(Submission.year.desc(), Submission.month.desc())
        .all()
    )


def get_submission(db: Session, submission_id: int) -> Submission:
    submission = (
        db.query(Submission)
        .options(selectinload(Submission.days).selectinload(DailyMetric.guests))
        .filter(Submission.id == submission_id)
        .first()
    )
    if submission is None:
        raise SubmissionNotFoundError(f"Submission {submission_id} not found")
    return submission


def submitted_guests(submission: Submission) -> list[Guest]:
    return [
        Guest(
            gender=g.gender or "",
            age=g.age or 0,
            status=g.status or "",
            nationality=g.nationality or "",
            is_check_in=bool(g.is_check_in),
        )
        for metric in submission.days
        for g in metric.guests
    ]


def submission_nationalities(submission: Submission) -> dict[str, int]:
    """Check-in guests per nationality for a single submission."""
    return {row["nationality"]: row["count"] for row in nationality_counts(submitted_guests(submission))}


def update_penalty(db: Session, submission_id: int, penalty_paid: bool, receipt_number: str | None) -> Submission:
    submission = db.query(Submission).filter(Submission.id == submission_id).first()
    if submission is None:
        raise SubmissionNotFoundError(f"Submission {submission_id} not found")
    submission.penalty_paid = bool(penalty_paid)
    submission.receipt_number = (receipt_number or "").strip() or None
    db.flush()
    return submission


def delete_submission(db: Session, submission_id: int) -> Submission:
    submission = db.query(Submission).filter(Submission.id == submission_id).first()
    if submission is None:
        raise SubmissionNotFoundError(f"Submission {submission_id} not found")
    db.delete(submission)
    db.flush()
    return submission


# -------------------------------------------------------------- statistics


def monthly_metrics(db: Session, owner_id: int, year: int | None = None) -> list[dict]:
    """Per-month totals and averages of the owner's submissions, oldest first."""
    q = (
        db.query(Submission)
        .options(selectinload(Submission.days))
        .filter(Submission.user_id == owner_id)
    )
    if year is not None:
        q = q.filter(Submission.year == year)
    rows = []
    for s in q.order_by(Submission.year, Submission.month).all():
        rows.append({
            "month": s.month,
            "year": s.year,
            "total_check_ins": sum(d.check_ins for d in s.days),
            "total_overnight": sum(d.overnight for d in s.days),
            "total_occupied": sum(d.occupied for d in s.days),
            "average_guest_nights": s.average_guest_nights,
            "average_room_occupancy_rate": s.average_room_occupancy_rate,
            "average_guests_per_room": s.average_guests_per_room,
            "total_rooms": s.number_of_rooms,
        })
    return rows


def _period_guests(db: Session, owner_id: int, year: int | None, month: int | None) -> list[Guest]:
    q = (
        db.query(SubmittedGuest)
        .join(DailyMetric, DailyMetric.id == SubmittedGuest.metric_id)
        .join(Submission, Submission.id == DailyMetric.submission_id)
        .filter(Submission.user_id == owner_id, SubmittedGuest.is_check_in.is_(True))
    )
    if year is not None:
        q = q.filter(Submission.year == year)
    if month is not None:
        q = q.filter(Submission.month == month)
    return [
        Guest(
            gender=g.gender or "",
            age=g.age or 0,
            status=g.status or "",
            nationality=g.nationality or "",
            is_check_in=True,
        )
        for g in q.all()
    ]


def demographics(db: Session, owner_id: int, year: int | None = None, month: int | None = None) -> list[dict]:
    return guest_demographics(_period_guests(db, owner_id, year, month))


def nationalities(db: Session, owner_id: int, year: int | None = None, month: int | None = None) -> list[dict]:
    return nationality_counts(_period_guests(db, owner_id, year, month))


def submitted_months(db: Session, owner_id: int, year: int | None = None) -> list[MonthKey]:
    q = db.query(Submission.year, Submission.month).filter(Submission.user_id == owner_id)
    if year is not None:
        q = q.filter(Submission.year == year)
    return sorted(MonthKey(y, m) for y, m in q.all())
