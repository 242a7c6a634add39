"""Module C: Stay creation, editing and removal against the occupancy ledger."""
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session
from app.database import get_db
from app.models.user import User
from app.schemas.stay import (
    ConflictCheck,
    ConflictResponse,
    GuestIn,
    MonthRef,
    StayChangeResponse,
    StayCreate,
    StayResponse,
    StayUpdate,
)
from app.dependencies import get_current_user, get_ledger, get_ledger_workspaces, ledger_http_error
from app.services.audit_log import create_log, CATEGORY_STAY_CHANGE
from app.services.draft_store import DraftStoreError
from app.services.ledger import LedgerChange, LedgerError, OccupancyLedger
from app.services.occupancy import Guest
from app.services.workspaces import LedgerWorkspaces

router = APIRouter(prefix="/stays", tags=["stays"])


def guests_from(items: list[GuestIn] | None) -> list[Guest] | None:
    if items is None:
        return None
    return [Guest(gender=g.gender, age=g.age, status=g.status, nationality=g.nationality) for g in items]


def change_response(change: LedgerChange) -> StayChangeResponse:
    return StayChangeResponse(
        stay=StayResponse.model_validate(change.stay) if change.stay else None,
        months=[MonthRef(year=k.year, month=k.month) for k in sorted(change.affected)],
        removed_records=change.removed_records,
        pending_purge=bool(change.purged_stay_ids),
    )


def audit_stay_change(
    db: Session,
    request: Request,
    current_user: User,
    title: str,
    message: str,
    change: LedgerChange,
    stay_id: str | None = None,
) -> None:
    create_log(
        db,
        CATEGORY_STAY_CHANGE,
        title,
        message,
        owner_id=current_user.id,
        stay_id=stay_id or (change.stay.stay_id if change.stay else None),
        actor_user_id=current_user.id,
        actor_email=current_user.email,
        ip_address=request.client.host if request.client else None,
        user_agent=(request.headers.get("user-agent") or "").strip() or None,
        meta={"months": [str(k) for k in sorted(change.affected)], "removed_records": change.removed_records},
    )
    db.commit()


@router.post("/", response_model=StayChangeResponse, status_code=201)
def create_stay(
    request: Request,
    data: StayCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    ledger: OccupancyLedger = Depends(get_ledger),
    workspaces: LedgerWorkspaces = Depends(get_ledger_workspaces),
):
    try:
        change = ledger.create_stay(
            data.room,
            data.start_day,
            data.start_month,
            data.start_year,
            data.length_of_stay,
            guests_from(data.guests),
            is_check_in=data.is_check_in,
        )
    except (LedgerError, DraftStoreError) as e:
        raise ledger_http_error(e)
    workspaces.commit(ledger, change)
    stay = change.stay
    audit_stay_change(
        db,
        request,
        current_user,
        "Stay created",
        f"Stay {stay.stay_id} created in room {stay.room}, {stay.start_month:02d}/{stay.start_day:02d}/{stay.start_year}, "
        f"{stay.length_of_stay} night(s), {len(stay.guests)} guest(s).",
        change,
    )
    return change_response(change)


@router.get("/", response_model=list[StayResponse])
def list_stays(ledger: OccupancyLedger = Depends(get_ledger)):
    """Stays whose start day is in a month loaded in this session."""
    return [StayResponse.model_validate(s) for s in ledger.stays()]


@router.post("/check-conflict", response_model=ConflictResponse)
def check_conflict(data: ConflictCheck, ledger: OccupancyLedger = Depends(get_ledger)):
    try:
        result = ledger.check_conflict(
            data.room, data.start_day, data.start_month, data.start_year, data.length_of_stay, data.exclude_stay_id
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except (LedgerError, DraftStoreError) as e:
        raise ledger_http_error(e)
    if not result:
        return ConflictResponse(conflict=False)
    return ConflictResponse(
        conflict=True,
        day=result.day,
        month=result.month,
        year=result.year,
        stay_id=result.stay_id,
        message=f"Room {data.room} is already occupied on {result.month:02d}/{result.day:02d}/{result.year}.",
    )


@router.get("/{stay_id}", response_model=StayResponse)
def get_stay(stay_id: str, ledger: OccupancyLedger = Depends(get_ledger)):
    try:
        return StayResponse.model_validate(ledger.get_stay(stay_id))
    except (LedgerError, DraftStoreError) as e:
        raise ledger_http_error(e)


@router.put("/{stay_id}", response_model=StayChangeResponse)
def update_stay(
    request: Request,
    stay_id: str,
    data: StayUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    ledger: OccupancyLedger = Depends(get_ledger),
    workspaces: LedgerWorkspaces = Depends(get_ledger_workspaces),
):
    try:
        change = ledger.update_stay(
            stay_id,
            guests=guests_from(data.guests),
            length_of_stay=data.length_of_stay,
            is_check_in=data.is_check_in,
        )
    except (LedgerError, DraftStoreError) as e:
        raise ledger_http_error(e)
    workspaces.commit(ledger, change)
    audit_stay_change(
        db,
        request,
        current_user,
        "Stay updated",
        f"Stay {stay_id} updated: {change.stay.length_of_stay} night(s), {len(change.stay.guests)} guest(s).",
        change,
    )
    return change_response(change)


@router.delete("/{stay_id}", response_model=StayChangeResponse)
def remove_stay(
    request: Request,
    stay_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    ledger: OccupancyLedger = Depends(get_ledger),
    workspaces: LedgerWorkspaces = Depends(get_ledger_workspaces),
):
    try:
        change = ledger.remove_stay(stay_id)
    except (LedgerError, DraftStoreError) as e:
        raise ledger_http_error(e)
    workspaces.commit(ledger, change)
    audit_stay_change(
        db,
        request,
        current_user,
        "Stay removed",
        f"Stay {stay_id} removed ({change.removed_records} record(s) in loaded months).",
        change,
        stay_id=stay_id,
    )
    return change_response(change)
