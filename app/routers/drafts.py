"""Module D: Month drafts - the grid view of the ledger, cell edits and background sync control."""
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session
from app.database import get_db
from app.models.user import User
from app.schemas.draft import (
    DayTotalsOut,
    DraftMonth,
    MonthDraftResponse,
    MonthlyAveragesOut,
    OccupancyRecordOut,
    SyncRequest,
    SyncStatusOut,
)
from app.schemas.stay import StayChangeResponse, StayUpdate
from app.dependencies import get_current_user, get_ledger, get_ledger_workspaces, ledger_http_error
from app.routers.stays import guests_from, audit_stay_change, change_response
from app.services.aggregator import month_day_totals, monthly_averages, rooms_occupied
from app.services.draft_store import DraftStoreError
from app.services.ledger import LedgerError, OccupancyLedger
from app.services.occupancy import MonthKey
from app.services.workspaces import LedgerWorkspaces

router = APIRouter(prefix="/drafts", tags=["drafts"])


def _key(year: int, month: int) -> MonthKey:
    try:
        return MonthKey(year, month)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


def month_view(ledger: OccupancyLedger, workspaces: LedgerWorkspaces, key: MonthKey) -> MonthDraftResponse:
    if ledger.is_finalized(key):
        return MonthDraftResponse(
            month=key.month, year=key.year, number_of_rooms=ledger.number_of_rooms, is_finalized=True
        )
    with ledger.lock:
        bucket = ledger.view_month(key)
        records = list(bucket.records)
        version, dirty = bucket.version, bucket.dirty
    totals = month_day_totals(records, key.month, key.year)
    state = workspaces.sync.state_of(ledger.owner_id, key)
    return MonthDraftResponse(
        month=key.month,
        year=key.year,
        number_of_rooms=ledger.number_of_rooms,
        is_draft=bool(records) or version is not None,
        version=version,
        unsaved_changes=dirty,
        sync_state=state.value if state else None,
        days=[OccupancyRecordOut.model_validate(r) for r in records],
        totals=[DayTotalsOut.model_validate(t) for t in totals],
        averages=MonthlyAveragesOut.model_validate(
            monthly_averages(totals, ledger.number_of_rooms, rooms_occupied(records))
        ),
    )


@router.get("/", response_model=list[DraftMonth])
def list_drafts(
    ledger: OccupancyLedger = Depends(get_ledger),
    workspaces: LedgerWorkspaces = Depends(get_ledger_workspaces),
):
    """Months with a stored draft or loaded in this session, oldest first."""
    try:
        stored = set(workspaces.store.list_months(ledger.owner_id))
    except DraftStoreError as e:
        raise ledger_http_error(e)
    loaded = set(ledger.loaded_months())
    return [
        DraftMonth(year=k.year, month=k.month, loaded=k in loaded)
        for k in sorted(stored | loaded)
        if not ledger.is_finalized(k)
    ]


@router.get("/sync-status", response_model=list[SyncStatusOut])
def sync_status(
    current_user: User = Depends(get_current_user),
    workspaces: LedgerWorkspaces = Depends(get_ledger_workspaces),
):
    return [SyncStatusOut(**s.as_dict()) for s in workspaces.sync.status(current_user.id)]


@router.post("/sync", response_model=list[SyncStatusOut])
def sync_now(
    data: SyncRequest | None = None,
    ledger: OccupancyLedger = Depends(get_ledger),
    workspaces: LedgerWorkspaces = Depends(get_ledger_workspaces),
):
    """Write pending changes now. `force` overwrites drafts changed by another session."""
    force = bool(data and data.force)
    results = workspaces.sync.flush(ledger.owner_id, force=force)
    return [SyncStatusOut(**s.as_dict()) for s in results]


@router.get("/{year}/{month}", response_model=MonthDraftResponse)
def get_month(
    year: int,
    month: int,
    ledger: OccupancyLedger = Depends(get_ledger),
    workspaces: LedgerWorkspaces = Depends(get_ledger_workspaces),
):
    key = _key(year, month)
    try:
        return month_view(ledger, workspaces, key)
    except (LedgerError, DraftStoreError) as e:
        raise ledger_http_error(e)


@router.put("/{year}/{month}/days/{day}/rooms/{room}", response_model=StayChangeResponse)
def edit_cell(
    request: Request,
    year: int,
    month: int,
    day: int,
    room: int,
    data: StayUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    ledger: OccupancyLedger = Depends(get_ledger),
    workspaces: LedgerWorkspaces = Depends(get_ledger_workspaces),
):
    """Edit the stay in a grid cell. Only the stay's start-day cell is editable."""
    key = _key(year, month)
    try:
        change = ledger.update_stay_at(
            key,
            day,
            room,
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
        f"Stay {change.stay.stay_id} updated from room {room}, {key} day {day}.",
        change,
    )
    return change_response(change)


@router.post("/{year}/{month}/reload", response_model=MonthDraftResponse)
def reload_month(
    year: int,
    month: int,
    ledger: OccupancyLedger = Depends(get_ledger),
    workspaces: LedgerWorkspaces = Depends(get_ledger_workspaces),
):
    """Discard unsaved local changes for the month and read the stored draft again."""
    key = _key(year, month)
    try:
        for reloaded in ledger.reload(key):
            workspaces.sync.discard(ledger.owner_id, reloaded)
        return month_view(ledger, workspaces, key)
    except (LedgerError, DraftStoreError) as e:
        raise ledger_http_error(e)


@router.delete("/{year}/{month}", response_model=StayChangeResponse)
def delete_month(
    request: Request,
    year: int,
    month: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    workspaces: LedgerWorkspaces = Depends(get_ledger_workspaces),
):
    """Delete the month's draft together with every stay that touches it."""
    key = _key(year, month)
    try:
        change = workspaces.discard_month(db, current_user, key)
    except (LedgerError, DraftStoreError) as e:
        raise ledger_http_error(e)
    audit_stay_change(
        db,
        request,
        current_user,
        "Draft deleted",
        f"Draft {key} deleted; {len(change.purged_stay_ids)} stay(s) removed.",
        change,
    )
    return change_response(change)
