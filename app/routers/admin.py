"""Module H: Admin review of drafts and submissions, penalty settlement."""
import hmac

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session
from app.config import get_settings
from app.database import get_db
from app.models.user import User
from app.schemas.draft import DayTotalsOut, DraftDetails, DraftSummary, MonthlyAveragesOut, OccupancyRecordOut
from app.schemas.submission import PenaltyUpdate, SubmissionResponse
from app.dependencies import get_ledger_workspaces, ledger_http_error, require_admin
from app.services.aggregator import month_day_totals, monthly_averages, rooms_occupied
from app.services.audit_log import create_log, CATEGORY_PENALTY, CATEGORY_SUBMISSION
from app.services.draft_store import DraftStoreError
from app.services.occupancy import MonthBucket, MonthKey
from app.services.submissions import SubmissionNotFoundError, delete_submission, update_penalty
from app.services.workspaces import LedgerWorkspaces

router = APIRouter(prefix="/admin", tags=["admin"])


def _audit(db: Session, request: Request, admin: User, category: str, title: str, message: str, **kwargs) -> None:
    create_log(
        db,
        category,
        title,
        message,
        actor_user_id=admin.id,
        actor_email=admin.email,
        ip_address=request.client.host if request.client else None,
        user_agent=(request.headers.get("user-agent") or "").strip() or None,
        **kwargs,
    )


@router.get("/drafts", response_model=list[DraftSummary])
def list_drafts(
    admin: User = Depends(require_admin),
    workspaces: LedgerWorkspaces = Depends(get_ledger_workspaces),
):
    try:
        return [DraftSummary(**row) for row in workspaces.store.list_all_drafts()]
    except DraftStoreError as e:
        raise ledger_http_error(e)


@router.get("/drafts/{draft_id}", response_model=DraftDetails)
def get_draft(
    draft_id: int,
    admin: User = Depends(require_admin),
    workspaces: LedgerWorkspaces = Depends(get_ledger_workspaces),
):
    """Stored draft with its per-day totals, as last persisted (unsaved edits are not visible)."""
    try:
        row = workspaces.store.get_draft_by_id(draft_id)
    except DraftStoreError as e:
        raise ledger_http_error(e)
    if row is None:
        raise HTTPException(status_code=404, detail="Draft not found")
    bucket = MonthBucket.from_wire(MonthKey(row["year"], row["month"]), row["data"], row["version"])
    totals = month_day_totals(bucket.records, row["month"], row["year"])
    return DraftDetails(
        draft_id=row["draft_id"],
        month=row["month"],
        year=row["year"],
        company_name=row["company_name"],
        number_of_rooms=row["number_of_rooms"],
        days=[OccupancyRecordOut.model_validate(r) for r in bucket.records],
        totals=[DayTotalsOut.model_validate(t) for t in totals],
        averages=MonthlyAveragesOut.model_validate(
            monthly_averages(totals, row["number_of_rooms"], rooms_occupied(bucket.records))
        ),
    )


@router.put("/submissions/{submission_id}/penalty", response_model=SubmissionResponse)
def settle_penalty(
    request: Request,
    submission_id: int,
    data: PenaltyUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    expected = get_settings().penalty_access_code
    if not expected or not hmac.compare_digest(data.access_code.strip(), expected):
        _audit(
            db, request, admin, CATEGORY_PENALTY,
            "Penalty update refused",
            f"Wrong access code for submission {submission_id}.",
            meta={"submission_id": submission_id},
        )
        db.commit()
        raise HTTPException(status_code=403, detail="Invalid access code")
    try:
        submission = update_penalty(db, submission_id, data.penalty_paid, data.receipt_number)
    except SubmissionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    _audit(
        db, request, admin, CATEGORY_PENALTY,
        "Penalty updated",
        f"Submission {submission.id}: penalty {'paid' if submission.penalty_paid else 'unpaid'}"
        f"{', receipt ' + submission.receipt_number if submission.receipt_number else ''}.",
        owner_id=submission.user_id,
        submission_id=submission.id,
    )
    db.commit()
    db.refresh(submission)
    return SubmissionResponse.model_validate(submission)


@router.delete("/submissions/{submission_id}")
def remove_submission(
    request: Request,
    submission_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    workspaces: LedgerWorkspaces = Depends(get_ledger_workspaces),
):
    """Delete a submission; its month becomes editable again for the establishment."""
    try:
        submission = delete_submission(db, submission_id)
    except SubmissionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    owner_id, key = submission.user_id, MonthKey(submission.year, submission.month)
    _audit(
        db, request, admin, CATEGORY_SUBMISSION,
        "Submission deleted",
        f"Submission {submission_id} for {key} deleted by admin.",
        owner_id=owner_id,
        meta={"submission_id": submission_id, "month": key.month, "year": key.year},
    )
    db.commit()
    # The owner's ledger still has the month locked; rebuild it on next use
    workspaces.sync.flush(owner_id)
    workspaces.drop(owner_id)
    return {"status": "deleted", "submission_id": submission_id}
