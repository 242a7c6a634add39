"""Module F: Month finalization and submission history."""
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session
from app.database import get_db
from app.models.submission import Submission
from app.models.user import User, UserRole
from app.schemas.submission import (
    SubmissionCheck,
    SubmissionCreate,
    SubmissionDay,
    SubmissionDetails,
    SubmissionResponse,
)
from app.dependencies import get_current_user, get_ledger_workspaces, ledger_http_error
from app.services.audit_log import create_log, CATEGORY_SUBMISSION
from app.services.draft_store import DraftStoreError
from app.services.ledger import LedgerError
from app.services.occupancy import MonthKey
from app.services.submissions import (
    SubmissionExistsError,
    SubmissionNotFoundError,
    get_submission,
    is_submitted,
    submission_history,
    submission_nationalities,
)
from app.services.workspaces import LedgerWorkspaces

router = APIRouter(prefix="/submissions", tags=["submissions"])


def submission_details(submission: Submission, user: User) -> SubmissionDetails:
    base = SubmissionResponse.model_validate(submission).model_dump()
    return SubmissionDetails(
        **base,
        company_name=user.company_name if user else None,
        accommodation_type=user.accommodation_type if user else None,
        days=[SubmissionDay.model_validate(d) for d in submission.days],
        nationality_counts=submission_nationalities(submission),
    )


@router.post("/", response_model=SubmissionResponse, status_code=201)
def submit_month(
    request: Request,
    data: SubmissionCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    workspaces: LedgerWorkspaces = Depends(get_ledger_workspaces),
):
    try:
        key = MonthKey(data.year, data.month)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    try:
        submission = workspaces.finalize(db, current_user, key)
    except SubmissionExistsError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except (LedgerError, DraftStoreError) as e:
        raise ledger_http_error(e)
    create_log(
        db,
        CATEGORY_SUBMISSION,
        "Month submitted",
        f"Submission {submission.id} for {key}: {'late, penalty ' + format(submission.penalty_amount, '.2f') if submission.is_late else 'on time'}.",
        owner_id=current_user.id,
        submission_id=submission.id,
        actor_user_id=current_user.id,
        actor_email=current_user.email,
        ip_address=request.client.host if request.client else None,
        user_agent=(request.headers.get("user-agent") or "").strip() or None,
        meta={"month": key.month, "year": key.year, "is_late": submission.is_late},
    )
    db.commit()
    db.refresh(submission)
    return SubmissionResponse.model_validate(submission)


@router.get("/history", response_model=list[SubmissionResponse])
def history(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return [SubmissionResponse.model_validate(s) for s in submission_history(db, current_user.id)]


@router.get("/check", response_model=SubmissionCheck)
def check_submission(
    month: int = Query(..., ge=1, le=12),
    year: int = Query(...),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return SubmissionCheck(has_submitted=is_submitted(db, current_user.id, month, year))


@router.get("/{submission_id}", response_model=SubmissionDetails)
def get_details(
    submission_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        submission = get_submission(db, submission_id)
    except SubmissionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    if submission.user_id != current_user.id and current_user.role != UserRole.admin:
        raise HTTPException(status_code=403, detail="Not your submission")
    owner = db.query(User).filter(User.id == submission.user_id).first()
    return submission_details(submission, owner)
