"""Shared dependencies: DB session, current user, ledger workspaces."""
from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from app.database import get_db
from app.models.user import User, UserRole
from app.services.auth import decode_token_with_error
from app.services.draft_store import DraftStoreError
from app.services.ledger import (
    FinalizedPeriodError,
    LedgerError,
    LedgerInvariantError,
    NotStartDayError,
    OccupancyLedger,
    StayConflictError,
    StayNotFoundError,
    StayValidationError,
)
from app.services.workspaces import LedgerWorkspaces, get_workspaces

security = HTTPBearer(auto_error=False)


def get_current_user(
    db: Session = Depends(get_db),
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> User:
    if not credentials:
        raise HTTPException(status_code=401, detail="Not authenticated")
    token_str = (credentials.credentials or "").strip()
    payload, _ = decode_token_with_error(token_str)
    if not payload:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid token")
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return user


def require_admin(current_user: User = Depends(get_current_user)) -> User:
    if current_user.role != UserRole.admin:
        raise HTTPException(status_code=403, detail="Admin role required")
    return current_user


def get_ledger_workspaces() -> LedgerWorkspaces:
    """Process-wide ledger sessions; overridden in tests."""
    return get_workspaces()


def get_ledger(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    workspaces: LedgerWorkspaces = Depends(get_ledger_workspaces),
) -> OccupancyLedger:
    return workspaces.get(db, current_user)


def ledger_http_error(e: Exception) -> HTTPException:
    """Translate ledger and draft-store errors into the HTTP error the routers raise."""
    if isinstance(e, StayValidationError):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, NotStartDayError):
        return HTTPException(
            status_code=409,
            detail={
                "message": str(e),
                "stay_id": e.stay_id,
                "start_day": e.start_day,
                "start_month": e.start_month,
                "start_year": e.start_year,
            },
        )
    if isinstance(e, StayConflictError):
        return HTTPException(
            status_code=409,
            detail={
                "message": str(e),
                "room": e.room,
                "day": e.result.day,
                "month": e.result.month,
                "year": e.result.year,
                "stay_id": e.result.stay_id,
            },
        )
    if isinstance(e, FinalizedPeriodError):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, StayNotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, LedgerInvariantError):
        return HTTPException(status_code=500, detail=f"Occupancy data is inconsistent: {e}")
    if isinstance(e, DraftStoreError):
        return HTTPException(status_code=503, detail="Draft storage is unavailable. Please try again shortly.")
    if isinstance(e, LedgerError):
        return HTTPException(status_code=400, detail=str(e))
    raise e
