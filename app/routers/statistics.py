"""Module G: Statistics over the establishment's finalized submissions."""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from app.database import get_db
from app.models.user import User
from app.schemas.statistics import DemographicRow, MonthlyMetric, NationalityRow
from app.dependencies import get_current_user
from app.services.submissions import demographics, monthly_metrics, nationalities

router = APIRouter(prefix="/statistics", tags=["statistics"])


@router.get("/monthly", response_model=list[MonthlyMetric])
def monthly(
    year: int | None = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return [MonthlyMetric(**row) for row in monthly_metrics(db, current_user.id, year)]


@router.get("/demographics", response_model=list[DemographicRow])
def guest_demographics(
    year: int | None = Query(None),
    month: int | None = Query(None, ge=1, le=12),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return [DemographicRow(**row) for row in demographics(db, current_user.id, year, month)]


@router.get("/nationalities", response_model=list[NationalityRow])
def guest_nationalities(
    year: int | None = Query(None),
    month: int | None = Query(None, ge=1, le=12),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return [NationalityRow(**row) for row in nationalities(db, current_user.id, year, month)]
