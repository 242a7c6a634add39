"""Module C: Persisted month buckets (drafts) of the occupancy ledger."""
from sqlalchemy import Column, Integer, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from app.database import Base, JSONType


class DraftSubmission(Base):
    """One row per (owner, month, year). `data` holds the wire-format occupancy records."""
    __tablename__ = "draft_submissions"
    __table_args__ = (UniqueConstraint("user_id", "month", "year", name="uq_draft_user_month_year"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    month = Column(Integer, nullable=False)
    year = Column(Integer, nullable=False)

    data = Column(JSONType, nullable=False, default=list)

    # Optimistic lock: bumped on every save; writers pass the version they last read
    version = Column(Integer, nullable=False, default=1)

    last_updated = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
