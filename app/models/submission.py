"""Module F: Finalized monthly submissions (immutable once written)."""
from sqlalchemy import Column, Integer, String, Float, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base


class Submission(Base):
    __tablename__ = "submissions"
    __table_args__ = (UniqueConstraint("user_id", "month", "year", name="uq_submission_user_month_year"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    month = Column(Integer, nullable=False)
    year = Column(Integer, nullable=False)

    deadline = Column(DateTime(timezone=True), nullable=False)
    submitted_at = Column(DateTime(timezone=True), nullable=False)
    is_late = Column(Boolean, nullable=False, default=False)
    penalty_amount = Column(Float, nullable=False, default=0.0)

    # Set by an admin once the penalty is settled
    penalty_paid = Column(Boolean, nullable=False, default=False)
    receipt_number = Column(String(100), nullable=True)

    average_guest_nights = Column(Float, nullable=False, default=0.0)
    average_room_occupancy_rate = Column(Float, nullable=False, default=0.0)
    average_guests_per_room = Column(Float, nullable=False, default=0.0)
    number_of_rooms = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    days = relationship(
        "DailyMetric",
        back_populates="submission",
        cascade="all, delete-orphan",
        order_by="DailyMetric.day",
    )


class DailyMetric(Base):
    __tablename__ = "daily_metrics"

    id = Column(Integer, primary_key=True, index=True)
    submission_id = Column(Integer, ForeignKey("submissions.id", ondelete="CASCADE"), nullable=False, index=True)
    day = Column(Integer, nullable=False)
    check_ins = Column(Integer, nullable=False, default=0)
    overnight = Column(Integer, nullable=False, default=0)
    occupied = Column(Integer, nullable=False, default=0)

    submission = relationship("Submission", back_populates="days")
    guests = relationship("SubmittedGuest", back_populates="metric", cascade="all, delete-orphan")


class SubmittedGuest(Base):
    __tablename__ = "submitted_guests"

    id = Column(Integer, primary_key=True, index=True)
    metric_id = Column(Integer, ForeignKey("daily_metrics.id", ondelete="CASCADE"), nullable=False, index=True)
    room_number = Column(Integer, nullable=True)
    gender = Column(String(20), nullable=True)
    age = Column(Integer, nullable=True)
    status = Column(String(50), nullable=True)
    nationality = Column(String(100), nullable=True)
    is_check_in = Column(Boolean, nullable=False, default=False)

    metric = relationship("DailyMetric", back_populates="guests")
