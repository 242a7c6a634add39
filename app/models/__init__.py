"""
All SQLAlchemy models. Schema is the source of truth for new DBs.
Base.metadata.create_all() creates every table; no migration scripts needed for fresh installs.
"""
from app.models.user import User, UserRole
from app.models.draft import DraftSubmission
from app.models.submission import Submission, DailyMetric, SubmittedGuest
from app.models.audit_log import AuditLog

__all__ = [
    "User",
    "UserRole",
    "DraftSubmission",
    "Submission",
    "DailyMetric",
    "SubmittedGuest",
    "AuditLog",
]
