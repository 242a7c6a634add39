"""Tourism Occupancy Ledger - FastAPI application."""
# Load .env before any app code that might read config
from dotenv import load_dotenv
from pathlib import Path
load_dotenv(Path(__file__).resolve().parent.parent / ".env")

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import get_settings
from app.database import Base, engine
# Import models so Base.metadata has all tables before create_all (schema source of truth)
from app.models import (  # noqa: F401
    User, DraftSubmission, Submission, DailyMetric, SubmittedGuest, AuditLog,
)
from app.routers import stays, drafts, submissions, rooms, statistics, admin
from app.services.workspaces import get_workspaces

settings = get_settings()
log = logging.getLogger("uvicorn.error")
log.setLevel(settings.log_level.upper())

app = FastAPI(title=settings.app_name, debug=settings.debug)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(stays.router)
app.include_router(drafts.router)
app.include_router(submissions.router)
app.include_router(rooms.router)
app.include_router(statistics.router)
app.include_router(admin.router)


@app.on_event("startup")
def startup():
    try:
        Base.metadata.create_all(bind=engine)
    except Exception as e:
        log.warning("Database startup failed (tables skipped). Check DATABASE_URL and network. Error: %s", e)

    # Scheduler: debounced draft saves, retries and purges of removed stays
    scheduler = get_workspaces().sync.scheduler
    if scheduler is not None and not scheduler.running:
        scheduler.start()
        log.info("Draft sync scheduler started (debounce %.1fs)", settings.draft_sync_debounce_seconds)
    elif scheduler is None:
        log.info("Draft sync scheduler disabled; drafts are written on POST /drafts/sync")


@app.on_event("shutdown")
def shutdown():
    get_workspaces().shutdown()


@app.get("/")
def root():
    return {"app": settings.app_name, "status": "ok"}


@app.get("/health")
def health():
    return {"status": "healthy"}
