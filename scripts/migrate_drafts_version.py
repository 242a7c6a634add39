"""
Add version column to draft_submissions (optimistic locking of month drafts).
For a NEW database: not needed; app.models.draft.DraftSubmission already defines this (create_all creates it).
Run once on an EXISTING DB: python scripts/migrate_drafts_version.py (from project root)
"""
import os
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from sqlalchemy import text, inspect
from app.database import engine


def main():
    insp = inspect(engine)
    if not insp.has_table("draft_submissions"):
        print("  skip (no table): draft_submissions - create_all will create it with version")
        print("Done.")
        return
    existing = {c["name"] for c in insp.get_columns("draft_submissions")}
    if "version" in existing:
        print("  skip (exists): draft_submissions.version")
        print("Done.")
        return
    with engine.begin() as conn:
        conn.execute(text('ALTER TABLE draft_submissions ADD COLUMN "version" INTEGER NOT NULL DEFAULT 1'))
        print("  added: draft_submissions.version")
    print("Done. draft_submissions table has version column.")


if __name__ == "__main__":
    main()
