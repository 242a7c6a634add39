"""
Create a test establishment (operator) and an admin user, and print a JWT for each.
Authentication itself is handled upstream; these tokens let you call the API directly.

Run from project root:
  python scripts/create_test_users.py

Send the printed token as "Authorization: Bearer <token>".
"""
import os
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from app.database import Base, SessionLocal, engine
from app.models.user import User, UserRole
from app.services.auth import create_access_token

# Default accounts (change if you want)
OPERATOR_EMAIL = "frontdesk@seaside-inn.demo"
OPERATOR_COMPANY = "Seaside Inn"
OPERATOR_TYPE = "Hotel"
OPERATOR_ROOMS = 12

ADMIN_EMAIL = "admin@tourism-office.demo"


def _get_or_create(db, email: str, **fields) -> User:
    user = db.query(User).filter(User.email == email).first()
    if user:
        print(f"Already exists: {email}")
        return user
    user = User(email=email, **fields)
    db.add(user)
    db.flush()
    print(f"Created: {email}")
    return user


def main():
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        operator = _get_or_create(
            db,
            OPERATOR_EMAIL,
            role=UserRole.operator,
            company_name=OPERATOR_COMPANY,
            accommodation_type=OPERATOR_TYPE,
            number_of_rooms=OPERATOR_ROOMS,
        )
        admin = _get_or_create(db, ADMIN_EMAIL, role=UserRole.admin, number_of_rooms=0)
        db.commit()

        print("\n--- Test users ---")
        for user in (operator, admin):
            print(f"{user.role.value}: {user.email} (id {user.id})")
            print(f"  Token: {create_access_token(user.id, user.email, user.role)}")
        print("\nDone.")
    finally:
        db.close()


if __name__ == "__main__":
    main()
