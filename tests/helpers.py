from app.models.user import User
from app.services.auth import create_access_token
from app.services.occupancy import Guest


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id, user.email, user.role)}"}


def guest(gender="Male", age=30, status="Single", nationality="Filipino") -> Guest:
    return Guest(gender=gender, age=age, status=status, nationality=nationality)


def guest_json(gender="Male", age=30, status="Single", nationality="Filipino") -> dict:
    return {"gender": gender, "age": age, "status": status, "nationality": nationality}
