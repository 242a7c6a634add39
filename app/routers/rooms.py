"""Module A2: Room grid - room count, display names and room lookup."""
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from app.database import get_db
from app.models.user import User
from app.schemas.room import RoomNamesUpdate, RoomOut, RoomsResponse
from app.dependencies import get_current_user

router = APIRouter(prefix="/rooms", tags=["rooms"])


def _rooms(user: User) -> list[RoomOut]:
    return [RoomOut(number=n, name=user.room_label(n)) for n in range(1, (user.number_of_rooms or 0) + 1)]


@router.get("/", response_model=RoomsResponse)
def list_rooms(current_user: User = Depends(get_current_user)):
    return RoomsResponse(number_of_rooms=current_user.number_of_rooms, rooms=_rooms(current_user))


@router.put("/names", response_model=RoomsResponse)
def update_room_names(
    data: RoomNamesUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if len(data.room_names) > current_user.number_of_rooms:
        raise HTTPException(
            status_code=400,
            detail=f"Got {len(data.room_names)} names for {current_user.number_of_rooms} rooms.",
        )
    current_user.room_names = list(data.room_names)
    db.commit()
    db.refresh(current_user)
    return RoomsResponse(number_of_rooms=current_user.number_of_rooms, rooms=_rooms(current_user))


@router.get("/search", response_model=list[RoomOut])
def search_rooms(
    q: str = Query("", description="Room number or part of a room name"),
    current_user: User = Depends(get_current_user),
):
    term = q.strip().lower()
    rooms = _rooms(current_user)
    if not term:
        return rooms
    return [r for r in rooms if str(r.number) == term or term in r.name.lower()]
