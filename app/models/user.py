"""Module A: Establishment accounts (authentication itself is handled upstream)."""
from sqlalchemy import Column, Integer, String, Enum as SQLEnum, DateTime
from sqlalchemy.sql import func
from app.database import Base, JSONType
import enum


class UserRole(str, enum.Enum):
    operator = "operator"
    admin = "admin"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    role = Column(SQLEnum(UserRole), nullable=False, default=UserRole.operator)

    company_name = Column(String(255), nullable=True)
    accommodation_type = Column(String(100), nullable=True)

    # Grid size: rooms are numbered 1..number_of_rooms
    number_of_rooms = Column(Integer, nullable=False, default=1)
    # Optional display names, index 0 -> room 1
    room_names = Column(JSONType, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def room_label(self, room: int) -> str:
        names = self.room_names or []
        if 0 < room <= len(names) and (names[room - 1] or "").strip():
            return names[room - 1].strip()
        return f"Room {room}"
