from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    Time,
)
from sqlalchemy.orm import relationship

from spacio.database import Base


# Booking lifecycle, used for filtering reservations and history
BOOKED = "BOOKED"
COMPLETED = "COMPLETED"
CANCELLED = "CANCELLED"
BOOKING_STATES = (BOOKED, COMPLETED, CANCELLED)

SOURCE_FORM = "form"
SOURCE_AI = "ai"


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(100), unique=True, nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    full_name = Column(String(255), nullable=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default="user")
    created_at = Column(DateTime, nullable=False, default=utcnow)

    sessions = relationship("UserSession", back_populates="user", cascade="all, delete-orphan")
    bookings = relationship("Booking", back_populates="user")

    @property
    def display_name(self) -> str:
        return self.full_name or self.username


class UserSession(Base):
    __tablename__ = "user_sessions"

    id = Column(Integer, primary_key=True)
    token = Column(String(128), unique=True, nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    expires_at = Column(DateTime, nullable=False)

    user = relationship("User", back_populates="sessions")


class MeetingRoom(Base):
    __tablename__ = "meeting_rooms"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), unique=True, nullable=False)
    floor = Column(String(50), nullable=False, default="")
    capacity = Column(Integer, nullable=False, default=0)
    address = Column(String(255), nullable=False, default="")
    facilities = Column(JSON, nullable=False, default=list)
    image_url = Column(String(500), nullable=False, default="")
    is_active = Column(Boolean, nullable=False, default=True)

    bookings = relationship("Booking", back_populates="room")


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    # kept after the room is deleted; room_name preserves the label
    room_id = Column(Integer, ForeignKey("meeting_rooms.id"), nullable=True)
    room_name = Column(String(255), nullable=False)
    session_id = Column(String(100), nullable=True)
    source = Column(String(10), nullable=False, default=SOURCE_FORM)
    topic = Column(String(255), nullable=False)
    meeting_date = Column(Date, nullable=False, index=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    duration = Column(Integer, nullable=False, default=60)
    participants = Column(Integer, nullable=False, default=0)
    pic = Column(String(255), nullable=False, default="")
    meeting_type = Column(String(20), nullable=False, default="internal")
    facilities = Column(JSON, nullable=False, default=list)
    requires_rispat = Column(Boolean, nullable=False, default=False)
    booking_state = Column(String(20), nullable=False, default=BOOKED, index=True)
    cancel_reason = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="bookings")
    room = relationship("MeetingRoom", back_populates="bookings")
    rispat_files = relationship("Rispat", back_populates="booking", cascade="all, delete-orphan")


class CancelRequest(Base):
    __tablename__ = "cancel_requests"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False)
    booking_type = Column(String(10), nullable=False, default=SOURCE_FORM)
    requester_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    requester_name = Column(String(255), nullable=False)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    owner_name = Column(String(255), nullable=False)
    reason = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default="pending")
    response_message = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    booking = relationship("Booking")


class Rispat(Base):
    __tablename__ = "rispat"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, index=True)
    filename = Column(String(255), nullable=False)
    original_filename = Column(String(255), nullable=False)
    file_path = Column(String(500), nullable=False)
    file_size = Column(Integer, nullable=False, default=0)
    file_type = Column(String(100), nullable=False, default="document")
    mime_type = Column(String(100), nullable=False, default="")
    uploaded_by = Column(String(255), nullable=False)
    status = Column(String(20), nullable=False, default="active")
    uploaded_at = Column(DateTime, nullable=False, default=utcnow)

    booking = relationship("Booking", back_populates="rispat_files")


class Conversation(Base):
    __tablename__ = "conversations"

    id = Column(Integer, primary_key=True)
    session_id = Column(String(100), unique=True, nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    messages = Column(JSON, nullable=False, default=list)
    current_booking = Column(JSON, nullable=False, default=dict)
    status = Column(String(20), nullable=False, default="active")
    booking_status = Column(String(20), nullable=False, default="none")
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
