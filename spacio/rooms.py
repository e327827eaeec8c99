import json
import logging
from datetime import date, datetime, time
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from spacio.exceptions import ConflictError, NotFoundError, ValidationError
from spacio.models import BOOKED, Booking, MeetingRoom
from spacio.timeutils import local_now


logger = logging.getLogger(__name__)

# Catalogue used to seed an empty database
DEFAULT_ROOMS = [
    {"name": "Samudrantha Meeting Room", "floor": "3", "capacity": 10,
     "facilities": ["Projector", "Whiteboard", "AC", "Wi-Fi"]},
    {"name": "Cedaya Meeting Room", "floor": "4", "capacity": 8,
     "facilities": ["Whiteboard", "AC", "Sound System"]},
    {"name": "Celebes Meeting Room", "floor": "5", "capacity": 6,
     "facilities": ["Video Conference", "AC"]},
    {"name": "Kalamanthana Meeting Room", "floor": "2", "capacity": 4,
     "facilities": ["AC"]},
    {"name": "Nusanipa Meeting Room", "floor": "6", "capacity": 12,
     "facilities": ["Projector", "Whiteboard", "AC"]},
    {"name": "Balidwipa Meeting Room", "floor": "7", "capacity": 15,
     "facilities": ["Projector", "Sound System", "AC"]},
    {"name": "Swarnadwipa Meeting Room", "floor": "8", "capacity": 20,
     "facilities": ["Projector", "Whiteboard", "Sound System", "AC"]},
    {"name": "Jawadwipa Meeting Room", "floor": "9", "capacity": 25,
     "facilities": ["Projector", "Whiteboard", "Sound System", "Video Conference", "AC"]},
]

ROOM_FIELDS = ("name", "floor", "capacity", "address", "facilities", "image_url", "is_active")


def parse_facilities(value: Any) -> List[str]:
    """
    Normalise a facility list.

    Accepts a list, a JSON array string or a comma-separated string and
    returns the trimmed, non-empty entries.
    """
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        items: Iterable[Any] = value
    else:
        text = str(value).strip()
        if not text:
            return []
        try:
            parsed = json.loads(text)
        except ValueError:
            parsed = None
        if isinstance(parsed, list):
            items = parsed
        else:
            items = text.split(",")
    return [str(item).strip() for item in items if str(item).strip()]


def room_to_dict(room: MeetingRoom, available: Optional[bool] = None) -> Dict[str, Any]:
    return {
        "id": room.id,
        "name": room.name,
        "floor": room.floor,
        "capacity": room.capacity,
        "address": room.address,
        "facilities": parse_facilities(room.facilities),
        "image_url": room.image_url,
        "is_active": bool(room.is_active),
        "available": available,
    }


def _ongoing_room_ids(db: Session, now: datetime) -> set:
    now_time = now.time().replace(microsecond=0)
    rows = db.scalars(
        select(Booking.room_id).where(
            Booking.booking_state == BOOKED,
            Booking.meeting_date == now.date(),
            Booking.start_time <= now_time,
            Booking.end_time > now_time,
        )
    )
    return set(rows)


def list_rooms(
    db: Session,
    search: Optional[str] = None,
    only_active: bool = False,
    min_capacity: Optional[int] = None,
    now: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
    """List rooms; ``search`` matches the name, address or any facility."""
    query = select(MeetingRoom).order_by(MeetingRoom.name)
    if only_active:
        query = query.where(MeetingRoom.is_active.is_(True))
    if min_capacity:
        query = query.where(MeetingRoom.capacity >= min_capacity)
    rooms = list(db.scalars(query))

    if search:
        term = search.strip().lower()
        rooms = [
            room for room in rooms
            if term in room.name.lower()
            or term in (room.address or "").lower()
            or any(term in facility.lower() for facility in parse_facilities(room.facilities))
        ]

    busy = _ongoing_room_ids(db, now or local_now())
    return [room_to_dict(room, available=room.is_active and room.id not in busy) for room in rooms]


def get_room(db: Session, room_id: int) -> MeetingRoom:
    room = db.get(MeetingRoom, room_id)
    if room is None:
        raise NotFoundError("Room not found")
    return room


def find_room_by_name(db: Session, name: str) -> Optional[MeetingRoom]:
    """Case-insensitive lookup; falls back to a partial match in either direction."""
    wanted = (name or "").strip().lower()
    if not wanted:
        return None
    exact = db.scalar(select(MeetingRoom).where(func.lower(MeetingRoom.name) == wanted))
    if exact is not None:
        return exact
    for room in db.scalars(select(MeetingRoom).order_by(MeetingRoom.id)):
        candidate = room.name.lower()
        if wanted in candidate or candidate in wanted:
            return room
    return None


def rooms_with_facilities(db: Session, facilities: Iterable[str]) -> List[Dict[str, Any]]:
    wanted = {facility.lower() for facility in parse_facilities(list(facilities))}
    result = []
    for room in db.scalars(select(MeetingRoom).order_by(MeetingRoom.name)):
        have = {facility.lower() for facility in parse_facilities(room.facilities)}
        if wanted <= have:
            result.append(room_to_dict(room))
    return result


def _apply_room_data(room: MeetingRoom, data: Dict[str, Any]) -> None:
    for field in ROOM_FIELDS:
        if field not in data or data[field] is None:
            continue
        value = data[field]
        if field == "facilities":
            value = parse_facilities(value)
        elif field == "capacity":
            value = int(value)
            if value <= 0:
                raise ValidationError("Capacity must be greater than zero")
        elif field == "name":
            value = str(value).strip()
            if not value:
                raise ValidationError("Room name is required")
        setattr(room, field, value)


def _ensure_unique_name(db: Session, name: str, room_id: Optional[int] = None) -> None:
    clash = db.scalar(select(MeetingRoom).where(func.lower(MeetingRoom.name) == name.strip().lower()))
    if clash is not None and clash.id != room_id:
        raise ConflictError(f"A room named '{name}' already exists")


def create_room(db: Session, data: Dict[str, Any]) -> MeetingRoom:
    if not (data.get("name") or "").strip():
        raise ValidationError("Room name is required")
    _ensure_unique_name(db, data["name"])
    room = MeetingRoom(facilities=[], is_active=True)
    _apply_room_data(room, data)
    db.add(room)
    db.commit()
    db.refresh(room)
    logger.info("Created room id=%s name=%s", room.id, room.name)
    return room


def update_room(db: Session, room_id: int, data: Dict[str, Any]) -> MeetingRoom:
    room = get_room(db, room_id)
    if data.get("name"):
        _ensure_unique_name(db, data["name"], room_id)
    _apply_room_data(room, data)
    db.commit()
    db.refresh(room)
    return room


def set_room_status(db: Session, room_id: int, is_active: bool) -> MeetingRoom:
    room = get_room(db, room_id)
    room.is_active = bool(is_active)
    db.commit()
    logger.info("Room id=%s %s", room_id, "activated" if is_active else "deactivated")
    return room


def delete_room(db: Session, room_id: int) -> None:
    """Delete a room; refused while it still has active bookings."""
    room = get_room(db, room_id)
    active = db.scalar(
        select(func.count(Booking.id)).where(Booking.room_id == room_id, Booking.booking_state == BOOKED)
    )
    if active:
        raise ConflictError(
            "Cannot delete room: has active bookings. Please cancel all bookings first.",
            data={"booking_count": active},
        )
    db.delete(room)
    db.commit()
    logger.info("Deleted room id=%s", room_id)


def available_rooms(db: Session, meeting_date: date, start: time, end: time) -> List[Dict[str, Any]]:
    """Active rooms without a booking overlapping ``[start, end)`` on ``meeting_date``."""
    taken = set(
        db.scalars(
            select(Booking.room_id).where(
                Booking.booking_state == BOOKED,
                Booking.meeting_date == meeting_date,
                Booking.start_time < end,
                Booking.end_time > start,
            )
        )
    )
    rooms = db.scalars(
        select(MeetingRoom).where(MeetingRoom.is_active.is_(True)).order_by(MeetingRoom.name)
    )
    return [room_to_dict(room, available=True) for room in rooms if room.id not in taken]


def seed_default_rooms(db: Session) -> int:
    if db.scalar(select(func.count(MeetingRoom.id))):
        return 0
    for data in DEFAULT_ROOMS:
        room = dict(data, facilities=list(data["facilities"]))
        db.add(MeetingRoom(address=f"Floor {data['floor']}", image_url="", is_active=True, **room))
    db.commit()
    return len(DEFAULT_ROOMS)
