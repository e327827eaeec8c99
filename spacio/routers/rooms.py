from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from spacio import rooms
from spacio.auth import require_admin
from spacio.bookings import default_end_time
from spacio.database import get_db
from spacio.models import User
from spacio.schemas import RoomRequest, RoomStatusRequest, envelope
from spacio.timeutils import parse_date, parse_time


router = APIRouter(prefix="/api/rooms", tags=["rooms"])


@router.get("")
def list_rooms(
    search: Optional[str] = None,
    active_only: bool = False,
    min_capacity: Optional[int] = None,
    facilities: Optional[str] = None,
    db: Session = Depends(get_db),
):
    if facilities:
        return envelope(rooms.rooms_with_facilities(db, rooms.parse_facilities(facilities)))
    return envelope(rooms.list_rooms(db, search=search, only_active=active_only, min_capacity=min_capacity))


@router.get("/available")
def available_rooms(date: str, time: str, end_time: Optional[str] = None, db: Session = Depends(get_db)):
    start = parse_time(time)
    end = parse_time(end_time) if end_time else default_end_time(start)
    return envelope(rooms.available_rooms(db, parse_date(date), start, end))


@router.get("/{room_id}")
def get_room(room_id: int, db: Session = Depends(get_db)):
    return envelope(rooms.room_to_dict(rooms.get_room(db, room_id)))


@router.post("")
def create_room(body: RoomRequest, _: User = Depends(require_admin), db: Session = Depends(get_db)):
    room = rooms.create_room(db, body.model_dump(exclude_none=True))
    return envelope(rooms.room_to_dict(room), "Room created")


@router.put("/{room_id}")
def update_room(room_id: int, body: RoomRequest, _: User = Depends(require_admin), db: Session = Depends(get_db)):
    room = rooms.update_room(db, room_id, body.model_dump(exclude_none=True))
    return envelope(rooms.room_to_dict(room), "Room updated")


@router.patch("/{room_id}/status")
def set_room_status(
    room_id: int,
    body: RoomStatusRequest,
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    room = rooms.set_room_status(db, room_id, body.is_active)
    return envelope(rooms.room_to_dict(room), "Room activated" if room.is_active else "Room deactivated")


@router.delete("/{room_id}")
def delete_room(room_id: int, _: User = Depends(require_admin), db: Session = Depends(get_db)):
    rooms.delete_room(db, room_id)
    return envelope({"id": room_id}, "Room deleted")
