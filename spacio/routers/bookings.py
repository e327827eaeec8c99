from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from spacio import bookings
from spacio.auth import ensure_owner_or_admin, require_admin, require_user
from spacio.database import get_db
from spacio.models import User
from spacio.rooms import get_room
from spacio.schemas import BookingRequest, CancelBookingRequest, envelope
from spacio.timeutils import add_minutes, parse_date, parse_time


router = APIRouter(prefix="/api/bookings", tags=["bookings"])


@router.get("")
def list_bookings(
    mine: bool = False,
    include_completed: bool = False,
    state: Optional[str] = None,
    source: Optional[str] = None,
    reservations: bool = False,
    search: str = "",
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    """
    Bookings visible to the caller.

    With ``reservations`` the list is deduplicated, filtered by ``search`` and
    limited to upcoming or ongoing meetings, each with its live status.
    """
    items = bookings.list_bookings(
        db,
        user_id=user.id if mine else None,
        include_completed=include_completed,
        state=state,
        source=source,
    )
    data = [bookings.booking_to_dict(booking) for booking in items]
    if reservations:
        data = bookings.filter_reservations(data, search)
    return envelope(data)


@router.get("/availability")
def check_availability(
    room_id: int,
    date: str,
    time: str,
    end_time: Optional[str] = None,
    duration: Optional[int] = None,
    exclude_id: Optional[int] = None,
    db: Session = Depends(get_db),
):
    room = get_room(db, room_id)
    start = parse_time(time)
    if end_time:
        end = parse_time(end_time)
    else:
        end = add_minutes(start, duration or bookings.DEFAULT_DURATION_MINUTES)
    result = bookings.check_availability(db, room.id, parse_date(date), start, end, exclude_id=exclude_id)
    return envelope(result, "Room is available" if result["available"] else "Room is not available")


@router.post("/auto-complete")
def auto_complete(_: User = Depends(require_user), db: Session = Depends(get_db)):
    count = bookings.auto_complete_expired(db)
    return envelope({"completed": count}, f"{count} bookings marked as completed")


@router.post("/cleanup-ai")
def cleanup_ai(_: User = Depends(require_admin), db: Session = Depends(get_db)):
    count = bookings.cleanup_old_ai_bookings(db)
    return envelope({"deleted": count}, f"Cleaned up {count} old AI bookings")


@router.get("/{booking_id}")
def get_booking(booking_id: int, _: User = Depends(require_user), db: Session = Depends(get_db)):
    return envelope(bookings.booking_to_dict(bookings.get_booking(db, booking_id)))


@router.post("")
def create_booking(body: BookingRequest, user: User = Depends(require_user), db: Session = Depends(get_db)):
    booking = bookings.create_booking(db, user, body.model_dump(exclude_none=True))
    return envelope(bookings.booking_to_dict(booking), "Booking created")


@router.put("/{booking_id}")
def update_booking(
    booking_id: int,
    body: BookingRequest,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    ensure_owner_or_admin(bookings.get_booking(db, booking_id), user)
    booking = bookings.update_booking(db, booking_id, body.model_dump(exclude_none=True))
    return envelope(bookings.booking_to_dict(booking), "Booking updated")


@router.post("/{booking_id}/complete")
def complete_booking(booking_id: int, user: User = Depends(require_user), db: Session = Depends(get_db)):
    ensure_owner_or_admin(bookings.get_booking(db, booking_id), user)
    booking = bookings.complete_booking(db, booking_id)
    return envelope(bookings.booking_to_dict(booking), "Booking completed")


@router.post("/{booking_id}/cancel")
def cancel_booking(
    booking_id: int,
    body: Optional[CancelBookingRequest] = None,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    ensure_owner_or_admin(bookings.get_booking(db, booking_id), user)
    booking = bookings.cancel_booking(db, booking_id, body.reason if body else None)
    return envelope(bookings.booking_to_dict(booking), "Booking cancelled")
