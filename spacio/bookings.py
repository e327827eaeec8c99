import logging
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from spacio.exceptions import ConflictError, NotFoundError, ValidationError
from spacio.models import (
    BOOKED,
    BOOKING_STATES,
    CANCELLED,
    COMPLETED,
    SOURCE_AI,
    SOURCE_FORM,
    Booking,
    User,
)
from spacio.rooms import find_room_by_name, get_room, parse_facilities
from spacio.timeutils import (
    add_minutes,
    format_time,
    local_now,
    minutes_of,
    parse_date,
    parse_time,
)


logger = logging.getLogger(__name__)

DEFAULT_DURATION_MINUTES = 60
AI_BOOKING_RETENTION_DAYS = 7
MEETING_TYPES = ("internal", "external")


def normalize_time(value: Any) -> time:
    """Parse ``HH:MM``, ``HH.MM`` or ``HH:MM:SS`` into a ``time``."""
    return parse_time(value)


def duration_minutes(start: Optional[time], end: Optional[time]) -> int:
    """Minutes between start and end; falls back to one hour when unknown or not positive."""
    if start is None or end is None:
        return DEFAULT_DURATION_MINUTES
    diff = minutes_of(end) - minutes_of(start)
    return diff if diff > 0 else DEFAULT_DURATION_MINUTES


def default_end_time(start: time) -> time:
    return add_minutes(start, DEFAULT_DURATION_MINUTES)


def booking_to_dict(booking: Booking, now: Optional[datetime] = None) -> Dict[str, Any]:
    room = booking.room
    return {
        "id": booking.id,
        "user_id": booking.user_id,
        "user_name": booking.user.display_name if booking.user else None,
        "room_id": booking.room_id,
        "room_name": booking.room_name,
        "room_capacity": room.capacity if room else None,
        "image_url": room.image_url if room else "",
        "session_id": booking.session_id,
        "source": booking.source,
        "topic": booking.topic,
        "date": booking.meeting_date.isoformat(),
        "time": format_time(booking.start_time),
        "end_time": format_time(booking.end_time),
        "duration": booking.duration,
        "participants": booking.participants,
        "pic": booking.pic,
        "meeting_type": booking.meeting_type,
        "facilities": parse_facilities(booking.facilities),
        "requires_rispat": bool(booking.requires_rispat),
        "booking_state": booking.booking_state,
        "cancel_reason": booking.cancel_reason,
        "status": booking_status(booking.meeting_date, booking.start_time, booking.end_time, now or local_now()),
        "created_at": booking.created_at.isoformat() if booking.created_at else None,
    }


def check_availability(
    db: Session,
    room_id: int,
    meeting_date: date,
    start: time,
    end: time,
    exclude_id: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Check a room for overlapping bookings.

    Intervals are half-open, so a meeting may start exactly when the previous
    one ends. Only bookings still in state BOOKED block the slot.
    """
    query = select(Booking).where(
        Booking.room_id == room_id,
        Booking.meeting_date == meeting_date,
        Booking.booking_state == BOOKED,
        Booking.start_time < end,
        Booking.end_time > start,
    )
    if exclude_id is not None:
        query = query.where(Booking.id != exclude_id)
    conflicts = list(db.scalars(query))
    return {
        "available": not conflicts,
        "conflicting_bookings": len(conflicts),
        "conflicts": [
            {"id": b.id, "topic": b.topic, "time": format_time(b.start_time), "end_time": format_time(b.end_time)}
            for b in conflicts
        ],
        "room_id": room_id,
        "date": meeting_date.isoformat(),
        "start_time": format_time(start),
        "end_time": format_time(end),
        "duration": duration_minutes(start, end),
    }


def _resolve_room(db: Session, payload: Dict[str, Any]):
    if payload.get("room_id"):
        return get_room(db, int(payload["room_id"]))
    room = find_room_by_name(db, payload.get("room_name") or "")
    if room is None:
        raise NotFoundError(f"Room '{payload.get('room_name') or ''}' not found")
    return room


def _resolve_times(payload: Dict[str, Any]):
    start = normalize_time(payload.get("time") or payload.get("meeting_time") or payload.get("start_time"))
    end_raw = payload.get("end_time")
    if end_raw:
        end = normalize_time(end_raw)
    elif payload.get("duration"):
        end = add_minutes(start, int(payload["duration"]))
    else:
        end = default_end_time(start)
    if minutes_of(end) <= minutes_of(start):
        raise ValidationError("End time must be after start time")
    return start, end


def _validate_booking_fields(room, participants: Any, meeting_type: Any):
    """Checks shared by create and update; returns (participants, meeting_type)."""
    if not room.is_active:
        raise ValidationError("This room is deactivated and cannot be booked. Please choose another room.")

    try:
        participants = int(participants)
    except (TypeError, ValueError):
        raise ValidationError("Participants must be a number")
    if participants < 0:
        raise ValidationError("Participants must be a positive number")
    if room.capacity and participants > room.capacity:
        raise ValidationError(
            f"Participants exceed the room capacity. Maximum capacity: {room.capacity} people."
        )

    meeting_type = str(meeting_type).strip().lower()
    if meeting_type not in MEETING_TYPES:
        raise ValidationError("Meeting type must be 'internal' or 'external'")
    return participants, meeting_type


def create_booking(db: Session, user: User, payload: Dict[str, Any], source: str = SOURCE_FORM) -> Booking:
    """
    Validate and store a booking.

    Args:
        db: Database session
        user: Account making the booking
        payload: room_id or room_name, topic, date, time, optional end_time or
            duration, participants, pic, meeting_type, facilities, requires_rispat
        source: "form" or "ai"

    Returns:
        The stored booking

    Raises:
        ValidationError: missing or inconsistent fields
        NotFoundError: unknown room
        ConflictError: the slot overlaps an existing booking
    """
    room = _resolve_room(db, payload)

    topic = (payload.get("topic") or "").strip()
    if not topic:
        raise ValidationError("Meeting topic is required")
    meeting_date = parse_date(payload.get("date") or payload.get("meeting_date"))

    pic = (payload.get("pic") or "").strip()
    if not pic:
        if source == SOURCE_FORM:
            raise ValidationError("PIC (person in charge) is required")
        pic = user.display_name

    participants, meeting_type = _validate_booking_fields(
        room, payload.get("participants") or 0, payload.get("meeting_type") or "internal"
    )
    start, end = _resolve_times(payload)

    availability = check_availability(db, room.id, meeting_date, start, end)
    if not availability["available"]:
        logger.info("Room id=%s not available on %s %s-%s", room.id, meeting_date, start, end)
        raise ConflictError("Room is not available for the selected time", data=availability)

    booking = Booking(
        user_id=user.id,
        room_id=room.id,
        room_name=room.name,
        session_id=payload.get("session_id"),
        source=source,
        topic=topic,
        meeting_date=meeting_date,
        start_time=start,
        end_time=end,
        duration=duration_minutes(start, end),
        participants=participants,
        pic=pic,
        meeting_type=meeting_type,
        facilities=parse_facilities(payload.get("facilities")),
        requires_rispat=bool(payload.get("requires_rispat")),
        booking_state=BOOKED,
    )
    db.add(booking)
    db.commit()
    db.refresh(booking)
    logger.info("Created %s booking id=%s room=%s date=%s", source, booking.id, room.name, meeting_date)
    return booking


def get_booking(db: Session, booking_id: int) -> Booking:
    booking = db.get(Booking, booking_id)
    if booking is None:
        raise NotFoundError("Booking not found")
    return booking


def update_booking(db: Session, booking_id: int, payload: Dict[str, Any]) -> Booking:
    booking = get_booking(db, booking_id)
    if booking.booking_state != BOOKED:
        raise ValidationError("Only active bookings can be changed")

    if payload.get("room_id") or payload.get("room_name"):
        room = _resolve_room(db, payload)
    else:
        room = booking.room or get_room(db, booking.room_id)
    meeting_date = parse_date(payload.get("date") or booking.meeting_date)
    merged = {
        "time": payload.get("time") or booking.start_time,
        "end_time": payload.get("end_time") or (None if payload.get("time") or payload.get("duration") else booking.end_time),
        "duration": payload.get("duration"),
    }
    start, end = _resolve_times(merged)

    participants = payload.get("participants")
    participants, meeting_type = _validate_booking_fields(
        room,
        booking.participants if participants is None else participants,
        payload.get("meeting_type") or booking.meeting_type,
    )

    availability = check_availability(db, room.id, meeting_date, start, end, exclude_id=booking.id)
    if not availability["available"]:
        raise ConflictError("Room is not available for the selected time", data=availability)

    booking.room_id = room.id
    booking.room_name = room.name
    booking.meeting_date = meeting_date
    booking.start_time = start
    booking.end_time = end
    booking.duration = duration_minutes(start, end)
    booking.participants = participants
    booking.meeting_type = meeting_type
    for field in ("topic", "pic"):
        if payload.get(field):
            setattr(booking, field, str(payload[field]).strip())
    if "facilities" in payload and payload["facilities"] is not None:
        booking.facilities = parse_facilities(payload["facilities"])
    if "requires_rispat" in payload and payload["requires_rispat"] is not None:
        booking.requires_rispat = bool(payload["requires_rispat"])
    db.commit()
    db.refresh(booking)
    return booking


def list_bookings(
    db: Session,
    user_id: Optional[int] = None,
    include_completed: bool = False,
    state: Optional[str] = None,
    source: Optional[str] = None,
) -> List[Booking]:
    """
    Active reservations hold only BOOKED bookings; with ``include_completed``
    the history view also gets COMPLETED and CANCELLED ones.
    """
    query = select(Booking).order_by(Booking.created_at.desc(), Booking.id.desc())
    if include_completed:
        query = query.where(Booking.booking_state.in_(BOOKING_STATES))
    else:
        query = query.where(Booking.booking_state == BOOKED)
    if user_id is not None:
        query = query.where(Booking.user_id == user_id)
    if state:
        state = state.upper()
        if state not in BOOKING_STATES:
            raise ValidationError(f"Unknown booking state: {state}")
        query = query.where(Booking.booking_state == state)
    if source:
        query = query.where(Booking.source == source)
    return list(db.scalars(query))


def complete_booking(db: Session, booking_id: int) -> Booking:
    booking = db.get(Booking, booking_id)
    if booking is None or booking.booking_state != BOOKED:
        raise NotFoundError("Booking not found or already completed")
    booking.booking_state = COMPLETED
    db.commit()
    logger.info("Completed booking id=%s", booking_id)
    return booking


def cancel_booking(db: Session, booking_id: int, reason: Optional[str] = None) -> Booking:
    """Mark a booking CANCELLED, keeping the row and the reason for history."""
    booking = db.get(Booking, booking_id)
    if booking is None or booking.booking_state != BOOKED:
        raise NotFoundError("Booking not found or already cancelled")
    booking.booking_state = CANCELLED
    booking.cancel_reason = (reason or "").strip() or None
    db.commit()
    logger.info("Cancelled booking id=%s", booking_id)
    return booking


def auto_complete_expired(db: Session, now: Optional[datetime] = None) -> int:
    """Mark every BOOKED booking whose end has passed as COMPLETED."""
    now = now or local_now()
    today, now_time = now.date(), now.time().replace(microsecond=0, tzinfo=None)
    expired = list(
        db.scalars(
            select(Booking).where(Booking.booking_state == BOOKED, Booking.meeting_date <= today)
        )
    )
    count = 0
    for booking in expired:
        if booking.meeting_date < today or booking.end_time <= now_time:
            booking.booking_state = COMPLETED
            count += 1
    if count:
        db.commit()
        logger.info("Auto-completed %s expired bookings", count)
    return count


def cleanup_old_ai_bookings(db: Session, today: Optional[date] = None) -> int:
    """Delete assistant bookings that ended more than a week ago."""
    today = today or local_now().date()
    cutoff = today - timedelta(days=AI_BOOKING_RETENTION_DAYS)
    result = db.execute(
        delete(Booking).where(
            Booking.source == SOURCE_AI,
            Booking.meeting_date < cutoff,
            Booking.booking_state.in_((BOOKED, COMPLETED)),
        )
    )
    db.commit()
    logger.info("Cleaned up %s old AI bookings", result.rowcount)
    return result.rowcount or 0


def booking_status(meeting_date: date, start: time, end: Optional[time], now: datetime) -> str:
    """
    Live status of a booking relative to ``now`` (local time).

    Returns "upcoming", "ongoing" or "expired". Without an end time a meeting
    is expired as soon as its start has passed.
    """
    today = now.date()
    if meeting_date != today:
        return "expired" if meeting_date < today else "upcoming"

    current = now.hour * 60 + now.minute
    start_minutes = minutes_of(start)
    if end is None:
        return "expired" if current > start_minutes else "upcoming"
    if current < start_minutes:
        return "upcoming"
    if current < minutes_of(end):
        return "ongoing"
    return "expired"


def dedupe_bookings(bookings: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Drop duplicate booking rows, first by id and then by content.

    Content duplicates share topic, date, time, room, PIC and source.
    Assistant bookings are always kept.
    """
    seen_ids = set()
    by_id = []
    for booking in bookings:
        key = str(booking.get("id"))
        if key in seen_ids:
            continue
        seen_ids.add(key)
        by_id.append(booking)

    seen_content = set()
    unique = []
    for booking in by_id:
        if booking.get("source") == SOURCE_AI:
            unique.append(booking)
            continue
        content = tuple(booking.get(field) for field in ("topic", "date", "time", "room_name", "pic", "source"))
        if content in seen_content:
            continue
        seen_content.add(content)
        unique.append(booking)
    return unique


def filter_reservations(
    bookings: Iterable[Dict[str, Any]],
    search: str = "",
    now: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
    """Reservations view: deduplicated, matching ``search``, neither expired nor cancelled."""
    now = now or local_now()
    term = (search or "").strip().lower()
    result = []
    for booking in dedupe_bookings(bookings):
        haystack = f"{booking.get('topic', '')} {booking.get('room_name', '')}".lower()
        if term and term not in haystack:
            continue
        if booking.get("booking_state") in (CANCELLED, COMPLETED):
            continue
        status = booking_status(
            parse_date(booking["date"]),
            parse_time(booking["time"]),
            parse_time(booking["end_time"]) if booking.get("end_time") else None,
            now,
        )
        if status == "expired":
            continue
        result.append(dict(booking, status=status))
    return result
