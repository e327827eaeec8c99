import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from spacio.exceptions import NotFoundError, ValidationError
from spacio.models import CancelRequest, User
from spacio.bookings import get_booking


logger = logging.getLogger(__name__)

RESPONSE_STATUSES = ("approved", "rejected")


def request_to_dict(request: CancelRequest) -> Dict[str, Any]:
    booking = request.booking
    return {
        "id": request.id,
        "booking_id": request.booking_id,
        "booking_type": request.booking_type,
        "requester_id": request.requester_id,
        "requester_name": request.requester_name,
        "owner_id": request.owner_id,
        "owner_name": request.owner_name,
        "reason": request.reason,
        "status": request.status,
        "response_message": request.response_message,
        "booking_topic": booking.topic if booking else None,
        "meeting_date": booking.meeting_date.isoformat() if booking else None,
        "created_at": request.created_at.isoformat() if request.created_at else None,
    }


def _find_owner(db: Session, owner_name: str) -> Optional[User]:
    name = (owner_name or "").strip()
    return db.scalar(select(User).where(or_(User.full_name == name, User.username == name)).limit(1))


def create_request(
    db: Session,
    booking_id: int,
    requester: User,
    owner_name: str,
    reason: str,
    booking_type: Optional[str] = None,
) -> CancelRequest:
    """Ask the owner of someone else's booking to cancel it."""
    if not (reason or "").strip():
        raise ValidationError("A reason is required")
    booking = get_booking(db, booking_id)
    owner = _find_owner(db, owner_name)
    if owner is None:
        raise NotFoundError("Owner not found")

    request = CancelRequest(
        booking_id=booking.id,
        booking_type=booking_type or booking.source,
        requester_id=requester.id,
        requester_name=requester.display_name,
        owner_id=owner.id,
        owner_name=owner.full_name or owner.username,
        reason=reason.strip(),
        status="pending",
    )
    db.add(request)
    db.commit()
    db.refresh(request)
    logger.info("Cancel request id=%s created for booking id=%s", request.id, booking.id)
    return request


def respond(db: Session, request_id: int, status: str, response_message: Optional[str] = None) -> CancelRequest:
    """Record the owner's answer. The booking itself is left untouched."""
    status = (status or "").strip().lower()
    if status not in RESPONSE_STATUSES:
        raise ValidationError("Status must be 'approved' or 'rejected'")
    request = db.get(CancelRequest, request_id)
    if request is None:
        raise NotFoundError("Cancel request not found")
    request.status = status
    request.response_message = response_message
    db.commit()
    return request


def list_by_owner(db: Session, owner_name: str) -> List[CancelRequest]:
    if not owner_name:
        raise ValidationError("Owner name required")
    query = (
        select(CancelRequest)
        .where(CancelRequest.owner_name == owner_name, CancelRequest.status == "pending")
        .order_by(CancelRequest.created_at.desc(), CancelRequest.id.desc())
    )
    return list(db.scalars(query))


def list_by_requester(db: Session, requester_name: str) -> List[CancelRequest]:
    if not requester_name:
        raise ValidationError("Requester name required")
    query = (
        select(CancelRequest)
        .where(CancelRequest.requester_name == requester_name)
        .order_by(CancelRequest.created_at.desc(), CancelRequest.id.desc())
    )
    return list(db.scalars(query))


def list_all(db: Session) -> List[CancelRequest]:
    query = select(CancelRequest).order_by(CancelRequest.created_at.desc(), CancelRequest.id.desc())
    return list(db.scalars(query))
