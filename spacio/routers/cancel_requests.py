from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from spacio import cancel_requests
from spacio.auth import require_user
from spacio.database import get_db
from spacio.exceptions import NotFoundError, PermissionDeniedError
from spacio.models import CancelRequest, User
from spacio.schemas import CancelRequestCreate, CancelRequestResponse, envelope


router = APIRouter(prefix="/api/cancel-requests", tags=["cancel-requests"])


@router.post("")
def create_request(body: CancelRequestCreate, user: User = Depends(require_user), db: Session = Depends(get_db)):
    request = cancel_requests.create_request(
        db, body.booking_id, user, body.owner_name, body.reason, booking_type=body.booking_type
    )
    return envelope(cancel_requests.request_to_dict(request), "Cancel request sent")


@router.get("")
def list_requests(
    owner: Optional[str] = None,
    requester: Optional[str] = None,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    if owner:
        items = cancel_requests.list_by_owner(db, owner)
    elif requester:
        items = cancel_requests.list_by_requester(db, requester)
    elif user.role == "admin":
        items = cancel_requests.list_all(db)
    else:
        raise PermissionDeniedError("Admin access required to list all cancel requests")
    return envelope([cancel_requests.request_to_dict(item) for item in items])


@router.post("/{request_id}/respond")
def respond(
    request_id: int,
    body: CancelRequestResponse,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    existing = db.get(CancelRequest, request_id)
    if existing is None:
        raise NotFoundError("Cancel request not found")
    if existing.owner_id != user.id and user.role != "admin":
        raise PermissionDeniedError("Only the booking owner can respond to this request")
    request = cancel_requests.respond(db, request_id, body.status, body.response_message)
    return envelope(cancel_requests.request_to_dict(request), f"Cancel request {request.status}")
