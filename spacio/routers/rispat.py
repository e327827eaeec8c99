import os

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from spacio import rispat
from spacio.auth import ensure_owner_or_admin, require_user
from spacio.bookings import booking_to_dict, get_booking
from spacio.database import get_db
from spacio.exceptions import NotFoundError
from spacio.models import User
from spacio.schemas import envelope


router = APIRouter(tags=["rispat"])


@router.post("/api/bookings/{booking_id}/rispat")
def upload_rispat(
    booking_id: int,
    file: UploadFile = File(...),
    uploaded_by: str = Form(""),
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
):
    data = file.file.read()
    item = rispat.upload(
        db,
        booking_id,
        file.filename or "",
        file.content_type,
        data,
        uploaded_by or user.display_name,
    )
    return envelope(rispat.rispat_to_dict(item), "Meeting minutes uploaded")


@router.get("/api/bookings/{booking_id}/rispat")
def list_rispat(booking_id: int, _: User = Depends(require_user), db: Session = Depends(get_db)):
    get_booking(db, booking_id)
    return envelope([rispat.rispat_to_dict(item) for item in rispat.list_for_booking(db, booking_id)])


@router.get("/api/rispat/pending")
def pending_rispat(mine: bool = True, user: User = Depends(require_user), db: Session = Depends(get_db)):
    items = rispat.pending_rispat(db, user_id=user.id if mine else None)
    return envelope([booking_to_dict(booking) for booking in items])


@router.get("/api/rispat/{rispat_id}/download")
def download_rispat(rispat_id: int, _: User = Depends(require_user), db: Session = Depends(get_db)):
    item = rispat.get(db, rispat_id)
    if not os.path.exists(item.file_path):
        raise NotFoundError("Stored file is missing")
    return FileResponse(item.file_path, media_type=item.mime_type or None, filename=item.original_filename)


@router.delete("/api/rispat/{rispat_id}")
def delete_rispat(rispat_id: int, user: User = Depends(require_user), db: Session = Depends(get_db)):
    ensure_owner_or_admin(rispat.get(db, rispat_id).booking, user)
    rispat.delete(db, rispat_id)
    return envelope({"id": rispat_id}, "Meeting minutes deleted")
