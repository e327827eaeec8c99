"""
Meeting minutes (rispat) attachments.

Files are written under the configured upload directory and tracked in the
``rispat`` table, one row per uploaded file.
"""

import logging
import os
import time
import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from spacio.bookings import get_booking
from spacio.config import get_settings
from spacio.exceptions import NotFoundError, ValidationError
from spacio.models import COMPLETED, Booking, Rispat


logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = ("pdf", "doc", "docx", "jpg", "jpeg", "png")
IMAGE_EXTENSIONS = ("jpg", "jpeg", "png", "gif", "webp")
MAX_MIME_LENGTH = 100


def classify_file(extension: str) -> str:
    extension = extension.lower()
    if extension in IMAGE_EXTENSIONS:
        return "image"
    if extension == "pdf":
        return "pdf"
    if extension in ("doc", "docx"):
        return "word"
    return "document"


def rispat_to_dict(rispat: Rispat) -> Dict[str, Any]:
    return {
        "id": rispat.id,
        "booking_id": rispat.booking_id,
        "file_name": rispat.filename,
        "original_name": rispat.original_filename,
        "file_path": rispat.file_path,
        "file_size": rispat.file_size,
        "file_type": rispat.file_type,
        "mime_type": rispat.mime_type,
        "uploaded_by": rispat.uploaded_by,
        "uploaded_at": rispat.uploaded_at.isoformat() if rispat.uploaded_at else None,
    }


def upload(
    db: Session,
    booking_id: int,
    filename: str,
    content_type: Optional[str],
    data: bytes,
    uploaded_by: str,
    upload_dir: Optional[str] = None,
) -> Rispat:
    """
    Store a meeting-minutes file for a booking.

    Only PDF, Word and JPG/PNG files up to the configured size are accepted.
    """
    settings = get_settings()
    booking = get_booking(db, booking_id)
    if not (uploaded_by or "").strip():
        raise ValidationError("Uploader name is required")

    extension = os.path.splitext(filename or "")[1].lstrip(".").lower()
    if extension not in ALLOWED_EXTENSIONS:
        raise ValidationError("Unsupported file type. Only PDF, Word and JPG/PNG files are allowed.")
    if len(data) > settings.rispat_max_bytes:
        limit_mb = settings.rispat_max_bytes // (1024 * 1024)
        raise ValidationError(f"File is too large. Maximum size is {limit_mb}MB.")

    directory = upload_dir or settings.rispat_upload_dir
    os.makedirs(directory, exist_ok=True)
    stored_name = f"{uuid.uuid4().hex}_{int(time.time())}.{extension}"
    file_path = os.path.join(directory, stored_name)
    with open(file_path, "wb") as handle:
        handle.write(data)

    rispat = Rispat(
        booking_id=booking.id,
        filename=stored_name,
        original_filename=os.path.basename(filename),
        file_path=file_path,
        file_size=len(data),
        file_type=classify_file(extension),
        mime_type=(content_type or "application/octet-stream")[:MAX_MIME_LENGTH],
        uploaded_by=uploaded_by.strip(),
    )
    db.add(rispat)
    try:
        db.commit()
    except Exception:
        db.rollback()
        os.remove(file_path)
        raise
    db.refresh(rispat)
    logger.info("Uploaded rispat id=%s for booking id=%s (%s bytes)", rispat.id, booking.id, len(data))
    return rispat


def list_for_booking(db: Session, booking_id: int) -> List[Rispat]:
    query = (
        select(Rispat)
        .where(Rispat.booking_id == booking_id, Rispat.status == "active")
        .order_by(Rispat.uploaded_at.desc(), Rispat.id.desc())
    )
    return list(db.scalars(query))


def get(db: Session, rispat_id: int) -> Rispat:
    rispat = db.get(Rispat, rispat_id)
    if rispat is None:
        raise NotFoundError("Meeting minutes not found")
    return rispat


def delete(db: Session, rispat_id: int) -> None:
    """Remove the database row and the stored file."""
    rispat = get(db, rispat_id)
    if os.path.exists(rispat.file_path):
        os.remove(rispat.file_path)
    db.delete(rispat)
    db.commit()
    logger.info("Deleted rispat id=%s", rispat_id)


def pending_rispat(db: Session, user_id: Optional[int] = None) -> List[Booking]:
    """Completed bookings that require meeting minutes but have none uploaded yet."""
    query = (
        select(Booking)
        .where(Booking.booking_state == COMPLETED, Booking.requires_rispat.is_(True))
        .order_by(Booking.meeting_date.desc())
    )
    if user_id is not None:
        query = query.where(Booking.user_id == user_id)
    return [
        booking for booking in db.scalars(query)
        if not any(item.status == "active" for item in booking.rispat_files)
    ]
