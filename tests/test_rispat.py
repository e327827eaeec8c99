import os

import pytest

from spacio import rispat
from spacio.bookings import complete_booking, create_booking
from spacio.config import get_settings
from spacio.exceptions import NotFoundError, ValidationError

from tests.conftest import MEETING_DAY


@pytest.fixture
def booking(db, user):
    return create_booking(
        db,
        user,
        {
            "room_name": "Cedaya Meeting Room",
            "topic": "Vendor meeting",
            "date": MEETING_DAY.isoformat(),
            "time": "10:00",
            "pic": "Alice Tan",
            "meeting_type": "external",
            "requires_rispat": True,
        },
    )


class TestClassify:
    @pytest.mark.parametrize(
        "extension, expected",
        [("PNG", "image"), ("jpeg", "image"), ("pdf", "pdf"), ("docx", "word"), ("txt", "document")],
    )
    def test_classify_file(self, extension, expected):
        assert rispat.classify_file(extension) == expected


class TestUpload:
    def test_stores_file_and_row(self, db, booking, upload_dir):
        stored = rispat.upload(db, booking.id, "minutes.pdf", "application/pdf", b"%PDF-1.4", "Alice Tan")

        assert stored.original_filename == "minutes.pdf"
        assert stored.file_type == "pdf"
        assert stored.file_size == 8
        assert stored.filename.endswith(".pdf")
        assert os.path.dirname(stored.file_path) == str(upload_dir)
        with open(stored.file_path, "rb") as handle:
            assert handle.read() == b"%PDF-1.4"

    def test_rejects_extension(self, db, booking, upload_dir):
        with pytest.raises(ValidationError):
            rispat.upload(db, booking.id, "script.exe", None, b"MZ", "Alice Tan")

    def test_rejects_large_files(self, db, booking, upload_dir, monkeypatch):
        monkeypatch.setattr(get_settings(), "rispat_max_bytes", 4)
        with pytest.raises(ValidationError):
            rispat.upload(db, booking.id, "photo.png", "image/png", b"12345", "Alice Tan")
        assert not upload_dir.exists()

    def test_requires_uploader(self, db, booking, upload_dir):
        with pytest.raises(ValidationError):
            rispat.upload(db, booking.id, "minutes.pdf", "application/pdf", b"x", " ")

    def test_unknown_booking(self, db, upload_dir):
        with pytest.raises(NotFoundError):
            rispat.upload(db, 404, "minutes.pdf", "application/pdf", b"x", "Alice Tan")

    def test_failed_commit_removes_stored_file(self, db, booking, upload_dir, monkeypatch):
        def broken_commit():
            raise RuntimeError("database is locked")

        monkeypatch.setattr(db, "commit", broken_commit)
        with pytest.raises(RuntimeError):
            rispat.upload(db, booking.id, "minutes.pdf", "application/pdf", b"%PDF", "Alice Tan")
        assert list(upload_dir.iterdir()) == []

    def test_mime_type_is_truncated(self, db, booking, upload_dir):
        stored = rispat.upload(db, booking.id, "photo.jpg", "image/" + "x" * 200, b"x", "Alice Tan")
        assert len(stored.mime_type) == rispat.MAX_MIME_LENGTH


class TestManage:
    def test_list_and_delete(self, db, booking, upload_dir):
        first = rispat.upload(db, booking.id, "a.pdf", "application/pdf", b"a", "Alice Tan")
        second = rispat.upload(db, booking.id, "b.docx", None, b"b", "Alice Tan")

        assert {item.id for item in rispat.list_for_booking(db, booking.id)} == {first.id, second.id}

        rispat.delete(db, first.id)
        assert not os.path.exists(first.file_path)
        assert [item.id for item in rispat.list_for_booking(db, booking.id)] == [second.id]
        with pytest.raises(NotFoundError):
            rispat.get(db, first.id)

    def test_pending_rispat(self, db, user, other_user, booking, upload_dir):
        complete_booking(db, booking.id)
        assert [b.id for b in rispat.pending_rispat(db, user_id=user.id)] == [booking.id]
        assert rispat.pending_rispat(db, user_id=other_user.id) == []

        rispat.upload(db, booking.id, "minutes.pdf", "application/pdf", b"x", "Alice Tan")
        db.expire_all()
        assert rispat.pending_rispat(db) == []

    def test_dict(self, db, booking, upload_dir):
        data = rispat.rispat_to_dict(rispat.upload(db, booking.id, "m.png", "image/png", b"x", "Alice Tan"))
        assert data["original_name"] == "m.png"
        assert data["file_type"] == "image"
        assert data["uploaded_by"] == "Alice Tan"
