import pytest

from spacio import cancel_requests
from spacio.bookings import create_booking
from spacio.exceptions import NotFoundError, ValidationError
from spacio.models import BOOKED, SOURCE_AI

from tests.conftest import MEETING_DAY


@pytest.fixture
def alice_booking(db, user):
    return create_booking(
        db,
        user,
        {
            "room_name": "Nusanipa Meeting Room",
            "topic": "Quarterly review",
            "date": MEETING_DAY.isoformat(),
            "time": "13:00",
            "end_time": "15:00",
            "participants": 10,
        },
        source=SOURCE_AI,
    )


class TestCreateRequest:
    def test_request_is_addressed_to_owner(self, db, alice_booking, other_user, user):
        request = cancel_requests.create_request(db, alice_booking.id, other_user, "Alice Tan", " need the room ")

        assert request.status == "pending"
        assert request.owner_id == user.id
        assert request.requester_name == "Bob Lim"
        assert request.booking_type == SOURCE_AI
        assert request.reason == "need the room"

    def test_owner_found_by_username(self, db, alice_booking, other_user):
        request = cancel_requests.create_request(db, alice_booking.id, other_user, "alice", "urgent")
        assert request.owner_name == "Alice Tan"

    def test_reason_required(self, db, alice_booking, other_user):
        with pytest.raises(ValidationError):
            cancel_requests.create_request(db, alice_booking.id, other_user, "Alice Tan", "  ")

    def test_unknown_owner(self, db, alice_booking, other_user):
        with pytest.raises(NotFoundError):
            cancel_requests.create_request(db, alice_booking.id, other_user, "Nobody", "urgent")

    def test_unknown_booking(self, db, user, other_user):
        with pytest.raises(NotFoundError):
            cancel_requests.create_request(db, 999, other_user, "Alice Tan", "urgent")


class TestRespond:
    def test_approval_leaves_booking_alone(self, db, alice_booking, other_user):
        request = cancel_requests.create_request(db, alice_booking.id, other_user, "Alice Tan", "urgent")
        answered = cancel_requests.respond(db, request.id, "Approved", "go ahead")

        assert answered.status == "approved"
        assert answered.response_message == "go ahead"
        assert alice_booking.booking_state == BOOKED

    def test_invalid_status(self, db, alice_booking, other_user):
        request = cancel_requests.create_request(db, alice_booking.id, other_user, "Alice Tan", "urgent")
        with pytest.raises(ValidationError):
            cancel_requests.respond(db, request.id, "maybe")

    def test_unknown_request(self, db):
        with pytest.raises(NotFoundError):
            cancel_requests.respond(db, 42, "rejected")


class TestListing:
    def test_owner_sees_only_pending(self, db, alice_booking, other_user):
        first = cancel_requests.create_request(db, alice_booking.id, other_user, "Alice Tan", "one")
        second = cancel_requests.create_request(db, alice_booking.id, other_user, "Alice Tan", "two")
        cancel_requests.respond(db, first.id, "rejected")

        assert [r.id for r in cancel_requests.list_by_owner(db, "Alice Tan")] == [second.id]
        assert {r.id for r in cancel_requests.list_by_requester(db, "Bob Lim")} == {first.id, second.id}
        assert len(cancel_requests.list_all(db)) == 2

    def test_names_required(self, db):
        with pytest.raises(ValidationError):
            cancel_requests.list_by_owner(db, "")
        with pytest.raises(ValidationError):
            cancel_requests.list_by_requester(db, "")

    def test_dict_carries_booking_details(self, db, alice_booking, other_user):
        request = cancel_requests.create_request(db, alice_booking.id, other_user, "Alice Tan", "urgent")
        data = cancel_requests.request_to_dict(request)

        assert data["booking_topic"] == "Quarterly review"
        assert data["meeting_date"] == MEETING_DAY.isoformat()
