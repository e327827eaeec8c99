import json
from datetime import date

import pytest

from spacio import booking_assistant
from spacio.booking_assistant import BookingAssistant, clean_booking_data, extract_json
from spacio.bookings import create_booking
from spacio.exceptions import NotFoundError, ValidationError
from spacio.models import SOURCE_AI, Booking, Conversation

from tests.conftest import MEETING_DAY


TODAY = date(2030, 1, 14)


def model_reply(message, action="continue", **booking):
    return "```json\n" + json.dumps({"message": message, "action": action, "bookingData": booking}) + "\n```"


@pytest.fixture
def offline(db, user, offline_gemini):
    return BookingAssistant(db, user, gemini=offline_gemini, today=TODAY)


@pytest.fixture
def online(db, user, gemini):
    return BookingAssistant(db, user, gemini=gemini, today=TODAY)


class TestCleaning:
    def test_drops_placeholders_and_forces_pic(self):
        cleaned = clean_booking_data(
            {
                "roomName": "NaN",
                "topic": "  Planning ",
                "participants": "7 orang",
                "time": "9.30",
                "meetingType": "External",
                "date": "undefined",
                "pic": "someone else",
            },
            "Alice Tan",
        )
        assert cleaned == {
            "topic": "Planning",
            "participants": 7,
            "time": "09:30",
            "meeting_type": "external",
            "pic": "Alice Tan",
        }

    def test_invalid_time_is_dropped(self):
        assert "time" not in clean_booking_data({"time": "late afternoon"}, "Alice")

    def test_dates_are_normalised(self):
        assert clean_booking_data({"date": "15/01/2030"}, "Alice")["date"] == "2030-01-15"
        assert "date" not in clean_booking_data({"date": "tomorrow"}, "Alice")

    def test_non_dict(self):
        assert clean_booking_data(["nope"], "Alice") == {"pic": "Alice"}


class TestExtractJson:
    def test_fenced(self):
        assert extract_json('Sure!\n```json\n{"message": "hi"}\n```') == {"message": "hi"}

    def test_outer_braces(self):
        assert extract_json('Here you go: {"message": "hi", "bookingData": {"topic": "x"}} thanks') == {
            "message": "hi",
            "bookingData": {"topic": "x"},
        }

    def test_not_an_object(self):
        assert extract_json("[1, 2]") is None
        assert extract_json("no json at all") is None


class TestGreeting:
    def test_small_talk_gets_greeting(self, offline):
        response = offline.process_input("terima kasih")

        assert response["action"] == "greeting"
        assert {item["action"] for item in response["quick_actions"]} == {"start_booking", "view_rooms"}

    def test_static_greeting(self):
        assert "WIB" in BookingAssistant.get_greeting()

    def test_empty_message(self, offline):
        with pytest.raises(ValidationError):
            offline.process_input("   ")


class TestFallbackConversation:
    def test_slot_filling_to_saved_booking(self, db, user, offline):
        first = offline.process_input("Pesan Nusanipa besok jam 10")
        assert first["action"] == "continue"
        assert "Room: Nusanipa Meeting Room" in first["message"]
        assert first["booking_data"]["pic"] == "Alice Tan"
        assert first["booking_data"]["end_time"] == "11:00"
        assert "topic" in first["missing_fields"]

        second = offline.process_input("topik sprint review, 5 orang")
        assert second["missing_fields"] == ["meeting_type"]
        assert [item["action"] for item in second["quick_actions"]] == ["set_internal", "set_external"]

        typed = offline.handle_quick_action("set_internal")
        assert typed["action"] == "complete"
        assert "Nusanipa Meeting Room" in typed["message"]

        confirm = offline.handle_quick_action("confirm_booking")
        assert confirm["action"] == "complete"
        assert confirm["quick_actions"][0]["action"] == "final_confirm"

        done = offline.handle_quick_action("final_confirm")
        assert done["action"] == "complete"

        booking = db.get(Booking, done["booking_id"])
        assert booking.source == SOURCE_AI
        assert booking.session_id == offline.session_id
        assert booking.meeting_date == MEETING_DAY
        assert booking.topic == "sprint review"
        assert booking.participants == 5
        assert booking.pic == "Alice Tan"

        conversation = booking_assistant.get_conversation(db, user, offline.session_id)
        assert conversation.booking_status == "booked"
        assert conversation.current_booking == {"pic": "Alice Tan"}

    def test_state_survives_a_new_assistant(self, db, user, offline, offline_gemini):
        offline.process_input("cedaya besok jam 13")

        resumed = BookingAssistant(db, user, session_id=offline.session_id, gemini=offline_gemini, today=TODAY)
        assert resumed.current_booking["room_name"] == "Cedaya Meeting Room"
        assert resumed.current_booking["time"] == "13:00"

    def test_typed_confirmation_when_complete(self, offline):
        offline.process_input("Book Cedaya tomorrow at 09:00 for 4 people, topic budget, internal")
        response = offline.process_input("ya")

        assert response["action"] == "complete"
        assert response["quick_actions"][0]["action"] == "final_confirm"

    def test_rejection_asks_what_to_change(self, offline):
        offline.process_input("cedaya besok jam 13")
        assert offline.process_input("tidak")["action"] == "clarify"

    def test_confirm_with_missing_fields(self, offline):
        offline.process_input("cedaya besok")
        response = offline.handle_quick_action("confirm_booking")

        assert response["action"] == "continue"
        assert "time" in response["message"]

    def test_unknown_action_is_processed_as_text(self, offline):
        response = offline.handle_quick_action("pesan celebes besok")
        assert response["booking_data"]["room_name"] == "Celebes Meeting Room"

    def test_history_is_capped(self, offline):
        for _ in range(6):
            offline.process_input("cedaya")
        assert len(offline.history) == booking_assistant.HISTORY_LIMIT

    def test_final_confirm_conflict(self, db, other_user, offline):
        create_booking(
            db,
            other_user,
            {
                "room_name": "Cedaya Meeting Room",
                "topic": "Existing",
                "date": MEETING_DAY.isoformat(),
                "time": "09:30",
                "end_time": "10:30",
                "pic": "Bob",
            },
        )
        offline.process_input("Book Cedaya tomorrow at 09:00 for 4 people, topic budget, internal")
        response = offline.handle_quick_action("final_confirm")

        assert response["action"] == "error"
        assert "not available" in response["message"]

    def test_save_requires_core_fields(self, offline):
        offline.process_input("cedaya")
        with pytest.raises(ValidationError):
            offline.save_booking()


class TestModelReplies:
    def test_extracted_values_win_over_model(self, online, fake_llm):
        fake_llm.replies = [
            model_reply(
                "Here is your booking",
                action="complete",
                roomName="Cedaya Meeting Room",
                topic="Budget",
                participants="4",
                meetingType="internal",
                date="2030-01-20",
                time="13:00",
            )
        ]
        response = online.process_input("book cedaya on 2030-01-15 at 09:00 for 4 people, topic budget, internal")

        assert response["action"] == "complete"
        assert response["booking_data"]["date"] == "2030-01-15"
        assert response["booking_data"]["time"] == "09:00"
        assert response["booking_data"]["end_time"] == "10:00"

    def test_prompt_carries_rooms_and_message(self, online, fake_llm):
        fake_llm.replies = [model_reply("Which room?")]
        online.process_input("saya mau pesan ruang {besar}")

        prompt = fake_llm.prompts[0]
        assert "Cedaya Meeting Room" in prompt
        assert "saya mau pesan ruang {besar}" in prompt

    def test_prompt_carries_analysis(self, online, fake_llm):
        fake_llm.replies = [model_reply("Please confirm", action="complete")]
        online.process_input("book cedaya on 2030-01-15 at 09:00 for 4 people, topic budget, internal")

        prompt = fake_llm.prompts[0]
        assert "Confidence: 100%" in prompt
        assert "Completeness: 100%" in prompt
        assert "Is confirmation: no" in prompt
        assert "- room: ✅ Cedaya Meeting Room" in prompt

    def test_prompt_marks_missing_fields(self, online, fake_llm):
        fake_llm.replies = [model_reply("Which room?")]
        online.process_input("pesan ruang")

        prompt = fake_llm.prompts[0]
        assert "Confidence: 70%" in prompt
        assert "Completeness: 0%" in prompt
        assert "- meeting topic: ❌ not provided" in prompt

    def test_model_date_that_does_not_parse_stays_missing(self, online, fake_llm):
        fake_llm.replies = [model_reply("Noted", roomName="Cedaya Meeting Room", date="tomorrow")]
        response = online.process_input("pesan ruang")

        assert "date" not in response["booking_data"]
        assert "date" in response["missing_fields"]

    def test_complete_is_downgraded_while_fields_missing(self, online, fake_llm):
        fake_llm.replies = [model_reply("All set!", action="complete")]
        response = online.process_input("pesan ruang")

        assert response["action"] == "continue"

    def test_unknown_action_becomes_continue(self, online, fake_llm):
        fake_llm.replies = [model_reply("Hmm", action="dance")]
        assert online.process_input("pesan ruang")["action"] == "continue"

    def test_empty_model_values_do_not_erase_slots(self, online, fake_llm):
        fake_llm.replies = [model_reply("Noted"), model_reply("Noted", roomName="", topic="null")]
        online.process_input("cedaya topik review")
        response = online.process_input("pesan ruang")

        assert response["booking_data"]["room_name"] == "Cedaya Meeting Room"
        assert response["booking_data"]["topic"] == "review"

    def test_unparsable_reply(self, online, fake_llm):
        fake_llm.replies = ["I am not JSON"]
        response = online.process_input("pesan ruang")

        assert response["action"] == "error"
        assert response["suggestions"]

    def test_quota_exceeded_falls_back(self, online, fake_llm, sleeps):
        fake_llm.replies = [Exception("429 quota exceeded")] * 3
        response = online.process_input("pesan cedaya besok")

        assert response["is_quota_exceeded"] is True
        assert response["action"] == "continue"
        assert "Room: Cedaya Meeting Room" in response["message"]
        assert sleeps == [1.0, 2.0]

    def test_api_error_falls_back(self, online, fake_llm):
        fake_llm.replies = [ValueError("400 bad request")]
        response = online.process_input("pesan cedaya besok")

        assert response["is_quota_exceeded"] is False
        assert response["action"] == "continue"


class TestConversations:
    def test_list_and_reset(self, db, user, offline):
        offline.process_input("cedaya")
        sessions = [item.session_id for item in booking_assistant.list_conversations(db, user)]
        assert sessions == [offline.session_id]

        booking_assistant.reset_conversation(db, user, offline.session_id)
        assert db.query(Conversation).count() == 0

    def test_other_users_conversation_is_hidden(self, db, other_user, offline):
        with pytest.raises(NotFoundError):
            booking_assistant.get_conversation(db, other_user, offline.session_id)
        with pytest.raises(NotFoundError):
            BookingAssistant(db, other_user, session_id=offline.session_id)
