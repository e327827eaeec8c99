from datetime import date

import pytest

from spacio import extraction


TODAY = date(2025, 3, 10)
ROOMS = ["Samudrantha Meeting Room", "Cedaya Meeting Room", "Nusanipa Meeting Room"]


class TestIntentWords:
    @pytest.mark.parametrize("text", ["ya", "Ya, benar", "ok lanjut", "Okay", "yes please", "setuju"])
    def test_confirmations(self, text):
        assert extraction.is_confirmation(text)

    @pytest.mark.parametrize("text", ["yakin belum", "book a room", "tokyo", "maybe later"])
    def test_confirmation_needs_whole_word(self, text):
        assert not extraction.is_confirmation(text)

    def test_rejection(self):
        assert extraction.is_rejection("tidak, salah tanggal")
        assert extraction.is_rejection("No")
        assert not extraction.is_rejection("bring my notebook")

    def test_greeting(self):
        assert extraction.is_greeting("Halo!")
        assert extraction.is_greeting("selamat pagi")
        assert not extraction.is_greeting("this is it")

    def test_booking_keywords(self):
        assert extraction.has_booking_keywords("saya mau pesan ruang")
        assert extraction.has_booking_keywords("Book a room")
        assert not extraction.has_booking_keywords("terima kasih")


class TestFieldExtraction:
    def test_room_by_first_word(self):
        assert extraction.extract_room("pesan nusanipa dong", ROOMS) == "Nusanipa Meeting Room"

    def test_room_by_full_name(self):
        assert extraction.extract_room("Cedaya Meeting Room please", ROOMS) == "Cedaya Meeting Room"

    def test_unknown_room(self):
        assert extraction.extract_room("any meeting room", ROOMS) is None

    def test_participants(self):
        assert extraction.extract_fields("untuk 6 orang", ROOMS, TODAY)["participants"] == 6
        assert extraction.extract_fields("for 10 people", ROOMS, TODAY)["participants"] == 10

    def test_topic_stops_at_comma(self):
        fields = extraction.extract_fields("topik sprint planning, besok", ROOMS, TODAY)
        assert fields["topic"] == "sprint planning"

    @pytest.mark.parametrize(
        "text, expected",
        [
            ("rapat internal", "internal"),
            ("meeting with an external client", "external"),
            ("tamu dari luar", "external"),
            ("no type given", None),
        ],
    )
    def test_meeting_type(self, text, expected):
        assert extraction.extract_meeting_type(text) == expected


class TestDates:
    @pytest.mark.parametrize(
        "text, expected",
        [
            ("hari ini", "2025-03-10"),
            ("today please", "2025-03-10"),
            ("besok", "2025-03-11"),
            ("tomorrow", "2025-03-11"),
            ("lusa", "2025-03-12"),
            ("the day after tomorrow", "2025-03-12"),
            ("on 2025-04-01", "2025-04-01"),
            ("tanggal 15/04/2025", "2025-04-15"),
        ],
    )
    def test_dates(self, text, expected):
        assert extraction.extract_date(text, TODAY) == expected

    def test_impossible_date(self):
        assert extraction.extract_date("31/02/2025", TODAY) is None


class TestTimes:
    @pytest.mark.parametrize(
        "text, expected",
        [
            ("jam 14.00", "14:00"),
            ("pukul 9", "09:00"),
            ("at 2pm", "14:00"),
            ("at 12am", "00:00"),
            ("start 10:30", "10:30"),
        ],
    )
    def test_start_time(self, text, expected):
        assert extraction.extract_times(text) == {"time": expected}

    def test_range_with_sampai(self):
        assert extraction.extract_times("jam 14:00 sampai 15:30") == {"time": "14:00", "end_time": "15:30"}

    def test_range_with_meridiem(self):
        assert extraction.extract_times("2pm to 4pm") == {"time": "14:00", "end_time": "16:00"}

    def test_bare_number_range_is_not_a_time(self):
        assert extraction.extract_times("6 to 8 people") == {}

    def test_dates_are_not_read_as_times(self):
        assert extraction.extract_times("on 15/04/2025") == {}

    def test_out_of_range_hour(self):
        assert extraction.extract_times("jam 25.00") == {}


class TestAnalyze:
    def test_complete_request(self):
        text = "Book Nusanipa tomorrow at 10:00 for 6 people, topic sprint planning, internal"
        result = extraction.analyze(text, {}, ROOMS, TODAY)

        assert result["merged"]["room_name"] == "Nusanipa Meeting Room"
        assert result["merged"]["date"] == "2025-03-11"
        assert result["merged"]["time"] == "10:00"
        assert result["merged"]["participants"] == 6
        assert result["merged"]["topic"] == "sprint planning"
        assert result["merged"]["meeting_type"] == "internal"
        assert result["missing_fields"] == []
        assert result["completeness"] == 100
        assert result["confidence"] == 1.0

    def test_merges_with_current_booking(self):
        current = {"room_name": "Cedaya Meeting Room", "pic": "Alice"}
        result = extraction.analyze("besok jam 9", current, ROOMS, TODAY)

        assert result["merged"]["room_name"] == "Cedaya Meeting Room"
        assert result["merged"]["pic"] == "Alice"
        assert result["missing_fields"] == ["topic", "participants", "meeting_type"]
        assert result["completeness"] == 50
        assert result["confidence"] == 0.7

    def test_four_fields_boost_confidence(self):
        result = extraction.analyze("cedaya besok jam 9 untuk 4 orang", {}, ROOMS, TODAY)
        assert result["confidence"] == 0.8

    def test_no_intent(self):
        result = extraction.analyze("terima kasih", {}, ROOMS, TODAY)
        assert result["has_booking_intent"] is False
        assert result["confidence"] == 0.7

    def test_booking_in_progress_keeps_intent(self):
        result = extraction.analyze("terima kasih", {"room_name": "Cedaya Meeting Room"}, ROOMS, TODAY)
        assert result["has_booking_intent"] is True
