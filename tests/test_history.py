import json

from spacio.history import HISTORY_KEY, MAX_HISTORY_ENTRIES, HistoryStore, SessionCache


def entry(**overrides):
    data = {
        "id": 7,
        "topic": "Retro",
        "date": "2030-01-15",
        "time": "09:00",
        "room_name": "Cedaya Meeting Room",
        "status": "COMPLETED",
    }
    data.update(overrides)
    return data


class TestHistoryStore:
    def test_add_and_read(self):
        store = HistoryStore({})
        assert store.add_history(entry()) is True
        assert store.add_history(entry(id=8, topic="Planning")) is True

        history = store.get_history()
        assert [item["id"] for item in history] == [8, 7]

    def test_duplicates_are_skipped(self):
        store = HistoryStore({})
        store.add_history(entry())
        assert store.add_history(entry()) is False
        assert len(store.get_history()) == 1

    def test_same_booking_with_new_status_is_kept(self):
        store = HistoryStore({})
        store.add_history(entry())
        assert store.add_history(entry(status="CANCELLED")) is True

    def test_unknown_status_becomes_completed(self):
        store = HistoryStore({})
        store.add_history(entry(status="BOOKED"))
        assert store.get_history()[0]["status"] == "COMPLETED"

    def test_extra_fields_survive(self):
        store = HistoryStore({})
        store.add_history(entry(pic="Alice Tan"))
        assert store.get_history()[0]["pic"] == "Alice Tan"

    def test_capped(self):
        store = HistoryStore({})
        for number in range(MAX_HISTORY_ENTRIES + 5):
            store.add_history(entry(id=number))

        history = store.get_history()
        assert len(history) == MAX_HISTORY_ENTRIES
        assert history[0]["id"] == MAX_HISTORY_ENTRIES + 4

    def test_reads_json_string(self):
        store = HistoryStore({HISTORY_KEY: json.dumps([entry()])})
        assert store.get_history()[0]["topic"] == "Retro"

    def test_corrupt_cache_is_ignored(self):
        assert HistoryStore({HISTORY_KEY: "{not json"}).get_history() == []
        assert HistoryStore({HISTORY_KEY: [{"status": ["bad"]}]}).get_history() == []

    def test_clear(self):
        storage = {}
        store = HistoryStore(storage)
        store.add_history(entry())
        store.clear()
        assert HISTORY_KEY not in storage


class TestSessionCache:
    def test_save_and_clear(self):
        cache = SessionCache({})
        assert cache.is_authenticated is False

        cache.save("token-1", {"id": 1, "username": "alice"})
        assert cache.is_authenticated is True
        assert cache.token == "token-1"
        assert cache.user["username"] == "alice"

        cache.clear()
        assert cache.token is None
        assert cache.user is None
