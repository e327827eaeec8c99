"""
Client-side caches kept in the frontend's session storage.

``storage`` is any mutable mapping: ``st.session_state`` in the Streamlit app,
a plain dict in tests.
"""

import json
import logging
from typing import Any, Dict, List, MutableMapping, Optional

from pydantic import BaseModel, ConfigDict, ValidationError as PydanticValidationError

from spacio.models import CANCELLED, COMPLETED


logger = logging.getLogger(__name__)

HISTORY_KEY = "booking_history"
SESSION_TOKEN_KEY = "session_token"
USER_DATA_KEY = "user_data"
MAX_HISTORY_ENTRIES = 200
EXPIRED = "EXPIRED"
HISTORY_STATUSES = (COMPLETED, CANCELLED, EXPIRED)


class HistoryEntry(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Any = None
    topic: Optional[str] = ""
    date: Optional[str] = ""
    time: Optional[str] = ""
    room_name: Optional[str] = ""
    status: str = COMPLETED

    def identity(self):
        return (str(self.id), self.topic, self.date, self.time, self.room_name, self.status)


class HistoryStore:
    def __init__(self, storage: MutableMapping[str, Any]):
        self.storage = storage

    def get_history(self) -> List[Dict[str, Any]]:
        raw = self.storage.get(HISTORY_KEY)
        if not raw:
            return []
        try:
            items = json.loads(raw) if isinstance(raw, str) else raw
            return [HistoryEntry.model_validate(item).model_dump() for item in items]
        except (TypeError, ValueError, PydanticValidationError):
            logger.warning("Discarding unreadable booking history cache")
            return []

    def add_history(self, entry: Dict[str, Any]) -> bool:
        """
        Prepend an entry unless an identical one is already cached.

        Returns True when the entry was added.
        """
        new_entry = HistoryEntry.model_validate(entry)
        if new_entry.status not in HISTORY_STATUSES:
            new_entry.status = COMPLETED
        history = [HistoryEntry.model_validate(item) for item in self.get_history()]
        if any(item.identity() == new_entry.identity() for item in history):
            return False
        history.insert(0, new_entry)
        self.storage[HISTORY_KEY] = [item.model_dump() for item in history[:MAX_HISTORY_ENTRIES]]
        return True

    def clear(self) -> None:
        self.storage.pop(HISTORY_KEY, None)


class SessionCache:
    """Session token and the logged-in user's profile."""

    def __init__(self, storage: MutableMapping[str, Any]):
        self.storage = storage

    @property
    def token(self) -> Optional[str]:
        return self.storage.get(SESSION_TOKEN_KEY)

    @property
    def user(self) -> Optional[Dict[str, Any]]:
        return self.storage.get(USER_DATA_KEY)

    def save(self, token: str, user: Dict[str, Any]) -> None:
        self.storage[SESSION_TOKEN_KEY] = token
        self.storage[USER_DATA_KEY] = user

    def clear(self) -> None:
        self.storage.pop(SESSION_TOKEN_KEY, None)
        self.storage.pop(USER_DATA_KEY, None)

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token)
