"""
REST client for the Spacio API, used by the Streamlit frontend.

Every call unwraps the ``{success, message, timestamp, data}`` envelope and
raises ``ApiError`` when the backend reports a failure.
"""

import logging
from typing import Any, Dict, List, MutableMapping, Optional

import requests

from spacio.history import SessionCache


logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30


class ApiError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None, data: Any = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.data = data


class SpacioClient:
    def __init__(
        self,
        base_url: str,
        storage: MutableMapping[str, Any],
        session: Optional[requests.Session] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.base_url = base_url.rstrip("/")
        self.cache = SessionCache(storage)
        self.http = session or requests.Session()
        self.timeout = timeout

    def _headers(self) -> Dict[str, str]:
        token = self.cache.token
        return {"Authorization": f"Bearer {token}"} if token else {}

    def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            response = self.http.request(
                method,
                f"{self.base_url}{path}",
                headers=self._headers(),
                timeout=self.timeout,
                **kwargs,
            )
        except requests.exceptions.RequestException as e:
            logger.error("Request to %s failed: %s", path, e)
            raise ApiError("Could not reach the Spacio backend. Please check if it is running.") from e

        if response.status_code == 401:
            self.cache.clear()

        try:
            body = response.json()
        except ValueError:
            raise ApiError(f"Backend error: {response.status_code}", response.status_code)

        if not response.ok or not body.get("success", False):
            raise ApiError(
                body.get("message") or f"Backend error: {response.status_code}",
                response.status_code,
                body.get("data"),
            )
        return body.get("data")

    # System
    def health(self) -> Dict[str, Any]:
        return self._request("GET", "/health")

    def diagnostics(self) -> Dict[str, Any]:
        return self._request("GET", "/diagnostics")

    def server_time(self) -> Dict[str, Any]:
        return self._request("GET", "/api/server-time")

    # Auth
    def register(self, username: str, email: str, password: str, full_name: Optional[str] = None) -> Dict[str, Any]:
        payload = {"username": username, "email": email, "password": password, "full_name": full_name}
        return self._request("POST", "/api/auth/register", json=payload)

    def login(self, email: str, password: str) -> Dict[str, Any]:
        data = self._request("POST", "/api/auth/login", json={"email": email, "password": password})
        self.cache.save(data["session_token"], data["user"])
        return data["user"]

    def logout(self) -> None:
        try:
            self._request("POST", "/api/auth/logout")
        finally:
            self.cache.clear()

    def me(self) -> Dict[str, Any]:
        return self._request("GET", "/api/auth/me")

    def change_password(self, current_password: str, new_password: str) -> None:
        payload = {"current_password": current_password, "new_password": new_password}
        self._request("POST", "/api/auth/change-password", json=payload)

    # Rooms
    def list_rooms(
        self,
        search: Optional[str] = None,
        active_only: bool = False,
        min_capacity: Optional[int] = None,
        facilities: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        params = {"search": search, "active_only": active_only, "min_capacity": min_capacity, "facilities": facilities}
        return self._request("GET", "/api/rooms", params=_drop_none(params))

    def available_rooms(self, date: str, time: str, end_time: Optional[str] = None) -> List[Dict[str, Any]]:
        params = {"date": date, "time": time, "end_time": end_time}
        return self._request("GET", "/api/rooms/available", params=_drop_none(params))

    def get_room(self, room_id: int) -> Dict[str, Any]:
        return self._request("GET", f"/api/rooms/{room_id}")

    def create_room(self, room: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "/api/rooms", json=room)

    def update_room(self, room_id: int, room: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("PUT", f"/api/rooms/{room_id}", json=room)

    def set_room_status(self, room_id: int, is_active: bool) -> Dict[str, Any]:
        return self._request("PATCH", f"/api/rooms/{room_id}/status", json={"is_active": is_active})

    def delete_room(self, room_id: int) -> None:
        self._request("DELETE", f"/api/rooms/{room_id}")

    # Bookings
    def list_bookings(
        self,
        mine: bool = False,
        include_completed: bool = False,
        state: Optional[str] = None,
        source: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        params = {"mine": mine, "include_completed": include_completed, "state": state, "source": source}
        return self._request("GET", "/api/bookings", params=_drop_none(params))

    def reservations(self, search: str = "", mine: bool = False) -> List[Dict[str, Any]]:
        params = {"reservations": True, "search": search, "mine": mine}
        return self._request("GET", "/api/bookings", params=params)

    def check_availability(
        self,
        room_id: int,
        date: str,
        time: str,
        end_time: Optional[str] = None,
        exclude_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        params = {"room_id": room_id, "date": date, "time": time, "end_time": end_time, "exclude_id": exclude_id}
        return self._request("GET", "/api/bookings/availability", params=_drop_none(params))

    def get_booking(self, booking_id: int) -> Dict[str, Any]:
        return self._request("GET", f"/api/bookings/{booking_id}")

    def create_booking(self, booking: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "/api/bookings", json=booking)

    def update_booking(self, booking_id: int, booking: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("PUT", f"/api/bookings/{booking_id}", json=booking)

    def complete_booking(self, booking_id: int) -> Dict[str, Any]:
        return self._request("POST", f"/api/bookings/{booking_id}/complete")

    def cancel_booking(self, booking_id: int, reason: Optional[str] = None) -> Dict[str, Any]:
        return self._request("POST", f"/api/bookings/{booking_id}/cancel", json={"reason": reason})

    def auto_complete(self) -> int:
        return self._request("POST", "/api/bookings/auto-complete")["completed"]

    def cleanup_ai_bookings(self) -> int:
        return self._request("POST", "/api/bookings/cleanup-ai")["deleted"]

    # Cancel requests
    def create_cancel_request(
        self,
        booking_id: int,
        owner_name: str,
        reason: str,
        booking_type: Optional[str] = None,
    ) -> Dict[str, Any]:
        payload = {"booking_id": booking_id, "owner_name": owner_name, "reason": reason, "booking_type": booking_type}
        return self._request("POST", "/api/cancel-requests", json=payload)

    def respond_cancel_request(
        self,
        request_id: int,
        status: str,
        response_message: Optional[str] = None,
    ) -> Dict[str, Any]:
        payload = {"status": status, "response_message": response_message}
        return self._request("POST", f"/api/cancel-requests/{request_id}/respond", json=payload)

    def list_cancel_requests(self, owner: Optional[str] = None, requester: Optional[str] = None) -> List[Dict[str, Any]]:
        params = {"owner": owner, "requester": requester}
        return self._request("GET", "/api/cancel-requests", params=_drop_none(params))

    # Meeting minutes
    def upload_rispat(
        self,
        booking_id: int,
        filename: str,
        content: bytes,
        content_type: Optional[str] = None,
        uploaded_by: str = "",
    ) -> Dict[str, Any]:
        files = {"file": (filename, content, content_type or "application/octet-stream")}
        return self._request(
            "POST", f"/api/bookings/{booking_id}/rispat", files=files, data={"uploaded_by": uploaded_by}
        )

    def list_rispat(self, booking_id: int) -> List[Dict[str, Any]]:
        return self._request("GET", f"/api/bookings/{booking_id}/rispat")

    def pending_rispat(self, mine: bool = True) -> List[Dict[str, Any]]:
        return self._request("GET", "/api/rispat/pending", params={"mine": mine})

    def download_rispat(self, rispat_id: int) -> bytes:
        try:
            response = self.http.get(
                f"{self.base_url}/api/rispat/{rispat_id}/download",
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise ApiError("Could not reach the Spacio backend. Please check if it is running.") from e
        if not response.ok:
            raise ApiError(f"Download failed: {response.status_code}", response.status_code)
        return response.content

    def delete_rispat(self, rispat_id: int) -> None:
        self._request("DELETE", f"/api/rispat/{rispat_id}")

    # Assistant
    def assistant_greeting(self) -> Dict[str, Any]:
        return self._request("GET", "/api/assistant/greeting")

    def assistant_chat(self, message: str, session_id: Optional[str] = None) -> Dict[str, Any]:
        return self._request("POST", "/api/assistant/chat", json={"message": message, "session_id": session_id})

    def assistant_quick_action(self, action: str, session_id: Optional[str] = None) -> Dict[str, Any]:
        payload = {"action": action, "session_id": session_id}
        return self._request("POST", "/api/assistant/quick-action", json=payload)

    def assistant_confirm(self, session_id: str) -> Dict[str, Any]:
        return self._request("POST", "/api/assistant/confirm", json={"session_id": session_id})

    def list_conversations(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/api/assistant/conversations")

    def get_conversation(self, session_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/api/assistant/conversations/{session_id}")

    def reset_conversation(self, session_id: str) -> None:
        self._request("DELETE", f"/api/assistant/conversations/{session_id}")


def _drop_none(params: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in params.items() if value is not None}
