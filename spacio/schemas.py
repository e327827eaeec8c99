from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from spacio.timeutils import local_now


def envelope(data: Any = None, message: str = "OK", success: bool = True) -> Dict[str, Any]:
    """The JSON shape every endpoint answers with."""
    return {
        "success": success,
        "message": message,
        "timestamp": local_now().isoformat(),
        "data": data,
    }


# Pydantic models for request bodies
class RegisterRequest(BaseModel):
    username: str
    email: str
    password: str
    full_name: Optional[str] = None


class LoginRequest(BaseModel):
    email: str = Field(description="Email address or username")
    password: str


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str


class RoomRequest(BaseModel):
    name: Optional[str] = None
    floor: Optional[str] = None
    capacity: Optional[int] = None
    address: Optional[str] = None
    facilities: Optional[Union[List[str], str]] = None
    image_url: Optional[str] = None
    is_active: Optional[bool] = None


class RoomStatusRequest(BaseModel):
    is_active: bool


class BookingRequest(BaseModel):
    room_id: Optional[int] = None
    room_name: Optional[str] = None
    topic: Optional[str] = None
    date: Optional[str] = None
    time: Optional[str] = None
    end_time: Optional[str] = None
    duration: Optional[int] = None
    participants: Optional[int] = None
    pic: Optional[str] = None
    meeting_type: Optional[str] = None
    facilities: Optional[Union[List[str], str]] = None
    requires_rispat: Optional[bool] = None


class CancelBookingRequest(BaseModel):
    reason: Optional[str] = None


class CancelRequestCreate(BaseModel):
    booking_id: int
    owner_name: str
    reason: str
    booking_type: Optional[str] = None


class CancelRequestResponse(BaseModel):
    status: str
    response_message: Optional[str] = None


class ChatMessage(BaseModel):
    message: str
    session_id: Optional[str] = None


class QuickActionRequest(BaseModel):
    action: str
    session_id: Optional[str] = None


class ConfirmRequest(BaseModel):
    session_id: str
