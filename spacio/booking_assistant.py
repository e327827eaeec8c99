import json
import logging
import random
import re
import uuid
from datetime import date
from typing import Any, Dict, List, Optional

from langchain_core.prompts import PromptTemplate
from sqlalchemy import select
from sqlalchemy.orm import Session

from spacio import extraction
from spacio.bookings import create_booking
from spacio.exceptions import (
    AssistantError,
    ConflictError,
    NotFoundError,
    QuotaExceededError,
    ValidationError,
)
from spacio.gemini_client import GeminiClient
from spacio.models import SOURCE_AI, Booking, Conversation, MeetingRoom, User, utcnow
from spacio.timeutils import add_minutes, format_time, local_now, parse_date, parse_time


logger = logging.getLogger(__name__)

HISTORY_LIMIT = 10
ACTIONS = ("continue", "complete", "clarify", "greeting", "error")
EMPTY_MARKERS = ("nan", "undefined", "null", "none")

# model replies may use camelCase keys
FIELD_ALIASES = {
    "roomName": "room_name",
    "meetingType": "meeting_type",
    "endTime": "end_time",
    "meeting_date": "date",
    "meeting_time": "time",
    "start_time": "time",
}
BOOKING_FIELDS = ("room_name", "topic", "date", "time", "end_time", "participants", "meeting_type", "facilities")
EXTRACTED_PRIORITY_FIELDS = ("date", "time", "end_time", "room_name", "meeting_type")

CONFIRM_ACTIONS = ("confirm_booking", "Ya, Benar", "Ya, Lanjutkan Pemesanan", "Ya, Lanjutkan")
MODIFY_ACTIONS = ("modify_booking", "modify_data", "Ubah Detail", "Ubah Data")
START_ACTIONS = ("start_booking", "Pesan Ruang")
MEETING_TYPE_ACTIONS = {
    "set_internal": "internal",
    "Internal": "internal",
    "set_external": "external",
    "Eksternal": "external",
    "External": "external",
}

CONFIRM_QUICK_ACTIONS = [
    {"label": "Yes, that's right", "action": "confirm_booking", "type": "primary"},
    {"label": "Change details", "action": "modify_booking", "type": "secondary"},
]
FALLBACK_QUICK_ACTIONS = [
    {"label": "Yes, continue", "action": "confirm_booking", "type": "primary"},
    {"label": "Change data", "action": "modify_data", "type": "secondary"},
]
MEETING_TYPE_QUICK_ACTIONS = [
    {"label": "Internal", "action": "set_internal", "type": "primary"},
    {"label": "External", "action": "set_external", "type": "primary"},
]

GREETING_RESPONSES = (
    "Hello! I'm the Spacio assistant. I can help you book a meeting room. Tell me what you need!",
    "Welcome to Spacio! I can book a meeting room for you. What can I help you with?",
    "Hi! I'm the meeting room booking assistant. How can I help you today?",
)

PROMPT_TEMPLATE = PromptTemplate.from_template(
    """You are the Spacio meeting room booking assistant. Today is {today} (timezone WIB, Asia/Jakarta).
Users may write in Indonesian or English. Always answer in English, friendly and brief.

Available rooms:
{rooms}

Recent conversation:
{history}

Booking data collected so far:
{accumulated}

Data extracted from the latest message:
{extracted}

Merged booking data:
{merged}

Analysis of the latest message:
- Confidence: {confidence}%
- Is confirmation: {is_confirmation}
- Is rejection: {is_rejection}

Field checklist (merged data):
{checklist}

Completeness: {completeness}%
Still missing: {missing}

Rules:
- The PIC is always the logged-in user; never ask for it.
- Ask only for the missing fields, one or two at a time.
- If the meeting type is missing, offer the quick actions set_internal and set_external.
- Never ask again for a field the checklist marks as filled.
- If the user confirms and completeness is 100%, use action "complete".
- If the user rejects, ask what they would like to correct.
- When every field is known, summarise the booking and ask the user to confirm with action "complete".
- If data is still missing, use action "continue".
- Dates use YYYY-MM-DD and times use HH:MM (24 hour).

Reply with JSON only, in this shape:
```json
{{
  "message": "text shown to the user",
  "action": "continue|complete|clarify",
  "bookingData": {{
    "roomName": "", "topic": "", "date": "", "time": "", "endTime": "",
    "participants": 0, "meetingType": "internal|external"
  }},
  "quickActions": [{{"label": "", "action": "", "type": "primary"}}],
  "suggestions": []
}}
```

User message: {user_input}
"""
)

JSON_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")


def new_session_id() -> str:
    return f"rba_{uuid.uuid4().hex}"


def conversation_to_dict(conversation: Conversation) -> Dict[str, Any]:
    return {
        "session_id": conversation.session_id,
        "user_id": conversation.user_id,
        "messages": list(conversation.messages or []),
        "current_booking": dict(conversation.current_booking or {}),
        "status": conversation.status,
        "booking_status": conversation.booking_status,
        "created_at": conversation.created_at.isoformat() if conversation.created_at else None,
        "updated_at": conversation.updated_at.isoformat() if conversation.updated_at else None,
    }


def get_conversation(db: Session, user: User, session_id: str) -> Conversation:
    conversation = db.scalar(select(Conversation).where(Conversation.session_id == session_id))
    if conversation is None or conversation.user_id != user.id:
        raise NotFoundError("Conversation not found")
    return conversation


def load_or_create_conversation(db: Session, user: User, session_id: Optional[str] = None) -> Conversation:
    if session_id:
        conversation = db.scalar(select(Conversation).where(Conversation.session_id == session_id))
        if conversation is not None:
            if conversation.user_id != user.id:
                raise NotFoundError("Conversation not found")
            return conversation

    conversation = Conversation(
        session_id=session_id or new_session_id(),
        user_id=user.id,
        messages=[],
        current_booking={"pic": user.display_name},
    )
    db.add(conversation)
    db.commit()
    db.refresh(conversation)
    logger.info("Started assistant conversation %s for user id=%s", conversation.session_id, user.id)
    return conversation


def list_conversations(db: Session, user: User) -> List[Conversation]:
    query = (
        select(Conversation)
        .where(Conversation.user_id == user.id)
        .order_by(Conversation.updated_at.desc(), Conversation.id.desc())
    )
    return list(db.scalars(query))


def reset_conversation(db: Session, user: User, session_id: str) -> None:
    conversation = get_conversation(db, user, session_id)
    db.delete(conversation)
    db.commit()
    logger.info("Reset assistant conversation %s", session_id)


def _clean_value(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    if not text or text.lower() in EMPTY_MARKERS:
        return None
    return text


def clean_booking_data(data: Dict[str, Any], pic: str) -> Dict[str, Any]:
    """
    Normalise booking data coming back from the model.

    Empty, ``NaN``, ``undefined`` and ``null`` values are dropped, as are dates
    and times that do not parse. Participants become an int and PIC is always
    the account's name.
    """
    cleaned: Dict[str, Any] = {}
    if not isinstance(data, dict):
        return {"pic": pic}

    for key, value in data.items():
        field = FIELD_ALIASES.get(key, key)
        if field not in BOOKING_FIELDS:
            continue
        if field == "facilities":
            if isinstance(value, list) and value:
                cleaned[field] = [str(item).strip() for item in value if _clean_value(item)]
            continue
        text = _clean_value(value)
        if text is None:
            continue
        if field == "participants":
            match = re.search(r"\d+", text)
            if not match or int(match.group(0)) <= 0:
                continue
            cleaned[field] = int(match.group(0))
        elif field in ("time", "end_time"):
            try:
                cleaned[field] = format_time(parse_time(text))
            except ValidationError:
                continue
        elif field == "date":
            try:
                cleaned[field] = parse_date(text).isoformat()
            except ValidationError:
                continue
        elif field == "meeting_type":
            meeting_type = extraction.extract_meeting_type(text)
            if meeting_type:
                cleaned[field] = meeting_type
        else:
            cleaned[field] = text

    cleaned["pic"] = pic
    return cleaned


def extract_json(text: str) -> Optional[Dict[str, Any]]:
    """Pull a JSON object out of a ```json fence or the outermost braces."""
    match = JSON_FENCE_RE.search(text or "")
    candidate = match.group(1) if match else text or ""
    if not match:
        start, end = candidate.find("{"), candidate.rfind("}")
        if start == -1 or end <= start:
            return None
        candidate = candidate[start:end + 1]
    try:
        parsed = json.loads(candidate)
    except ValueError:
        return None
    return parsed if isinstance(parsed, dict) else None


def _summary_lines(booking: Dict[str, Any]) -> str:
    meeting_type = booking.get("meeting_type")
    lines = [
        f"🏢 **Room**: {booking.get('room_name') or '-'}",
        f"📝 **Topic**: {booking.get('topic') or '-'}",
        f"👥 **Participants**: {booking.get('participants') or 'Not set'}",
        f"📅 **Date**: {booking.get('date') or '-'}",
        f"⏰ **Time**: {booking.get('time') or '-'}"
        + (f" - {booking['end_time']}" if booking.get("end_time") else ""),
        f"🏛️ **Type**: {meeting_type.capitalize() if meeting_type else '-'}",
        f"🙋 **PIC**: {booking.get('pic') or '-'}",
    ]
    return "\n".join(lines)


class BookingAssistant:
    def __init__(
        self,
        db: Session,
        user: User,
        session_id: Optional[str] = None,
        gemini: Optional[GeminiClient] = None,
        today: Optional[date] = None,
    ):
        """
        Initialize the assistant for one conversation.

        Args:
            db: Database session
            user: Account the conversation belongs to; used as PIC
            session_id: Existing conversation to resume, or None for a new one
            gemini: Generative API client
            today: Reference date for relative dates, defaults to today in WIB
        """
        self.db = db
        self.user = user
        self.gemini = gemini or GeminiClient()
        self.today = today or local_now().date()
        self.conversation = load_or_create_conversation(db, user, session_id)

    @property
    def session_id(self) -> str:
        return self.conversation.session_id

    @property
    def history(self) -> List[Dict[str, str]]:
        return list(self.conversation.messages or [])

    @property
    def current_booking(self) -> Dict[str, Any]:
        booking = dict(self.conversation.current_booking or {})
        booking["pic"] = self.user.display_name
        return booking

    def _set_booking(self, booking: Dict[str, Any]) -> None:
        booking = dict(booking)
        booking["pic"] = self.user.display_name
        if booking.get("time"):
            end = booking.get("end_time")
            if not end or parse_time(end) <= parse_time(booking["time"]):
                booking["end_time"] = format_time(add_minutes(parse_time(booking["time"]), 60))
        # JSON columns only persist on reassignment
        self.conversation.current_booking = booking

    def _add_message(self, role: str, content: str) -> None:
        messages = self.history
        messages.append({"role": role, "content": content.strip(), "timestamp": utcnow().isoformat()})
        self.conversation.messages = messages[-HISTORY_LIMIT:]

    def _save(self) -> None:
        self.conversation.updated_at = utcnow()
        self.db.commit()

    def _room_names(self) -> List[str]:
        return list(self.db.scalars(select(MeetingRoom.name).where(MeetingRoom.is_active.is_(True))))

    def _response(
        self,
        message: str,
        action: str,
        quick_actions: Optional[List[Dict[str, str]]] = None,
        suggestions: Optional[List[str]] = None,
        **extra: Any,
    ) -> Dict[str, Any]:
        booking = self.current_booking
        missing = extraction.missing_fields(booking)
        response = {
            "session_id": self.session_id,
            "message": message,
            "action": action,
            "booking_data": booking,
            "quick_actions": quick_actions or [],
            "suggestions": suggestions or [],
            "missing_fields": missing,
            "completeness": (len(extraction.CRITICAL_FIELDS) - len(missing)) / len(extraction.CRITICAL_FIELDS) * 100,
            "is_quota_exceeded": False,
        }
        response.update(extra)
        return response

    def _reply(self, response: Dict[str, Any]) -> Dict[str, Any]:
        self._add_message("assistant", response["message"])
        self._save()
        return response

    @staticmethod
    def get_greeting() -> str:
        """Get a greeting message for new conversations."""
        return """Hi there! I'm the Spacio booking assistant. I can help you:

🏢 **Find a meeting room** - tell me how many people and which facilities you need
📅 **Book a room** - just describe the meeting in your own words
✅ **Confirm the booking** - I'll show a summary before anything is saved

All times are in Western Indonesia Time (WIB).

For example, you could say:
- "Book Nusanipa tomorrow at 10:00 for 6 people, topic sprint planning, internal"
- "Pesan ruang Cedaya besok jam 14.00 sampai 15.30 untuk 4 orang"

What would you like to book?"""

    def process_input(self, text: str) -> Dict[str, Any]:
        """
        Process one user message and return the assistant's reply.

        Returns:
            Dictionary with message, action, booking_data, quick_actions,
            suggestions, missing_fields, completeness, is_quota_exceeded
        """
        text = (text or "").strip()
        if not text:
            raise ValidationError("Message is required")

        self._add_message("user", text)
        before = self.current_booking
        analysis = extraction.analyze(text, before, self._room_names(), self.today)
        extracted = analysis["extracted"]

        if not analysis["has_booking_intent"]:
            return self._reply(self._general_response())

        slots = {key: value for key, value in analysis["merged"].items() if value not in (None, "")}
        self._set_booking(slots)

        if not analysis["missing_fields"] and extracted.get("is_confirmation"):
            return self._reply(self._confirm_response())
        only_rejection = extracted.get("is_rejection") and len(extracted) == 1
        if only_rejection:
            return self._reply(self._response("Sure, tell me what you would like to change.", "clarify"))

        if not self.gemini.available:
            return self._reply(self._fallback_response(analysis))

        try:
            reply = self.gemini.generate(self._build_prompt(text, before, analysis))
        except QuotaExceededError:
            logger.warning("Gemini quota exceeded, using fallback reply")
            return self._reply(self._fallback_response(analysis, quota_exceeded=True))
        except AssistantError as e:
            logger.error("Assistant reply generation failed: %s", e)
            return self._reply(self._fallback_response(analysis))

        return self._reply(self._process_model_reply(reply, extracted))

    def _build_prompt(self, text: str, before: Dict[str, Any], analysis: Dict[str, Any]) -> str:
        rooms = self.db.scalars(select(MeetingRoom).where(MeetingRoom.is_active.is_(True)).order_by(MeetingRoom.id))
        room_lines = "\n".join(
            f"- {room.name} (floor {room.floor}, capacity {room.capacity})" for room in rooms
        ) or "- none"
        history = "\n".join(
            f"{'User' if msg['role'] == 'user' else 'Assistant'}: {msg['content']}" for msg in self.history[:-1]
        ) or "(new conversation)"
        missing = analysis["missing_fields"]
        merged = analysis["merged"]
        checklist = "\n".join(
            f"- {extraction.FIELD_LABELS[field]}: "
            + (f"✅ {merged[field]}" if field not in missing else "❌ not provided")
            for field in extraction.CRITICAL_FIELDS
        )
        extracted = analysis["extracted"]
        return PROMPT_TEMPLATE.format(
            today=self.today.isoformat(),
            rooms=room_lines,
            history=history,
            accumulated=json.dumps(before, ensure_ascii=False),
            extracted=json.dumps(analysis["extracted"], ensure_ascii=False),
            merged=json.dumps(merged, ensure_ascii=False),
            confidence=round(analysis["confidence"] * 100),
            is_confirmation="yes" if extracted.get("is_confirmation") else "no",
            is_rejection="yes" if extracted.get("is_rejection") else "no",
            checklist=checklist,
            completeness=round(analysis["completeness"]),
            missing=", ".join(extraction.FIELD_LABELS[field] for field in missing) or "nothing",
            user_input=text,
        )

    def _process_model_reply(self, reply: str, extracted: Dict[str, Any]) -> Dict[str, Any]:
        parsed = extract_json(reply)
        if parsed is None or not parsed.get("message"):
            logger.warning("Could not parse assistant reply: %r", (reply or "")[:200])
            return self._response(
                "Sorry, I couldn't process that. Please try again with clearer wording.",
                "error",
                suggestions=["Start a new booking", "Show available rooms", "Help"],
            )

        cleaned = clean_booking_data(parsed.get("bookingData") or parsed.get("booking_data") or {}, self.user.display_name)
        for field in EXTRACTED_PRIORITY_FIELDS:
            if extracted.get(field):
                cleaned[field] = extracted[field]

        booking = self.current_booking
        booking.update({key: value for key, value in cleaned.items() if value not in (None, "", [], 0)})
        self._set_booking(booking)

        action = parsed.get("action")
        if action not in ACTIONS:
            action = "continue"
        if action == "complete" and extraction.missing_fields(self.current_booking):
            action = "continue"

        quick_actions = [
            item for item in parsed.get("quickActions") or parsed.get("quick_actions") or []
            if isinstance(item, dict) and item.get("action")
        ]
        suggestions = [str(item) for item in parsed.get("suggestions") or [] if item]
        return self._response(str(parsed["message"]), action, quick_actions, suggestions)

    def _general_response(self) -> Dict[str, Any]:
        return self._response(
            random.choice(GREETING_RESPONSES),
            "greeting",
            [
                {"label": "Book a room", "action": "start_booking", "type": "primary"},
                {"label": "View rooms", "action": "view_rooms", "type": "secondary"},
            ],
        )

    def _fallback_response(self, analysis: Dict[str, Any], quota_exceeded: bool = False) -> Dict[str, Any]:
        booking = self.current_booking
        if quota_exceeded:
            message = "⚠️ The AI service quota is used up, but I can still help you book a meeting room! "
        else:
            message = "Sure! I'll help you book a meeting room. "
        if booking.get("room_name"):
            message += f"Room: {booking['room_name']}. "
        if booking.get("date"):
            message += f"Date: {booking['date']}. "
        if booking.get("time"):
            message += f"Time: {booking['time']}. "

        missing = extraction.missing_fields(booking)
        if missing:
            message += "I still need: " + ", ".join(extraction.FIELD_LABELS[field] for field in missing) + "."
            quick_actions = MEETING_TYPE_QUICK_ACTIONS if missing == ["meeting_type"] else []
        else:
            message += "Everything is filled in! Do you want to continue with the booking?"
            quick_actions = FALLBACK_QUICK_ACTIONS
        return self._response(message, "continue", quick_actions, is_quota_exceeded=quota_exceeded)

    def _confirm_response(self) -> Dict[str, Any]:
        message = (
            "Great! Please check the booking details:\n\n"
            + _summary_lines(self.current_booking)
            + "\n\nPress **Confirm booking** to save it."
        )
        return self._response(
            message,
            "complete",
            [{"label": "Confirm booking", "action": "final_confirm", "type": "primary"}],
        )

    def handle_quick_action(self, action: str) -> Dict[str, Any]:
        """Handle a quick-action button. Unknown actions are processed as text."""
        if action in MEETING_TYPE_ACTIONS:
            booking = self.current_booking
            booking["meeting_type"] = MEETING_TYPE_ACTIONS[action]
            self._set_booking(booking)
            self._add_message("user", action)
            missing = extraction.missing_fields(self.current_booking)
            if not missing:
                message = (
                    "Perfect! I have everything I need:\n\n"
                    + _summary_lines(self.current_booking)
                    + "\n\nThe PIC is taken from your account. Is this correct?"
                )
                return self._reply(self._response(message, "complete", CONFIRM_QUICK_ACTIONS))
            labels = ", ".join(extraction.FIELD_LABELS[field] for field in missing)
            message = f"Okay, the meeting type is set to {booking['meeting_type']}. I still need: {labels}."
            return self._reply(self._response(message, "continue"))

        if action in CONFIRM_ACTIONS:
            self._add_message("user", action)
            missing = extraction.missing_fields(self.current_booking)
            if missing:
                labels = ", ".join(extraction.FIELD_LABELS[field] for field in missing)
                return self._reply(self._response(f"Almost there! I still need: {labels}.", "continue"))
            return self._reply(self._confirm_response())

        if action in MODIFY_ACTIONS:
            self._add_message("user", action)
            return self._reply(self._response("Sure, tell me which details you would like to change.", "clarify"))

        if action in START_ACTIONS:
            self._add_message("user", action)
            message = (
                "Let's book a room! Tell me the room, topic, date, time, number of participants "
                "and whether the meeting is internal or external."
            )
            return self._reply(self._response(message, "continue"))

        if action == "final_confirm":
            self._add_message("user", action)
            try:
                booking = self.save_booking()
            except (ValidationError, NotFoundError, ConflictError) as e:
                logger.info("Assistant booking rejected: %s", e.message)
                return self._reply(
                    self._response(f"Sorry, the booking could not be saved: {e.message}", "error", CONFIRM_QUICK_ACTIONS)
                )
            message = (
                f"✅ Your booking is confirmed! {booking.room_name} on {booking.meeting_date.isoformat()} "
                f"at {format_time(booking.start_time)}-{format_time(booking.end_time)}."
            )
            return self._reply(self._response(message, "complete", booking_id=booking.id))

        return self.process_input(action)

    def save_booking(self) -> Booking:
        """
        Persist the collected booking as an assistant booking.

        Raises:
            ValidationError: room, topic, date or time is missing
            NotFoundError: the room name does not match any room
            ConflictError: the slot is already taken
        """
        data = self.current_booking
        missing = [field for field in ("room_name", "topic", "date", "time") if not data.get(field)]
        if missing:
            raise ValidationError(
                "Missing required booking data: " + ", ".join(extraction.FIELD_LABELS[field] for field in missing)
            )

        payload = dict(data)
        payload["session_id"] = self.session_id
        booking = create_booking(self.db, self.user, payload, source=SOURCE_AI)

        self.conversation.booking_status = "booked"
        self.conversation.current_booking = {"pic": self.user.display_name}
        self._save()
        logger.info("Assistant conversation %s booked id=%s", self.session_id, booking.id)
        return booking
