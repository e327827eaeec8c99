import re
from datetime import date, timedelta
from typing import Any, Dict, Iterable, List, Optional


# Slots the assistant must fill before it can offer to book. PIC is taken from the account.
CRITICAL_FIELDS = ("room_name", "topic", "date", "time", "participants", "meeting_type")

FIELD_LABELS = {
    "room_name": "room",
    "topic": "meeting topic",
    "date": "date",
    "time": "time",
    "participants": "number of participants",
    "meeting_type": "meeting type (internal/external)",
}

CONFIRMATION_WORDS = ("ya", "iya", "benar", "betul", "setuju", "ok", "oke", "okay", "yes", "sure")
REJECTION_WORDS = ("tidak", "bukan", "salah", "ubah", "koreksi", "no", "wrong", "change")
GREETING_WORDS = ("halo", "hai", "hi", "hello", "hey", "selamat pagi", "selamat siang", "selamat sore",
                  "good morning", "good afternoon")
BOOKING_KEYWORDS = ("pesan", "booking", "book", "reservasi", "reserve", "ruang", "room", "meeting", "rapat")

PARTICIPANTS_RE = re.compile(r"(\d+)\s*(?:orang|peserta|people|persons?|pax|participants?|attendees)\b", re.I)
TOPIC_RE = re.compile(
    r"\b(?:topik(?:nya)?|tema(?:\s+rapat)?|topic|agenda|about)\b\s*[:\-]?\s*([^,.;\n]+)", re.I
)
ISO_DATE_RE = re.compile(r"\b(\d{4})-(\d{2})-(\d{2})\b")
DMY_DATE_RE = re.compile(r"\b(\d{1,2})/(\d{1,2})/(\d{4})\b")

_CLOCK = r"(\d{1,2})(?:[:.](\d{2}))?\s*(am|pm)?"
TIME_RANGE_RE = re.compile(
    r"\b(?:jam|pukul|at|from|dari)?\s*" + _CLOCK
    + r"\s*(?:-|–|to|until|till|sampai|hingga|s/d)\s*(?:jam|pukul)?\s*" + _CLOCK + r"\b",
    re.I,
)
TIME_PATTERNS = (
    re.compile(r"\b(?:jam|pukul|at)\s*" + _CLOCK + r"\b", re.I),
    re.compile(r"\b(\d{1,2}):(\d{2})\s*(am|pm)?", re.I),
    re.compile(r"\b(\d{1,2})\.(\d{2})\b\s*(am|pm)?", re.I),
    re.compile(r"\b(\d{1,2})()\s*(am|pm)\b", re.I),
)


def _contains_word(text: str, words: Iterable[str]) -> bool:
    return any(re.search(r"\b" + re.escape(word) + r"\b", text) for word in words)


def is_confirmation(text: str) -> bool:
    return _contains_word(text.lower(), CONFIRMATION_WORDS)


def is_rejection(text: str) -> bool:
    return _contains_word(text.lower(), REJECTION_WORDS)


def is_greeting(text: str) -> bool:
    return _contains_word(text.lower(), GREETING_WORDS)


def has_booking_keywords(text: str) -> bool:
    return _contains_word(text.lower(), BOOKING_KEYWORDS)


def _clock(hour: str, minute: Optional[str], meridiem: Optional[str]) -> Optional[str]:
    h = int(hour)
    m = int(minute) if minute else 0
    if meridiem:
        meridiem = meridiem.lower()
        if not 1 <= h <= 12:
            return None
        if meridiem == "pm" and h != 12:
            h += 12
        elif meridiem == "am" and h == 12:
            h = 0
    if h > 23 or m > 59:
        return None
    return f"{h:02d}:{m:02d}"


def extract_room(text: str, room_names: Iterable[str]) -> Optional[str]:
    """Match a known room by its full name or by its first word (``nusanipa``)."""
    lower = text.lower()
    for name in room_names:
        full = name.lower()
        short = full.split()[0] if full.split() else full
        if full in lower or (len(short) > 3 and re.search(r"\b" + re.escape(short) + r"\b", lower)):
            return name
    return None


def extract_date(text: str, today: date) -> Optional[str]:
    lower = text.lower()
    if "hari ini" in lower or re.search(r"\btoday\b", lower):
        return today.isoformat()
    if "lusa" in lower or "day after tomorrow" in lower:
        return (today + timedelta(days=2)).isoformat()
    if re.search(r"\b(?:besok|tomorrow)\b", lower):
        return (today + timedelta(days=1)).isoformat()

    match = ISO_DATE_RE.search(text)
    if match:
        try:
            return date(int(match.group(1)), int(match.group(2)), int(match.group(3))).isoformat()
        except ValueError:
            return None
    match = DMY_DATE_RE.search(text)
    if match:
        try:
            return date(int(match.group(3)), int(match.group(2)), int(match.group(1))).isoformat()
        except ValueError:
            return None
    return None


def extract_times(text: str) -> Dict[str, str]:
    """Start time and, when the user gave a range, the end time."""
    # dates would otherwise read as clock times
    cleaned = DMY_DATE_RE.sub(" ", ISO_DATE_RE.sub(" ", text))

    match = TIME_RANGE_RE.search(cleaned)
    if match:
        start = _clock(match.group(1), match.group(2), match.group(3) or match.group(6))
        end = _clock(match.group(4), match.group(5), match.group(6))
        if start and end and (match.group(2) or match.group(5) or match.group(3) or match.group(6)
                              or re.search(r"\b(?:jam|pukul|at|from|dari)\b", match.group(0), re.I)):
            return {"time": start, "end_time": end}

    for pattern in TIME_PATTERNS:
        match = pattern.search(cleaned)
        if match:
            start = _clock(match.group(1), match.group(2) or None, match.group(3))
            if start:
                return {"time": start}
    return {}


def extract_meeting_type(text: str) -> Optional[str]:
    lower = text.lower()
    if _contains_word(lower, ("internal", "dalam")):
        return "internal"
    if _contains_word(lower, ("external", "eksternal", "luar")):
        return "external"
    return None


def extract_fields(text: str, room_names: Iterable[str], today: date) -> Dict[str, Any]:
    """
    Deterministic slot extraction from one utterance.

    Returns any of: room_name, topic, participants, meeting_type, date, time,
    end_time, is_confirmation, is_rejection.
    """
    out: Dict[str, Any] = {}

    if is_confirmation(text):
        out["is_confirmation"] = True
    elif is_rejection(text):
        out["is_rejection"] = True

    room = extract_room(text, room_names)
    if room:
        out["room_name"] = room

    match = PARTICIPANTS_RE.search(text)
    if match:
        out["participants"] = int(match.group(1))

    match = TOPIC_RE.search(text)
    if match and match.group(1).strip():
        out["topic"] = match.group(1).strip()

    meeting_type = extract_meeting_type(text)
    if meeting_type:
        out["meeting_type"] = meeting_type

    meeting_date = extract_date(text, today)
    if meeting_date:
        out["date"] = meeting_date

    out.update(extract_times(text))
    return out


def _filled(value: Any) -> bool:
    return value not in (None, "", 0)


def missing_fields(data: Dict[str, Any]) -> List[str]:
    return [field for field in CRITICAL_FIELDS if not _filled(data.get(field))]


def analyze(
    text: str,
    current_booking: Dict[str, Any],
    room_names: Iterable[str],
    today: date,
) -> Dict[str, Any]:
    """
    Combine what this utterance says with the slots gathered so far.

    Returns:
        Dictionary with extracted, merged, missing_fields, confidence,
        completeness (percent of critical fields filled in merged data),
        has_booking_intent
    """
    extracted = extract_fields(text, room_names, today)
    slots = {key: value for key, value in extracted.items() if key in CRITICAL_FIELDS or key == "end_time"}

    found = [field for field in CRITICAL_FIELDS if _filled(slots.get(field))]
    confidence = len(found) / len(CRITICAL_FIELDS)
    if len(found) >= 5:
        confidence = max(confidence, 0.9)
    elif len(found) >= 4:
        confidence = max(confidence, 0.8)
    else:
        confidence = max(confidence, 0.7)

    merged = dict(current_booking)
    merged.update({key: value for key, value in slots.items() if _filled(value)})
    missing = missing_fields(merged)
    completeness = (len(CRITICAL_FIELDS) - len(missing)) / len(CRITICAL_FIELDS) * 100

    in_progress = any(_filled(current_booking.get(field)) for field in CRITICAL_FIELDS)
    has_intent = bool(slots) or has_booking_keywords(text) or in_progress

    return {
        "extracted": extracted,
        "merged": merged,
        "missing_fields": missing,
        "confidence": confidence,
        "completeness": completeness,
        "has_booking_intent": has_intent,
    }
