from functools import lru_cache

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from spacio import booking_assistant
from spacio.auth import require_user
from spacio.booking_assistant import BookingAssistant
from spacio.bookings import booking_to_dict
from spacio.database import get_db
from spacio.gemini_client import GeminiClient
from spacio.models import User
from spacio.schemas import ChatMessage, ConfirmRequest, QuickActionRequest, envelope


router = APIRouter(prefix="/api/assistant", tags=["assistant"])


@lru_cache(maxsize=1)
def get_gemini_client() -> GeminiClient:
    return GeminiClient()


@router.get("/greeting")
def greeting(gemini: GeminiClient = Depends(get_gemini_client)):
    return envelope({"message": BookingAssistant.get_greeting(), "agent_available": gemini.available})


@router.post("/chat")
def chat(
    body: ChatMessage,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
    gemini: GeminiClient = Depends(get_gemini_client),
):
    """Main chat endpoint for conversational booking."""
    assistant = BookingAssistant(db, user, session_id=body.session_id, gemini=gemini)
    return envelope(assistant.process_input(body.message))


@router.post("/quick-action")
def quick_action(
    body: QuickActionRequest,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
    gemini: GeminiClient = Depends(get_gemini_client),
):
    assistant = BookingAssistant(db, user, session_id=body.session_id, gemini=gemini)
    return envelope(assistant.handle_quick_action(body.action))


@router.post("/confirm")
def confirm(
    body: ConfirmRequest,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
    gemini: GeminiClient = Depends(get_gemini_client),
):
    booking_assistant.get_conversation(db, user, body.session_id)
    assistant = BookingAssistant(db, user, session_id=body.session_id, gemini=gemini)
    booking = assistant.save_booking()
    return envelope(booking_to_dict(booking), "Booking created")


@router.get("/conversations")
def list_conversations(user: User = Depends(require_user), db: Session = Depends(get_db)):
    items = booking_assistant.list_conversations(db, user)
    return envelope([booking_assistant.conversation_to_dict(item) for item in items])


@router.get("/conversations/{session_id}")
def get_conversation(session_id: str, user: User = Depends(require_user), db: Session = Depends(get_db)):
    conversation = booking_assistant.get_conversation(db, user, session_id)
    return envelope(booking_assistant.conversation_to_dict(conversation))


@router.delete("/conversations/{session_id}")
def reset_conversation(session_id: str, user: User = Depends(require_user), db: Session = Depends(get_db)):
    booking_assistant.reset_conversation(db, user, session_id)
    return envelope({"session_id": session_id}, "Conversation reset")
