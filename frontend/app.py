# app.py
from datetime import date, datetime, time, timedelta
from typing import Dict, Optional

import streamlit as st

from spacio.bookings import dedupe_bookings
from spacio.client import ApiError, SpacioClient
from spacio.config import get_settings
from spacio.history import HistoryStore, SessionCache

# Configuration
BACKEND_URL = get_settings().backend_url

st.set_page_config(
    page_title="Spacio - Meeting Room Booking",
    page_icon="🏢",
    layout="wide",
    initial_sidebar_state="expanded"
)

# Custom CSS for better styling
st.markdown("""
<style>
    .system-status {
        padding: 0.5rem;
        border-radius: 0.25rem;
        margin: 1rem 0;
        font-size: 0.9rem;
    }
    .status-healthy {
        background-color: #d4edda;
        color: #155724;
        border: 1px solid #c3e6cb;
    }
    .status-error {
        background-color: #f8d7da;
        color: #721c24;
        border: 1px solid #f5c6cb;
    }
    .badge-upcoming { color: #1565c0; font-weight: 600; }
    .badge-ongoing { color: #2e7d32; font-weight: 600; }
</style>
""", unsafe_allow_html=True)

client = SpacioClient(BACKEND_URL, st.session_state)
session = SessionCache(st.session_state)
history_store = HistoryStore(st.session_state)

PAGES = ["Dashboard", "Meeting Rooms", "Book a Room", "AI Assistant", "Reservations", "History", "Meeting Minutes", "Settings"]


def check_backend_health() -> Dict:
    """Check if the backend is available and healthy."""
    try:
        return client.health()
    except ApiError:
        return {"status": "error", "agent_available": False}


def show_error(error: ApiError) -> None:
    st.error(error.message)
    if error.status_code == 401:
        st.session_state.page = "Dashboard"
        st.rerun()


def current_user() -> Dict:
    return session.user or {}


def is_admin() -> bool:
    return current_user().get("role") == "admin"


def render_booking_line(booking: Dict) -> str:
    return (
        f"**{booking['topic']}** · {booking['room_name']} · {booking['date']} "
        f"{booking['time']}-{booking.get('end_time') or ''} · PIC {booking.get('pic') or '-'}"
    )


# Authentication
def auth_page() -> None:
    st.markdown("# 🏢 Spacio")
    st.markdown("*Meeting room booking with an AI assistant*")

    login_tab, register_tab = st.tabs(["Login", "Register"])
    with login_tab:
        with st.form("login_form"):
            email = st.text_input("Email or username")
            password = st.text_input("Password", type="password")
            if st.form_submit_button("Login", type="primary"):
                try:
                    user = client.login(email, password)
                    st.success(f"Welcome back, {user['full_name']}!")
                    st.rerun()
                except ApiError as e:
                    st.error(e.message)

    with register_tab:
        with st.form("register_form"):
            username = st.text_input("Username")
            full_name = st.text_input("Full name")
            reg_email = st.text_input("Email")
            reg_password = st.text_input("Password", type="password")
            confirm = st.text_input("Confirm password", type="password")
            if st.form_submit_button("Create account"):
                if reg_password != confirm:
                    st.error("Passwords do not match")
                else:
                    try:
                        client.register(username, reg_email, reg_password, full_name or None)
                        st.success("Registration successful. You can log in now.")
                    except ApiError as e:
                        st.error(e.message)


# Dashboard
def dashboard_page() -> None:
    user = current_user()
    st.markdown(f"# 👋 Hello, {user.get('full_name', '')}")

    try:
        client.auto_complete()
        reservations = client.reservations(mine=True)
        rooms = client.list_rooms(active_only=True)
        pending = client.pending_rispat()
    except ApiError as e:
        show_error(e)
        return

    col1, col2, col3 = st.columns(3)
    col1.metric("Upcoming reservations", len(reservations))
    col2.metric("Rooms available now", sum(1 for room in rooms if room.get("available")))
    col3.metric("Minutes to upload", len(pending))

    st.markdown("### 📅 Your next meetings")
    if not reservations:
        st.info("No upcoming meetings. Book a room or ask the AI assistant!")
    for booking in reservations[:5]:
        st.markdown(f"- {render_booking_line(booking)} · <span class='badge-{booking['status']}'>{booking['status']}</span>",
                    unsafe_allow_html=True)


# Rooms
def room_form(prefix: str, room: Optional[Dict] = None) -> Optional[Dict]:
    room = room or {}
    with st.form(f"{prefix}_room_form"):
        name = st.text_input("Name", value=room.get("name", ""))
        floor = st.text_input("Floor", value=room.get("floor", ""))
        capacity = st.number_input("Capacity", min_value=1, value=int(room.get("capacity") or 4))
        address = st.text_input("Address", value=room.get("address", ""))
        facilities = st.text_input("Facilities (comma separated)", value=", ".join(room.get("facilities", [])))
        image_url = st.text_input("Image URL", value=room.get("image_url", ""))
        if st.form_submit_button("Save room", type="primary"):
            return {
                "name": name,
                "floor": floor,
                "capacity": int(capacity),
                "address": address,
                "facilities": facilities,
                "image_url": image_url,
            }
    return None


def rooms_page() -> None:
    st.markdown("# 🏢 Meeting Rooms")
    search = st.text_input("Search by name or facility")
    try:
        rooms = client.list_rooms(search=search or None, active_only=not is_admin())
    except ApiError as e:
        show_error(e)
        return

    for room in rooms:
        status = "🟢 Available" if room.get("available") else ("⚪ Inactive" if not room["is_active"] else "🔴 In use")
        with st.expander(f"{room['name']} · floor {room['floor']} · {room['capacity']} people · {status}"):
            if room.get("image_url"):
                st.image(room["image_url"], width=320)
            st.markdown(f"**Address:** {room.get('address') or '-'}")
            st.markdown("**Facilities:** " + (", ".join(room["facilities"]) or "-"))
            if st.button("Book this room", key=f"book_{room['id']}"):
                st.session_state.selected_room_id = room["id"]
                st.session_state.page = "Book a Room"
                st.rerun()

            if is_admin():
                st.markdown("---")
                updated = room_form(f"edit_{room['id']}", room)
                if updated:
                    try:
                        client.update_room(room["id"], updated)
                        st.success("Room updated")
                        st.rerun()
                    except ApiError as e:
                        st.error(e.message)
                col1, col2 = st.columns(2)
                label = "Deactivate" if room["is_active"] else "Activate"
                if col1.button(label, key=f"status_{room['id']}"):
                    try:
                        client.set_room_status(room["id"], not room["is_active"])
                        st.rerun()
                    except ApiError as e:
                        st.error(e.message)
                if col2.button("🗑️ Delete", key=f"delete_{room['id']}"):
                    try:
                        client.delete_room(room["id"])
                        st.success("Room deleted")
                        st.rerun()
                    except ApiError as e:
                        st.error(e.message)

    if is_admin():
        st.markdown("### ➕ Add room")
        new_room = room_form("new")
        if new_room:
            try:
                client.create_room(new_room)
                st.success("Room created")
                st.rerun()
            except ApiError as e:
                st.error(e.message)


# Booking form
def booking_form_page() -> None:
    st.markdown("# 📝 Book a Room")
    try:
        rooms = client.list_rooms(active_only=True)
    except ApiError as e:
        show_error(e)
        return
    if not rooms:
        st.warning("No active rooms available.")
        return

    room_ids = [room["id"] for room in rooms]
    selected = st.session_state.get("selected_room_id")
    index = room_ids.index(selected) if selected in room_ids else 0

    with st.form("booking_form"):
        room = st.selectbox("Room", rooms, index=index,
                            format_func=lambda r: f"{r['name']} ({r['capacity']} people)")
        topic = st.text_input("Meeting topic")
        meeting_date = st.date_input("Date", value=date.today(), min_value=date.today())
        col1, col2 = st.columns(2)
        start = col1.time_input("Start", value=time(9, 0), step=timedelta(minutes=15))
        end = col2.time_input("End", value=time(10, 0), step=timedelta(minutes=15))
        participants = st.number_input("Participants", min_value=1, value=1)
        pic = st.text_input("PIC", value=current_user().get("full_name", ""))
        meeting_type = st.radio("Meeting type", ["internal", "external"], horizontal=True)
        facilities = st.multiselect("Facilities needed", room.get("facilities", []))
        requires_rispat = st.checkbox("Meeting minutes (rispat) required")
        submitted = st.form_submit_button("Book room", type="primary")

    if submitted:
        payload = {
            "room_id": room["id"],
            "topic": topic,
            "date": meeting_date.isoformat(),
            "time": start.strftime("%H:%M"),
            "end_time": end.strftime("%H:%M"),
            "participants": int(participants),
            "pic": pic,
            "meeting_type": meeting_type,
            "facilities": facilities,
            "requires_rispat": requires_rispat,
        }
        try:
            booking = client.create_booking(payload)
            st.success(f"✅ Booked {booking['room_name']} on {booking['date']} at {booking['time']}")
            st.session_state.pop("selected_room_id", None)
        except ApiError as e:
            st.error(e.message)
            if e.status_code == 409 and e.data:
                for conflict in e.data.get("conflicts", []):
                    st.caption(f"Taken: {conflict['topic']} {conflict['time']}-{conflict['end_time']}")


# AI assistant
def send_to_assistant(message: Optional[str] = None, action: Optional[str] = None) -> None:
    session_id = st.session_state.get("assistant_session")
    try:
        if action:
            result = client.assistant_quick_action(action, session_id)
        else:
            result = client.assistant_chat(message, session_id)
    except ApiError as e:
        result = {"message": e.message, "action": "error", "quick_actions": []}
    st.session_state.assistant_session = result.get("session_id", session_id)
    st.session_state.assistant_messages.append({"role": "assistant", "content": result["message"]})
    st.session_state.assistant_last = result


def assistant_page() -> None:
    st.markdown("# 🤖 AI Booking Assistant")

    if "assistant_messages" not in st.session_state:
        try:
            greeting = client.assistant_greeting()
        except ApiError:
            greeting = {"message": "Hello! I'm your meeting room booking assistant.", "agent_available": False}
        st.session_state.assistant_messages = [{"role": "assistant", "content": greeting["message"]}]
        st.session_state.assistant_available = greeting.get("agent_available", False)

    if not st.session_state.get("assistant_available"):
        st.markdown(
            '<div class="system-status status-error">⚠️ AI service not configured - using basic replies</div>',
            unsafe_allow_html=True
        )

    for message in st.session_state.assistant_messages:
        avatar = "🤖" if message["role"] == "assistant" else "👤"
        st.chat_message(message["role"], avatar=avatar).write(message["content"])

    last = st.session_state.get("assistant_last") or {}
    if last.get("is_quota_exceeded"):
        st.warning("The AI quota is used up; replies are generated without the AI model for now.")
    if last.get("missing_fields") and last.get("action") != "greeting":
        st.progress(int(last.get("completeness", 0)), text=f"Booking details {int(last.get('completeness', 0))}% complete")

    quick_actions = last.get("quick_actions") or []
    if quick_actions:
        columns = st.columns(len(quick_actions))
        for column, quick in zip(columns, quick_actions):
            kind = "primary" if quick.get("type") == "primary" else "secondary"
            if column.button(quick["label"], key=f"qa_{quick['action']}", type=kind):
                if quick["action"] == "view_rooms":
                    st.session_state.page = "Meeting Rooms"
                else:
                    st.session_state.assistant_messages.append({"role": "user", "content": quick["label"]})
                    with st.spinner("Thinking..."):
                        send_to_assistant(action=quick["action"])
                st.rerun()

    for suggestion in last.get("suggestions") or []:
        st.caption(f"💡 {suggestion}")

    if prompt := st.chat_input("Describe the meeting you want to book..."):
        st.session_state.assistant_messages.append({"role": "user", "content": prompt})
        with st.spinner("Thinking..."):
            send_to_assistant(message=prompt)
        st.rerun()

    with st.sidebar:
        if st.button("🗑️ New conversation"):
            session_id = st.session_state.get("assistant_session")
            if session_id:
                try:
                    client.reset_conversation(session_id)
                except ApiError as e:
                    st.error(e.message)
            for key in ("assistant_messages", "assistant_session", "assistant_last"):
                st.session_state.pop(key, None)
            st.rerun()


# Reservations
def record_history(booking: Dict, status: str) -> None:
    history_store.add_history(dict(booking, status=status))


def reservations_page() -> None:
    st.markdown("# 📋 Reservations")
    user = current_user()
    search = st.text_input("Search by topic or room")
    try:
        client.auto_complete()
        bookings = client.reservations(search=search)
    except ApiError as e:
        show_error(e)
        return

    if not bookings:
        st.info("No upcoming reservations.")
    for booking in bookings:
        own = booking["user_id"] == user.get("id")
        badge = "🟢 Ongoing" if booking["status"] == "ongoing" else "🔵 Upcoming"
        source = "🤖" if booking["source"] == "ai" else "📝"
        with st.expander(f"{source} {badge} · {booking['topic']} · {booking['room_name']} · {booking['date']} {booking['time']}"):
            st.markdown(render_booking_line(booking))
            st.markdown(f"Participants: {booking['participants']} · Type: {booking['meeting_type']}")
            if own or is_admin():
                reason = st.text_input("Cancellation reason", key=f"reason_{booking['id']}")
                col1, col2 = st.columns(2)
                if col1.button("Cancel booking", key=f"cancel_{booking['id']}"):
                    try:
                        cancelled = client.cancel_booking(booking["id"], reason or None)
                        record_history(cancelled, "CANCELLED")
                        st.rerun()
                    except ApiError as e:
                        st.error(e.message)
                if col2.button("Mark completed", key=f"complete_{booking['id']}"):
                    try:
                        completed = client.complete_booking(booking["id"])
                        record_history(completed, "COMPLETED")
                        st.rerun()
                    except ApiError as e:
                        st.error(e.message)
            else:
                reason = st.text_input("Why do you need this slot?", key=f"request_{booking['id']}")
                if st.button("Ask owner to cancel", key=f"ask_{booking['id']}"):
                    try:
                        client.create_cancel_request(booking["id"], booking["user_name"], reason, booking["source"])
                        st.success("Cancel request sent to the owner")
                    except ApiError as e:
                        st.error(e.message)

    cancel_requests_section()


def cancel_requests_section() -> None:
    name = current_user().get("full_name", "")
    st.markdown("### ✉️ Cancel requests")
    try:
        incoming = client.list_cancel_requests(owner=name)
        outgoing = client.list_cancel_requests(requester=name)
    except ApiError as e:
        show_error(e)
        return

    for request in incoming:
        st.markdown(f"**{request['requester_name']}** asks you to cancel *{request['booking_topic']}* "
                    f"({request['meeting_date']}): {request['reason']}")
        col1, col2 = st.columns(2)
        answer = None
        if col1.button("Approve", key=f"approve_{request['id']}"):
            answer = "approved"
        if col2.button("Reject", key=f"reject_{request['id']}"):
            answer = "rejected"
        if answer:
            try:
                client.respond_cancel_request(request["id"], answer)
                st.rerun()
            except ApiError as e:
                st.error(e.message)
    for request in outgoing:
        st.caption(f"Your request for '{request['booking_topic']}' is {request['status']}")
    if not incoming and not outgoing:
        st.caption("No cancel requests.")


# History
def history_page() -> None:
    st.markdown("# 🕘 History")
    try:
        server = [
            booking for booking in client.list_bookings(mine=True, include_completed=True)
            if booking["booking_state"] != "BOOKED"
        ]
    except ApiError as e:
        show_error(e)
        server = []

    for booking in server:
        record_history(booking, booking["booking_state"])
    entries = dedupe_bookings(history_store.get_history())

    status_filter = st.selectbox("Status", ["All", "COMPLETED", "CANCELLED", "EXPIRED"])
    if status_filter != "All":
        entries = [entry for entry in entries if entry["status"] == status_filter]
    if not entries:
        st.info("No booking history yet.")
    for entry in entries:
        icon = "✅" if entry["status"] == "COMPLETED" else "❌" if entry["status"] == "CANCELLED" else "⌛"
        line = f"{icon} {render_booking_line(entry)}"
        if entry.get("cancel_reason"):
            line += f" · reason: {entry['cancel_reason']}"
        st.markdown(line)


# Meeting minutes
def rispat_page() -> None:
    st.markdown("# 📎 Meeting Minutes")
    try:
        pending = client.pending_rispat()
    except ApiError as e:
        show_error(e)
        return

    if not pending:
        st.success("All required meeting minutes are uploaded.")
    for booking in pending:
        with st.expander(f"{booking['topic']} · {booking['room_name']} · {booking['date']}"):
            upload = st.file_uploader("Upload minutes (PDF, Word, JPG/PNG, max 10MB)",
                                      type=["pdf", "doc", "docx", "jpg", "jpeg", "png"], key=f"file_{booking['id']}")
            if upload is not None and st.button("Upload", key=f"upload_{booking['id']}"):
                try:
                    client.upload_rispat(booking["id"], upload.name, upload.getvalue(), upload.type,
                                         current_user().get("full_name", ""))
                    st.success("Meeting minutes uploaded")
                    st.rerun()
                except ApiError as e:
                    st.error(e.message)

    st.markdown("### Uploaded minutes")
    booking_id = st.number_input("Booking ID", min_value=1, step=1)
    if st.button("Show files"):
        try:
            for item in client.list_rispat(int(booking_id)):
                data = client.download_rispat(item["id"])
                st.download_button(f"⬇️ {item['original_name']}", data, file_name=item["original_name"],
                                   mime=item["mime_type"], key=f"dl_{item['id']}")
        except ApiError as e:
            st.error(e.message)


# Settings
def settings_page() -> None:
    st.markdown("# ⚙️ Settings")
    user = current_user()
    st.markdown(f"**Name:** {user.get('full_name')}  \n**Email:** {user.get('email')}  \n**Role:** {user.get('role')}")

    with st.form("password_form"):
        current = st.text_input("Current password", type="password")
        new = st.text_input("New password", type="password")
        if st.form_submit_button("Change password"):
            try:
                client.change_password(current, new)
                st.success("Password changed")
            except ApiError as e:
                st.error(e.message)

    if is_admin():
        st.markdown("### 🧹 Maintenance")
        if st.button("Clean up old AI bookings"):
            try:
                st.success(f"Removed {client.cleanup_ai_bookings()} old AI bookings")
            except ApiError as e:
                st.error(e.message)
        if st.button("Run diagnostics"):
            try:
                st.json(client.diagnostics())
            except ApiError as e:
                st.error(e.message)


# Initialize session state
if "backend_status" not in st.session_state:
    st.session_state.backend_status = check_backend_health()

if not session.is_authenticated:
    auth_page()
    st.stop()

with st.sidebar:
    st.markdown("### 🏢 Spacio")
    st.caption(f"Logged in as {current_user().get('full_name')}")
    page = st.radio("Navigate", PAGES, index=PAGES.index(st.session_state.get("page", "Dashboard")))
    st.session_state.page = page

    status = st.session_state.backend_status
    if status.get("status") == "healthy":
        st.markdown('<div class="system-status status-healthy">✅ Backend connected</div>', unsafe_allow_html=True)
    else:
        st.markdown('<div class="system-status status-error">⚠️ Backend unavailable</div>', unsafe_allow_html=True)
    if st.button("🔄 Refresh Status"):
        st.session_state.backend_status = check_backend_health()
        st.rerun()

    try:
        server_time = client.server_time()
        st.caption(f"🕒 {server_time['date']} {server_time['time'][:5]} WIB")
    except ApiError:
        st.caption(f"🕒 {datetime.now():%Y-%m-%d %H:%M}")

    if st.button("Logout"):
        client.logout()
        st.session_state.clear()
        st.rerun()

{
    "Dashboard": dashboard_page,
    "Meeting Rooms": rooms_page,
    "Book a Room": booking_form_page,
    "AI Assistant": assistant_page,
    "Reservations": reservations_page,
    "History": history_page,
    "Meeting Minutes": rispat_page,
    "Settings": settings_page,
}[page]()
