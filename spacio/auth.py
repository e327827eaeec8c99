import logging
import re
import secrets
from datetime import timedelta
from typing import Dict, Optional, Tuple

import bcrypt
from fastapi import Depends, Header
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from spacio.config import get_settings
from spacio.database import get_db
from spacio.exceptions import (
    AuthenticationError,
    ConflictError,
    PermissionDeniedError,
    ValidationError,
)
from spacio.models import User, UserSession, utcnow


logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MIN_PASSWORD_LENGTH = 6


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def user_to_dict(user: User) -> Dict:
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "full_name": user.full_name or user.username,
        "role": user.role,
    }


def register(
    db: Session,
    username: str,
    email: str,
    password: str,
    full_name: Optional[str] = None,
    role: str = "user",
) -> User:
    """Create a new account. Usernames and emails are unique."""
    username = (username or "").strip()
    email = (email or "").strip().lower()
    if not username:
        raise ValidationError("Username is required")
    if not EMAIL_RE.match(email):
        raise ValidationError("A valid email address is required")
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

    existing = db.scalar(select(User).where(or_(User.username == username, User.email == email)))
    if existing is not None:
        raise ConflictError("Username or email is already registered")

    user = User(
        username=username,
        email=email,
        full_name=(full_name or "").strip() or username,
        password_hash=hash_password(password),
        role=role,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Registered user id=%s role=%s", user.id, user.role)
    return user


def login(db: Session, identifier: str, password: str) -> Tuple[str, User]:
    """Authenticate by email or username and open a session."""
    identifier = (identifier or "").strip()
    user = db.scalar(
        select(User).where(or_(User.email == identifier.lower(), User.username == identifier))
    )
    if user is None or not verify_password(password or "", user.password_hash):
        raise AuthenticationError("Invalid email or password")

    settings = get_settings()
    session = UserSession(
        token=secrets.token_hex(32),
        user_id=user.id,
        expires_at=utcnow() + timedelta(hours=settings.session_ttl_hours),
    )
    db.add(session)
    db.commit()
    logger.info("User id=%s logged in", user.id)
    return session.token, user


def validate_session(db: Session, token: Optional[str]) -> Optional[User]:
    """Return the user owning a live session token; expired sessions are removed."""
    if not token:
        return None
    session = db.scalar(select(UserSession).where(UserSession.token == token))
    if session is None:
        return None
    if session.expires_at <= utcnow():
        db.delete(session)
        db.commit()
        return None
    return session.user


def logout(db: Session, token: str) -> bool:
    session = db.scalar(select(UserSession).where(UserSession.token == token))
    if session is None:
        return False
    db.delete(session)
    db.commit()
    return True


def change_password(db: Session, user: User, current_password: str, new_password: str) -> None:
    if not verify_password(current_password or "", user.password_hash):
        raise AuthenticationError("Current password is incorrect")
    if len(new_password or "") < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    user.password_hash = hash_password(new_password)
    db.commit()


def ensure_admin_account(db: Session, email: str, password: str) -> User:
    """Create the bootstrap admin if it does not exist yet."""
    user = db.scalar(select(User).where(User.email == email.lower()))
    if user is not None:
        if user.role != "admin":
            user.role = "admin"
            db.commit()
        return user
    username = email.split("@", 1)[0]
    logger.info("Creating bootstrap admin account")
    return register(db, username, email, password, full_name="Administrator", role="admin")


def extract_token(authorization: Optional[str]) -> Optional[str]:
    """Strip the optional ``Bearer`` prefix from an Authorization header."""
    if not authorization:
        return None
    token = authorization.strip()
    if token.lower().startswith("bearer "):
        token = token[7:].strip()
    return token or None


def require_user(
    authorization: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
) -> User:
    token = extract_token(authorization)
    if not token:
        raise AuthenticationError("Authentication required")
    user = validate_session(db, token)
    if user is None:
        raise AuthenticationError("Invalid or expired session")
    return user


def require_admin(user: User = Depends(require_user)) -> User:
    if user.role != "admin":
        raise PermissionDeniedError("Admin access required")
    return user


def ensure_owner_or_admin(booking, user: User) -> None:
    """Only the booking's owner or an admin may change it or its attachments."""
    if booking.user_id != user.id and user.role != "admin":
        raise PermissionDeniedError("Only the booking owner can change this booking")
