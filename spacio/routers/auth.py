from typing import Optional

from fastapi import APIRouter, Depends, Header
from sqlalchemy.orm import Session

from spacio import auth
from spacio.database import get_db
from spacio.models import User
from spacio.schemas import ChangePasswordRequest, LoginRequest, RegisterRequest, envelope


router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/register")
def register(body: RegisterRequest, db: Session = Depends(get_db)):
    user = auth.register(db, body.username, body.email, body.password, full_name=body.full_name)
    return envelope(auth.user_to_dict(user), "Registration successful")


@router.post("/login")
def login(body: LoginRequest, db: Session = Depends(get_db)):
    token, user = auth.login(db, body.email, body.password)
    return envelope({"session_token": token, "user": auth.user_to_dict(user)}, "Login successful")


@router.post("/logout")
def logout(authorization: Optional[str] = Header(default=None), db: Session = Depends(get_db)):
    token = auth.extract_token(authorization)
    if token:
        auth.logout(db, token)
    return envelope(None, "Logged out")


@router.get("/me")
def me(user: User = Depends(auth.require_user)):
    return envelope(auth.user_to_dict(user))


@router.post("/change-password")
def change_password(
    body: ChangePasswordRequest,
    user: User = Depends(auth.require_user),
    db: Session = Depends(get_db),
):
    auth.change_password(db, user, body.current_password, body.new_password)
    return envelope(None, "Password changed")
