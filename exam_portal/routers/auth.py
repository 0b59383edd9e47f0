"""Account signup, login and logout."""

import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from exam_portal.auth_utils import hash_password, verify_password
from exam_portal.database import get_session
from exam_portal.deps import require_login
from exam_portal.errors import NotFoundError, ValidationError
from exam_portal.models import User
from exam_portal.services.identity_service import AccountCreated, mint_claim, on_account_created
from exam_portal.services.policy import Principal
from exam_portal.utils import normalize_email

logger = logging.getLogger(__name__)

router = APIRouter()


class SignupIn(BaseModel):
    email: str = Field(max_length=255)
    password: str = Field(min_length=8, max_length=72)
    full_name: Optional[str] = Field(default=None, max_length=200)
    role: Optional[str] = None


class LoginIn(BaseModel):
    email: str
    password: str


def _start_session(request: Request, session: Session, user_id: int) -> str:
    role = mint_claim(session, user_id)
    request.session.clear()
    request.session["user_id"] = user_id
    request.session["role"] = role
    return role


@router.post("/signup", status_code=status.HTTP_201_CREATED)
def signup(request: Request, payload: SignupIn = Body(...), session: Session = Depends(get_session)):
    email = normalize_email(payload.email)

    # Flushed only: on_account_created commits the account with its profile and role
    user = User(email=email, password_hash=hash_password(payload.password))
    session.add(user)
    try:
        session.flush()
    except IntegrityError:
        session.rollback()
        raise ValidationError("This email is already registered", field="email")

    profile = on_account_created(
        session,
        AccountCreated(
            user_id=user.id,
            email=email,
            requested_role=payload.role,
            full_name=payload.full_name,
        ),
    )
    role = _start_session(request, session, user.id)
    return {"user_id": user.id, "full_name": profile.full_name, "role": role}


@router.post("/login")
def login(request: Request, payload: LoginIn = Body(...), session: Session = Depends(get_session)):
    email = payload.email.strip().lower()
    user = session.exec(select(User).where(User.email == email)).first()
    if not user or not user.is_active or not verify_password(payload.password, user.password_hash):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid email or password")

    try:
        role = _start_session(request, session, user.id)
    except NotFoundError:
        # An account without any role cannot be authorized
        logger.warning("Login refused for user %s: no role assigned", user.id)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid email or password")
    return {"user_id": user.id, "role": role}


@router.post("/logout")
def logout(request: Request):
    request.session.clear()
    return {"status": "logged_out"}


@router.get("/me")
def me(principal: Principal = Depends(require_login)):
    return {"user_id": principal.user_id, "role": principal.role}
