"""Own-profile endpoints."""

from typing import Optional

from fastapi import APIRouter, Body, Depends
from pydantic import BaseModel, Field
from sqlmodel import Session

from exam_portal.database import get_session
from exam_portal.deps import require_login
from exam_portal.models import Profile
from exam_portal.services.policy import Principal
from exam_portal.services.profile_service import get_profile, update_profile

router = APIRouter()


class ProfileUpdateIn(BaseModel):
    full_name: Optional[str] = Field(default=None, max_length=200)
    student_number: Optional[str] = Field(default=None, max_length=50)
    class_name: Optional[str] = Field(default=None, max_length=100)


def _profile_out(profile: Profile, role: str) -> dict:
    return {
        "user_id": profile.user_id,
        "full_name": profile.full_name,
        "email": profile.email,
        "student_number": profile.student_number,
        "class_name": profile.class_name,
        "role": role,
    }


@router.get("")
def api_get_profile(
    session: Session = Depends(get_session),
    principal: Principal = Depends(require_login),
):
    return _profile_out(get_profile(session, principal), principal.role)


@router.patch("")
def api_update_profile(
    payload: ProfileUpdateIn = Body(...),
    session: Session = Depends(get_session),
    principal: Principal = Depends(require_login),
):
    profile = update_profile(
        session,
        principal,
        full_name=payload.full_name,
        student_number=payload.student_number,
        class_name=payload.class_name,
    )
    return _profile_out(profile, principal.role)
