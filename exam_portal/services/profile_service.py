"""Reading and editing identity profiles."""

from datetime import datetime
from typing import Optional

from sqlmodel import Session, select

from exam_portal.errors import AuthorizationError, NotFoundError, ValidationError
from exam_portal.models import Profile
from exam_portal.roles import Role, is_elevated
from exam_portal.services.policy import Action, Principal, Resource, enforce
from exam_portal.utils import sanitize_name


def get_profile(session: Session, principal: Principal, user_id: Optional[int] = None) -> Profile:
    user_id = user_id if user_id is not None else principal.user_id
    enforce(principal, Action.READ_PROFILE, Resource("profile", owner_id=user_id))
    profile = session.exec(select(Profile).where(Profile.user_id == user_id)).first()
    if profile is None:
        if is_elevated(principal.role) or user_id == principal.user_id:
            raise NotFoundError("Profile", user_id)
        raise AuthorizationError()
    return profile


def update_profile(
    session: Session,
    principal: Principal,
    full_name: Optional[str] = None,
    student_number: Optional[str] = None,
    class_name: Optional[str] = None,
) -> Profile:
    """Update the principal's own profile.

    ``student_number`` and ``class_name`` only apply to students.
    """
    enforce(principal, Action.UPDATE_PROFILE, Resource("profile", owner_id=principal.user_id))
    profile = get_profile(session, principal)

    if full_name is not None:
        cleaned = sanitize_name(full_name)
        if not cleaned:
            raise ValidationError("Full name cannot be empty", field="full_name")
        profile.full_name = cleaned

    if student_number is not None or class_name is not None:
        if principal.role != Role.STUDENT.value:
            raise ValidationError("Only students have a student number and class", field="student_number")
        if student_number is not None:
            profile.student_number = sanitize_name(student_number) or None
        if class_name is not None:
            profile.class_name = sanitize_name(class_name) or None

    profile.updated_at = datetime.utcnow()
    session.add(profile)
    session.commit()
    session.refresh(profile)
    return profile
