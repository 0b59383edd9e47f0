"""Shared FastAPI dependencies for database access and authentication."""

from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from sqlmodel import Session

from exam_portal.database import get_session
from exam_portal.errors import NotFoundError
from exam_portal.models import User
from exam_portal.services.identity_service import resolve_effective_role
from exam_portal.services.policy import Principal


def get_current_principal(
    request: Request, session: Session = Depends(get_session)
) -> Optional[Principal]:
    """Return the logged-in principal from the session cookie, if any.

    The role comes from the claim minted into the session at login; a session
    without one resolves the role from the role table.
    """
    user_id = request.session.get("user_id")
    if not user_id:
        return None

    user = session.get(User, user_id)
    if not user or not user.is_active:
        # Clear any stale session
        request.session.clear()
        return None

    try:
        role = resolve_effective_role(session, user_id, claim=request.session.get("role"))
    except NotFoundError:
        request.session.clear()
        return None
    return Principal(user_id=user_id, role=role)


def require_login(principal: Optional[Principal] = Depends(get_current_principal)) -> Principal:
    """Ensure that a user is logged in."""
    if principal is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return principal
