"""Identity resolution: profiles, the role table and the cached identity claim.

The role table (``UserRole``) is the source of truth. ``IdentityClaim`` is a
denormalized copy of each user's effective role that gets minted into the
session cookie at login, so ordinary requests can authorize without touching
the role table. Every role write re-synchronizes the claim in the same request.

Reads of ``UserRole`` made here are privileged: they run outside the policy
engine on purpose, since the policy engine needs their answer as input.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from exam_portal.errors import ConsistencyError, NotFoundError, ValidationError
from exam_portal.models import IdentityClaim, Profile, User, UserRole
from exam_portal.roles import DEFAULT_ROLE, is_valid_role, most_privileged
from exam_portal.services.policy import Action, Principal, Resource, enforce
from exam_portal.utils import sanitize_name

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccountCreated:
    """Event emitted by account signup."""

    user_id: int
    email: str
    requested_role: Optional[str] = None
    full_name: Optional[str] = None


def _dialect_insert(session: Session, model):
    """INSERT supporting ON CONFLICT for the session's database."""
    if session.get_bind().dialect.name == "postgresql":
        return postgresql.insert(model)
    return sqlite.insert(model)


def _upsert_profile(session: Session, user_id: int, full_name: str, email: str) -> None:
    """Insert the profile; if one exists for user_id, overwrite name and email."""
    now = datetime.utcnow()
    stmt = _dialect_insert(session, Profile).values(
        user_id=user_id,
        full_name=full_name,
        email=email,
        claim_stale=False,
        created_at=now,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["user_id"],
        set_={"full_name": full_name, "email": email, "updated_at": now},
    )
    session.exec(stmt)


def _upsert_role(session: Session, user_id: int, role: str, granted_by: Optional[int] = None) -> None:
    """Insert a role row; a repeated (user_id, role) grant is a no-op."""
    stmt = _dialect_insert(session, UserRole).values(
        user_id=user_id,
        role=role,
        granted_by=granted_by,
        granted_at=datetime.utcnow(),
    )
    stmt = stmt.on_conflict_do_nothing(index_elements=["user_id", "role"])
    session.exec(stmt)


def _write_claim(session: Session, user_id: int, role: str) -> None:
    now = datetime.utcnow()
    stmt = _dialect_insert(session, IdentityClaim).values(user_id=user_id, role=role, synced_at=now)
    stmt = stmt.on_conflict_do_update(
        index_elements=["user_id"],
        set_={"role": role, "synced_at": now},
    )
    session.exec(stmt)


def _get_profile(session: Session, user_id: int) -> Optional[Profile]:
    stmt = select(Profile).where(Profile.user_id == user_id).execution_options(populate_existing=True)
    return session.exec(stmt).first()


def authoritative_role(session: Session, user_id: int) -> Optional[str]:
    """Effective role read straight from the role table (privileged read)."""
    roles = session.exec(select(UserRole.role).where(UserRole.user_id == user_id)).all()
    return most_privileged(roles)


def sync_claim(session: Session, user_id: int) -> str:
    """Copy the user's effective role into the claim store.

    The write runs in a savepoint so a failure never takes the surrounding
    role write down with it.

    Raises:
        ConsistencyError: If the claim store rejects the write
    """
    role = authoritative_role(session, user_id)
    if role is None:
        raise NotFoundError("Identity", user_id)
    try:
        with session.begin_nested():
            _write_claim(session, user_id, role)
    except SQLAlchemyError as exc:
        raise ConsistencyError(f"Could not sync identity claim: {exc}", user_id=user_id) from exc
    return role


def _refresh_claim(session: Session, user_id: int) -> bool:
    """Re-sync the claim after a role write, absorbing sync failures.

    The profile is flagged stale before the attempt and cleared only when the
    sync lands, so a failed sync leaves readers on the role table.
    """
    profile = _get_profile(session, user_id)
    if profile is not None:
        profile.claim_stale = True
        session.add(profile)
        session.flush()

    try:
        sync_claim(session, user_id)
    except ConsistencyError as exc:
        logger.warning("%s; authorization falls back to the role table", exc)
        return False

    if profile is not None:
        profile.claim_stale = False
        session.add(profile)
    return True


def on_account_created(session: Session, event: AccountCreated) -> Profile:
    """Create or update the profile and initial role for a new account.

    Safe to call repeatedly for the same user: the profile is upserted by
    user_id and a duplicate role grant is ignored. An unknown requested role
    falls back to the default instead of failing the signup.
    """
    user = session.get(User, event.user_id)
    if user is None:
        raise NotFoundError("User", event.user_id)

    role = event.requested_role or DEFAULT_ROLE
    if not is_valid_role(role):
        logger.warning(
            "Ignoring invalid role %r requested at signup for user %s; using %s",
            event.requested_role,
            event.user_id,
            DEFAULT_ROLE,
        )
        role = DEFAULT_ROLE

    full_name = sanitize_name(event.full_name) if event.full_name else ""
    _upsert_profile(session, event.user_id, full_name or event.email, event.email)
    _upsert_role(session, event.user_id, role)
    _refresh_claim(session, event.user_id)
    session.commit()

    logger.info("Account %s provisioned with role %s", event.user_id, role)
    return _get_profile(session, event.user_id)


def resolve_effective_role(
    session: Session,
    user_id: int,
    claim: Optional[str] = None,
    strong: bool = False,
) -> str:
    """Return the highest-privilege role the user holds.

    ``claim`` is the role carried by the caller's session. It is trusted unless
    it is missing or ``strong`` asks for a read of the role table.
    """
    if claim is not None and not strong and is_valid_role(claim):
        return claim

    role = authoritative_role(session, user_id)
    if role is None:
        raise NotFoundError("Identity", user_id)
    return role


def mint_claim(session: Session, user_id: int) -> str:
    """Role to attach to a new session.

    Uses the claim store when it is in step with the role table; otherwise
    resolves from the role table and tries to repair the claim.
    """
    profile = _get_profile(session, user_id)
    claim = session.get(IdentityClaim, user_id)
    if claim is not None and (profile is None or not profile.claim_stale):
        return claim.role

    role = resolve_effective_role(session, user_id, strong=True)
    _refresh_claim(session, user_id)
    session.commit()
    return role


def grant_role(session: Session, granter: Principal, target_user_id: int, new_role: str) -> str:
    """Give ``target_user_id`` an additional role. Only admins may grant.

    The granter's role is re-read from the role table rather than trusted from
    their session. Returns the target's new effective role.
    """
    granter_role = resolve_effective_role(session, granter.user_id, strong=True)
    enforce(
        Principal(user_id=granter.user_id, role=granter_role),
        Action.MANAGE_ROLES,
        Resource("role", owner_id=target_user_id),
    )

    if not is_valid_role(new_role):
        raise ValidationError(f"Unknown role {new_role!r}", field="role")
    if session.get(User, target_user_id) is None:
        raise NotFoundError("User", target_user_id)

    _upsert_role(session, target_user_id, new_role, granted_by=granter.user_id)
    _refresh_claim(session, target_user_id)
    session.commit()

    effective = resolve_effective_role(session, target_user_id, strong=True)
    logger.info(
        "User %s granted role %s to user %s (effective role %s)",
        granter.user_id,
        new_role,
        target_user_id,
        effective,
    )
    return effective
