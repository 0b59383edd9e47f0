"""Role names and their privilege ranking.

Roles form an open set ordered by privilege. Every place that needs to compare
roles goes through :func:`rank`, so adding a role only means adding a row to
``ROLE_RANKING``.
"""

from enum import Enum
from typing import Iterable, Optional


class Role(str, Enum):
    STUDENT = "student"
    TEACHER = "teacher"
    ADMIN = "admin"


DEFAULT_ROLE = Role.STUDENT.value

ROLE_RANKING = {
    Role.STUDENT.value: 0,
    Role.TEACHER.value: 1,
    Role.ADMIN.value: 2,
}

ELEVATED_ROLES = frozenset({Role.TEACHER.value, Role.ADMIN.value})


def is_valid_role(role: Optional[str]) -> bool:
    return role is not None and role in ROLE_RANKING


def rank(role: str) -> int:
    """Return the privilege rank of ``role``; unknown roles rank below everything."""
    return ROLE_RANKING.get(role, -1)


def most_privileged(roles: Iterable[str]) -> Optional[str]:
    """Pick the highest-ranked known role, or None when there is none."""
    known = [r for r in roles if is_valid_role(r)]
    if not known:
        return None
    return max(known, key=rank)


def is_elevated(role: Optional[str]) -> bool:
    return role in ELEVATED_ROLES
