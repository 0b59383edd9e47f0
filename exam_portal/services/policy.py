"""Authorization decisions for every read and write in the grading core.

``authorize`` is a pure function of the principal, the action and the target
resource. It never queries the database: the principal's role comes from the
session claim or a privileged read of the role table done by the identity
service, so evaluating a policy can never trigger another policy check.

Rules are evaluated in order and the first match wins:

1. Self-access: the owner may read their own profile, submissions and results,
   update their profile and answer their own attempt.
2. Elevated role: teachers and admins may read any profile, submission or
   result and may grade submissions.
3. Administrative: role management and catalog changes need ``admin``;
   publishing results needs ``teacher`` or ``admin``.
4. Anything else is denied.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from exam_portal.errors import AuthorizationError
from exam_portal.roles import Role, is_elevated


class Action(str, Enum):
    READ_PROFILE = "read_profile"
    UPDATE_PROFILE = "update_profile"
    READ_SUBMISSION = "read_submission"
    READ_RESULTS = "read_results"
    ANSWER_SUBMISSION = "answer_submission"
    GRADE_SUBMISSION = "grade_submission"
    PUBLISH_RESULTS = "publish_results"
    MANAGE_ROLES = "manage_roles"
    MANAGE_CATALOG = "manage_catalog"


class Decision(str, Enum):
    ALLOW = "allow"
    DENY = "deny"


@dataclass(frozen=True)
class Principal:
    """Who is asking: a user id and the effective role resolved for them."""

    user_id: int
    role: str


@dataclass(frozen=True)
class Resource:
    kind: str  # "profile", "submission", "results", "exam", "role", "catalog"
    owner_id: Optional[int] = None


SELF_ACTIONS = frozenset(
    {
        Action.READ_PROFILE,
        Action.UPDATE_PROFILE,
        Action.READ_SUBMISSION,
        Action.READ_RESULTS,
        Action.ANSWER_SUBMISSION,
    }
)

ELEVATED_ACTIONS = frozenset(
    {
        Action.READ_PROFILE,
        Action.READ_SUBMISSION,
        Action.READ_RESULTS,
        Action.GRADE_SUBMISSION,
    }
)

# action -> roles allowed to perform it regardless of ownership
ADMINISTRATIVE_ACTIONS = {
    Action.MANAGE_ROLES: frozenset({Role.ADMIN.value}),
    Action.MANAGE_CATALOG: frozenset({Role.ADMIN.value}),
    Action.PUBLISH_RESULTS: frozenset({Role.TEACHER.value, Role.ADMIN.value}),
    Action.GRADE_SUBMISSION: frozenset({Role.TEACHER.value, Role.ADMIN.value}),
}


def authorize(principal: Optional[Principal], action: Action, resource: Resource) -> Decision:
    if principal is None:
        return Decision.DENY

    if (
        resource.owner_id is not None
        and resource.owner_id == principal.user_id
        and action in SELF_ACTIONS
    ):
        return Decision.ALLOW

    if is_elevated(principal.role) and action in ELEVATED_ACTIONS:
        return Decision.ALLOW

    allowed_roles = ADMINISTRATIVE_ACTIONS.get(action)
    if allowed_roles is not None and principal.role in allowed_roles:
        return Decision.ALLOW

    return Decision.DENY


def enforce(principal: Optional[Principal], action: Action, resource: Resource) -> None:
    """Raise AuthorizationError unless ``authorize`` allows the request."""
    if authorize(principal, action, resource) is not Decision.ALLOW:
        raise AuthorizationError()
