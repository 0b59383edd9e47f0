"""Typed failures raised by the grading, scoring and identity services."""


class PortalError(Exception):
    """Base exception for all application-specific errors."""


class AuthorizationError(PortalError):
    """The requester's role or ownership does not permit the operation.

    The message is deliberately generic so a denial never reveals whether the
    target resource exists.
    """

    def __init__(self, message: str = "Not permitted"):
        super().__init__(message)


class ValidationError(PortalError):
    """Input rejected before any write, e.g. marks outside ``[0, question.marks]``."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class NotFoundError(PortalError):
    """A referenced submission, exam, question or profile does not exist."""

    def __init__(self, entity: str, entity_id=None):
        message = f"{entity} not found" if entity_id is None else f"{entity} {entity_id} not found"
        super().__init__(message)
        self.entity = entity
        self.entity_id = entity_id


class ConsistencyError(PortalError):
    """The cached identity claim could not be synchronized with the role table.

    Internal only: the identity service logs it and keeps going.
    """

    def __init__(self, message: str, user_id: int | None = None):
        super().__init__(message)
        self.user_id = user_id

    def __str__(self) -> str:
        base = super().__str__()
        if self.user_id is not None:
            return f"{base} (user_id={self.user_id})"
        return base
