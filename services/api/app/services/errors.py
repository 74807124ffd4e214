class EntityNotFoundError(LookupError):
    """Session, dish or user does not exist (or the dish is inactive)."""


class SessionConflictError(ValueError):
    """Requested transition is not allowed in the session's current state."""
