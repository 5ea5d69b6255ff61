"""Domain exceptions raised by the booking, trip and settlement services."""


class DomainError(Exception):
    """Base class for errors scoped to a single request or scheduler tick."""

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context


class NotFoundError(DomainError):
    """Raised when an offer, booking or user cannot be found."""
    pass


class ConflictError(DomainError):
    """
    Raised when the current state forbids the operation: no seats, slot
    overlap, illegal transition, duplicate booking, wrong actor, settlement in
    the wrong state or a passenger code mismatch.
    """
    pass


class ValidationError(DomainError):
    """Raised for malformed input before any mutation happens."""
    pass
