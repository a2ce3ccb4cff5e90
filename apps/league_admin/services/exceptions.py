"""Typed errors raised by the partnership lifecycle engine and its stores."""


class PartnershipLifecycleError(Exception):
    """Base class for every rejected lifecycle operation.

    ``code`` is a stable machine-readable identifier the admin UI uses to
    explain why an operation failed.
    """

    code = "LIFECYCLE_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class NotFoundError(PartnershipLifecycleError):
    """Unknown partnership, withdrawal request, season or division id."""

    code = "NOT_FOUND"


class InvalidStateError(PartnershipLifecycleError):
    """Operation not legal in the entity's current state.

    Also raised to the loser of a race, e.g. a request already processed by
    another admin.
    """

    code = "INVALID_STATE"


class ConflictError(PartnershipLifecycleError):
    """Uniqueness violation: a second PENDING request or a double-booked player."""

    code = "CONFLICT"


class InvalidInputError(PartnershipLifecycleError):
    """Malformed input, e.g. an empty reason or a requester outside the partnership."""

    code = "VALIDATION_ERROR"
