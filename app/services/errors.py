"""
Failure kinds raised by the seat ledger, the token store and check-in.

Every error carries a stable ``kind`` so callers can render a specific
message ("already checked in" vs "token expired") and an HTTP status.
"""


class CheckinError(Exception):
    kind = "error"
    status_code = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotFoundError(CheckinError):
    kind = "not_found"
    status_code = 404


class NoReservationError(NotFoundError):
    kind = "no_reservation"
    status_code = 400


class ExpiredError(CheckinError):
    kind = "expired"


class WorkshopExpiredError(ExpiredError):
    pass


class TokenExpiredError(ExpiredError):
    kind = "token_expired"


class SeatsFullError(CheckinError):
    kind = "full"
    status_code = 409


class AlreadyReservedError(CheckinError):
    kind = "already_reserved"
    status_code = 409


class AlreadyCheckedInError(CheckinError):
    kind = "already_checked_in"
    status_code = 409


class InvalidTokenError(CheckinError):
    kind = "invalid_token"


class TokenAlreadyUsedError(CheckinError):
    kind = "already_used"


class ConflictError(CheckinError):
    """Concurrent mutation could not be serialized; not a normal path."""

    kind = "conflict"
    status_code = 409


class DuplicateEmailError(CheckinError):
    kind = "duplicate_email"
    status_code = 409
