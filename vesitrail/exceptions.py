"""Error taxonomy for booklet allocation and the update protocol.

Every error is a reportable value: routes turn them into JSON responses via the
handler registered in ``create_app``, services raise them before mutating
anything.
"""


class VesitRailError(Exception):
    """Base class for all domain errors."""

    status_code = 400
    error_type = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.message = message
        self.field = field

    def to_dict(self) -> dict:
        return {"error": self.message, "type": self.error_type, "field": self.field}


# ----------------------------------------------------------------------
# Validation
# ----------------------------------------------------------------------

class ValidationError(VesitRailError):
    """Generic input validation failure (duplicate serial, bad status...)."""


class FormatError(ValidationError):
    """Malformed serial number or page number."""


class OutOfRangeError(ValidationError):
    """Page index outside the booklet's bounds."""


class NotFoundError(VesitRailError):
    status_code = 404
    error_type = "NOT_FOUND"


class BookletNotFound(NotFoundError):
    def __init__(self, booklet_id):
        super().__init__(f"Booklet {booklet_id} not found", field="booklet_id")


class ApplicationNotFound(NotFoundError):
    def __init__(self, application_id):
        super().__init__(f"Application {application_id} not found", field="application_id")


class ApplicationAlreadyReviewed(ValidationError):
    status_code = 409

    def __init__(self, application_id):
        super().__init__(
            f"Application {application_id} has already been reviewed", field="status"
        )


# ----------------------------------------------------------------------
# Allocation
# ----------------------------------------------------------------------

class AllocationError(VesitRailError):
    status_code = 409
    error_type = "ALLOCATION_ERROR"


class NoPagesAvailable(AllocationError):
    def __init__(self, message: str = "No pages available", field: str | None = "booklet_id"):
        super().__init__(message, field=field)


class BookletExhausted(NoPagesAvailable):
    def __init__(self, booklet_number):
        super().__init__(f"Booklet #{booklet_number} is full")


class BookletUnavailable(AllocationError):
    def __init__(self, booklet_number, status):
        super().__init__(
            f"Booklet #{booklet_number} is not available for use ({status})",
            field="booklet_id",
        )
        self.status = status


class BookletDamaged(BookletUnavailable):
    pass


class AllocationConflict(AllocationError):
    """Concurrent approvals kept racing for the same booklet."""

    status_code = 503
    error_type = "CONFLICT"

    def __init__(self, message: str, attempts: int):
        super().__init__(message, field="booklet_id")
        self.attempts = attempts


# ----------------------------------------------------------------------
# Update checks
# ----------------------------------------------------------------------

class NetworkError(VesitRailError):
    status_code = 502
    error_type = "NETWORK_ERROR"

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class ParseError(VesitRailError):
    status_code = 502
    error_type = "PARSE_ERROR"
