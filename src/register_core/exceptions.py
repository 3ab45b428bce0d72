from __future__ import annotations

from dataclasses import dataclass


@dataclass
class ApiError(Exception):
    code: str
    message: str
    details: object | None
    trace_id: str | None
    status_code: int
    raw_payload: object | None = None

    def __str__(self) -> str:
        trace = f" trace_id={self.trace_id}" if self.trace_id else ""
        return f"[{self.status_code}] {self.code}: {self.message}{trace}"


class UnauthorizedError(ApiError):
    pass


class ForbiddenError(ApiError):
    pass


class NotFoundError(ApiError):
    pass


class ValidationError(ApiError):
    pass


class ConflictError(ApiError):
    """409 or conflict-style errors, e.g. a replayed sale the server already holds."""


class RateLimitError(ApiError):
    """429 throttling error."""


class ServerError(ApiError):
    """5xx server-side failures."""


class TransportError(ApiError):
    """Network/transport failure before an HTTP response was returned."""


class RegisterStateError(Exception):
    """A register operation was attempted in the wrong state."""

    code = "REGISTER_STATE_ERROR"

    def __init__(self, message: str, *, ref: str | None = None) -> None:
        self.message = message
        self.ref = ref
        super().__init__(message)


class DrawerAlreadyOpenError(RegisterStateError):
    code = "ALREADY_OPEN"


class DrawerNotOpenError(RegisterStateError):
    code = "NOT_OPEN"


class ShiftAlreadyOpenError(RegisterStateError):
    code = "SHIFT_ALREADY_OPEN"


class NoActiveShiftError(RegisterStateError):
    code = "NO_ACTIVE_SHIFT"


class HoldLimitReachedError(RegisterStateError):
    code = "HOLD_LIMIT_REACHED"


class HeldOrderNotFoundError(RegisterStateError):
    code = "NOT_FOUND"


class HeldOrderExpiredError(RegisterStateError):
    code = "EXPIRED"


class HeldOrderAlreadyResumedError(RegisterStateError):
    code = "ALREADY_RESUMED"


class CannotCancelResumedError(RegisterStateError):
    code = "CANNOT_CANCEL_RESUMED"


class HeldOrderNotHeldError(RegisterStateError):
    code = "NOT_HELD"


class ImportDataError(ValueError):
    """Exported register data could not be parsed for import."""
