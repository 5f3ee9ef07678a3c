"""
Error taxonomy shared by services, live views and the HTTP layer.

Every failure coming out of the backend facade is a BackendError. Services
translate those into the failure kind the caller needs to react to:

- LoadFailure: the initial snapshot could not be fetched. Never rendered as
  an empty result.
- SubscriptionFailure: the change feed could not be opened or dropped. Views
  keep their snapshot and run in degraded (non-realtime) mode.
- WriteFailure: a mutating call failed; any optimistic change was rolled back.
- PartialFailure: one leg of a two-phase operation failed after the other
  leg succeeded. The successful leg is never undone.
- ValidationFailure: a client-side precondition was violated before any
  backend call was made.
"""

from typing import Optional


class StudySyncError(Exception):
    status_code = 500
    code = "error"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class BackendError(StudySyncError):
    """Raised by the backend facade; carries the backend's machine code."""
    status_code = 502
    code = "backend_error"

    # Postgres unique_violation
    UNIQUE_VIOLATION = "23505"

    @property
    def is_unique_violation(self) -> bool:
        return self.code == self.UNIQUE_VIOLATION


class LoadFailure(StudySyncError):
    status_code = 502
    code = "load_failed"

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class SubscriptionFailure(StudySyncError):
    status_code = 502
    code = "subscription_failed"


class WriteFailure(StudySyncError):
    status_code = 502
    code = "write_failed"

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class PartialFailure(StudySyncError):
    status_code = 207
    code = "partial_failure"

    def __init__(self, message: str, completed: str, failed: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.completed = completed
        self.failed = failed
        self.cause = cause


class ValidationFailure(StudySyncError):
    status_code = 422
    code = "validation_failed"


class NotFoundError(StudySyncError):
    status_code = 404
    code = "not_found"


class PermissionDeniedError(StudySyncError):
    status_code = 403
    code = "forbidden"


class AuthenticationError(StudySyncError):
    status_code = 401
    code = "unauthenticated"


class ConflictError(StudySyncError):
    status_code = 409
    code = "conflict"


class AlreadyMemberError(ConflictError):
    code = "already_member"


class GroupFullError(ConflictError):
    code = "group_full"
