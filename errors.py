"""
Application errors

Every failure an operation can report is one of these. The HTTP layer turns
them into a JSON body with a status code, a stable error code and a message.
"""

from typing import Optional


class AppError(Exception):
    status_code = 500
    code = "INTERNAL"
    message = "Server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.message
        super().__init__(self.message)


class InvalidInput(AppError):
    status_code = 400
    code = "INVALID_INPUT"
    message = "Invalid input"


class Conflict(AppError):
    status_code = 409
    code = "CONFLICT"
    message = "Resource already exists"


class AlreadyAssigned(Conflict):
    code = "ALREADY_ASSIGNED"
    message = "Developer is already assigned to this project"


class InvalidCredentials(AppError):
    status_code = 401
    code = "INVALID_CREDENTIALS"
    message = "Invalid credentials"


class InvalidMfaCode(AppError):
    status_code = 401
    code = "INVALID_MFA_CODE"
    message = "Invalid MFA code"


class NotReady(AppError):
    status_code = 400
    code = "MFA_NOT_READY"
    message = "MFA secret not generated yet"


class NotFound(AppError):
    status_code = 404
    code = "NOT_FOUND"
    message = "Not found"


class Unauthenticated(AppError):
    status_code = 401
    code = "UNAUTHENTICATED"
    message = "Invalid token"


class Forbidden(AppError):
    """Policy denial. `reason` is for logs only, clients always see `message`."""

    status_code = 403
    code = "FORBIDDEN"
    message = "Not authorized to perform this action"

    def __init__(self, reason: str = "denied"):
        self.reason = reason
        super().__init__()


class Internal(AppError):
    pass
