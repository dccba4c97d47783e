"""Domain errors.

Every error a caller is allowed to see carries a stable machine-readable
``code`` and an HTTP-equivalent ``status_code``. Anything else that escapes
a service (database, broker, deadline) is an infrastructure failure and is
rendered as a generic ``INTERNAL_ERROR`` by :func:`error_response`.
"""
from typing import Any


class AppError(Exception):
    code: str = "APP_ERROR"
    default_message: str = "application error"

    def __init__(self, message: str | None = None, status_code: int = 400, code: str | None = None):
        self.message = message or self.default_message
        self.status_code = status_code
        if code is not None:
            self.code = code
        super().__init__(self.message)


class InvalidCredentialsError(AppError):
    code = "INVALID_CREDENTIALS"

    def __init__(self) -> None:
        super().__init__("invalid credentials", status_code=401)


class InvalidTokenError(AppError):
    code = "INVALID_TOKEN"

    def __init__(self) -> None:
        super().__init__("invalid token", status_code=401)


class TokenExpiredError(AppError):
    code = "TOKEN_EXPIRED"

    def __init__(self) -> None:
        super().__init__("token expired", status_code=401)


class TokenRevokedError(AppError):
    code = "TOKEN_REVOKED"

    def __init__(self) -> None:
        super().__init__("token revoked", status_code=401)


class TokenAlreadyUsedError(AppError):
    code = "TOKEN_ALREADY_USED"

    def __init__(self) -> None:
        super().__init__("token already used", status_code=400)


class InvalidResetTokenError(AppError):
    code = "INVALID_RESET_TOKEN"

    def __init__(self) -> None:
        super().__init__("invalid or expired reset token", status_code=400)


class InvalidVerificationTokenError(AppError):
    code = "INVALID_VERIFICATION_TOKEN"

    def __init__(self) -> None:
        super().__init__("invalid or expired verification token", status_code=400)


class UserNotFoundError(AppError):
    code = "USER_NOT_FOUND"

    def __init__(self) -> None:
        super().__init__("user not found", status_code=404)


class EmailAlreadyExistsError(AppError):
    code = "EMAIL_ALREADY_EXISTS"

    def __init__(self) -> None:
        super().__init__("email already exists", status_code=409)


class EmailAlreadyVerifiedError(AppError):
    code = "EMAIL_ALREADY_VERIFIED"

    def __init__(self) -> None:
        super().__init__("email already verified", status_code=400)


class DeletionAlreadyScheduledError(AppError):
    code = "DELETION_ALREADY_SCHEDULED"

    def __init__(self) -> None:
        super().__init__("account deletion is already scheduled", status_code=409)


INTERNAL_ERROR_BODY = {"code": "INTERNAL_ERROR", "message": "internal server error"}


def error_response(exc: BaseException, reporter=None) -> tuple[int, dict[str, Any]]:
    """Map an exception to ``(status_code, body)`` for a transport layer.

    Infrastructure failures are reported in full and answered with a body
    that exposes no internal detail.
    """
    if isinstance(exc, AppError):
        return exc.status_code, {"code": exc.code, "message": exc.message}

    if reporter is None:
        from accounts.core.reporting import capture_error as reporter
    reporter(exc, {"error_type": type(exc).__name__})
    return 500, dict(INTERNAL_ERROR_BODY)
