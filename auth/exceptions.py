"""Auth exceptions."""

from __future__ import annotations

INVALID_TOKEN_MESSAGE = "Invalid or expired token"


class AuthException(Exception):
    """Base auth exception with HTTP status.

    ``message`` is safe to show to clients; ``reason`` is for logs only.
    """

    def __init__(self, message: str, status_code: int = 400, reason: str | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.reason = reason or message


class InvalidTokenError(AuthException):
    def __init__(self, reason: str = "invalid", status_code: int = 401):
        super().__init__(INVALID_TOKEN_MESSAGE, status_code=status_code, reason=reason)


class TokenExpiredError(InvalidTokenError):
    def __init__(self, reason: str = "expired", status_code: int = 401):
        super().__init__(reason=reason, status_code=status_code)


class TokenReusedError(InvalidTokenError):
    """A rotated refresh token was presented again."""

    def __init__(self, reason: str = "reused", status_code: int = 401):
        super().__init__(reason=reason, status_code=status_code)


class TokenAlreadyUsedError(InvalidTokenError):
    """A single-use token was presented after consumption."""

    def __init__(self, reason: str = "already_used", status_code: int = 400):
        super().__init__(reason=reason, status_code=status_code)


class InvalidCredentialsError(AuthException):
    def __init__(self, reason: str = "invalid_credentials"):
        super().__init__("Invalid credentials", status_code=401, reason=reason)


class AccountLockedError(AuthException):
    def __init__(self) -> None:
        super().__init__(
            "Account is temporarily locked due to multiple failed login attempts",
            status_code=403,
            reason="locked",
        )


class AccountInactiveError(AuthException):
    def __init__(self) -> None:
        super().__init__("User account is deactivated", status_code=403, reason="inactive")


class EmailAlreadyRegisteredError(AuthException):
    def __init__(self) -> None:
        super().__init__("Email already registered", status_code=409, reason="duplicate_email")


class IdentityConflictError(AuthException):
    def __init__(self, message: str, reason: str = "identity_conflict"):
        super().__init__(message, status_code=409, reason=reason)


class RateLimitExceededError(AuthException):
    def __init__(self, action_key: str, retry_after_ms: int):
        super().__init__(
            f"Too many {action_key} attempts. Please try again later.",
            status_code=429,
            reason="rate_limited",
        )
        self.action_key = action_key
        self.retry_after_ms = max(0, retry_after_ms)

    @property
    def retry_after_seconds(self) -> int:
        # Ceiling division; a client must not retry before the window ends.
        return -(-self.retry_after_ms // 1000)


class PasswordTooLongError(AuthException):
    def __init__(self, max_bytes: int) -> None:
        super().__init__(
            f"Password must be at most {max_bytes} bytes when UTF-8 encoded",
            status_code=400,
            reason="password_too_long",
        )
