"""Auth configuration management."""

from __future__ import annotations

import os
import secrets
from dataclasses import dataclass, field
from pathlib import Path

# Load .env file before reading config
try:
    from dotenv import load_dotenv

    # Try loading from project root
    env_path = Path(__file__).parent.parent / ".env"
    if env_path.exists():
        load_dotenv(env_path, override=True)
    else:
        load_dotenv(override=True)
except ImportError:
    pass


def _parse_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


# Random per-process fallbacks so a missing env var never yields a guessable secret.
_DEFAULT_ACCESS_SECRET = secrets.token_urlsafe(32)
_DEFAULT_REFRESH_SECRET = secrets.token_urlsafe(32)


@dataclass(frozen=True)
class AuthConfig:
    """Configuration values for auth flows.

    Build one instance at startup and pass it to each service.
    """

    ACCESS_TOKEN_SECRET: str = field(
        default_factory=lambda: os.getenv("JWT_ACCESS_SECRET", _DEFAULT_ACCESS_SECRET)
    )
    REFRESH_TOKEN_SECRET: str = field(
        default_factory=lambda: os.getenv("JWT_REFRESH_SECRET", _DEFAULT_REFRESH_SECRET)
    )
    JWT_ALGORITHM: str = field(default_factory=lambda: os.getenv("AUTH_JWT_ALGORITHM", "HS256"))
    ACCESS_TOKEN_EXPIRE_MINUTES: int = field(
        default_factory=lambda: _env_int("ACCESS_TOKEN_EXPIRE_MINUTES", 15)
    )
    REFRESH_TOKEN_EXPIRE_DAYS: int = field(
        default_factory=lambda: _env_int("REFRESH_TOKEN_EXPIRE_DAYS", 7)
    )

    PASSWORD_RESET_EXPIRY_MINUTES: int = field(
        default_factory=lambda: _env_int("PASSWORD_RESET_EXPIRY_MINUTES", 60)
    )
    EMAIL_VERIFICATION_EXPIRY_HOURS: int = field(
        default_factory=lambda: _env_int("EMAIL_VERIFICATION_EXPIRY_HOURS", 24)
    )

    BCRYPT_ROUNDS: int = field(default_factory=lambda: _env_int("BCRYPT_SALT_ROUNDS", 12))
    MAX_FAILED_LOGIN_ATTEMPTS: int = field(
        default_factory=lambda: _env_int("MAX_FAILED_LOGIN_ATTEMPTS", 5)
    )
    ACCOUNT_LOCK_MINUTES: int = field(default_factory=lambda: _env_int("ACCOUNT_LOCK_MINUTES", 120))

    COOKIE_SECURE: bool = field(default_factory=lambda: _parse_bool(os.getenv("COOKIE_SECURE"), False))
    COOKIE_HTTP_ONLY: bool = field(
        default_factory=lambda: _parse_bool(os.getenv("COOKIE_HTTP_ONLY"), True)
    )
    COOKIE_SAMESITE: str = field(default_factory=lambda: os.getenv("COOKIE_SAME_SITE", "lax"))
    COOKIE_DOMAIN: str | None = field(default_factory=lambda: os.getenv("COOKIE_DOMAIN"))

    LOGIN_RATE_LIMIT_PER_MINUTE: int = field(
        default_factory=lambda: _env_int("LOGIN_RATE_LIMIT_PER_MINUTE", 5)
    )
    REGISTER_RATE_LIMIT_PER_HOUR: int = field(
        default_factory=lambda: _env_int("REGISTER_RATE_LIMIT_PER_HOUR", 3)
    )
    FORGOT_PASSWORD_RATE_LIMIT_PER_HOUR: int = field(
        default_factory=lambda: _env_int("FORGOT_PASSWORD_RATE_LIMIT_PER_HOUR", 5)
    )
    INTEREST_LIMIT_PER_DAY: int = field(default_factory=lambda: _env_int("INTEREST_LIMIT_PER_DAY", 10))
    PROFILE_VIEW_LIMIT_PER_MINUTE: int = field(
        default_factory=lambda: _env_int("PROFILE_VIEW_LIMIT_PER_MINUTE", 10)
    )

    OAUTH_LINK_REQUIRES_VERIFIED_EMAIL: bool = field(
        default_factory=lambda: _parse_bool(os.getenv("OAUTH_LINK_REQUIRES_VERIFIED_EMAIL"), True)
    )

    EMAIL_PROVIDER: str = field(default_factory=lambda: os.getenv("EMAIL_PROVIDER", "resend"))
    EMAIL_FROM_NAME: str = field(default_factory=lambda: os.getenv("EMAIL_FROM_NAME", "Swayamvar"))
    EMAIL_FROM_ADDRESS: str = field(
        default_factory=lambda: os.getenv("EMAIL_FROM", "no-reply@swayamvar.example")
    )
    RESEND_API_KEY: str | None = field(default_factory=lambda: os.getenv("RESEND_API_KEY"))

    GOOGLE_CLIENT_ID: str | None = field(default_factory=lambda: os.getenv("GOOGLE_CLIENT_ID"))
    GOOGLE_CLIENT_SECRET: str | None = field(default_factory=lambda: os.getenv("GOOGLE_CLIENT_SECRET"))
    GOOGLE_REDIRECT_URI: str | None = field(default_factory=lambda: os.getenv("GOOGLE_CALLBACK_URL"))
    FRONTEND_URL: str = field(default_factory=lambda: os.getenv("FRONTEND_URL", "http://localhost:5173"))

    # Auth store: "sql" (production) or "memory" (testing)
    AUTH_STORE: str = field(default_factory=lambda: os.getenv("AUTH_STORE", "sql"))

    def __post_init__(self) -> None:
        if not self.ACCESS_TOKEN_SECRET or not self.REFRESH_TOKEN_SECRET:
            raise ValueError("Access and refresh token secrets must be set")
        if self.ACCESS_TOKEN_SECRET == self.REFRESH_TOKEN_SECRET:
            raise ValueError("Access and refresh tokens must use distinct secrets")

    @property
    def access_token_ttl_seconds(self) -> int:
        return self.ACCESS_TOKEN_EXPIRE_MINUTES * 60

    @property
    def refresh_token_ttl_seconds(self) -> int:
        return self.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 60 * 60
