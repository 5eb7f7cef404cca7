"""Shared fixtures for the auth test suite."""

from __future__ import annotations

import re

from auth.config import AuthConfig
from auth.dependencies import AuthServices, build_auth_services
from auth.services.email_service import EmailMessage
from auth.stores.memory_store import (
    MemoryProfileStore,
    MemoryRateLimitStore,
    MemorySessionStore,
    MemoryUserStore,
    MemoryVerificationStore,
)

START_TIME = 1_700_000_000


class FakeClock:
    def __init__(self, start: float = START_TIME) -> None:
        self.now = float(start)

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingEmailService:
    def __init__(self, deliver: bool = True) -> None:
        self.deliver = deliver
        self.sent: list[EmailMessage] = []

    async def send(self, message: EmailMessage) -> bool:
        self.sent.append(message)
        return self.deliver

    def last_reset_token(self) -> str:
        return _find(r"reset-password\?token=([A-Za-z0-9_\-]+)", self.sent[-1].text_body)

    def last_verification_token(self) -> str:
        return _find(r"verify-email/([A-Za-z0-9_\-]+)", self.sent[-1].text_body)


def _find(pattern: str, text: str) -> str:
    match = re.search(pattern, text)
    if not match:
        raise AssertionError(f"no token in email body: {text!r}")
    return match.group(1)


def make_config(**overrides) -> AuthConfig:
    values = {
        "ACCESS_TOKEN_SECRET": "test-access-secret",
        "REFRESH_TOKEN_SECRET": "test-refresh-secret",
        "JWT_ALGORITHM": "HS256",
        "ACCESS_TOKEN_EXPIRE_MINUTES": 15,
        "REFRESH_TOKEN_EXPIRE_DAYS": 7,
        "PASSWORD_RESET_EXPIRY_MINUTES": 60,
        "EMAIL_VERIFICATION_EXPIRY_HOURS": 24,
        "BCRYPT_ROUNDS": 4,
        "MAX_FAILED_LOGIN_ATTEMPTS": 5,
        "ACCOUNT_LOCK_MINUTES": 120,
        "COOKIE_SECURE": False,
        "COOKIE_DOMAIN": None,
        "REGISTER_RATE_LIMIT_PER_HOUR": 100,
        "LOGIN_RATE_LIMIT_PER_MINUTE": 100,
        "FORGOT_PASSWORD_RATE_LIMIT_PER_HOUR": 100,
        "INTEREST_LIMIT_PER_DAY": 10,
        "PROFILE_VIEW_LIMIT_PER_MINUTE": 10,
        "OAUTH_LINK_REQUIRES_VERIFIED_EMAIL": True,
        "EMAIL_PROVIDER": "resend",
        "RESEND_API_KEY": None,
        "GOOGLE_CLIENT_ID": None,
        "GOOGLE_CLIENT_SECRET": None,
        "GOOGLE_REDIRECT_URI": None,
        "FRONTEND_URL": "http://frontend.local",
        "AUTH_STORE": "memory",
    }
    values.update(overrides)
    return AuthConfig(**values)


class MemoryStores:
    def __init__(self) -> None:
        self.users = MemoryUserStore()
        self.verifications = MemoryVerificationStore()
        self.sessions = MemorySessionStore()
        self.counters = MemoryRateLimitStore()
        self.profiles = MemoryProfileStore()


def make_services(
    config: AuthConfig | None = None,
    clock: FakeClock | None = None,
    stores: MemoryStores | None = None,
    email: RecordingEmailService | None = None,
) -> tuple[AuthServices, MemoryStores, RecordingEmailService, FakeClock]:
    config = config or make_config()
    clock = clock or FakeClock()
    stores = stores or MemoryStores()
    email = email or RecordingEmailService()
    services = build_auth_services(
        config,
        stores.users,
        stores.verifications,
        stores.sessions,
        stores.counters,
        stores.profiles,
        email_service=email,
        clock=clock,
    )
    return services, stores, email, clock
