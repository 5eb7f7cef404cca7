"""Auth dependency helpers."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable

from fastapi import Cookie, Depends, Header, HTTPException, Request, Response, status

from auth.config import AuthConfig
from auth.exceptions import AuthException, RateLimitExceededError
from auth.services.auth_service import AuthService
from auth.services.credential_service import CredentialService
from auth.services.email_service import EmailService
from auth.services.identity_service import IdentityResolver
from auth.services.oauth_service import OAuthService
from auth.services.rate_limiter import ActionRateLimiter, default_action_policies
from auth.services.token_service import TokenService
from auth.stores.memory_store import (
    MemoryProfileStore,
    MemoryRateLimitStore,
    MemorySessionStore,
    MemoryUserStore,
    MemoryVerificationStore,
)
from auth.stores.sql_store import (
    SqlProfileStore,
    SqlRateLimitStore,
    SqlSessionStore,
    SqlUserStore,
    SqlVerificationStore,
)

logger = logging.getLogger(__name__)


@dataclass
class AuthServices:
    """Everything the HTTP layer needs, wired against one set of stores."""

    config: AuthConfig
    auth: AuthService
    tokens: TokenService
    credentials: CredentialService
    identities: IdentityResolver
    rate_limiter: ActionRateLimiter
    oauth: OAuthService


def build_auth_services(
    config: AuthConfig,
    user_store: Any,
    verification_store: Any,
    session_store: Any,
    rate_limit_store: Any,
    profile_store: Any,
    email_service: EmailService | None = None,
    clock: Callable[[], float] = time.time,
) -> AuthServices:
    email_service = email_service or EmailService(config)
    tokens = TokenService(config, session_store, clock=clock)
    credentials = CredentialService(
        config, user_store, verification_store, tokens, email_service, clock=clock
    )
    identities = IdentityResolver(config, user_store, profile_store)
    auth = AuthService(config, user_store, tokens, credentials, identities, clock=clock)
    return AuthServices(
        config=config,
        auth=auth,
        tokens=tokens,
        credentials=credentials,
        identities=identities,
        rate_limiter=ActionRateLimiter(rate_limit_store, clock=clock),
        oauth=OAuthService(config, auth),
    )


def _build_default_services() -> AuthServices:
    """Build services based on AUTH_STORE config."""
    config = AuthConfig()
    if config.AUTH_STORE == "sql":
        return build_auth_services(
            config,
            SqlUserStore(),
            SqlVerificationStore(),
            SqlSessionStore(),
            SqlRateLimitStore(),
            SqlProfileStore(),
        )
    # Fallback to memory store for development/testing
    logger.warning("AUTH_STORE=%s, using in-memory auth stores", config.AUTH_STORE)
    return build_auth_services(
        config,
        MemoryUserStore(),
        MemoryVerificationStore(),
        MemorySessionStore(),
        MemoryRateLimitStore(),
        MemoryProfileStore(),
    )


_services: AuthServices | None = None


def get_services() -> AuthServices:
    global _services
    if _services is None:
        _services = _build_default_services()
    return _services


def get_auth_config(services: AuthServices = Depends(get_services)) -> AuthConfig:
    return services.config


def get_auth_service(services: AuthServices = Depends(get_services)) -> AuthService:
    return services.auth


def get_credential_service(services: AuthServices = Depends(get_services)) -> CredentialService:
    return services.credentials


def get_oauth_service(services: AuthServices = Depends(get_services)) -> OAuthService:
    return services.oauth


def get_rate_limiter(services: AuthServices = Depends(get_services)) -> ActionRateLimiter:
    return services.rate_limiter


def to_http_exception(exc: AuthException) -> HTTPException:
    if exc.reason != exc.message:
        logger.info("Auth failure (%s): %s", exc.status_code, exc.reason)
    headers = None
    if isinstance(exc, RateLimitExceededError):
        headers = {"Retry-After": str(exc.retry_after_seconds)}
    return HTTPException(status_code=exc.status_code, detail=exc.message, headers=headers)


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def _ip_rate_limit(name: str, limit_attr: str, window_seconds: int, detail: str):
    async def dependency(
        request: Request,
        services: AuthServices = Depends(get_services),
    ) -> None:
        limit = getattr(services.config, limit_attr)
        allowed = await services.rate_limiter.allow(f"{name}:{_client_ip(request)}", limit, window_seconds)
        if not allowed:
            raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=detail)

    return dependency


enforce_login_rate_limit = _ip_rate_limit(
    "login", "LOGIN_RATE_LIMIT_PER_MINUTE", 60, "Too many login attempts"
)
enforce_register_rate_limit = _ip_rate_limit(
    "register", "REGISTER_RATE_LIMIT_PER_HOUR", 3600, "Too many registrations"
)
enforce_forgot_password_rate_limit = _ip_rate_limit(
    "forgot-password", "FORGOT_PASSWORD_RATE_LIMIT_PER_HOUR", 3600, "Too many password reset requests"
)


def extract_bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def get_current_user(
    authorization: str | None = Header(default=None),
    access_token: str | None = Cookie(default=None),
    auth_service: AuthService = Depends(get_auth_service),
) -> dict:
    token = extract_bearer_token(authorization) or access_token
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        return await auth_service.get_user_from_access(token)
    except AuthException as exc:
        raise to_http_exception(exc) from exc


def require_roles(*roles: str):
    """Allow only members whose role is one of ``roles``."""

    async def dependency(current_user: dict = Depends(get_current_user)) -> dict:
        if current_user.get("role") not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"User role {current_user.get('role')} is not authorized to access this route",
            )
        return current_user

    return dependency


def enforce_action_rate_limit(action_key: str):
    """Per-member budget for one action, e.g. ``send-interest`` or ``profile-view``."""

    async def dependency(
        current_user: dict = Depends(get_current_user),
        services: AuthServices = Depends(get_services),
    ) -> dict:
        policy = default_action_policies(services.config)[action_key]
        try:
            await services.rate_limiter.enforce(current_user["id"], policy)
        except RateLimitExceededError as exc:
            raise to_http_exception(exc) from exc
        return current_user

    return dependency


def set_cookie(
    response: Response,
    config: AuthConfig,
    key: str,
    value: str,
    max_age: int | None = None,
    http_only: bool | None = None,
) -> None:
    response.set_cookie(
        key=key,
        value=value,
        max_age=max_age,
        httponly=config.COOKIE_HTTP_ONLY if http_only is None else http_only,
        secure=config.COOKIE_SECURE,
        samesite=config.COOKIE_SAMESITE,
        domain=config.COOKIE_DOMAIN,
    )
