"""Core auth service."""

from __future__ import annotations

import logging
import secrets
import time
from typing import Any, Callable

from auth.config import AuthConfig
from auth.exceptions import (
    AccountInactiveError,
    AccountLockedError,
    AuthException,
    EmailAlreadyRegisteredError,
    InvalidCredentialsError,
    InvalidTokenError,
)
from auth.interfaces.user_store import DuplicateAccountError, UserStore
from auth.security import hash_password, verify_password
from auth.services.credential_service import CredentialService
from auth.services.identity_service import IdentityResolver, OAuthIdentity
from auth.services.token_service import TokenService

logger = logging.getLogger(__name__)


class AuthService:
    def __init__(
        self,
        config: AuthConfig,
        user_store: UserStore,
        token_service: TokenService,
        credential_service: CredentialService,
        identity_resolver: IdentityResolver,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config
        self._users = user_store
        self._tokens = token_service
        self._credentials = credential_service
        self._identities = identity_resolver
        self._clock = clock
        self._dummy_hash: str | None = None

    def _now(self) -> int:
        return int(self._clock())

    def _password_hash_of(self, account: dict[str, Any] | None) -> str:
        """Stored hash, or a throwaway one so unknown emails cost the same bcrypt check."""
        if account and account.get("hashed_password"):
            return account["hashed_password"]
        if self._dummy_hash is None:
            self._dummy_hash = hash_password(secrets.token_urlsafe(16), rounds=self._config.BCRYPT_ROUNDS)
        return self._dummy_hash

    async def register(self, email: str, password: str, name: str | None = None) -> dict[str, Any]:
        existing = await self._users.get_by_email(email)
        if existing:
            raise EmailAlreadyRegisteredError()

        try:
            account = await self._users.create_account(
                {
                    "email": email,
                    "name": name,
                    "hashed_password": hash_password(password, rounds=self._config.BCRYPT_ROUNDS),
                    "auth_provider": "local",
                    "is_email_verified": False,
                }
            )
        except DuplicateAccountError as exc:
            raise EmailAlreadyRegisteredError() from exc

        await self._credentials.request_email_verification(account["id"])
        tokens = await self._tokens.issue_token_pair(account)
        return {"user": account, "tokens": tokens}

    async def login(self, email: str, password: str) -> dict[str, Any]:
        account = await self._users.get_by_email(email)
        if not account:
            verify_password(password, self._password_hash_of(None))
            raise InvalidCredentialsError(reason="unknown_email")

        now = self._now()
        lock_until = account.get("lock_until")
        if lock_until and lock_until > now:
            raise AccountLockedError()

        if not verify_password(password, self._password_hash_of(account)):
            await self._record_failed_login(account, now)
            raise InvalidCredentialsError()

        if not account.get("is_active", True):
            raise AccountInactiveError()

        account = await self._users.update_account(
            account["id"],
            {"failed_login_attempts": 0, "lock_until": None, "last_login": now},
        )
        tokens = await self._tokens.issue_token_pair(account)
        return {"user": account, "tokens": tokens}

    async def _record_failed_login(self, account: dict[str, Any], now: int) -> None:
        lock_until = account.get("lock_until")
        if lock_until and lock_until <= now:
            # Previous lock has elapsed; start counting again.
            failed_attempts = 1
        else:
            failed_attempts = int(account.get("failed_login_attempts") or 0) + 1

        updates: dict[str, Any] = {"failed_login_attempts": failed_attempts, "lock_until": None}
        if failed_attempts >= self._config.MAX_FAILED_LOGIN_ATTEMPTS:
            updates["lock_until"] = now + self._config.ACCOUNT_LOCK_MINUTES * 60
            logger.warning("Account %s locked after %d failed logins", account["id"], failed_attempts)
        await self._users.update_account(account["id"], updates)

    async def login_oauth(self, identity: OAuthIdentity) -> dict[str, Any]:
        resolved = await self._identities.resolve_oauth_identity(identity)
        account = resolved.account
        if not account.get("is_active", True):
            raise AccountInactiveError()

        account = await self._users.update_account(account["id"], {"last_login": self._now()})
        tokens = await self._tokens.issue_token_pair(account)
        return {
            "user": account,
            "tokens": tokens,
            "is_new_user": resolved.is_new_account,
            "profile_stub_created": resolved.profile_stub_created,
        }

    async def refresh(self, refresh_token: str | None) -> dict[str, Any]:
        if not refresh_token:
            raise AuthException("Refresh token is required", status_code=401, reason="missing")

        account_id, new_refresh_token = await self._tokens.rotate_refresh_token(refresh_token)
        account = await self._users.get_by_id(account_id)
        if not account:
            raise InvalidTokenError(reason="account_missing")
        if not account.get("is_active", True):
            await self._tokens.revoke_all_sessions(account_id)
            raise AccountInactiveError()

        access_token = self._tokens.issue_access_token(account_id, {"role": account.get("role", "user")})
        return {
            "user": account,
            "tokens": {"access_token": access_token, "refresh_token": new_refresh_token},
        }

    async def logout(self, refresh_token: str | None) -> None:
        await self._tokens.revoke_refresh_token(refresh_token)

    async def change_password(
        self,
        account_id: int,
        current_password: str,
        new_password: str,
        refresh_token: str | None = None,
    ) -> dict[str, Any]:
        account = await self._users.get_by_id(account_id)
        if not account:
            raise InvalidCredentialsError(reason="account_missing")
        if not verify_password(current_password, account.get("hashed_password")):
            raise AuthException("Current password is incorrect", status_code=401, reason="wrong_password")

        account = await self._users.update_account(
            account_id,
            {"hashed_password": hash_password(new_password, rounds=self._config.BCRYPT_ROUNDS)},
        )
        # The session making the change stays signed in; every other device is logged out.
        await self._tokens.revoke_all_sessions(
            account_id, except_session=self._tokens.session_id_of(refresh_token)
        )
        return account

    async def get_user_from_access(self, access_token: str) -> dict[str, Any]:
        claims = self._tokens.verify_access_token(access_token)
        account = await self._users.get_by_id(claims["account_id"])
        if not account:
            raise InvalidTokenError(reason="account_missing")
        if not account.get("is_active", True):
            raise AccountInactiveError()
        lock_until = account.get("lock_until")
        if lock_until and lock_until > self._now():
            raise AccountLockedError()
        return account
