"""Password reset and email verification via single-use tokens."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable
from urllib.parse import quote

from auth.config import AuthConfig
from auth.exceptions import InvalidTokenError, TokenAlreadyUsedError, TokenExpiredError
from auth.interfaces.user_store import UserStore
from auth.interfaces.verification_store import VerificationStore
from auth.security import ensure_password_hashable, generate_opaque_token, hash_password, hash_token
from auth.services.email_service import EmailService, password_reset_email, verification_email
from auth.services.token_service import TokenService

logger = logging.getLogger(__name__)

PASSWORD_RESET = "password_reset"
EMAIL_VERIFY = "email_verify"


class CredentialService:
    """
    Issues and consumes single-use tokens.

    Only ``sha256(token)`` is stored; the raw value leaves the process once,
    inside the emailed link. Every rejection surfaces the same public
    message so callers cannot tell an unknown token from a spent one.
    """

    def __init__(
        self,
        config: AuthConfig,
        user_store: UserStore,
        verification_store: VerificationStore,
        token_service: TokenService,
        email_service: EmailService,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config
        self._users = user_store
        self._tokens = verification_store
        self._token_service = token_service
        self._email_service = email_service
        self._clock = clock

    def _now(self) -> int:
        return int(self._clock())

    async def request_password_reset(self, email: str) -> None:
        account = await self._users.get_by_email(email)
        if not account:
            logger.info("Password reset requested for unknown email")
            return

        raw_token = await self._create_token(
            account["id"], PASSWORD_RESET, self._config.PASSWORD_RESET_EXPIRY_MINUTES * 60
        )
        reset_url = f"{self._config.FRONTEND_URL}/reset-password?token={quote(raw_token)}"
        message = password_reset_email(
            account["email"], reset_url, self._config.PASSWORD_RESET_EXPIRY_MINUTES
        )
        if not await self._email_service.send(message):
            logger.warning("Password reset email for account %s was not delivered", account["id"])

    async def reset_password(self, raw_token: str, new_password: str) -> dict[str, Any]:
        # Reject before consuming so the link stays usable.
        ensure_password_hashable(new_password)
        token = await self._consume(raw_token, PASSWORD_RESET)
        hashed = hash_password(new_password, rounds=self._config.BCRYPT_ROUNDS)
        account = await self._users.update_account(
            token["account_id"],
            {"hashed_password": hashed, "failed_login_attempts": 0, "lock_until": None},
        )
        await self._token_service.revoke_all_sessions(account["id"])
        logger.info("Password reset completed for account %s", account["id"])
        return account

    async def request_email_verification(self, account_id: int) -> None:
        account = await self._users.get_by_id(account_id)
        if not account:
            logger.info("Email verification requested for unknown account %s", account_id)
            return
        if account.get("is_email_verified"):
            return
        await self._send_verification(account)

    async def resend_verification(self, email: str) -> None:
        account = await self._users.get_by_email(email)
        if not account:
            logger.info("Verification resend requested for unknown email")
            return
        if account.get("is_email_verified"):
            return
        await self._send_verification(account)

    async def verify_email(self, raw_token: str) -> dict[str, Any]:
        token = await self._consume(raw_token, EMAIL_VERIFY)
        account = await self._users.update_account(token["account_id"], {"is_email_verified": True})
        logger.info("Email verified for account %s", account["id"])
        return account

    async def purge_expired(self) -> int:
        """Hook for an external cleanup job; lookups never depend on it."""
        return await self._tokens.purge_expired(self._now())

    async def _send_verification(self, account: dict[str, Any]) -> None:
        expiry_hours = self._config.EMAIL_VERIFICATION_EXPIRY_HOURS
        raw_token = await self._create_token(account["id"], EMAIL_VERIFY, expiry_hours * 60 * 60)
        verification_url = f"{self._config.FRONTEND_URL}/verify-email/{quote(raw_token)}"
        message = verification_email(account["email"], verification_url, expiry_hours)
        if not await self._email_service.send(message):
            logger.warning("Verification email for account %s was not delivered", account["id"])

    async def _create_token(self, account_id: int, purpose: str, ttl_seconds: int) -> str:
        # Only the newest outstanding token per purpose stays valid.
        await self._tokens.delete_for_account(account_id, purpose)
        raw_token = generate_opaque_token()
        now = self._now()
        await self._tokens.save(
            {
                "token_hash": hash_token(raw_token),
                "account_id": account_id,
                "purpose": purpose,
                "created_at": now,
                "expires_at": now + ttl_seconds,
                "consumed_at": None,
            }
        )
        return raw_token

    async def _consume(self, raw_token: str, purpose: str) -> dict[str, Any]:
        if not raw_token:
            raise InvalidTokenError(reason="missing", status_code=400)
        token_hash = hash_token(raw_token)
        record = await self._tokens.get_by_hash(token_hash)
        if not record or record["purpose"] != purpose:
            logger.info("Rejected %s token: not found", purpose)
            raise InvalidTokenError(reason="not_found", status_code=400)
        if record.get("consumed_at") is not None:
            logger.info("Rejected %s token for account %s: already used", purpose, record["account_id"])
            raise TokenAlreadyUsedError()

        now = self._now()
        if int(record["expires_at"]) <= now:
            logger.info("Rejected %s token for account %s: expired", purpose, record["account_id"])
            raise TokenExpiredError(status_code=400)
        if not await self._tokens.consume(token_hash, now):
            logger.info("Rejected %s token for account %s: lost consume race", purpose, record["account_id"])
            raise TokenAlreadyUsedError(reason="consume_race")
        return record
