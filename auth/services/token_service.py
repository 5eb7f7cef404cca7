"""Access/refresh token issuance, verification and rotation."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable
from uuid import uuid4

from auth.config import AuthConfig
from auth.exceptions import AuthException, InvalidTokenError, TokenExpiredError, TokenReusedError
from auth.interfaces.session_store import SessionStore
from auth.security import decode_jwt, encode_jwt, hash_token, tokens_match

logger = logging.getLogger(__name__)

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"
_RESERVED_CLAIMS = {"sub", "type", "iat", "exp", "jti", "sid"}


class TokenService:
    """
    Access tokens are stateless JWTs; verifying one never touches storage.

    Refresh tokens are JWTs bound to a session row that stores only the
    sha256 of the current token. Each refresh swaps that hash with a
    compare-and-set, so an older token from the same session no longer
    matches and is treated as theft: the whole session is revoked.
    """

    def __init__(
        self,
        config: AuthConfig,
        session_store: SessionStore,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config
        self._sessions = session_store
        self._clock = clock

    def _now(self) -> int:
        return int(self._clock())

    def issue_access_token(self, account_id: int, claims: dict[str, Any] | None = None) -> str:
        token, _ = self._issue_access(account_id, claims)
        return token

    def _issue_access(self, account_id: int, claims: dict[str, Any] | None) -> tuple[str, int]:
        now = self._now()
        expires_at = now + self._config.access_token_ttl_seconds
        payload: dict[str, Any] = {
            key: value for key, value in (claims or {}).items() if key not in _RESERVED_CLAIMS
        }
        payload.update(
            {
                "sub": str(account_id),
                "type": ACCESS_TOKEN_TYPE,
                "iat": now,
                "exp": expires_at,
                "jti": uuid4().hex,
            }
        )
        token = encode_jwt(payload, self._config.ACCESS_TOKEN_SECRET, self._config.JWT_ALGORITHM)
        return token, expires_at

    def _encode_refresh(self, account_id: int, session_id: str) -> tuple[str, int, int]:
        now = self._now()
        expires_at = now + self._config.refresh_token_ttl_seconds
        payload = {
            "sub": str(account_id),
            "type": REFRESH_TOKEN_TYPE,
            "sid": session_id,
            "iat": now,
            "exp": expires_at,
            "jti": uuid4().hex,
        }
        token = encode_jwt(payload, self._config.REFRESH_TOKEN_SECRET, self._config.JWT_ALGORITHM)
        return token, now, expires_at

    async def issue_refresh_token(self, account_id: int) -> str:
        token, _ = await self._issue_refresh(account_id)
        return token

    async def _issue_refresh(self, account_id: int) -> tuple[str, int]:
        session_id = uuid4().hex
        token, issued_at, expires_at = self._encode_refresh(account_id, session_id)
        await self._sessions.create_session(
            session_id=session_id,
            account_id=account_id,
            refresh_token_hash=hash_token(token),
            issued_at=issued_at,
            expires_at=expires_at,
        )
        return token, expires_at

    async def issue_token_pair(self, account: dict[str, Any]) -> dict[str, Any]:
        access_token, access_exp = self._issue_access(account["id"], {"role": account.get("role", "user")})
        refresh_token, refresh_exp = await self._issue_refresh(account["id"])
        return {
            "access_token": access_token,
            "refresh_token": refresh_token,
            "access_expires_at": access_exp,
            "refresh_expires_at": refresh_exp,
        }

    def verify_access_token(self, token: str) -> dict[str, Any]:
        payload = self._decode(token, self._config.ACCESS_TOKEN_SECRET, ACCESS_TOKEN_TYPE)
        payload["account_id"] = int(payload["sub"])
        return payload

    async def verify_refresh_token(self, token: str) -> dict[str, Any]:
        """Check a refresh token against its session without rotating it."""
        payload = self._decode(token, self._config.REFRESH_TOKEN_SECRET, REFRESH_TOKEN_TYPE)
        session_id = payload.get("sid")
        if not session_id:
            raise InvalidTokenError(reason="missing_session_id")

        session = await self._sessions.get_session(session_id)
        if not session:
            logger.info("Refresh token for unknown session %s", session_id)
            raise InvalidTokenError(reason="unknown_session")
        if str(session["account_id"]) != payload["sub"]:
            raise InvalidTokenError(reason="subject_mismatch")
        if session["revoked"]:
            logger.info("Refresh token for revoked session %s", session_id)
            raise InvalidTokenError(reason="revoked_session")

        token_hash = hash_token(token)
        if not tokens_match(token_hash, session["refresh_token_hash"]):
            await self._handle_reuse(session)
            raise TokenReusedError()

        if int(session["expires_at"]) <= self._now():
            await self._sessions.delete_session(session_id)
            raise TokenExpiredError(reason="session_expired")

        return {
            "account_id": session["account_id"],
            "session_id": session_id,
            "token_hash": token_hash,
        }

    async def rotate_refresh_token(self, token: str) -> tuple[int, str]:
        """Consume a refresh token and return ``(account_id, new_refresh_token)``."""
        verified = await self.verify_refresh_token(token)
        account_id = verified["account_id"]
        session_id = verified["session_id"]

        new_token, issued_at, expires_at = self._encode_refresh(account_id, session_id)
        rotated = await self._sessions.rotate_session(
            session_id=session_id,
            expected_hash=verified["token_hash"],
            new_hash=hash_token(new_token),
            issued_at=issued_at,
            expires_at=expires_at,
        )
        if not rotated:
            # Another request rotated this token between our read and write.
            session = await self._sessions.get_session(session_id)
            if session:
                await self._handle_reuse(session)
            raise TokenReusedError(reason="rotation_race")
        return account_id, new_token

    async def revoke_refresh_token(self, token: str | None) -> None:
        if not token:
            return
        try:
            payload = self._decode(
                token, self._config.REFRESH_TOKEN_SECRET, REFRESH_TOKEN_TYPE, check_expiry=False
            )
        except AuthException as exc:
            logger.info("Ignoring undecodable refresh token on logout: %s", exc.reason)
            return
        session_id = payload.get("sid")
        if session_id:
            await self._sessions.delete_session(session_id)

    async def revoke_all_sessions(self, account_id: int, except_session: str | None = None) -> int:
        revoked = await self._sessions.revoke_all_for_account(account_id, except_session=except_session)
        logger.info("Revoked %d refresh session(s) for account %s", revoked, account_id)
        return revoked

    def session_id_of(self, token: str | None) -> str | None:
        if not token:
            return None
        try:
            payload = self._decode(
                token, self._config.REFRESH_TOKEN_SECRET, REFRESH_TOKEN_TYPE, check_expiry=False
            )
        except AuthException:
            return None
        return payload.get("sid")

    async def _handle_reuse(self, session: dict[str, Any]) -> None:
        logger.warning(
            "Refresh token reuse detected for account %s, revoking session %s",
            session["account_id"],
            session["session_id"],
        )
        await self._sessions.revoke_session(session["session_id"])

    def _decode(
        self,
        token: str,
        secret: str,
        expected_type: str,
        check_expiry: bool = True,
    ) -> dict[str, Any]:
        if not token:
            raise InvalidTokenError(reason="missing")
        payload = decode_jwt(token, secret, self._config.JWT_ALGORITHM)
        if payload.get("type") != expected_type:
            raise InvalidTokenError(reason=f"not_{expected_type}_token")
        if not str(payload.get("sub", "")).isdigit():
            raise InvalidTokenError(reason="bad_subject")
        exp = payload.get("exp")
        if not isinstance(exp, (int, float)):
            raise InvalidTokenError(reason="missing_expiry")
        if check_expiry and self._now() >= exp:
            raise TokenExpiredError()
        return payload
