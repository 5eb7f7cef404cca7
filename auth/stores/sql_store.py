"""SQL auth stores using SQLAlchemy.

Every state transition that can race (refresh rotation, token consumption,
counter increments) is a single conditional UPDATE whose rowcount decides
the winner.
"""

from __future__ import annotations

import logging
from typing import Callable

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from auth.interfaces.user_store import DuplicateAccountError
from db.engine import SessionLocal
from db.models.auth import RateLimitCounter, RefreshSession, SingleUseToken
from db.models.user import Account, Profile

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Session]

_ACCOUNT_FIELDS = (
    "id",
    "email",
    "name",
    "hashed_password",
    "auth_provider",
    "provider_id",
    "is_email_verified",
    "role",
    "is_active",
    "failed_login_attempts",
    "lock_until",
    "last_login",
)


def _account_to_dict(account: Account) -> dict:
    data = {name: getattr(account, name) for name in _ACCOUNT_FIELDS}
    data["created_at"] = int(account.created_at.timestamp()) if account.created_at else None
    data["updated_at"] = int(account.updated_at.timestamp()) if account.updated_at else None
    return data


class _SqlStore:
    def __init__(self, session_factory: SessionFactory | None = None) -> None:
        self._session_factory = session_factory or SessionLocal

    def _get_session(self) -> Session:
        return self._session_factory()


class SqlUserStore(_SqlStore):
    """Account store backed by SQL."""

    async def get_by_email(self, email: str) -> dict | None:
        with self._get_session() as db:
            account = db.execute(
                select(Account).where(Account.email == email.strip().lower())
            ).scalar_one_or_none()
            return _account_to_dict(account) if account else None

    async def get_by_id(self, account_id: int) -> dict | None:
        with self._get_session() as db:
            account = db.get(Account, account_id)
            return _account_to_dict(account) if account else None

    async def get_by_provider(self, provider: str, provider_id: str) -> dict | None:
        with self._get_session() as db:
            account = db.execute(
                select(Account).where(
                    Account.auth_provider == provider,
                    Account.provider_id == provider_id,
                )
            ).scalar_one_or_none()
            return _account_to_dict(account) if account else None

    async def create_account(self, data: dict) -> dict:
        with self._get_session() as db:
            account = Account(
                email=data["email"].strip().lower(),
                name=data.get("name"),
                hashed_password=data.get("hashed_password"),
                auth_provider=data.get("auth_provider", "local"),
                provider_id=data.get("provider_id"),
                is_email_verified=bool(data.get("is_email_verified", False)),
                role=data.get("role", "user"),
                is_active=data.get("is_active", True),
                failed_login_attempts=data.get("failed_login_attempts", 0),
            )
            db.add(account)
            try:
                db.commit()
            except IntegrityError as exc:
                db.rollback()
                raise DuplicateAccountError(str(exc.orig)) from exc
            db.refresh(account)
            return _account_to_dict(account)

    async def update_account(self, account_id: int, updates: dict) -> dict:
        with self._get_session() as db:
            account = db.get(Account, account_id)
            if not account:
                raise ValueError("Account not found")
            for key, value in updates.items():
                if hasattr(account, key):
                    setattr(account, key, value)
            try:
                db.commit()
            except IntegrityError as exc:
                db.rollback()
                raise DuplicateAccountError(str(exc.orig)) from exc
            db.refresh(account)
            return _account_to_dict(account)


class SqlVerificationStore(_SqlStore):
    """Single-use token store backed by SQL."""

    async def save(self, record: dict) -> None:
        with self._get_session() as db:
            db.add(
                SingleUseToken(
                    token_hash=record["token_hash"],
                    account_id=record["account_id"],
                    purpose=record["purpose"],
                    created_at=record["created_at"],
                    expires_at=record["expires_at"],
                    consumed_at=record.get("consumed_at"),
                )
            )
            db.commit()

    async def get_by_hash(self, token_hash: str) -> dict | None:
        with self._get_session() as db:
            token = db.get(SingleUseToken, token_hash)
            if not token:
                return None
            return {
                "token_hash": token.token_hash,
                "account_id": token.account_id,
                "purpose": token.purpose,
                "created_at": token.created_at,
                "expires_at": token.expires_at,
                "consumed_at": token.consumed_at,
            }

    async def consume(self, token_hash: str, consumed_at: int) -> bool:
        with self._get_session() as db:
            result = db.execute(
                update(SingleUseToken)
                .where(
                    SingleUseToken.token_hash == token_hash,
                    SingleUseToken.consumed_at.is_(None),
                )
                .values(consumed_at=consumed_at)
                .execution_options(synchronize_session=False)
            )
            db.commit()
            return result.rowcount == 1

    async def delete_for_account(self, account_id: int, purpose: str) -> int:
        with self._get_session() as db:
            result = db.execute(
                delete(SingleUseToken)
                .where(
                    SingleUseToken.account_id == account_id,
                    SingleUseToken.purpose == purpose,
                    SingleUseToken.consumed_at.is_(None),
                )
                .execution_options(synchronize_session=False)
            )
            db.commit()
            return result.rowcount

    async def purge_expired(self, now: int) -> int:
        with self._get_session() as db:
            result = db.execute(
                delete(SingleUseToken)
                .where(SingleUseToken.expires_at <= now)
                .execution_options(synchronize_session=False)
            )
            db.commit()
            return result.rowcount


class SqlSessionStore(_SqlStore):
    """Refresh session store backed by SQL."""

    async def create_session(
        self,
        session_id: str,
        account_id: int,
        refresh_token_hash: str,
        issued_at: int,
        expires_at: int,
    ) -> None:
        with self._get_session() as db:
            db.add(
                RefreshSession(
                    session_id=session_id,
                    account_id=account_id,
                    refresh_token_hash=refresh_token_hash,
                    issued_at=issued_at,
                    expires_at=expires_at,
                    revoked=False,
                )
            )
            db.commit()

    async def get_session(self, session_id: str) -> dict | None:
        with self._get_session() as db:
            session = db.get(RefreshSession, session_id)
            if not session:
                return None
            return {
                "session_id": session.session_id,
                "account_id": session.account_id,
                "refresh_token_hash": session.refresh_token_hash,
                "issued_at": session.issued_at,
                "expires_at": session.expires_at,
                "revoked": session.revoked,
            }

    async def rotate_session(
        self,
        session_id: str,
        expected_hash: str,
        new_hash: str,
        issued_at: int,
        expires_at: int,
    ) -> bool:
        with self._get_session() as db:
            result = db.execute(
                update(RefreshSession)
                .where(
                    RefreshSession.session_id == session_id,
                    RefreshSession.refresh_token_hash == expected_hash,
                    RefreshSession.revoked.is_(False),
                )
                .values(refresh_token_hash=new_hash, issued_at=issued_at, expires_at=expires_at)
                .execution_options(synchronize_session=False)
            )
            db.commit()
            return result.rowcount == 1

    async def revoke_session(self, session_id: str) -> None:
        with self._get_session() as db:
            db.execute(
                update(RefreshSession)
                .where(RefreshSession.session_id == session_id)
                .values(revoked=True)
                .execution_options(synchronize_session=False)
            )
            db.commit()

    async def delete_session(self, session_id: str) -> None:
        with self._get_session() as db:
            db.execute(
                delete(RefreshSession)
                .where(RefreshSession.session_id == session_id)
                .execution_options(synchronize_session=False)
            )
            db.commit()

    async def revoke_all_for_account(self, account_id: int, except_session: str | None = None) -> int:
        with self._get_session() as db:
            statement = update(RefreshSession).where(
                RefreshSession.account_id == account_id,
                RefreshSession.revoked.is_(False),
            )
            if except_session:
                statement = statement.where(RefreshSession.session_id != except_session)
            result = db.execute(
                statement.values(revoked=True).execution_options(synchronize_session=False)
            )
            db.commit()
            return result.rowcount


class SqlRateLimitStore(_SqlStore):
    """Fixed-window counters backed by SQL."""

    _MAX_ATTEMPTS = 3

    async def hit(self, key: str, limit: int, window_ms: int, now_ms: int) -> tuple[bool, int]:
        window_floor = now_ms - window_ms
        with self._get_session() as db:
            for _ in range(self._MAX_ATTEMPTS):
                # Inside the current window and under budget
                result = db.execute(
                    update(RateLimitCounter)
                    .where(
                        RateLimitCounter.key == key,
                        RateLimitCounter.window_start_ms > window_floor,
                        RateLimitCounter.count < limit,
                    )
                    .values(count=RateLimitCounter.count + 1, limit=limit, window_ms=window_ms)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 1:
                    window_start = db.execute(
                        select(RateLimitCounter.window_start_ms).where(RateLimitCounter.key == key)
                    ).scalar_one()
                    db.commit()
                    return True, window_start

                # Window elapsed: start a new one with this hit
                result = db.execute(
                    update(RateLimitCounter)
                    .where(
                        RateLimitCounter.key == key,
                        RateLimitCounter.window_start_ms <= window_floor,
                    )
                    .values(window_start_ms=now_ms, count=1, limit=limit, window_ms=window_ms)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 1:
                    db.commit()
                    return True, now_ms

                row = db.execute(
                    select(RateLimitCounter.window_start_ms, RateLimitCounter.count).where(
                        RateLimitCounter.key == key
                    )
                ).one_or_none()
                if row is not None:
                    window_start, count = row
                    db.commit()
                    if window_start > window_floor and count >= limit:
                        return False, window_start
                    # Another request moved the window between our updates.
                    logger.debug("Counter %s changed concurrently, retrying", key)
                    continue

                db.add(
                    RateLimitCounter(
                        key=key,
                        window_start_ms=now_ms,
                        count=1,
                        limit=limit,
                        window_ms=window_ms,
                    )
                )
                try:
                    db.commit()
                    return True, now_ms
                except IntegrityError:
                    db.rollback()
                    logger.debug("Counter %s created concurrently, retrying", key)
        raise RuntimeError(f"Could not settle rate limit counter {key}")


class SqlProfileStore(_SqlStore):
    """Writes the profile stub created at first OAuth sign-in."""

    async def create_profile_stub(self, account_id: int, data: dict) -> None:
        with self._get_session() as db:
            db.add(
                Profile(
                    account_id=account_id,
                    first_name=data.get("first_name") or "",
                    middle_name=data.get("middle_name") or "",
                    last_name=data.get("last_name") or "",
                    email_id=data.get("email_id"),
                )
            )
            db.commit()
