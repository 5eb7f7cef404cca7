"""In-memory auth stores."""

from __future__ import annotations

import asyncio
import time
from typing import Any

from auth.interfaces.user_store import DuplicateAccountError


class MemoryUserStore:
    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._accounts_by_id: dict[int, dict[str, Any]] = {}
        self._ids_by_email: dict[str, int] = {}
        self._ids_by_provider: dict[tuple[str, str], int] = {}
        self._next_id = 1

    async def get_by_email(self, email: str) -> dict | None:
        async with self._lock:
            account_id = self._ids_by_email.get(email.strip().lower())
            return self._copy(account_id)

    async def get_by_id(self, account_id: int) -> dict | None:
        async with self._lock:
            return self._copy(account_id)

    async def get_by_provider(self, provider: str, provider_id: str) -> dict | None:
        async with self._lock:
            account_id = self._ids_by_provider.get((provider, provider_id))
            return self._copy(account_id)

    async def create_account(self, data: dict) -> dict:
        async with self._lock:
            payload = dict(data)
            payload["email"] = payload["email"].strip().lower()
            provider_key = self._provider_key(payload)
            if payload["email"] in self._ids_by_email:
                raise DuplicateAccountError(f"email {payload['email']} already exists")
            if provider_key and provider_key in self._ids_by_provider:
                raise DuplicateAccountError(f"provider identity {provider_key} already exists")

            account_id = self._next_id
            self._next_id += 1
            payload["id"] = account_id
            payload.setdefault("auth_provider", "local")
            payload.setdefault("provider_id", None)
            payload.setdefault("hashed_password", None)
            payload.setdefault("is_email_verified", False)
            payload.setdefault("role", "user")
            payload.setdefault("is_active", True)
            payload.setdefault("failed_login_attempts", 0)
            payload.setdefault("lock_until", None)
            payload.setdefault("last_login", None)
            payload["created_at"] = payload.get("created_at", int(time.time()))
            payload["updated_at"] = payload.get("updated_at", payload["created_at"])

            self._accounts_by_id[account_id] = payload
            self._ids_by_email[payload["email"]] = account_id
            if provider_key:
                self._ids_by_provider[provider_key] = account_id
            return dict(payload)

    async def update_account(self, account_id: int, updates: dict) -> dict:
        async with self._lock:
            account = self._accounts_by_id.get(account_id)
            if not account:
                raise ValueError("Account not found")

            candidate = {**account, **updates}
            candidate["email"] = candidate["email"].strip().lower()
            owner = self._ids_by_email.get(candidate["email"])
            if owner is not None and owner != account_id:
                raise DuplicateAccountError(f"email {candidate['email']} already exists")
            new_key = self._provider_key(candidate)
            if new_key:
                owner = self._ids_by_provider.get(new_key)
                if owner is not None and owner != account_id:
                    raise DuplicateAccountError(f"provider identity {new_key} already exists")

            old_key = self._provider_key(account)
            self._ids_by_email.pop(account["email"], None)
            if old_key:
                self._ids_by_provider.pop(old_key, None)

            account.update(candidate)
            account["updated_at"] = int(time.time())
            self._ids_by_email[account["email"]] = account_id
            if new_key:
                self._ids_by_provider[new_key] = account_id
            return dict(account)

    def _copy(self, account_id: int | None) -> dict | None:
        if account_id is None:
            return None
        account = self._accounts_by_id.get(account_id)
        return dict(account) if account else None

    @staticmethod
    def _provider_key(account: dict) -> tuple[str, str] | None:
        if not account.get("provider_id"):
            return None
        return account["auth_provider"], account["provider_id"]


class MemoryVerificationStore:
    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._by_hash: dict[str, dict[str, Any]] = {}

    async def save(self, record: dict) -> None:
        async with self._lock:
            payload = dict(record)
            payload.setdefault("consumed_at", None)
            self._by_hash[payload["token_hash"]] = payload

    async def get_by_hash(self, token_hash: str) -> dict | None:
        async with self._lock:
            record = self._by_hash.get(token_hash)
            return dict(record) if record else None

    async def consume(self, token_hash: str, consumed_at: int) -> bool:
        async with self._lock:
            record = self._by_hash.get(token_hash)
            if not record or record.get("consumed_at") is not None:
                return False
            record["consumed_at"] = consumed_at
            return True

    async def delete_for_account(self, account_id: int, purpose: str) -> int:
        async with self._lock:
            stale = [
                token_hash
                for token_hash, record in self._by_hash.items()
                if record["account_id"] == account_id
                and record["purpose"] == purpose
                and record.get("consumed_at") is None
            ]
            for token_hash in stale:
                del self._by_hash[token_hash]
            return len(stale)

    async def purge_expired(self, now: int) -> int:
        async with self._lock:
            expired = [
                token_hash
                for token_hash, record in self._by_hash.items()
                if record["expires_at"] <= now
            ]
            for token_hash in expired:
                del self._by_hash[token_hash]
            return len(expired)


class MemorySessionStore:
    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._sessions: dict[str, dict[str, Any]] = {}

    async def create_session(
        self,
        session_id: str,
        account_id: int,
        refresh_token_hash: str,
        issued_at: int,
        expires_at: int,
    ) -> None:
        async with self._lock:
            self._sessions[session_id] = {
                "session_id": session_id,
                "account_id": account_id,
                "refresh_token_hash": refresh_token_hash,
                "issued_at": issued_at,
                "expires_at": expires_at,
                "revoked": False,
            }

    async def get_session(self, session_id: str) -> dict | None:
        async with self._lock:
            session = self._sessions.get(session_id)
            return dict(session) if session else None

    async def rotate_session(
        self,
        session_id: str,
        expected_hash: str,
        new_hash: str,
        issued_at: int,
        expires_at: int,
    ) -> bool:
        async with self._lock:
            session = self._sessions.get(session_id)
            if not session or session["revoked"]:
                return False
            if session["refresh_token_hash"] != expected_hash:
                return False
            session["refresh_token_hash"] = new_hash
            session["issued_at"] = issued_at
            session["expires_at"] = expires_at
            return True

    async def revoke_session(self, session_id: str) -> None:
        async with self._lock:
            session = self._sessions.get(session_id)
            if session:
                session["revoked"] = True

    async def delete_session(self, session_id: str) -> None:
        async with self._lock:
            self._sessions.pop(session_id, None)

    async def revoke_all_for_account(self, account_id: int, except_session: str | None = None) -> int:
        async with self._lock:
            count = 0
            for session in self._sessions.values():
                if session["account_id"] != account_id or session["session_id"] == except_session:
                    continue
                if not session["revoked"]:
                    session["revoked"] = True
                    count += 1
            return count


class MemoryRateLimitStore:
    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._counters: dict[str, dict[str, int]] = {}

    async def hit(self, key: str, limit: int, window_ms: int, now_ms: int) -> tuple[bool, int]:
        async with self._lock:
            counter = self._counters.get(key)
            if counter is None or now_ms - counter["window_start_ms"] >= window_ms:
                counter = {
                    "window_start_ms": now_ms,
                    "count": 0,
                    "limit": limit,
                    "window_ms": window_ms,
                }
                self._counters[key] = counter
            if counter["count"] >= limit:
                return False, counter["window_start_ms"]
            counter["count"] += 1
            return True, counter["window_start_ms"]


class MemoryProfileStore:
    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._profiles: dict[int, dict[str, Any]] = {}

    async def create_profile_stub(self, account_id: int, data: dict) -> None:
        async with self._lock:
            if account_id in self._profiles:
                raise ValueError("Profile already exists")
            self._profiles[account_id] = {"account_id": account_id, **data}

    async def get_profile(self, account_id: int) -> dict | None:
        async with self._lock:
            profile = self._profiles.get(account_id)
            return dict(profile) if profile else None
