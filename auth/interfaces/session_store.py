"""Session store interface for refresh tokens."""

from __future__ import annotations

from typing import Protocol


class SessionStore(Protocol):
    async def create_session(
        self,
        session_id: str,
        account_id: int,
        refresh_token_hash: str,
        issued_at: int,
        expires_at: int,
    ) -> None:
        ...

    async def get_session(self, session_id: str) -> dict | None:
        ...

    async def rotate_session(
        self,
        session_id: str,
        expected_hash: str,
        new_hash: str,
        issued_at: int,
        expires_at: int,
    ) -> bool:
        """Swap the stored hash only if it still equals ``expected_hash``."""
        ...

    async def revoke_session(self, session_id: str) -> None:
        ...

    async def delete_session(self, session_id: str) -> None:
        ...

    async def revoke_all_for_account(self, account_id: int, except_session: str | None = None) -> int:
        ...
