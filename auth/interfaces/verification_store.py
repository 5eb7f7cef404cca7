"""Single-use token store interface (password reset, email verification)."""

from __future__ import annotations

from typing import Protocol


class VerificationStore(Protocol):
    async def save(self, record: dict) -> None:
        ...

    async def get_by_hash(self, token_hash: str) -> dict | None:
        ...

    async def consume(self, token_hash: str, consumed_at: int) -> bool:
        """Set ``consumed_at`` only if it is still unset. True for the single winner."""
        ...

    async def delete_for_account(self, account_id: int, purpose: str) -> int:
        ...

    async def purge_expired(self, now: int) -> int:
        ...
