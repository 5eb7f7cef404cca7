"""Account store interface."""

from __future__ import annotations

from typing import Protocol


class DuplicateAccountError(Exception):
    """Raised when a write would break email or (provider, provider_id) uniqueness."""


class UserStore(Protocol):
    async def get_by_email(self, email: str) -> dict | None:
        ...

    async def get_by_id(self, account_id: int) -> dict | None:
        ...

    async def get_by_provider(self, provider: str, provider_id: str) -> dict | None:
        ...

    async def create_account(self, data: dict) -> dict:
        ...

    async def update_account(self, account_id: int, updates: dict) -> dict:
        ...
