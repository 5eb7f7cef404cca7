"""Profile stub writer interface."""

from __future__ import annotations

from typing import Protocol


class ProfileStore(Protocol):
    async def create_profile_stub(self, account_id: int, data: dict) -> None:
        ...
