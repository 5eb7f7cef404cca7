"""Rate limit counter store interface."""

from __future__ import annotations

from typing import Protocol


class RateLimitStore(Protocol):
    async def hit(self, key: str, limit: int, window_ms: int, now_ms: int) -> tuple[bool, int]:
        """Consume one unit of a fixed window.

        Returns ``(allowed, window_start_ms)`` for the window the hit landed in.
        """
        ...
