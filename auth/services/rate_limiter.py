"""Fixed-window action rate limiter."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable

from auth.config import AuthConfig
from auth.exceptions import RateLimitExceededError
from auth.interfaces.rate_limiter import RateLimitStore

logger = logging.getLogger(__name__)

MINUTE_MS = 60 * 1000
DAY_MS = 24 * 60 * MINUTE_MS


@dataclass(frozen=True)
class ActionPolicy:
    action_key: str
    limit: int
    window_ms: int


def default_action_policies(config: AuthConfig) -> dict[str, ActionPolicy]:
    """Per-member budgets for the actions that attract spam and scraping."""
    return {
        "send-interest": ActionPolicy("send-interest", config.INTEREST_LIMIT_PER_DAY, DAY_MS),
        "profile-view": ActionPolicy("profile-view", config.PROFILE_VIEW_LIMIT_PER_MINUTE, MINUTE_MS),
    }


class ActionRateLimiter:
    """
    Counts actions per ``(actor_id, action_key)`` in fixed windows.

    A window opens on the first hit and resets once ``window_ms`` has fully
    elapsed. Bursts of up to twice the limit across a window edge are allowed.
    """

    def __init__(self, store: RateLimitStore, clock: Callable[[], float] = time.time) -> None:
        self._store = store
        self._clock = clock

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    async def check_and_consume(
        self,
        actor_id: int | str,
        action_key: str,
        limit: int,
        window_ms: int,
    ) -> bool:
        if limit < 1:
            raise ValueError("limit must be at least 1")
        if window_ms <= 0:
            raise ValueError("window_ms must be positive")

        now_ms = self._now_ms()
        allowed, window_start_ms = await self._store.hit(
            f"{actor_id}:{action_key}", limit, window_ms, now_ms
        )
        if not allowed:
            retry_after_ms = window_start_ms + window_ms - now_ms
            logger.info(
                "Rate limit hit for actor %s on %s, retry in %d ms",
                actor_id,
                action_key,
                retry_after_ms,
            )
            raise RateLimitExceededError(action_key, retry_after_ms)
        return True

    async def enforce(self, actor_id: int | str, policy: ActionPolicy) -> bool:
        return await self.check_and_consume(actor_id, policy.action_key, policy.limit, policy.window_ms)

    async def allow(self, key: str, limit: int, window_seconds: int) -> bool:
        """Non-raising form used for per-IP throttles."""
        try:
            return await self.check_and_consume(key, "ip", limit, window_seconds * 1000)
        except RateLimitExceededError:
            return False
